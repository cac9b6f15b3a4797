"""
Text substitution rules applied around the markdown renderer.

A rule is a single-entry mapping ``{pattern: replacement}``. Rule files are
shared with wiki tooling that writes back-references as ``$1``, ``$&`` and
``$$``, so replacements are translated to ``re`` template syntax on compile.
"""

import re
from typing import Dict, Iterable, List, Optional, Sequence, Tuple, Union

CompiledRule = Tuple["re.Pattern", str]
Rule = Union[Dict[str, str], CompiledRule]

_REPLACEMENT_TOKEN = re.compile(r'\$(?:(\$)|(&)|(\d{1,2})|<([A-Za-z_]\w*)>)|\\')


class ConfigurationError(ValueError):
    """Raised when options, rules, filters or templates are unusable."""


def translate_replacement(replacement: str, groups: int = 99,
                          names: Iterable[str] = ()) -> str:
    """Convert a ``$1``-style replacement into an ``re.sub`` template."""
    names = set(names)

    def convert(match):
        token = match.group(0)
        if token == '\\':
            return '\\\\'
        dollar, whole, number, name = match.groups()
        if dollar:
            return '$'
        if whole:
            return r'\g<0>'
        if number:
            if 0 < int(number) <= groups:
                return r'\g<%d>' % int(number)
            # $12 with only one group means group 1 followed by a literal 2
            if len(number) == 2 and 0 < int(number[0]) <= groups:
                return r'\g<%s>%s' % (number[0], number[1])
            return token
        if name in names:
            return r'\g<%s>' % name
        return token

    return _REPLACEMENT_TOKEN.sub(convert, replacement)


def compile_rules(rules: Optional[Sequence[Rule]]) -> List[CompiledRule]:
    """Validate and compile an ordered list of rules."""
    compiled = []
    for rule in rules or []:
        if isinstance(rule, tuple) and len(rule) == 2 and isinstance(rule[0], re.Pattern):
            compiled.append(rule)
            continue
        if not isinstance(rule, dict) or len(rule) != 1:
            raise ConfigurationError(f'A rule must be a single pattern/replacement pair, got {rule!r}')

        (pattern, replacement), = rule.items()
        try:
            regex = re.compile(pattern, re.MULTILINE)
        except (re.error, TypeError) as err:
            raise ConfigurationError(f'Invalid rule pattern {pattern!r}: {err}') from err
        compiled.append((regex, translate_replacement(str(replacement), regex.groups, regex.groupindex)))
    return compiled


def apply_rules(content: str, rules: Optional[Sequence[Rule]]) -> str:
    """Apply every rule in order, each one against the output of the previous."""
    if not rules:
        return content

    for regex, replacement in compile_rules(rules):
        content = regex.sub(replacement, content)
    return content
