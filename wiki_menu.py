"""
Navigation menu generation for git wiki pages.

Wiki page names encode their place in the menu, e.g. ``en:Help:Setup:Install.md``
is the ``Install`` page of the ``Setup`` category under ``Help`` for the ``en``
locale. This module parses those names, orders them, folds them into a tree and
renders the tree to nested HTML through Jinja2 templates.
"""

import logging
import re
from functools import cmp_to_key
from typing import Dict, List, NamedTuple, Optional, Sequence
from urllib.parse import quote

from jinja2 import Environment, TemplateSyntaxError
from markupsafe import Markup

from wiki_rules import ConfigurationError

logger = logging.getLogger(__name__)

LOCALE_MATCH = r'^([a-z][a-zA-Z_]+)'

DEFAULT_MENU_TPLS = {
    'item': '<li><a href="{{ link }}">{{ title }}</a></li>',
    'category': '<li><span>{{ title }}</span><ul>{{ subitems }}</ul></li>',
    'category-1': '<ul>{{ subitems }}</ul>',
}


class ParsedName(NamedTuple):
    locale: Optional[str]
    segments: List[str]
    canonical_key: str


def strip_extension(filename: str) -> str:
    return re.sub(r'\.md$', '', filename)


def humanize(key: str) -> str:
    """Menu title for a segment: hyphens become spaces."""
    return (key or '').replace('-', ' ').strip()


class FilenameParser:
    """Splits wiki filenames into locale and menu segments."""

    def __init__(self, separator: str = ':', hash_separator: Optional[str] = None,
                 multilang: bool = True, prefix_files: Optional[str] = 'Help',
                 files_filter_rule: Optional[str] = None):
        if not separator:
            raise ConfigurationError('The filename separator cannot be empty')

        self.separator = separator
        self.hash_separator = hash_separator or quote(separator, safe="!*'()")
        self.multilang = multilang
        self.prefix_files = prefix_files or ''

        sep = re.escape(separator)
        # [locale<sep>][prefix]...md
        self.files_filter_rule = files_filter_rule or ''.join([
            LOCALE_MATCH + sep if multilang else '^',
            re.escape(self.prefix_files),
            r'.*\.md$',
        ])
        try:
            self._filter = re.compile(self.files_filter_rule)
        except re.error as err:
            raise ConfigurationError(f'Invalid files filter {self.files_filter_rule!r}: {err}') from err

        self._locale = re.compile(LOCALE_MATCH + sep)
        self._link_locale = re.compile(
            LOCALE_MATCH + '(?:%s|%s)' % (re.escape(self.hash_separator), sep))

    def accepts(self, filename: str) -> bool:
        return self._filter.search(filename) is not None

    def parse(self, filename: str) -> ParsedName:
        key = strip_extension(filename)
        locale = None
        if self.multilang:
            match = self._locale.match(key)
            if match:
                locale = match.group(1)
        return ParsedName(locale, key.split(self.separator), key)

    def strip_locale(self, name: str) -> str:
        if not self.multilang:
            return name
        return self._locale.sub('', name, count=1)

    def link_for(self, canonical_key: str) -> str:
        return canonical_key.replace(self.separator, self.hash_separator)

    def strip_link_locale(self, link: str) -> str:
        """Remove the locale from a menu link, encoded or not."""
        if not self.multilang:
            return link
        return self._link_locale.sub('', link, count=1)

    def order_files(self, filenames: Sequence[str],
                    priority_list: Optional[Sequence[str]] = None) -> List[str]:
        """
        Order filenames for the menu.

        Names listed in ``priority_list`` (without locale or extension) come
        first, in list order. Unlisted names follow in descending string order.
        """
        reverse_priority = list(reversed(priority_list or []))
        ranks = {}
        for name in filenames:
            key = self.strip_locale(strip_extension(name))
            ranks[name] = reverse_priority.index(key) if key in reverse_priority else -1

        def compare(first, second):
            rank1, rank2 = ranks[first], ranks[second]
            if rank1 == -1 and rank2 == -1:
                return (first < second) - (first > second)
            return (rank1 < rank2) - (rank1 > rank2)

        return sorted(filenames, key=cmp_to_key(compare))


class MenuNode:
    """
    One vertex of the menu tree.

    ``link`` is set when a page exists at this path, ``children`` keeps the
    sub-entries in insertion order. A node with a link and no children is a
    menu item, anything with children is a category.
    """

    __slots__ = ('link', 'children')

    def __init__(self, link: Optional[str] = None):
        self.link = link
        self.children: Dict[str, 'MenuNode'] = {}

    @property
    def is_item(self) -> bool:
        return self.link is not None and not self.children

    @property
    def is_empty(self) -> bool:
        return self.link is None and not self.children

    def child(self, segment: str) -> 'MenuNode':
        if segment not in self.children:
            self.children[segment] = MenuNode()
        return self.children[segment]

    def get(self, segment: str) -> Optional['MenuNode']:
        return self.children.get(segment)

    def __eq__(self, other):
        if not isinstance(other, MenuNode):
            return NotImplemented
        return (self.link == other.link
                and list(self.children.items()) == list(other.children.items()))

    def __repr__(self):
        return f'MenuNode(link={self.link!r}, children={list(self.children)!r})'


def build_menu_tree(filenames: Sequence[str], parser: FilenameParser,
                    priority_list: Optional[Sequence[str]] = None) -> MenuNode:
    """Fold the ordered filenames into a tree keyed by path segment."""
    root = MenuNode()
    for name in parser.order_files(filenames, priority_list):
        parsed = parser.parse(name)
        node = root
        for segment in parsed.segments:
            node = node.child(segment)
        node.link = parser.link_for(parsed.canonical_key)

    logger.debug('Menu tree built from %d files, %d top entries', len(filenames), len(root.children))
    return root


class MenuRenderer:
    """Renders a menu tree with level aware item/category templates."""

    def __init__(self, parser: FilenameParser, templates: Optional[Dict[str, str]] = None,
                 link_template: str = './#/%s'):
        self.parser = parser
        self.link_template = link_template
        self.env = Environment(autoescape=True)

        templates = templates or DEFAULT_MENU_TPLS
        if not isinstance(templates, dict):
            raise ConfigurationError('Menu templates must be a mapping of template names')
        missing = {'item', 'category'} - set(templates)
        if missing:
            raise ConfigurationError(f'Menu templates missing: {", ".join(sorted(missing))}')

        self.templates = {}
        for name, source in templates.items():
            try:
                self.templates[name] = self.env.from_string(source)
            except TemplateSyntaxError as err:
                raise ConfigurationError(f'Invalid menu template {name!r}: {err}') from err

    def format_link(self, link: Optional[str]) -> str:
        link = self.parser.strip_link_locale(link or '')
        return self.link_template.replace('%s', link, 1)

    def template_for(self, kind: str, level: int):
        if kind == 'category':
            # level specific template first
            return self.templates.get(f'category-{level}') or self.templates['category']
        return self.templates['item']

    def render_entry(self, key: Optional[str], link: Optional[str], subitems: str = '',
                     level: int = 1, kind: str = 'item') -> str:
        template = self.template_for(kind, level)
        return template.render(
            title=humanize(key),
            link=self.format_link(link),
            subitems=Markup(subitems),
            level=level,
        )

    def render(self, node, key: Optional[str] = None, level: int = 1) -> str:
        """Render ``node`` and everything below it."""
        if not isinstance(node, MenuNode) or node.is_empty:
            return ''

        if node.is_item:
            return self.render_entry(key, node.link, '', level, 'item')

        # a category's own page is passed to the template but gets no anchor of its own
        subitems = ''.join(
            self.render(child, name, level + 1) for name, child in node.children.items())
        return self.render_entry(key, node.link, subitems, level, 'category')


def translation_catalog(filenames: Sequence[str], parser: FilenameParser,
                        default_language: str = 'en') -> Dict[str, Dict[str, str]]:
    """
    Collect menu titles of the default language pages, keyed by locale.

    Every locale found gets the same title -> title mapping, ready to be
    edited by translators.
    """
    languages = []
    titles = {}
    for name in filenames:
        segments = parser.parse(name).segments
        language, parts = segments[0], segments[1:]
        if language not in languages:
            languages.append(language)

        if language == default_language:
            for part in parts:
                title = humanize(part)
                titles.setdefault(title, title)

    return {language: dict(titles) for language in languages}
