#!/usr/bin/env python3
"""
Git wiki to HTML converter with generated navigation menus.

Every accepted markdown page of the source folder is rendered to HTML with
configurable pre/post substitution rules, then one menu document is written
per wiki language.
"""

import argparse
import asyncio
import json
import logging
import os
import re
import sys
from pathlib import Path
from typing import Callable, Dict, List, Optional

import markdown

from wiki_menu import (
    FilenameParser,
    MenuNode,
    MenuRenderer,
    build_menu_tree,
    translation_catalog,
)
from wiki_rules import ConfigurationError, apply_rules, compile_rules

logger = logging.getLogger(__name__)

OPTION_NAMES = (
    'src_dir', 'dest_dir', 'separator', 'hash_separator', 'multilang',
    'prefix_files', 'files_filter_rule', 'link_template', 'menu_file',
    'default_language', 'rules', 'menu_tpls',
)
RULE_SETS = ('pre', 'post', 'order')
TRANSLATIONS_FILE = '_translations_.json'


class GitWikiToHTML:
    """Transforms wiki markdown pages from ``src_dir`` into HTML in ``dest_dir``."""

    def __init__(self, src_dir: str = './', dest_dir: str = './', separator: str = ':',
                 hash_separator: Optional[str] = None, multilang: bool = True,
                 prefix_files: Optional[str] = 'Help', files_filter_rule: Optional[str] = None,
                 link_template: str = './#/%s', menu_file: str = '_menu_.html',
                 default_language: str = 'en', rules: Optional[Dict] = None,
                 menu_tpls: Optional[Dict[str, str]] = None,
                 renderer: Optional[Callable[[str], str]] = None):
        self.src_dir = src_dir or './'
        self.dest_dir = dest_dir or './'
        self.multilang = multilang is not False
        self.prefix_files = prefix_files or ''
        self.link_template = link_template or './#/%s'
        self.menu_file_name = menu_file or '_menu_.html'
        self.default_language = default_language or 'en'

        self.rules = rules or {}
        if not isinstance(self.rules, dict):
            raise ConfigurationError('Rules must be a mapping of rule sets')
        self.pre_rules = compile_rules(self.rules.get('pre'))
        self.post_rules = compile_rules(self.rules.get('post'))
        self.order = list(self.rules.get('order') or [])
        if not all(isinstance(item, str) for item in self.order):
            raise ConfigurationError('Order rules must be a list of page names')

        self.parser = FilenameParser(
            separator=separator or ':',
            hash_separator=hash_separator,
            multilang=self.multilang,
            prefix_files=self.prefix_files,
            files_filter_rule=files_filter_rule,
        )
        self.menu_renderer = MenuRenderer(self.parser, menu_tpls, self.link_template)

        self.renderer = renderer
        if renderer is None:
            self.md = markdown.Markdown(extensions=[
                'extra',  # tables, fenced code blocks, etc.
                'codehilite',  # syntax highlighting
                'toc',  # heading ids
                'sane_lists',
                'md_in_html',
            ])

        self.src_files: List[str] = []
        self.res_files: List[str] = []
        self.menu_files: List[str] = []
        self.menu = MenuNode()

    @property
    def separator(self) -> str:
        return self.parser.separator

    @property
    def hash_separator(self) -> str:
        return self.parser.hash_separator

    async def transform(self) -> List[str]:
        """Convert every page, then write the menus. Returns the generated page names."""
        logger.debug('transform')
        if not self.valid_configuration():
            raise ConfigurationError('Invalid SRC/DEST folder options')

        files = await self.load_files()
        logger.debug('%d files loaded', len(files))

        # one slot per file so res_files follows the input order, even after a failure
        slots: List[Optional[str]] = [None] * len(files)
        try:
            await asyncio.gather(*(self._convert_file(item, index, slots)
                                   for index, item in enumerate(files)))
        finally:
            self.res_files.extend(name for name in slots if name is not None)
        logger.debug('All files written')

        self.write_menus(files)
        return list(slots)

    async def _convert_file(self, filename: str, index: int, slots: List[Optional[str]]) -> str:
        content = await self.read_file(filename)
        slots[index] = await self.write_file(re.sub(r'\.md$', '.html', filename), self.parse(content))
        return slots[index]

    def write_menus(self, files: List[str]) -> List[str]:
        """Build the menu tree for ``files`` and write one menu per language."""
        self.menu = self.build_menu_tree(files)
        if not self.menu.children:
            return []

        menus = {}
        if self.multilang:
            for language, lang_menu in self.menu.children.items():
                root = lang_menu.get(self.prefix_files) if self.prefix_files else lang_menu
                menus[f'{language}{self.separator}{self.menu_file_name}'] = self.get_menu(root)
        else:
            root = self.menu.get(self.prefix_files) if self.prefix_files else self.menu
            menus[self.menu_file_name] = self.get_menu(root)

        for name, menu_str in menus.items():
            logger.debug('Write menu file: %s', name)
            (Path(self.dest_dir) / name).write_text(menu_str, encoding='utf-8')
            self.menu_files.append(name)
        return list(menus)

    def build_menu_tree(self, files: List[str]) -> MenuNode:
        return build_menu_tree(files, self.parser, self.order)

    def get_menu(self, menu_node, menu_key: Optional[str] = None, level: int = 1) -> str:
        return self.menu_renderer.render(menu_node, menu_key, level)

    def get_ordered_files(self, files: List[str], priority_list: Optional[List[str]] = None) -> List[str]:
        return self.parser.order_files(files, priority_list)

    def get_translation_object(self, files: Optional[List[str]] = None) -> Dict[str, Dict[str, str]]:
        return translation_catalog(files or self.src_files, self.parser, self.default_language)

    async def load_files(self) -> List[str]:
        """List the accepted pages of ``src_dir``, once per instance."""
        if self.src_files:
            logger.debug('loadFiles - loaded from cache')
            return self.src_files

        filenames = await asyncio.to_thread(os.listdir, self.src_dir)
        self.src_files = sorted(name for name in filenames if self.parser.accepts(name))
        return self.src_files

    async def read_file(self, filename: str) -> str:
        path = Path(self.src_dir) / filename
        return await asyncio.to_thread(path.read_text, encoding='utf-8')

    async def write_file(self, filename: str, content: str) -> str:
        path = Path(self.dest_dir) / filename
        await asyncio.to_thread(path.write_text, content, encoding='utf-8')
        logger.debug('File generated: %s', path)
        return filename

    def parse(self, content: str) -> str:
        """Pre rules, markdown, post rules."""
        content = apply_rules(content, self.pre_rules)
        content = self.render_markdown(content)
        return apply_rules(content, self.post_rules)

    def render_markdown(self, content: str) -> str:
        if self.renderer is not None:
            return self.renderer(content)
        # Reset markdown instance to clear any state
        self.md.reset()
        return self.md.convert(content)

    def valid_configuration(self) -> bool:
        if not Path(self.src_dir).is_dir():
            logger.debug('Invalid SRC folder: %s', self.src_dir)
            return False

        if not Path(self.dest_dir).is_dir():
            logger.debug('Invalid OUTPUT folder: %s', self.dest_dir)
            return False
        return True


def _load_json_object(path: str, what: str) -> Dict:
    try:
        with open(path, 'r', encoding='utf-8') as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as err:
        raise ConfigurationError(f'Cannot read {what} file {path}: {err}') from err

    if not isinstance(data, dict):
        raise ConfigurationError(f'The {what} file {path} must hold a JSON object')
    return data


def load_options(path: str) -> Dict:
    """Load converter options from a JSON file."""
    options = _load_json_object(path, 'options')
    unknown = set(options) - set(OPTION_NAMES)
    if unknown:
        raise ConfigurationError(f'Unknown options in {path}: {", ".join(sorted(unknown))}')
    return options


def load_rules(path: str) -> Dict:
    """Load ``pre``/``post``/``order`` rule sets from a JSON file."""
    rules = _load_json_object(path, 'rules')
    unknown = set(rules) - set(RULE_SETS)
    if unknown:
        raise ConfigurationError(f'Unknown rule sets in {path}: {", ".join(sorted(unknown))}')
    return rules


def main(argv=None):
    parser = argparse.ArgumentParser(description='Convert git wiki markdown pages to HTML with generated menus')
    parser.add_argument('src', help='Wiki source directory')
    parser.add_argument('dest', help='Output directory')
    parser.add_argument('--options', help='JSON file with converter options')
    parser.add_argument('--rules', help='JSON file with pre/post/order rules')
    parser.add_argument('--separator', help='Separator between page name segments (default ":")')
    parser.add_argument('--single-language', action='store_true', help='Pages have no locale prefix')
    parser.add_argument('--prefix', help='Required page name prefix, empty for none (default "Help")')
    parser.add_argument('--link-template', help='Menu link format, %%s is the page link (default "./#/%%s")')
    parser.add_argument('--menu-file', help='Menu file name (default "_menu_.html")')
    parser.add_argument('--default-language', help='Language used for the translation catalog (default "en")')
    parser.add_argument('--translations', action='store_true', help=f'Also write {TRANSLATIONS_FILE}')
    parser.add_argument('--debug', action='store_true', help='Log every generated file')

    args = parser.parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.debug else logging.WARNING,
                        format='%(name)s: %(message)s')

    try:
        options = load_options(args.options) if args.options else {}
        if args.rules:
            options['rules'] = load_rules(args.rules)
        options.update(src_dir=args.src, dest_dir=args.dest)
        if args.single_language:
            options['multilang'] = False
        overrides = {
            'separator': args.separator,
            'prefix_files': args.prefix,
            'link_template': args.link_template,
            'menu_file': args.menu_file,
            'default_language': args.default_language,
        }
        options.update({key: value for key, value in overrides.items() if value is not None})

        converter = GitWikiToHTML(**options)
        asyncio.run(converter.transform())

        if args.translations:
            catalog = converter.get_translation_object()
            with open(Path(converter.dest_dir) / TRANSLATIONS_FILE, 'w', encoding='utf-8') as f:
                json.dump(catalog, f, indent=2, ensure_ascii=False)
    except (ValueError, OSError) as err:
        print(f'Error: {err}')
        return 1

    print(f'Transform DONE. {len(converter.res_files)} Files generated, '
          f'{len(converter.menu_files)} menus')
    return 0


if __name__ == '__main__':
    sys.exit(main())
