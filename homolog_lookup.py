#!/usr/bin/env python3
"""Render the homologation lookup page for a `/?<id>` query.

Supported queries:

    /?<id>                     show the record
    /?<id>/<field>[/<index>]   redirect to the URL stored in <field>
    /?sumario<N>               show page N of the summary

Records live in DADOS/homologacoes/<process number>-<suffix>.json. An id
that is not the file name is resolved through sumario_all.json (see
make_summary.py). Every failure ends in an ErrorView with a short tag
(e.g. "BX") shown next to the title.
"""
from __future__ import annotations

import argparse
import logging
import re
import sys
from dataclasses import dataclass, field

from bs4 import BeautifulSoup

import site_config
from log_setup import setup_logging
from resource_fetch import CachedFetcher, FetchExhaustedError, HttpProvider, LocalFileProvider, is_url

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = {
    'id': 'Peticionamento ou Processo',
    'tp': 'Tipo de processo',
    'dp': 'Data da Petição',
    'mc': 'Marca',
    'md': 'Modelo',
    'fccid': 'FCC ID',
    'sn': 'Número de Série',
    'r': 'Homologação<sup>1</sup>',
    'v': 'Validação da Homologação<sup>1</sup>',
    'dt': 'Data de Homologação',
    'cid': 'Código de Identificação',
}
# fields a /?<id>/<field> query may redirect to
DESTINATION_FIELDS = dict(REQUIRED_FIELDS)

PLACEHOLDERS = {
    'imp': 'Certificação de Produto: Declaração de Conformidade - Importado uso próprio',
}

SUMMARY_COLUMNS = ['Peticionamento', 'Marca / Modelo', 'ID']
SUMMARY_LINK = '<p>Consulte o <a href="/?sumario0">Sumário</a> para lista de rádios.</p>'
SUMMARY_RE = re.compile(r'sumario(\d+)', re.I)
PROCESS_NUMBER_RE = re.compile(r'^(\d{5})(\d{6})(\d{4})(\d{2})(\w+)?$', re.I)
LINK_RE = re.compile(r'^\s?(http|ftp)s?://')
MAX_ALIAS_HOPS = 3
INDEX_KEY_LENGTH = 17

PAGE_TEMPLATE = """<!DOCTYPE html>
<html lang="pt-BR">
<head><meta charset="utf-8"><title></title></head>
<body><div class="container"><h1 id="ttl"></h1><div class="desc"></div><div class="dl loaded"></div></div></body>
</html>"""


class LookupFailure(Exception):
    def __init__(self, tag: str, title: str, description: str):
        super().__init__(f'{title}: {strip_tags(description)}')
        self.tag = tag
        self.title = title
        self.description = description


@dataclass
class ErrorView:
    tag: str
    title: str
    description: str


@dataclass
class Redirect:
    url: str


@dataclass
class SummaryRow:
    record_id: str
    brand_model: str
    cid: str
    href: str


@dataclass
class SummaryView:
    page: int
    rows: list = field(default_factory=list)
    previous_page: int | None = None
    next_page: int | None = None


@dataclass
class RecordView:
    title: str
    rows: list = field(default_factory=list)


def strip_tags(text: str) -> str:
    return re.sub(r'<[^>]+>', '', str(text))


def strip_non_word(value) -> str:
    return re.sub(r'\W', '', str(value), flags=re.ASCII)


def record_error(tag: str) -> LookupFailure:
    return LookupFailure(tag, 'Dados de registro incorretos',
                         'O arquivo do registro existe, mas a formatação está incorreta, impedindo a exibição.')


def parameter_error(tag: str, invalid: bool = False) -> LookupFailure:
    return LookupFailure(
        tag, 'Parâmetro inexistente' + (' ou inválido' if invalid else ''),
        'A URL deve terminar com <span class="url">"/?<b>XXX</b>"</span>, onde "XXX" é o nº do '
        'peticionamento, despacho ou homologação Anatel sem pontuação. ' + SUMMARY_LINK)


def summary_error(tag: str) -> LookupFailure:
    return LookupFailure(tag, 'Sumário mal formatado',
                         'O sumário existe, mas possui uma formatação incompatível para exibição.')


def destinations_help() -> str:
    items = ''.join(f'<li><b>{k}:</b> {v}</li>' for k, v in DESTINATION_FIELDS.items())
    return ('<p>Apenas os destinos abaixo podem ser usados, <b>mas</b> note que a maioria não '
            f"conterá URL:</p><ul class='pr'>{items}</ul>{SUMMARY_LINK}")


def parse_query(query: str) -> list[str]:
    """'/?53500077722202544uvk6/r/1' -> ['53500077722202544uvk6', 'r', '1']"""
    text = (query or '').split('?', 1)[-1].strip().rstrip('/')
    parts = [p.strip() for p in text.split('/')]
    if not parts[0]:
        raise parameter_error('CX')
    if re.search(r'[^A-Za-z0-9._-]', parts[0]):
        raise parameter_error('1T', invalid=True)
    return parts


def format_cid(code: str) -> str:
    """'53500077722202544uvk6' -> '53500-077722-2025-44-uvk6'"""
    code = re.sub(r'[^a-z0-9]', '', code.strip(), flags=re.I)
    m = PROCESS_NUMBER_RE.match(code)
    if not m:
        return code
    return '-'.join(m.group(1, 2, 3, 4)) + '-' + (m.group(5) or '')


def id_from_path(path: str) -> str:
    """'DADOS/homologacoes/53500-077722-2025-44-.json' -> '53500-077722-2025-44-'"""
    path = path.split('?t=')[0].split('.json')[0]
    return path.split('?')[-1].split('/')[-1]


def is_link(value) -> bool:
    return isinstance(value, str) and bool(LINK_RE.match(value))


def make_link(value, raw: bool = False):
    """HTML for a value: [text, url] pairs become links, lists of pairs a <ul>.

    With `raw` the URL itself is returned (a list of them for lists of
    pairs) or None when there is none.
    """
    if raw and is_link(value):
        return value.strip()
    if not isinstance(value, list):
        return None if raw else value
    if not value:
        return None if raw else ''
    if isinstance(value[0], str):
        if is_link(value[0]):
            pos = 0
        elif len(value) > 1 and is_link(value[1]):
            pos = 1
        else:
            return None if raw else ', '.join(str(v) for v in value)
        link = str(value[pos]).strip()
        if raw:
            return link
        text = value[1 - pos] if len(value) > 1 else link
        return f'<a href="{link}" target="_blank">{text}</a>'
    if not isinstance(value[0], list):
        return None if raw else ''
    if raw:
        return [make_link(v, True) for v in value]
    return '<ul>' + ''.join(f'<li>{make_link(v)}</li>' for v in value) + '</ul>'


def homologation_text(value) -> str:
    if isinstance(value, str) and value.strip():
        return value
    if isinstance(value, list) and len(value) == 2:
        return f'Código: {value[0]}<br />CRC: {value[1]}'
    return ''


def substitute_placeholders(text) -> str:
    """Replace ${key} with its PLACEHOLDERS text ('???' when unknown)."""
    return re.sub(r'\$\{(\w+)\}', lambda m: PLACEHOLDERS.get(m.group(1).strip().lower(), '???'),
                  '' if text is None else str(text))


def pre_format(value, key: str | None = None) -> str:
    return substitute_placeholders(homologation_text(value) if key == 'v' else make_link(value))


class HomologationLookup:
    """Resolves lookup queries against the site's JSON files."""

    def __init__(self, fetcher: CachedFetcher, base_url: str = '',
                 data_path: str = site_config.HOMOLOGACOES_URL_PATH, requester: dict | None = None):
        self.fetcher = fetcher
        self.base_url = base_url.rstrip('/')
        self.data_path = data_path.strip('/')
        self.requester = requester or {}

    def url(self, name: str) -> str:
        return f'{self.base_url}/{self.data_path}/{name}.json'

    def load_index(self) -> dict:
        index = self.fetcher.get(self.url('sumario_all'))
        return index if isinstance(index, dict) else {}

    def resolve_alias(self, cid: str):
        """URL producer for CachedFetcher: look the previous URL's id up in the index."""
        def resolve(previous):
            index = self.load_index()
            source = previous
            for _ in range(MAX_ALIAS_HOPS + 1):
                key = strip_non_word(id_from_path(source) if source else cid)[:INDEX_KEY_LENGTH]
                value = index.get(key)
                if not isinstance(value, str):
                    return None
                if '@' in value:
                    return self.url(value.replace('@', format_cid(key)))
                source = '/?' + value
            return None
        return resolve

    def lookup(self, query: str):
        try:
            return self._lookup(query)
        except LookupFailure as e:
            logger.info("Lookup %r failed: %s %s", query, e.tag, e.title)
            return ErrorView(e.tag, e.title, e.description)

    def _lookup(self, query: str):
        parts = parse_query(query)
        cid = format_cid(parts[0])
        resolve = self.resolve_alias(cid)
        try:
            data = self.fetcher.get([self.url(cid), resolve, resolve, resolve])
        except FetchExhaustedError as e:
            logger.debug("No file for %s: %s", cid, e)
            raise parameter_error('BX')

        m = SUMMARY_RE.search(cid)
        if m:
            return self.summary_view(int(m.group(1)), data)

        if not isinstance(data, dict):
            raise record_error('ITM1')
        for key in REQUIRED_FIELDS:
            if key not in data:
                raise record_error(f':{key}')
        if not isinstance(data.get('items'), list):
            raise record_error('ITM1')

        if len(parts) >= 2:
            return self.destination(data, parts)
        return self.record_view(data)

    def destination(self, data: dict, parts: list[str]) -> Redirect:
        name = parts[1].strip().lower()
        if name not in DESTINATION_FIELDS:
            raise LookupFailure('D1', f'Destino "{name}" inválido', 'Destino não é permitido.' + destinations_help())
        if name not in data:
            raise LookupFailure('D2', f'Destino "{name}" inexistente',
                                'Variável não definida no registro.' + destinations_help())
        value = data[name]
        try:
            idx = int(parts[2]) if len(parts) > 2 else 0
        except ValueError:
            idx = None
        if isinstance(value, list) and idx is not None and 0 <= idx < len(value) and isinstance(value[idx], list):
            value = value[idx]
        url = make_link(value, raw=True)
        if isinstance(url, list):
            url = next((u for u in url if u), None)
        if not url:
            raise LookupFailure('D3', f'Destino "{name}" inválido',
                                'Variável de destino não é uma URL válida ou existente.' + destinations_help())
        return Redirect(url)

    def record_view(self, data: dict) -> RecordView:
        rows = [(label, pre_format(data[key], key)) for key, label in REQUIRED_FIELDS.items()]
        for item in data['items']:
            if not isinstance(item, list) or not item or not item[0]:
                raise record_error('ITM2')
            rows.append((substitute_placeholders(item[0]), pre_format(item[1] if len(item) > 1 else '')))
        if self.requester:
            details = ''.join(f'<li>{k}: <b>{v}</b></li>' for k, v in self.requester.items())
            rows.append(('Solicitante', f'<ul>{details}</ul>'))
        brand = str(data['mc'] or '')
        return RecordView(f"<small>{brand[:1].upper() + brand[1:].lower()}</small> {data['md']}", rows)

    def summary_view(self, page: int, data) -> SummaryView:
        if not isinstance(data, list):
            raise summary_error('S1')
        view = SummaryView(page, previous_page=page - 1 if page > 0 else None)
        for k, entry in enumerate(data):
            if k == len(data) - 1 and isinstance(entry, int) and not isinstance(entry, bool):
                view.next_page = entry if entry >= 0 else None
                continue
            if not isinstance(entry, list) or len(entry) != len(SUMMARY_COLUMNS) + 1:
                raise summary_error('S2')
            record_id = strip_non_word(entry[0])
            href = '/?' + record_id
            if PROCESS_NUMBER_RE.match(record_id):
                href += strip_non_word(entry[3])
            view.rows.append(SummaryRow(str(entry[0]), str(entry[1]), str(entry[2]), href))
        return view


def lookup(query: str, fetcher: CachedFetcher, data_path: str = site_config.HOMOLOGACOES_URL_PATH,
           base_url: str = ''):
    return HomologationLookup(fetcher, base_url, data_path).lookup(query)


def _set_html(tag, fragment: str) -> None:
    tag.clear()
    for child in list(BeautifulSoup(fragment, 'html.parser').contents):
        tag.append(child)


def _enclose(value: str, tag: str = 'span') -> str:
    return value if re.match(r'^\s*<\w+', value) else f'<{tag}>{value}</{tag}>'


def render_page(view) -> str:
    """Full HTML page for a lookup result."""
    soup = BeautifulSoup(PAGE_TEMPLATE, 'html.parser')
    title_tag = soup.find(id='ttl')
    desc = soup.find(class_='desc')
    listing = soup.find(class_='dl')

    def set_title(html_title):
        _set_html(title_tag, html_title)
        soup.title.string = strip_tags(html_title)

    if isinstance(view, ErrorView):
        set_title(f'⚠️ {view.title}<sup>{view.tag.upper()}</sup>' if view.tag else f'⚠️ {view.title}')
        _set_html(desc, view.description)
    elif isinstance(view, Redirect):
        set_title('Redirecionando...')
        soup.head.append(soup.new_tag('meta', attrs={'http-equiv': 'refresh', 'content': f'0; url={view.url}'}))
        _set_html(desc, f'<a href="{view.url}">{view.url}</a>')
    elif isinstance(view, SummaryView):
        set_title('Sumário')
        rows = ''.join(
            f'<tr><td><p><a href="{r.href}">{r.record_id} 🔗</a></p></td>'
            f'<td><p>{"".join(f"<i>{v}</i> " if i == 0 else v for i, v in enumerate(r.brand_model.split(";")))}</p></td>'
            f'<td><p>{r.cid}</p></td></tr>'
            for r in view.rows)
        head = ''.join(f'<td><p>{c}</p></td>' for c in SUMMARY_COLUMNS)
        nav = ''
        if view.previous_page is not None:
            nav += f'<a href="?sumario{view.previous_page}">« Anterior</a> '
        if view.next_page is not None:
            nav += f'<a href="?sumario{view.next_page}">Próximo »</a>'
        _set_html(listing, f'<div class="tbl x"><table><tr>{head}</tr>{rows}</table></div>'
                           f'<p class="center">{nav}</p>')
    elif isinstance(view, RecordView):
        set_title(view.title)
        rows = ''.join(
            f'<div class="dl-row"><div class="dt">{_enclose(label)}</div>'
            f'<div class="dd">{_enclose(value) if value and str(value).strip() else "---"}</div></div>'
            for label, value in view.rows)
        _set_html(listing, rows)
    return str(soup)


def main(argv=None):
    parser = argparse.ArgumentParser(description='Render the homologation lookup page for a query')
    parser.add_argument('query', help='Query string, e.g. "?53500077722202544uvk6" or "?sumario0"')
    parser.add_argument('--site', default=site_config.ROOT, help='Site root directory or base URL')
    parser.add_argument('--output', '-o', help='Write the page to this file instead of stdout')
    parser.add_argument('--log-level', default=site_config.LOG_LEVEL, help='Logging level')
    args = parser.parse_args(argv)

    setup_logging(args.log_level)
    if is_url(args.site):
        provider, base_url = HttpProvider(), args.site
    else:
        provider, base_url = LocalFileProvider(args.site), ''
    view = lookup(args.query, CachedFetcher(provider), base_url=base_url)
    page = render_page(view)
    if args.output:
        with open(args.output, 'w', encoding='utf-8') as fh:
            fh.write(page)
        print(f'Wrote {args.output}')
    else:
        print(page)
    if isinstance(view, Redirect):
        logger.info("Redirect to %s", view.url)
    return 1 if isinstance(view, ErrorView) else 0


if __name__ == '__main__':
    sys.exit(main())
