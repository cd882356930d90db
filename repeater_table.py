"""Extract repeater rows from loosely formatted HTML tables.

Repeater lists published by radio clubs are hand-edited HTML. Three
strategies are tried in order and the first one returning rows wins:

1. `extract_with_headers` finds the header row, maps the columns by name
   and reads every following row through that map.
2. `extract_by_scanning` ignores headers and looks for call signs and
   frequencies anywhere in rows with 6 or more cells.
3. `extract_with_regex` repeats the header mapping on raw regex matches, for
   markup too broken for the HTML parser.
"""
from __future__ import annotations

import html as htmllib
import logging
import re
from typing import Callable

from bs4 import BeautifulSoup

from br_locations import CityDirectory, capitalize

logger = logging.getLogger(__name__)

# header text (lower-case, single-spaced) -> record field
HEADER_MAPPING = {
    'indicativo': 'callsign',
    'indicativo mantenedor': 'maintainer_callsign',
    'freq.tx': 'tx',
    'freq tx': 'tx',
    'freq': 'tx',
    'off-set': 'rx',
    'offset': 'rx',
    'freq.rx': 'rx',
    'tone mode': 'tone',
    'tone': 'tone',
    'tone / mode': 'tone',
    'mode': 'tone',
    'cidade de sp': 'city',
    'cidade': 'city',
    'licença anatel atualizada': 'license_date',
    'licença': 'license_date',
    'mantenedor operacional': 'maintainer',
    'mantenedor': 'maintainer',
    '#': 'index',
}

# Brazilian amateur prefixes PP-PY and ZV-ZZ
CALLSIGN_RE = re.compile(r'\b((?:P[P-Y]|Z[V-Z])\d[A-Z0-9]{1,4}(?:/\d)?)\b')
FREQ_RE = re.compile(r'(\d{3}\.\d{3})')
TONE_RE = re.compile(r'^\d+\.\d+$')
NUMBER_RE = re.compile(r'^[-+]?(?:\d+\.?\d*|\.\d+)')

UNKNOWN_CITY = 'Desconhecida'
# values below this in a "rx" column are offsets, not frequencies (MHz)
MAX_OFFSET = 30.0


def clean_html(html: str) -> str:
    """Drop scripts, styles, comments and presentational attributes; collapse whitespace."""
    html = re.sub(r'<script\b.*?</script>', '', html, flags=re.I | re.S)
    html = re.sub(r'<style\b.*?</style>', '', html, flags=re.I | re.S)
    html = re.sub(r'<link[^>]*>', '', html, flags=re.I)
    html = re.sub(r'<meta[^>]*>', '', html, flags=re.I)
    html = re.sub(r'<!--.*?-->', '', html, flags=re.S)
    html = re.sub(r'\s(?:on\w+|style|class|id)="[^"]*"', '', html, flags=re.I)
    return re.sub(r'\s+', ' ', html).strip()


def clean_city_name(city: str, state: str = 'SP') -> str:
    """'Campinas - SP' -> 'Campinas'"""
    st = re.escape(state)
    city = re.sub(rf'\s*-\s*{st}\s*$', '', city, flags=re.I)
    city = re.sub(rf'(?:^|\s+){st}\s*$', '', city, flags=re.I)
    city = re.sub(r'^&\w+;', '', city)
    city = re.sub(r'[^\w\s-]', '', city)
    return re.sub(r'\s+', ' ', city).strip()


def parse_float(text) -> float | None:
    """Leading number of `text` (decimal comma accepted), None when there is none."""
    if text is None:
        return None
    m = NUMBER_RE.match(str(text).strip().replace(',', '.'))
    if not m or m.group(0) in ('+', '-'):
        return None
    return float(m.group(0))


def format_tone(text: str) -> str:
    text = (text or '').strip()
    if not text:
        return '0.00'
    value = parse_float(text)
    if value is None:
        return text
    return f'{value:.2f}'


def normalize_header(text: str) -> str:
    return re.sub(r'\s+', ' ', text).strip().lower()


def is_known_header(text: str) -> bool:
    return any(pattern in text for pattern in HEADER_MAPPING)


def map_columns(headers: list[str]) -> dict[str, int]:
    """Map record fields to column indexes.

    The longest synonym found in a header decides its field; when two
    columns map to the same field the first one is kept.
    """
    column_map: dict[str, int] = {}
    for index, header in enumerate(headers):
        matches = [p for p in HEADER_MAPPING if p in header]
        if not matches:
            continue
        field = HEADER_MAPPING[max(matches, key=len)]
        column_map.setdefault(field, index)
    return column_map


class RecordBuilder:
    """Turns extracted cell values into repeater records for one state."""

    def __init__(self, state: str = 'SP', cities: CityDirectory | None = None):
        self.state = state.upper()
        self.cities = cities

    def resolve_city(self, city_text: str) -> str | None:
        """Canonical city name; None when the state's municipality list does not know it."""
        city = clean_city_name(city_text or UNKNOWN_CITY, self.state) or UNKNOWN_CITY
        if self.cities is not None:
            return self.cities.process_city(city, self.state)
        return capitalize(city)

    def build(self, rx: float, tx: float, tone_text: str, callsign: str, city_text: str) -> dict | None:
        city = self.resolve_city(city_text)
        if city is None:
            logger.debug("%s: unknown city %r, row skipped", callsign, city_text)
            return None
        if abs(rx) < MAX_OFFSET:
            rx = tx + rx
        rx = round(rx, 3)
        tx = round(tx, 3)
        return {
            'offset': round(rx - tx, 3),
            'rx': rx,
            'tx': tx,
            'tone': format_tone(tone_text),
            'location': [self.state, city],
            'info': {'callsign': callsign},
        }

    def from_columns(self, cells: list[str], column_map: dict[str, int]) -> dict | None:
        def pick(field):
            idx = column_map.get(field)
            if idx is None or idx >= len(cells):
                return ''
            return cells[idx].strip()

        callsign = pick('callsign')
        if not callsign or not CALLSIGN_RE.search(callsign):
            return None
        tx = parse_float(pick('tx'))
        rx = parse_float(pick('rx'))
        if tx is None or rx is None:
            return None
        return self.build(rx, tx, pick('tone'), callsign, pick('city'))


def _cell_text(cell) -> str:
    return re.sub(r'\s+', ' ', cell.get_text(' ')).strip()


def _parse(html: str) -> BeautifulSoup:
    return BeautifulSoup(clean_html(html), 'html.parser')


def find_header_row(rows) -> tuple[int, list[str]] | None:
    """Index and normalized texts of the first row with at least 3 known headers."""
    for i, row in enumerate(rows):
        texts = [normalize_header(_cell_text(c)) for c in row.find_all(['th', 'td'], recursive=False)]
        if sum(1 for t in texts if is_known_header(t)) >= 3:
            return i, texts
    return None


def extract_with_headers(html: str, builder: RecordBuilder) -> list[dict]:
    soup = _parse(html)
    for table in soup.find_all('table'):
        rows = table.find_all('tr')
        found = find_header_row(rows)
        if not found:
            continue
        header_index, headers = found
        column_map = map_columns(headers)
        if 'callsign' not in column_map or not ('tx' in column_map or 'rx' in column_map):
            continue

        result = []
        for row in rows[header_index + 1:]:
            cells = [_cell_text(td) for td in row.find_all('td', recursive=False)]
            if len(cells) < len(column_map):
                continue
            item = builder.from_columns(cells, column_map)
            if item:
                result.append(item)
        if result:
            return result
    return []


def scan_row(texts: list[str], builder: RecordBuilder) -> dict | None:
    """Guess callsign, frequencies, tone and city of a row from the cell contents."""
    callsign = None
    tx = rx = None
    tone = ''
    city = UNKNOWN_CITY

    for index, text in enumerate(texts):
        if callsign is None:
            m = CALLSIGN_RE.search(text)
            if m:
                callsign = m.group(1)
                # usual layout: # | callsign | tx | rx | tone | city
                if index == 1 and len(texts) > 4:
                    tx = parse_float(texts[2])
                    rx = parse_float(texts[3])
                    tone = texts[4].strip()
                    city = texts[5] if len(texts) > 5 else UNKNOWN_CITY

        freq = FREQ_RE.search(text)
        if freq:
            value = float(freq.group(1))
            if not tx:
                tx = value
            elif not rx:
                rx = value

        if not tone and not freq and (text in ('OPEN', 'D-STAR') or TONE_RE.match(text)):
            tone = text

        if (2 < len(text) < 50
                and not CALLSIGN_RE.search(text)
                and not freq
                and not text.isdigit()
                and (builder.state in text or re.search(r'[A-Z][a-z]+', text))):
            city = text

    if callsign and tx and rx:
        return builder.build(rx, tx, tone, callsign, city)
    return None


def extract_by_scanning(html: str, builder: RecordBuilder) -> list[dict]:
    soup = _parse(html)
    for table in soup.find_all('table'):
        result = []
        for row in table.find_all('tr'):
            cells = row.find_all('td', recursive=False)
            if len(cells) < 6:
                continue
            item = scan_row([_cell_text(c) for c in cells], builder)
            if item:
                result.append(item)
        if result:
            return result
    return []


def _strip_tags(fragment: str) -> str:
    text = htmllib.unescape(re.sub(r'<[^>]*>', '', fragment))
    return re.sub(r'\s+', ' ', text).strip()


def extract_with_regex(html: str, builder: RecordBuilder) -> list[dict]:
    content = clean_html(html)
    table = re.search(r'<table\b[^>]*>.*?</table>', content, flags=re.I | re.S)
    if not table:
        return []
    table_html = table.group(0)

    header = re.search(r'<tr\b[^>]*>.*?</tr>', table_html, flags=re.I | re.S)
    if not header:
        return []
    header_cells = [
        normalize_header(_strip_tags(c))
        for c in re.findall(r'<(?:th|td)\b[^>]*>(.*?)</(?:th|td)>', header.group(0), flags=re.I | re.S)
    ]
    column_map = map_columns(header_cells)
    if 'callsign' not in column_map:
        return []

    result = []
    for row in re.finditer(r'<tr\b[^>]*>(.*?)</tr>', table_html, flags=re.I | re.S):
        if row.start() == header.start():
            continue
        cells = [_strip_tags(c) for c in re.findall(r'<td\b[^>]*>(.*?)</td>', row.group(1), flags=re.I | re.S)]
        if len(cells) < len(column_map):
            continue
        item = builder.from_columns(cells, column_map)
        if item:
            result.append(item)
    return result


Strategy = Callable[[str, RecordBuilder], list]

DEFAULT_STRATEGIES: list[Strategy] = [extract_with_headers, extract_by_scanning, extract_with_regex]


def extract_repeaters(html: str, state: str = 'SP', cities: CityDirectory | None = None,
                      strategies: list[Strategy] | None = None) -> list[dict]:
    """Run the extraction strategies in order; return the first non-empty result."""
    builder = RecordBuilder(state, cities)
    for strategy in strategies or DEFAULT_STRATEGIES:
        try:
            result = strategy(html, builder)
        except Exception as e:
            logger.warning("%s failed: %s", strategy.__name__, e)
            continue
        if result:
            logger.info("%s: %d repeaters found", strategy.__name__, len(result))
            return result
    logger.info("No extraction strategy found repeaters")
    return []
