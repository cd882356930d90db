"""Where and how repeater records are written.

Records are saved per state under `DADOS/repetidoras/uf/<uf>/` as compact
JSON and `;`-separated CSV. During a scrape run the JSON payloads are
collected in a `RunBuffer` and written once at the end.
"""
from __future__ import annotations

import json
import logging
import os
import re
from collections import Counter
from dataclasses import dataclass, field

import pandas as pd

import site_config
from br_locations import CityDirectory
from local_store import MemoryStore
from resource_fetch import ResourceFetcher

logger = logging.getLogger(__name__)

FORMATS = ('json', 'csv')


class UnsupportedFormatError(ValueError):
    pass


class InvalidRecordsError(TypeError):
    pass


def state_file_path(base: str = '', state: str = '', suffix: str = '', root: str | None = None) -> str:
    """'', 'SP', 'radioidnet' -> <root>/uf/sp/sp.radioidnet.json"""
    root = root or site_config.REPETIDORAS
    state = (state or '').strip().lower()
    base = re.sub(r'^[\\/]+', '', base or '')
    if base.endswith('.json'):
        base = base[:-len('.json')]
    if state:
        name = '.'.join(p for p in (state, suffix) if p)
        return os.path.join(root, base, 'uf', state, name + '.json')
    name = '.'.join(p for p in (base or 'dados', suffix) if p)
    return os.path.join(root, name + '.json')


def normalize_destination(path: str, fmt: str) -> str:
    """Give `path` the extension of `fmt`; directories get a 'dados.<ext>' file."""
    ext = '.csv' if fmt == 'csv' else '.json'
    base = re.sub(r'[\\/]+$', '', path or '')
    if not base:
        return 'dados' + ext
    if os.path.isdir(base):
        return os.path.join(base, 'dados' + ext)
    stem, current = os.path.splitext(base)
    if not current:
        return os.path.join(base, 'dados' + ext)
    if current.lower() == ext:
        return base
    return stem + ext


def _has_location(record) -> bool:
    return (isinstance(record, dict) and isinstance(record.get('location'), list)
            and len(record['location']) >= 2)


def _city_key(record) -> str:
    uf, city = record['location'][0], record['location'][1]
    return f"{str(uf).strip().lower()}:{str(city).strip().lower()}"


def number_by_city(records):
    """Set on every location a sequence number counting down within its UF/city.

    Three repeaters in Campinas get ['SP', 'Campinas', 3], [.., 2], [.., 1].
    Records are numbered in place, so what gets written is the object the
    caller holds. Dicts are walked recursively ({uf: [records]}).
    """
    if isinstance(records, list):
        counts = Counter(_city_key(r) for r in records if _has_location(r))
        for r in records:
            if not _has_location(r):
                continue
            key = _city_key(r)
            r['location'][2:] = [counts[key]]
            counts[key] -= 1
    elif isinstance(records, dict):
        for value in records.values():
            number_by_city(value)
    return records


def _rows_for_csv(records) -> list[dict]:
    if isinstance(records, dict):
        if records and all(isinstance(v, list) for v in records.values()):
            return [r for v in records.values() for r in v if isinstance(r, dict)]
        return [records]
    return [r for r in records if isinstance(r, dict)]


def _csv_cell(value) -> str:
    """Text of one CSV cell: lists and dicts always quoted, other text only when it holds ';' or '"'."""
    if isinstance(value, list):
        return '"' + ','.join(str(v) for v in value) + '"'
    if value is None:
        return ''
    if isinstance(value, dict):
        return '"' + json.dumps(value, ensure_ascii=False, separators=(',', ':')).replace('"', '""') + '"'
    text = str(value)
    if ';' in text or '"' in text:
        return '"' + text.replace('"', '""') + '"'
    return text


def to_csv(records, header: list[str] | None = None) -> str:
    """`;`-separated CSV of records; `info` is expanded into info.<key> columns.

    A header line is written only when `header` is given.
    """
    rows = _rows_for_csv(records)
    columns: list[str] = []
    for r in rows:
        for k, v in r.items():
            keys = [f'info.{ik}' for ik in v] if k == 'info' and isinstance(v, dict) else [k]
            for key in keys:
                if key not in columns:
                    columns.append(key)

    def column_value(r, column):
        if column.startswith('info.') and column not in r:
            return (r.get('info') or {}).get(column[len('info.'):])
        return r.get(column)

    if not columns:
        return ''
    frame = pd.DataFrame([[_csv_cell(column_value(r, c)) for c in columns] for r in rows], columns=columns)
    lines = frame.apply(';'.join, axis=1).tolist()
    if header is not None:
        lines.insert(0, ';'.join(header))
    return '\n'.join(lines) + '\n'


def prepare_content(records, fmt: str, csv_header: list[str] | None = None) -> str:
    if isinstance(records, str):
        if fmt == 'json':
            return records
        if records.strip().startswith(('{', '[')):
            try:
                return to_csv(json.loads(records), csv_header)
            except ValueError:
                return records
        return records
    if isinstance(records, (list, dict)):
        records = number_by_city(records)
        if fmt == 'json':
            return json.dumps(records, ensure_ascii=False, separators=(',', ':'))
        return to_csv(records, csv_header)
    raise InvalidRecordsError(f"Invalid type for records: {type(records).__name__}")


def save_data(records, destination: str, fmt: str = 'json', csv_header: list[str] | None = None) -> str:
    """Write `records` as JSON or CSV to `destination`; return the final path."""
    fmt = str(fmt or 'json').strip().lower()
    if fmt not in FORMATS:
        raise UnsupportedFormatError(f"Format '{fmt}' not supported.")
    path = normalize_destination(destination, fmt)
    content = prepare_content(records, fmt, csv_header)
    folder = os.path.dirname(path)
    if folder:
        os.makedirs(folder, exist_ok=True)
    with open(path, 'w', encoding='utf-8', newline='') as fh:
        fh.write(content)
    logger.info("Wrote %s", path)
    return path


def _spread(old, new):
    if isinstance(old, dict) and isinstance(new, dict):
        return {**old, **new}
    if isinstance(old, list) and isinstance(new, list):
        return new + old[len(new):]
    return new


class RunBuffer:
    """JSON payloads collected during a run, keyed by destination file and state."""

    def __init__(self):
        self.data: dict[str, dict] = {}

    def save(self, records, destination: str, state: str = '', fmt: str = 'json',
             csv_header: list[str] | None = None) -> str:
        if str(fmt).strip().lower() != 'json' or not isinstance(records, (list, dict)):
            return save_data(records, destination, fmt, csv_header)
        state = (state or '').strip().lower() or 'main'
        path = normalize_destination(destination, 'json')
        slot = self.data.setdefault(path, {})
        slot[state] = _spread(slot[state], records) if state in slot else records
        return path

    def flush(self) -> list[str]:
        written = []
        for path, payload in self.data.items():
            written.append(save_data(payload, path, 'json'))
            written.append(save_data(payload, path, 'csv'))
        return written


@dataclass
class SourceResult:
    name: str
    original_records: int = 0
    contents: dict = field(default_factory=dict)
    files: list = field(default_factory=list)

    @property
    def states(self) -> list[str]:
        return list(self.contents)

    @property
    def total_states(self) -> int:
        return len(self.contents)

    @property
    def total_records(self) -> int:
        return sum(len(v) for v in self.contents.values())

    def add_state(self, state: str, records: list, path: str) -> None:
        self.contents[state] = records
        self.files.append(path)


@dataclass
class SourceContext:
    """Everything a source needs for one scrape run."""
    fetcher: ResourceFetcher
    buffer: RunBuffer = field(default_factory=RunBuffer)
    cities: CityDirectory | None = None
    store: MemoryStore = field(default_factory=MemoryStore)
    repeaters_dir: str = site_config.REPETIDORAS

    def state_path(self, state: str, suffix: str) -> str:
        return state_file_path('', state, suffix, self.repeaters_dir)
