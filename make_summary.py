#!/usr/bin/env python3
"""Build the paginated summary of DADOS/homologacoes and its id index.

Every record file is named after its Anatel process number followed by a
free suffix, e.g. `53500-077722-2025-44-uvk6.json`. This script writes:

- `sumario<N>.json`: pages of [id, "Brand;model", cid, "@suffix"] rows. All
  pages but the last end with the number of the next page; the last one
  ends with -1 when there is more than one page.
- `sumario_all.json`: {id: file key} for every id a record is known by.
  A key with '@' is the file suffix of that id; a key without '@' is the
  process number of the record that holds the id.

Pages left over from a previous, larger run are deleted.
"""
import argparse
import json
import logging
import math
import os
import re
import sys
from dataclasses import dataclass, field

import site_config
from log_setup import setup_logging

logger = logging.getLogger(__name__)

FILE_PREFIX_RE = re.compile(r'^(\d{5}[-.]?\d{6}[-.]?\d{4}[-.]?\d{2}[-.]?)', re.I)
SUMMARY_FILE_RE = re.compile(r'^sumario(\d+|_)', re.I)
SUMMARY_PAGE_RE = re.compile(r'^sumario(\d+)\.json$', re.I)
INDEX_FILE = 'sumario_all.json'


@dataclass
class SummaryResult:
    total_items: int = 0
    pages: list = field(default_factory=list)
    removed: list = field(default_factory=list)
    index: dict = field(default_factory=dict)


def strip_non_word(value) -> str:
    return re.sub(r'\W', '', str(value), flags=re.ASCII)


def record_id(rid) -> str:
    """Last id of a record: `id` may be a string, [id, url] or a list of those."""
    if isinstance(rid, list):
        if not rid:
            return ''
        rid = rid[-1] if isinstance(rid[0], list) else rid
        rid = rid[0] if rid else ''
    return strip_non_word(rid)


def index_entries(rid, prefix: str, suffix: str) -> dict:
    """{id: file key} for every id of a record (see module docstring)."""
    if isinstance(rid, list) and rid and isinstance(rid[0], list):
        out = {}
        own = strip_non_word(prefix)
        for pair in rid:
            if not pair:
                continue
            alt = strip_non_word(pair[0])
            out[alt] = suffix if alt == own else prefix
        return out
    first = rid[0] if isinstance(rid, list) and rid else rid
    return {strip_non_word(first): suffix}


def brand(value) -> str:
    if not value:
        return ''
    value = str(value)
    return value[:1].upper() + value[1:].lower()


def summary_entry(content: dict, suffix: str) -> list:
    return [record_id(content['id']), f"{brand(content.get('mc'))};{content.get('md') or ''}",
            content.get('cid'), suffix]


def paginate(entries: list, page_size: int) -> list:
    total_pages = math.ceil(len(entries) / page_size)
    pages = []
    for i in range(total_pages):
        page = entries[i * page_size:(i + 1) * page_size]
        if i < total_pages - 1:
            page.append(i + 1)
        elif total_pages > 1:
            page.append(-1)
        pages.append(page)
    return pages


def _write_json(path, payload):
    with open(path, 'w', encoding='utf-8') as fh:
        json.dump(payload, fh, ensure_ascii=False, separators=(',', ':'))


def build_summary(directory: str = site_config.HOMOLOGACOES,
                  page_size: int = site_config.SUMMARY_PAGE_SIZE) -> SummaryResult:
    result = SummaryResult()
    entries = []
    names = sorted(f for f in os.listdir(directory)
                   if f.lower().endswith('.json') and not SUMMARY_FILE_RE.match(f))
    for name in names:
        stem = name[:-len('.json')]
        m = FILE_PREFIX_RE.match(stem)
        if not m:
            logger.warning("Skipping %s: name does not start with a process number", name)
            continue
        prefix, suffix = m.group(1), '@' + stem[m.end():]
        with open(os.path.join(directory, name), 'r', encoding='utf-8') as fh:
            try:
                content = json.load(fh)
            except ValueError as e:
                logger.warning("Skipping %s: invalid JSON (%s)", name, e)
                continue
        if not isinstance(content, dict) or 'id' not in content:
            logger.warning("Skipping %s: record has no id", name)
            continue
        result.index.update(index_entries(content['id'], prefix, suffix))
        entries.append(summary_entry(content, suffix))

    result.total_items = len(entries)
    pages = paginate(entries, page_size)

    for name in os.listdir(directory):
        m = SUMMARY_PAGE_RE.match(name)
        if m and int(m.group(1)) >= len(pages):
            os.remove(os.path.join(directory, name))
            result.removed.append(name)
            logger.info("Removed stale summary page %s", name)

    for i, page in enumerate(pages):
        path = os.path.join(directory, f'sumario{i}.json')
        _write_json(path, page)
        result.pages.append(path)
    _write_json(os.path.join(directory, INDEX_FILE), result.index)
    return result


def main(argv=None):
    p = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    p.add_argument('--dir', default=site_config.HOMOLOGACOES, help='Homologation records directory')
    p.add_argument('--page-size', type=int, default=site_config.SUMMARY_PAGE_SIZE, help='Rows per summary page')
    p.add_argument('--log-level', default=site_config.LOG_LEVEL, help='Logging level')
    args = p.parse_args(argv)

    setup_logging(args.log_level)
    if not os.path.isdir(args.dir):
        logger.error("Directory not found: %s", args.dir)
        return 1
    result = build_summary(args.dir, args.page_size)
    print(f'{len(result.pages)} summary files written, {result.total_items} items')
    return 0


if __name__ == '__main__':
    sys.exit(main())
