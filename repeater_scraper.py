#!/usr/bin/env python3
# repeater_scraper.py
#
# Collects Brazilian amateur repeaters from the supported sources and writes
# them under DADOS/repetidoras/:
#   uf/<uf>/<uf>.<source>.json|csv   one file per state and source
#   radioid-net.json, labre-sp.json  everything a source produced, by state
#
# City names are checked against the IBGE municipality list. Drop a
# DADOS/municipios/<UF>.json file (list of names) to work offline.
import argparse
import logging
import os
import sys

import labre_source
import radioid_source
import site_config
from br_locations import CityDirectory
from local_store import JsonFileStore, MemoryStore
from log_setup import setup_logging
from repeater_store import SourceContext, save_data
from resource_fetch import ResourceFetcher, SourceUnavailableError

logger = logging.getLogger(__name__)

SOURCES = {
    radioid_source.NAME: radioid_source,
    labre_source.NAME: labre_source,
}

AGGREGATE_FILES = {
    radioid_source.NAME: 'radioid-net',
    labre_source.NAME: 'labre-sp',
}


def build_context(root=None, output_dir=None, cache_file=None, timeout=site_config.REQUEST_TIMEOUT):
    fetcher = ResourceFetcher(root=root, timeout=timeout)
    return SourceContext(
        fetcher=fetcher,
        cities=CityDirectory(fetcher),
        store=JsonFileStore(cache_file) if cache_file else MemoryStore(),
        repeaters_dir=output_dir or site_config.REPETIDORAS,
    )


def scrape(names, context):
    """Run the named sources in order, then write everything they buffered."""
    results = []
    for name in names:
        result = SOURCES[name].run(context)
        if result.contents:
            base = os.path.join(context.repeaters_dir, AGGREGATE_FILES[name])
            save_data(result.contents, base + '.json', 'json')
            save_data(result.contents, base + '.csv', 'csv')
        results.append(result)
    context.buffer.flush()
    return results


def main(argv=None):
    parser = argparse.ArgumentParser(description="Scrape Brazilian repeater lists into per-state JSON/CSV files")
    parser.add_argument('--sources', '-s', nargs='+', choices=sorted(SOURCES), default=list(SOURCES),
                        help='Sources to scrape (default: all)')
    parser.add_argument('--root', default=site_config.ROOT, help='Project root used to find local copies of sources')
    parser.add_argument('--output-dir', '-o', default=site_config.REPETIDORAS, help='Repeater data directory')
    parser.add_argument('--cache-file', help='Keep downloaded sources in this JSON file between runs')
    parser.add_argument('--timeout', type=float, default=site_config.REQUEST_TIMEOUT, help='HTTP timeout (seconds)')
    parser.add_argument('--log-level', default=site_config.LOG_LEVEL, help='Logging level')
    args = parser.parse_args(argv)

    setup_logging(args.log_level)
    context = build_context(args.root, args.output_dir, args.cache_file, args.timeout)
    try:
        results = scrape(args.sources, context)
    except (SourceUnavailableError, radioid_source.InvalidSourceError) as e:
        logger.error("Scrape failed: %s", e)
        return 1

    for r in results:
        print(f'{r.name}: {r.total_records} records in {r.total_states} states '
              f'(read {r.original_records})')
    return 0


if __name__ == '__main__':
    sys.exit(main())
