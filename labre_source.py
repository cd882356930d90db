"""Repeaters of the state of São Paulo published by LABRE-SP.

The list is an HTML page maintained by hand, parsed with repeater_table.
"""
from __future__ import annotations

import logging

import site_config
from repeater_store import SourceContext, SourceResult
from repeater_table import extract_repeaters

logger = logging.getLogger(__name__)

NAME = 'labresp'
SUFFIX = 'labresp'
STATE = 'SP'


def run(context: SourceContext, url: str = site_config.LABRE_SP_URL) -> SourceResult:
    result = SourceResult(NAME)
    html = context.fetcher.fetch(url, as_json=False)
    if not html:
        logger.warning("Could not download %s", url)
        return result

    records = extract_repeaters(html, STATE, context.cities)
    logger.info("%d repeaters extracted from %s", len(records), url)
    result.original_records = len(records)
    if records:
        path = context.buffer.save(records, context.state_path(STATE, SUFFIX), STATE)
        result.add_state(STATE, records, path)
    return result
