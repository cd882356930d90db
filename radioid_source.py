"""Brazilian DMR repeaters from the radioid.net registry.

radioid.net publishes every registered repeater in one `rptrs.json` file
({"rptrs": [...]}). A local copy of that file is used when present.
"""
from __future__ import annotations

import logging
import re

import site_config
from br_locations import capitalize, fold, normalize_state
from repeater_store import SourceContext, SourceResult
from resource_fetch import load_sources

logger = logging.getLogger(__name__)

NAME = 'radioid'
SUFFIX = 'radioidnet'
STORAGE_KEY = 'radioid.net'

DROPPED_FIELDS = ('state', 'country', 'status', 'city', 'map_info', 'map', 'locator', 'trustee')
NUMERIC_FIELDS = ('frequency', 'offset', 'color_code', 'id')
# raw field -> (bucket, new name); bucket None means top level
RENAMED_FIELDS = {
    'frequency': (None, 'rx'),
    'color_code': (None, 'color'),
    'id': ('info', 'dmr_id'),
    'ipsc_network': ('info', 'ipsc'),
    'assigned': ('info', 'assigned'),
    'callsign': ('info', 'callsign'),
}


class InvalidSourceError(ValueError):
    pass


def convert_timeslot(ts_linked) -> list[int]:
    """'TS1 TS2' -> [1, 2]"""
    if not ts_linked:
        return []
    out = []
    for token in re.sub(r'TS', '', str(ts_linked), flags=re.I).split():
        try:
            n = int(token)
        except ValueError:
            continue
        if n > 0:
            out.append(n)
    return out


def _to_float(value) -> float:
    try:
        return float(value) or 0.0
    except (TypeError, ValueError):
        return 0.0


def process_record(raw: dict, cities=None) -> tuple[str, dict] | None:
    """Normalize one registry entry; None when it is not an active Brazilian repeater."""
    country = str(raw.get('country') or '').strip()
    status = str(raw.get('status') or '').strip().lower()
    if not re.search(r'bra[sz]il', country, re.I) or status != 'active':
        return None

    uf = normalize_state(raw.get('state'))
    if not uf:
        logger.debug("Unknown state %r", raw.get('state'))
        return None
    city = cities.process_city(raw.get('city'), uf) if cities else capitalize(raw.get('city'))
    if not city:
        return None

    record = {k: v for k, v in raw.items() if k not in DROPPED_FIELDS}
    for name in NUMERIC_FIELDS:
        if record.get(name) is not None:
            record[name] = _to_float(record[name])

    info = {}
    for name, (bucket, new_name) in RENAMED_FIELDS.items():
        if name not in record:
            continue
        value = record.pop(name)
        if bucket == 'info':
            info[new_name] = value
        else:
            record[new_name] = value
    if 'ts_linked' in record:
        record['timeslot'] = convert_timeslot(record.pop('ts_linked'))

    if 'rx' in record and 'offset' in record:
        record['tx'] = round(record['rx'] + record['offset'], 5)
    record['location'] = [uf, city]

    for k, v in record.items():
        if isinstance(v, str):
            record[k] = capitalize(v)
    record['info'] = info
    return uf, record


def run(context: SourceContext, sources=None) -> SourceResult:
    """Load the registry, keep active Brazilian repeaters and buffer them per state."""
    data = load_sources(context.fetcher, sources or [site_config.RADIOID_FILE, site_config.RADIOID_URL],
                        STORAGE_KEY, context.store)
    if not isinstance(data, dict) or not isinstance(data.get('rptrs'), list):
        raise InvalidSourceError("Invalid JSON: expected an object with a 'rptrs' list")

    states: dict[str, list] = {}
    for raw in data['rptrs']:
        if not isinstance(raw, dict):
            continue
        processed = process_record(raw, context.cities)
        if processed:
            uf, record = processed
            states.setdefault(uf, []).append(record)

    result = SourceResult(NAME, original_records=len(data['rptrs']))
    for uf, records in states.items():
        records.sort(key=lambda r: fold(r['location'][1]))
        path = context.buffer.save(records, context.state_path(uf, SUFFIX), uf)
        result.add_state(uf, records, path)
        logger.info("State %s: %d records", uf, len(records))

    logger.info("Processed %d states, %d records (original: %d)",
                result.total_states, result.total_records, result.original_records)
    return result
