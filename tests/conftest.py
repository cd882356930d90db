"""
Pytest fixtures for testing
"""
import json
import sys
from pathlib import Path

import pytest

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from resource_fetch import ProviderResponse  # noqa: E402


class FakeProvider:
    """Provider answering from a {url: body} map.

    A body may be bytes, text, a JSON-serializable dict/list, a
    ProviderResponse or an exception to raise. A tuple is consumed one
    item per call. Unknown URLs answer 404.
    """

    def __init__(self, responses=None):
        self.responses = dict(responses or {})
        self.calls = []

    def get(self, url, timeout=None, **options):
        self.calls.append(url)
        value = self.responses.get(url)
        if isinstance(value, tuple):
            value, rest = value[0], value[1:]
            self.responses[url] = rest if rest else value
        if isinstance(value, Exception):
            raise value
        if value is None:
            return ProviderResponse(404, 'Not Found', b'', url)
        if isinstance(value, ProviderResponse):
            return value
        if isinstance(value, (dict, list)):
            value = json.dumps(value)
        if isinstance(value, str):
            value = value.encode('utf-8')
        return ProviderResponse(200, 'OK', value, url)


@pytest.fixture
def fake_provider():
    """Factory for FakeProvider instances"""
    return FakeProvider


@pytest.fixture
def radioid_payload():
    """Minimal rptrs.json content with one repeater per interesting case"""
    return {
        'rptrs': [
            {
                'callsign': 'PY2XYZ', 'city': 'Sao Paulo', 'state': 'Sao Paulo', 'country': 'Brazil',
                'status': 'Active', 'frequency': '439.000', 'offset': '-5', 'color_code': '1',
                'id': '724001', 'ts_linked': 'TS1 TS2', 'ipsc_network': 'BrandMeister',
                'assigned': 'Peer', 'trustee': 'PY2XYZ', 'map_info': '', 'locator': '',
            },
            {
                'callsign': 'PY2ABC', 'city': 'campinas', 'state': 'SP', 'country': 'Brasil',
                'status': 'Active', 'frequency': '438.500', 'offset': '-7.6', 'color_code': '1',
                'id': '724002', 'ts_linked': 'TS1', 'ipsc_network': 'BrandMeister',
                'assigned': 'Peer', 'trustee': 'PY2ABC',
            },
            {
                'callsign': 'PY3AAA', 'city': 'Porto Alegre', 'state': 'Rio Grande do Sul',
                'country': 'Brazil', 'status': 'Active', 'frequency': '439.200', 'offset': '-5',
                'color_code': '2', 'id': '724003', 'ts_linked': 'TS2', 'ipsc_network': 'DMRVale',
                'assigned': 'Peer', 'trustee': 'PY3AAA',
            },
            {
                'callsign': 'W1AW', 'city': 'Newington', 'state': 'Connecticut', 'country': 'United States',
                'status': 'Active', 'frequency': '444.000', 'offset': '5', 'color_code': '1',
                'id': '310001', 'ts_linked': 'TS1', 'ipsc_network': 'BM', 'assigned': 'Peer',
            },
            {
                'callsign': 'PY2OFF', 'city': 'Santos', 'state': 'Sao Paulo', 'country': 'Brazil',
                'status': 'Off-line', 'frequency': '439.500', 'offset': '-5', 'color_code': '1',
                'id': '724004', 'ts_linked': 'TS1', 'ipsc_network': 'BM', 'assigned': 'Peer',
            },
        ]
    }


@pytest.fixture
def labre_html():
    """Repeater table the way LABRE-SP publishes it"""
    return """
    <html><head><script>var x = 1;</script><style>td {color: red}</style></head>
    <body>
    <table class="lista">
      <tr><th>#</th><th>Indicativo</th><th>Freq.TX</th><th>Off-Set</th><th>Tone</th><th>Cidade</th></tr>
      <tr><td>1</td><td>PY2ABC</td><td>146.700</td><td>-0,600</td><td>67.0</td><td>Campinas - SP</td></tr>
      <tr><td>2</td><td>PY2KJP</td><td>439.450</td><td>-5</td><td></td><td>Sao Paulo</td></tr>
      <tr><td colspan="6">Atualizado em 2025</td></tr>
    </table>
    </body></html>
    """
