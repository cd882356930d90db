"""
Tests for the homologation lookup page
"""
import json

import pytest

import homolog_lookup
from homolog_lookup import (
    ErrorView,
    HomologationLookup,
    LookupFailure,
    RecordView,
    Redirect,
    SummaryView,
    format_cid,
    id_from_path,
    lookup,
    make_link,
    parse_query,
    pre_format,
    render_page,
    substitute_placeholders,
)
from resource_fetch import CachedFetcher, LocalFileProvider

SEI = 'https://sei.anatel.gov.br/doc?id=1'
CERT = 'https://sch.anatel.gov.br/cert.pdf'
RECORD_ID = '53500077722202544uvk6'

RECORD = {
    'id': [['53500.077722/2025-44', SEI], ['01234-25-12345', CERT]],
    'tp': 'Importação',
    'dp': '01/02/2025',
    'mc': 'BAOFENG',
    'md': 'UV-K6',
    'fccid': None,
    'sn': '123456',
    'r': ['Certificado', CERT],
    'v': ['ABC123', 'CRC9'],
    'dt': '10/02/2025',
    'cid': '01234-25-12345',
    'items': [['Observação', '${imp}'], ['Manual', ['PDF', 'https://example.test/manual.pdf']]],
}


def write_json(path, content):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(content, ensure_ascii=False), encoding='utf-8')


@pytest.fixture
def site(tmp_path):
    """Site tree with one record, its summary page and the id index"""
    data = tmp_path / 'DADOS' / 'homologacoes'
    write_json(data / '53500-077722-2025-44-uvk6.json', RECORD)
    write_json(data / 'sumario0.json', [['53500077722202544', 'Baofeng;UV-K6', '01234-25-12345', '@uvk6'], 1])
    write_json(data / 'sumario1.json', [['012342500001', 'Yaesu;FT-60', 'x', '@ft60'], -1])
    write_json(data / 'sumario2.json', {'not': 'a list'})
    write_json(data / 'sumario3.json', [['only', 'three', 'cells']])
    write_json(data / 'sumario_all.json', {
        '53500077722202544': '@uvk6',
        '012342512345': '53500-077722-2025-44-',
        'loop1': 'loop2',
        'loop2': 'loop1',
    })
    return tmp_path


@pytest.fixture
def finder(site):
    return HomologationLookup(CachedFetcher(LocalFileProvider(str(site))))


def write_broken(site, name, **changes):
    content = {**RECORD, **changes}
    for key, value in changes.items():
        if value is None:
            del content[key]
    write_json(site / 'DADOS' / 'homologacoes' / f'53500-000001-2025-44-{name}.json', content)
    return f'?53500000001202544{name}'


class TestQuery:
    """Test query parsing and id formatting"""

    @pytest.mark.parametrize('query', ['/?', '?', '', '/?  ', '/?/r'])
    def test_missing_parameter(self, finder, query):
        view = finder.lookup(query)
        assert isinstance(view, ErrorView)
        assert view.tag == 'CX'

    def test_invalid_parameter(self, finder):
        view = finder.lookup('/?5350$0')
        assert view.tag == '1T'
        assert 'inválido' in view.title

    def test_parse_query(self):
        assert parse_query('/?53500077722202544uvk6/r/1') == ['53500077722202544uvk6', 'r', '1']
        assert parse_query('sumario0') == ['sumario0']

    @pytest.mark.parametrize('code,expected', [
        ('53500077722202544uvk6', '53500-077722-2025-44-uvk6'),
        ('53500.077722/2025-44', '53500-077722-2025-44-'),
        ('012342512345', '012342512345'),
        ('sumario3', 'sumario3'),
    ])
    def test_format_cid(self, code, expected):
        assert format_cid(code) == expected

    def test_id_from_path(self):
        assert id_from_path('/DADOS/homologacoes/53500-077722-2025-44-.json') == '53500-077722-2025-44-'
        assert id_from_path('/?012342512345') == '012342512345'
        assert id_from_path('x.json?t=123') == 'x'


class TestRecord:
    """Test record pages"""

    def test_direct_file(self, finder):
        view = finder.lookup('/?' + RECORD_ID)
        assert isinstance(view, RecordView)
        assert view.title == '<small>Baofeng</small> UV-K6'
        rows = dict(view.rows)
        assert rows['Homologação<sup>1</sup>'] == f'<a href="{CERT}" target="_blank">Certificado</a>'
        assert rows['Validação da Homologação<sup>1</sup>'] == 'Código: ABC123<br />CRC: CRC9'
        assert rows['FCC ID'] == ''
        assert rows['Observação'] == homolog_lookup.PLACEHOLDERS['imp']
        assert rows['Manual'] == '<a href="https://example.test/manual.pdf" target="_blank">PDF</a>'
        assert rows['Peticionamento ou Processo'].startswith('<ul><li><a href="')
        assert len(view.rows) == len(homolog_lookup.REQUIRED_FIELDS) + 2

    def test_alias_through_index(self, finder):
        view = finder.lookup('?012342512345')
        assert isinstance(view, RecordView)
        assert 'UV-K6' in view.title

    def test_unknown_id(self, finder):
        assert finder.lookup('?99999').tag == 'BX'

    def test_alias_loop_gives_up(self, finder):
        assert finder.lookup('?loop1').tag == 'BX'

    def test_missing_index(self, tmp_path):
        write_json(tmp_path / 'DADOS' / 'homologacoes' / '53500-077722-2025-44-uvk6.json', RECORD)
        finder = HomologationLookup(CachedFetcher(LocalFileProvider(str(tmp_path))))
        assert isinstance(finder.lookup('?' + RECORD_ID), RecordView)
        assert finder.lookup('?012342512345').tag == 'BX'

    def test_missing_required_key(self, site, finder):
        assert finder.lookup(write_broken(site, 'nocid', cid=None)).tag == ':cid'

    def test_items_not_a_list(self, site, finder):
        assert finder.lookup(write_broken(site, 'items', items='none')).tag == 'ITM1'

    def test_item_without_label(self, site, finder):
        assert finder.lookup(write_broken(site, 'label', items=[['', 'x']])).tag == 'ITM2'

    def test_record_not_an_object(self, site, finder):
        write_json(site / 'DADOS' / 'homologacoes' / '53500-000001-2025-44-list.json', [1, 2])
        assert finder.lookup('?53500000001202544list').tag == 'ITM1'

    def test_requester_row(self, site):
        finder = HomologationLookup(CachedFetcher(LocalFileProvider(str(site))), requester={'Nome': 'Fulano'})
        view = finder.lookup('?' + RECORD_ID)
        assert view.rows[-1] == ('Solicitante', '<ul><li>Nome: <b>Fulano</b></li></ul>')

    def test_remote_site(self, fake_provider):
        url = 'https://site.test/DADOS/homologacoes/53500-077722-2025-44-uvk6.json'
        view = lookup('?' + RECORD_ID, CachedFetcher(fake_provider({url: RECORD})), base_url='https://site.test/')
        assert isinstance(view, RecordView)


class TestDestination:
    """Test /?<id>/<field> redirects"""

    def test_redirect(self, finder):
        assert finder.lookup(f'/?{RECORD_ID}/r') == Redirect(CERT)

    def test_redirect_with_index(self, finder):
        assert finder.lookup(f'/?{RECORD_ID}/id/1') == Redirect(CERT)
        assert finder.lookup(f'/?{RECORD_ID}/ID/0') == Redirect(SEI)

    def test_field_not_allowed(self, finder):
        view = finder.lookup(f'/?{RECORD_ID}/items')
        assert view.tag == 'D1'
        assert '<b>fccid:</b>' in view.description

    def test_null_field_is_not_a_url(self, finder):
        """A field present with a null value is an invalid destination, not a missing one"""
        assert finder.lookup(f'/?{RECORD_ID}/fccid').tag == 'D3'

    def test_absent_field(self, finder):
        with pytest.raises(LookupFailure) as exc:
            finder.destination({'id': RECORD['id']}, [RECORD_ID, 'r'])
        assert exc.value.tag == 'D2'

    def test_field_without_url(self, finder):
        assert finder.lookup(f'/?{RECORD_ID}/sn').tag == 'D3'
        assert finder.lookup(f'/?{RECORD_ID}/v').tag == 'D3'


class TestSummary:
    """Test summary pages"""

    def test_first_page(self, finder):
        view = finder.lookup('?sumario0')
        assert isinstance(view, SummaryView)
        assert view.page == 0
        assert view.previous_page is None
        assert view.next_page == 1
        assert view.rows[0].href == '/?' + RECORD_ID
        assert view.rows[0].brand_model == 'Baofeng;UV-K6'

    def test_last_page(self, finder):
        view = finder.lookup('?sumario1')
        assert view.previous_page == 0
        assert view.next_page is None
        assert view.rows[0].href == '/?012342500001'

    def test_not_a_list(self, finder):
        assert finder.lookup('?sumario2').tag == 'S1'

    def test_bad_row(self, finder):
        assert finder.lookup('?sumario3').tag == 'S2'


class TestFormatting:
    """Test value formatting helpers"""

    def test_make_link(self):
        assert make_link(['texto', 'https://a.test']) == '<a href="https://a.test" target="_blank">texto</a>'
        assert make_link(['https://a.test', 'texto']) == '<a href="https://a.test" target="_blank">texto</a>'
        assert make_link(['https://a.test']) == '<a href="https://a.test" target="_blank">https://a.test</a>'
        assert make_link(['a', 'b']) == 'a, b'
        assert make_link('valor') == 'valor'
        assert make_link([]) == ''

    def test_make_link_raw(self):
        assert make_link(' https://a.test', raw=True) == 'https://a.test'
        assert make_link('texto', raw=True) is None
        assert make_link([['a', 'https://a.test'], ['b', 'https://b.test']], raw=True) == [
            'https://a.test', 'https://b.test']

    def test_placeholders(self):
        assert substitute_placeholders('${IMP}') == homolog_lookup.PLACEHOLDERS['imp']
        assert substitute_placeholders('x ${nada} y') == 'x ??? y'
        assert substitute_placeholders(None) == ''

    def test_pre_format(self):
        assert pre_format(['1', '2'], 'v') == 'Código: 1<br />CRC: 2'
        assert pre_format('aprovado', 'v') == 'aprovado'
        assert pre_format(None) == ''
        assert pre_format(3) == '3'


class TestRender:
    """Test render_page output"""

    def test_error_page(self):
        html = render_page(ErrorView('cx', 'Parâmetro inexistente', '<p>Use /?id</p>'))
        assert '<sup>CX</sup>' in html
        assert 'Parâmetro inexistenteCX</title>' in html
        assert '<p>Use /?id</p>' in html

    def test_redirect_page(self):
        html = render_page(Redirect(CERT))
        assert 'http-equiv="refresh"' in html
        assert f'url={CERT}' in html

    def test_record_page(self, finder):
        html = render_page(finder.lookup('?' + RECORD_ID))
        assert '<title>Baofeng UV-K6</title>' in html
        assert '<div class="dd">---</div>' in html
        assert '<span>123456</span>' in html

    def test_summary_page(self, finder):
        html = render_page(finder.lookup('?sumario0'))
        assert f'href="/?{RECORD_ID}"' in html
        assert '<i>Baofeng</i> UV-K6' in html
        assert 'href="?sumario1"' in html
        assert 'Anterior' not in html


class TestMain:
    """Test the homolog-lookup command"""

    def test_writes_page(self, site, tmp_path, capsys):
        out = tmp_path / 'page.html'
        assert homolog_lookup.main(['?' + RECORD_ID, '--site', str(site), '-o', str(out)]) == 0
        assert 'UV-K6' in out.read_text(encoding='utf-8')
        assert capsys.readouterr().out.strip() == f'Wrote {out}'

    def test_error_exit_code(self, site, capsys):
        assert homolog_lookup.main(['?', '--site', str(site)]) == 1
        assert '<sup>CX</sup>' in capsys.readouterr().out
