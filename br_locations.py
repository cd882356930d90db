"""Brazilian state (UF) and city name normalization.

States are matched against the fixed list of the 27 federative units. City
names are matched against the municipality list of their state, loaded
from a local `DADOS/municipios/<UF>.json` file or the IBGE localities API.
"""
from __future__ import annotations

import difflib
import logging
import os
import re
import unicodedata

import site_config

logger = logging.getLogger(__name__)

STATES = {
    'AC': 'Acre',
    'AL': 'Alagoas',
    'AP': 'Amapá',
    'AM': 'Amazonas',
    'BA': 'Bahia',
    'CE': 'Ceará',
    'DF': 'Distrito Federal',
    'ES': 'Espírito Santo',
    'GO': 'Goiás',
    'MA': 'Maranhão',
    'MT': 'Mato Grosso',
    'MS': 'Mato Grosso do Sul',
    'MG': 'Minas Gerais',
    'PA': 'Pará',
    'PB': 'Paraíba',
    'PR': 'Paraná',
    'PE': 'Pernambuco',
    'PI': 'Piauí',
    'RJ': 'Rio de Janeiro',
    'RN': 'Rio Grande do Norte',
    'RS': 'Rio Grande do Sul',
    'RO': 'Rondônia',
    'RR': 'Roraima',
    'SC': 'Santa Catarina',
    'SP': 'São Paulo',
    'SE': 'Sergipe',
    'TO': 'Tocantins',
}


def fold(text: str) -> str:
    """Lower-case, accent-free, single-spaced version of `text` for comparisons."""
    decomposed = unicodedata.normalize('NFKD', text)
    stripped = ''.join(c for c in decomposed if not unicodedata.combining(c))
    return re.sub(r'\s+', ' ', stripped).strip().lower()


_STATES_BY_NAME = {fold(name): code for code, name in STATES.items()}


def capitalize(text):
    """'SAO JOSE dos campos' -> 'Sao Jose Dos Campos'. Non-strings pass through."""
    if not isinstance(text, str):
        return text
    return ' '.join(w[:1].upper() + w[1:] for w in text.lower().split(' '))


def normalize_state(value) -> str | None:
    """Return the 2-letter UF for a state code or name, or None if unknown."""
    if not isinstance(value, str) or not value.strip():
        return None
    folded = fold(value)
    folded = re.sub(r'^estado (de|do|da) ', '', folded)
    if len(folded) == 2 and folded.upper() in STATES:
        return folded.upper()
    return _STATES_BY_NAME.get(folded)


class CityDirectory:
    """Canonical municipality names per state.

    `cities` may preload {UF: [names]}; anything missing is fetched once per
    state with `fetcher`. A state whose list cannot be loaded accepts any
    city name as-is (capitalized).
    """

    def __init__(self, fetcher=None, cities: dict | None = None,
                 url_template: str = site_config.IBGE_CITIES_URL,
                 local_dir: str | None = None):
        self.fetcher = fetcher
        self.url_template = url_template
        self.local_dir = local_dir or os.path.join(site_config.DADOS, 'municipios')
        self._cities: dict[str, list[str] | None] = {}
        self._index: dict[str, dict[str, str]] = {}
        for uf, names in (cities or {}).items():
            self._cities[uf.upper()] = list(names)

    def cities_for(self, uf: str) -> list[str] | None:
        uf = uf.upper()
        if uf not in self._cities:
            self._cities[uf] = self._load(uf)
        return self._cities[uf]

    def _load(self, uf: str) -> list[str] | None:
        if self.fetcher is None:
            return None
        data = self.fetcher.fetch([
            os.path.join(self.local_dir, f'{uf}.json'),
            self.url_template.format(uf=uf),
        ])
        if not isinstance(data, list):
            logger.warning("No municipality list for %s; city names are kept as scraped", uf)
            return None
        names = [d.get('nome') if isinstance(d, dict) else d for d in data]
        return [n for n in names if isinstance(n, str) and n.strip()]

    def _lookup_index(self, uf: str) -> dict[str, str]:
        if uf not in self._index:
            self._index[uf] = {fold(n): n for n in self.cities_for(uf) or []}
        return self._index[uf]

    def process_city(self, city, uf: str) -> str | None:
        """Return the canonical name of `city` in `uf`, or None when it is not one of its cities."""
        if not isinstance(city, str) or not city.strip():
            return None
        uf = uf.upper()
        if not self.cities_for(uf):
            return capitalize(re.sub(r'\s+', ' ', city).strip())
        index = self._lookup_index(uf)
        key = fold(city)
        if key in index:
            return index[key]
        close = difflib.get_close_matches(key, list(index), n=1, cutoff=0.85)
        if close:
            return index[close[0]]
        logger.debug("Unknown city %r in %s", city, uf)
        return None
