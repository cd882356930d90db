"""Project settings.

Every value can be overridden with an environment variable of the same
name. Paths are derived from HOMOLOG_ROOT (defaults to the current working
directory, like the site's build scripts expect).
"""
import os

ROOT = os.path.abspath(os.getenv("HOMOLOG_ROOT", os.getcwd()))
DADOS = os.getenv("DADOS", os.path.join(ROOT, "DADOS"))
HOMOLOGACOES = os.getenv("HOMOLOGACOES", os.path.join(DADOS, "homologacoes"))
REPETIDORAS = os.getenv("REPETIDORAS", os.path.join(DADOS, "repetidoras"))

# path used by the lookup page, relative to the site root
HOMOLOGACOES_URL_PATH = "DADOS/homologacoes"

RADIOID_URL = os.getenv("RADIOID_URL", "https://radioid.net/static/rptrs.json")
RADIOID_FILE = os.getenv("RADIOID_FILE", "rptrs.json")
LABRE_SP_URL = os.getenv("LABRE_SP_URL", "https://www.labre-sp.org.br/diversos.php?xid=48")
IBGE_CITIES_URL = os.getenv(
    "IBGE_CITIES_URL",
    "https://servicodados.ibge.gov.br/api/v1/localidades/estados/{uf}/municipios",
)

USER_AGENT = os.getenv(
    "USER_AGENT",
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/115.0 Safari/537.36",
)
REQUEST_TIMEOUT = float(os.getenv("REQUEST_TIMEOUT", "15"))
LOOKUP_TIMEOUT = float(os.getenv("LOOKUP_TIMEOUT", "10"))
LOOKUP_RETRIES = int(os.getenv("LOOKUP_RETRIES", "1"))

SUMMARY_PAGE_SIZE = int(os.getenv("SUMMARY_PAGE_SIZE", "25"))

DEBUG = os.getenv("DEBUG", "0") == "1"
LOG_LEVEL = os.getenv("LOG_LEVEL", "DEBUG" if DEBUG else "INFO")
