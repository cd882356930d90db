from setuptools import setup
from pathlib import Path

here = Path(__file__).parent
reqs = here / 'requirements.txt'
install_requires = []
if reqs.exists():
    install_requires = [r.strip() for r in reqs.read_text().splitlines() if r.strip() and not r.strip().startswith('#')]

setup(
    name='Radio_Homolog',
    version='0.1.0',
    description='Brazilian repeater list scraper and radio homologation lookup pages',
    python_requires='>=3.9',
    py_modules=[
        'site_config',
        'log_setup',
        'local_store',
        'resource_fetch',
        'br_locations',
        'repeater_table',
        'repeater_store',
        'radioid_source',
        'labre_source',
        'repeater_scraper',
        'make_summary',
        'homolog_lookup',
    ],
    install_requires=install_requires,
    extras_require={
        'test': ['pytest>=7'],
    },
    entry_points={
        'console_scripts': [
            'repeater-scraper=repeater_scraper:main',
            'make-summary=make_summary:main',
            'homolog-lookup=homolog_lookup:main',
        ],
    },
)
