"""Entry point: python -m lsoa_geodemographics"""

from .cli import main

main()
