#!/usr/bin/env python
"""Run the LSOA classification from a repo checkout.

Same options as ``python -m lsoa_geodemographics``; paths default to this
repo's data/ and outputs/ folders.

Usage:
  python scripts/run_all.py
  python scripts/run_all.py --steps elbow charts
"""

import os
from pathlib import Path

from lsoa_geodemographics.cli import main


if __name__ == "__main__":
    os.environ.setdefault("REPO_ROOT", str(Path(__file__).resolve().parents[1]))
    main()
