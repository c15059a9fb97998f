"""CLI entry point: python -m scripts.depfence."""

import sys

from scripts.depfence.cli import main

sys.exit(main())
