"""Console entry point: ``python -m gemini_proxy.main`` / ``gemini-proxy``."""

from __future__ import annotations

import sys

from gemini_proxy.core.cli import main

if __name__ == "__main__":
    sys.exit(main())
