#!/usr/bin/env python3
"""Run the vertical bar chart scenario catalog from a source checkout.

Usage::

    # Offline, against the in-memory app:
    python scripts/run_scenarios.py --in-memory

    # Against a running application:
    python scripts/run_scenarios.py --base-url http://localhost:5601

    # Selected scenarios, structured run log:
    python scripts/run_scenarios.py --base-url http://localhost:5601 \\
        --scenario VB-001 --scenario VB-003 --log-file evidence/run.json

    # Output JSON results:
    python scripts/run_scenarios.py --in-memory --json
"""

from __future__ import annotations

import sys
from pathlib import Path

# Add project root to path for imports.
_PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(_PROJECT_ROOT / 'src'))

from vizcheck.cli import main


if __name__ == '__main__':
    sys.exit(main())
