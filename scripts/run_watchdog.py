#!/usr/bin/env python3
"""
Entry point for the stop watchdog process.

Usage:
    python scripts/run_watchdog.py

    # With an explicit env file and file logging:
    python scripts/run_watchdog.py --env-file /etc/panel-watchdog.env --log-file logs/watchdog.log

Required environment: PANEL_URL, SERVERS, and API_KEY and/or CLIENT_KEYS.
"""

import sys
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from panel_watchdog.daemon import main


if __name__ == "__main__":
    sys.exit(main())
