"""
Panel Stop Watchdog.

Watches servers on a Pterodactyl-style panel and force-kills any server
that stays in "stopping" longer than the configured deadline. Graceful
shutdown can hang forever on a stuck process; this frees the allocation.

Runs as its own process, talking to the panel over its REST API:
- Poll each server's state on a fixed cadence
- Arm a deadline when a server starts stopping
- Kill it if it is still not offline when the deadline fires
- Report progress on GET /health
"""

from panel_watchdog.engine import StopWatchdog
from panel_watchdog.settings import WatchdogSettings

__all__ = ["StopWatchdog", "WatchdogSettings"]
