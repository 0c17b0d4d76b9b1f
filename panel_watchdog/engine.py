"""
Stop watchdog engine.

Per-server state machine, derived from the timer table rather than
stored as an explicit enum:

    Idle         -- no timer armed
    AwaitingStop -- deadline timer armed

Transitions, evaluated once per server per reconciliation pass:

    Idle         --[stopping]-->  AwaitingStop   arm deadline timer
    AwaitingStop --[stopping]-->  AwaitingStop   no-op (one timer per server)
    AwaitingStop --[offline]--->  Idle           cancel timer, notify recovered
    AwaitingStop --[deadline]-->  Idle           re-check, kill if not offline

The reconciliation pass only arms and disarms. The deadline callback is
the only place a kill can happen, so kills land on the deadline rather
than on the next poll boundary.
"""

import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional, Sequence
import structlog

from panel_watchdog.alert_dispatcher import AlertDispatcher, EventKind, WatchdogEvent
from panel_watchdog.errors import TransientAPIError
from panel_watchdog.liveness import LivenessReporter
from panel_watchdog.panel_client import PanelClient, ServerState

logger = structlog.get_logger(__name__)


# (interval_seconds, callback) -> object with start() and cancel()
TimerFactory = Callable[[float, Callable[[], None]], Any]


def thread_timer(interval: float, function: Callable[[], None]) -> threading.Timer:
    """Default timer factory: a daemon threading.Timer."""
    timer = threading.Timer(interval, function)
    timer.daemon = True
    return timer


@dataclass(eq=False)
class StopTimer:
    """
    Handle for one armed deadline.

    Presence in the timer table is the watchdog's only memory of having
    seen the server stopping. Once the deadline callback claims the
    handle it can no longer be cancelled by a pass; it is removed when
    the callback finishes.
    """
    server_id: str
    name: str
    armed_at: float
    timer: Any = None
    claimed: bool = False
    owner: Optional[int] = None


@dataclass(frozen=True)
class PassResult:
    """Outcome of one reconciliation pass."""
    checked: int
    failed: int

    @property
    def all_failed(self) -> bool:
        return self.checked > 0 and self.failed == self.checked


class StopWatchdog:
    """
    Enforces a hard deadline on servers stuck in "stopping".

    Owns the timer table, the display name cache and the liveness mark.
    The table is shared between the polling thread and the deadline
    callbacks and is only touched under self._lock. No network call is
    ever made while holding the lock.
    """

    def __init__(
        self,
        panel: PanelClient,
        alerter: AlertDispatcher,
        servers: Sequence[str],
        kill_after_seconds: float = 60.0,
        notify_on_stop_detected: bool = False,
        liveness: Optional[LivenessReporter] = None,
        timer_factory: TimerFactory = thread_timer,
        clock: Callable[[], float] = time.monotonic,
        drain_timeout_seconds: float = 20.0,
    ):
        """
        Initialize the watchdog engine.

        Args:
            panel: Panel API client
            alerter: Event notifier
            servers: Server ids to watch, processed in this order each pass
            kill_after_seconds: Deadline from stop detection to kill
            notify_on_stop_detected: Also notify when a timer is armed
            liveness: Liveness reporter updated after each pass
            timer_factory: Creates one-shot deadline timers
            clock: Monotonic clock used for elapsed-time logging
            drain_timeout_seconds: How long shutdown waits for in-flight kills
        """
        self.panel = panel
        self.alerter = alerter
        self.servers = tuple(servers)
        self.kill_after_seconds = kill_after_seconds
        self.notify_on_stop_detected = notify_on_stop_detected
        self.liveness = liveness or LivenessReporter()
        self._timer_factory = timer_factory
        self._clock = clock
        self.drain_timeout_seconds = drain_timeout_seconds

        self._lock = threading.Lock()
        self._drained = threading.Condition(self._lock)
        self._timers: dict[str, StopTimer] = {}
        self._names: dict[str, str] = {}
        self._closed = False

        logger.info(
            "stop_watchdog_initialized",
            servers=len(self.servers),
            kill_after_seconds=kill_after_seconds,
        )

    # ==========================================================================
    # RECONCILIATION PASS
    # ==========================================================================

    def reconcile(self) -> PassResult:
        """
        Run one pass over every server, sequentially.

        A failure on one server never stops the others from being
        checked. The liveness mark is updated unless every server failed.
        """
        failed = 0

        for server_id in self.servers:
            try:
                self._check_server(server_id)
            except TransientAPIError as e:
                failed += 1
                logger.warning("server_check_failed", server_id=server_id, **e.as_log_context())
            except Exception as e:
                failed += 1
                logger.exception("server_check_error", server_id=server_id, error=str(e))

        result = PassResult(checked=len(self.servers), failed=failed)

        if result.all_failed:
            logger.error("reconciliation_pass_failed", servers=result.checked)
        else:
            self.liveness.mark_progress()
            logger.debug(
                "reconciliation_pass_complete",
                servers=result.checked,
                failed=result.failed,
                armed=len(self.armed_instances()),
            )

        return result

    def _check_server(self, server_id: str) -> None:
        state = self.panel.get_state(server_id)
        name = self._resolve_name(server_id)

        if state == ServerState.STOPPING:
            self._arm(server_id, name)
        elif state == ServerState.OFFLINE:
            self._disarm(server_id, name)

    def _resolve_name(self, server_id: str) -> str:
        """
        Cached display name.

        Looked up at most once per server. A failed lookup is not cached;
        the id stands in for the name until a lookup succeeds.
        """
        with self._lock:
            cached = self._names.get(server_id)
        if cached is not None:
            return cached

        try:
            name = self.panel.get_name(server_id)
        except TransientAPIError as e:
            logger.warning("server_name_lookup_failed", server_id=server_id, **e.as_log_context())
            return server_id

        with self._lock:
            return self._names.setdefault(server_id, name)

    # ==========================================================================
    # TRANSITIONS
    # ==========================================================================

    def _arm(self, server_id: str, name: str) -> bool:
        with self._lock:
            if self._closed or server_id in self._timers:
                return False

            handle = StopTimer(server_id=server_id, name=name, armed_at=self._clock())
            handle.timer = self._timer_factory(
                self.kill_after_seconds,
                lambda: self._on_deadline(handle),
            )
            self._timers[server_id] = handle
            handle.timer.start()

        logger.info(
            "stop_detected_timer_armed",
            server_id=server_id,
            name=name,
            kill_after_seconds=self.kill_after_seconds,
        )

        if self.notify_on_stop_detected:
            self.alerter.notify(WatchdogEvent(
                kind=EventKind.DETECTED,
                server_id=server_id,
                name=name,
                timeout_seconds=self.kill_after_seconds,
            ))
        return True

    def _disarm(self, server_id: str, name: str) -> bool:
        with self._lock:
            handle = self._timers.get(server_id)
            if handle is None:
                return False
            if handle.claimed:
                # Deadline callback already owns this episode
                logger.debug("offline_during_deadline_check", server_id=server_id)
                return False

            del self._timers[server_id]
            handle.timer.cancel()

        logger.info(
            "server_stopped_normally",
            server_id=server_id,
            name=name,
            elapsed_seconds=round(self._clock() - handle.armed_at, 3),
        )
        self.alerter.notify(WatchdogEvent(
            kind=EventKind.RECOVERED,
            server_id=server_id,
            name=name,
        ))
        return True

    def _on_deadline(self, handle: StopTimer) -> None:
        """
        Deadline expiry, runs on the timer's own thread.

        Re-checks the state once and kills if the server is still not
        offline. Errors are logged, never retried, and the handle is
        discarded regardless of outcome.
        """
        server_id = handle.server_id

        with self._lock:
            if self._closed or handle.claimed or self._timers.get(server_id) is not handle:
                return
            handle.claimed = True
            handle.owner = threading.get_ident()

        log = logger.bind(server_id=server_id, name=handle.name)

        try:
            current = self.panel.get_state(server_id)

            if current == ServerState.OFFLINE:
                log.info("server_offline_at_deadline")
                return

            log.warning(
                "force_killing_server",
                state=current.value,
                elapsed_seconds=round(self._clock() - handle.armed_at, 3),
            )
            self.panel.force_kill(server_id)

            self.alerter.notify(WatchdogEvent(
                kind=EventKind.KILLED,
                server_id=server_id,
                name=handle.name,
                timeout_seconds=self.kill_after_seconds,
            ))
        except TransientAPIError as e:
            log.error("kill_check_failed", **e.as_log_context())
        except Exception as e:
            log.exception("kill_check_error", error=str(e))
        finally:
            with self._lock:
                if self._timers.get(server_id) is handle:
                    del self._timers[server_id]
                handle.owner = None
                self._drained.notify_all()

    # ==========================================================================
    # INTROSPECTION / SHUTDOWN
    # ==========================================================================

    def armed_instances(self) -> list[str]:
        """Ids of servers currently awaiting stop."""
        with self._lock:
            return sorted(self._timers)

    def display_name(self, server_id: str) -> Optional[str]:
        with self._lock:
            return self._names.get(server_id)

    def _in_flight(self) -> list[StopTimer]:
        # Callbacks running on the calling thread can't be waited for
        me = threading.get_ident()
        return [
            h for h in self._timers.values()
            if h.claimed and h.owner is not None and h.owner != me
        ]

    def shutdown(self, timeout: Optional[float] = None) -> int:
        """
        Cancel every pending deadline without firing it.

        Deadlines whose callback is already running are left to finish:
        this blocks until they do, or until the drain timeout runs out,
        so callers can close the panel client afterwards. No new timers
        are armed after this.

        Args:
            timeout: Drain timeout (defaults to drain_timeout_seconds)

        Returns:
            Number of timers cancelled
        """
        timeout = self.drain_timeout_seconds if timeout is None else timeout

        with self._lock:
            self._closed = True
            pending = [h for h in self._timers.values() if not h.claimed]
            for handle in pending:
                del self._timers[handle.server_id]
                handle.timer.cancel()

            in_flight = len(self._in_flight())
            drained = self._drained.wait_for(lambda: not self._in_flight(), timeout=timeout)
            still_running = sorted(h.server_id for h in self._in_flight())

        if not drained:
            logger.error(
                "in_flight_kills_not_drained",
                servers=still_running,
                timeout_seconds=timeout,
            )

        logger.info(
            "stop_watchdog_shutdown",
            cancelled_timers=len(pending),
            in_flight_kills=in_flight,
        )
        return len(pending)
