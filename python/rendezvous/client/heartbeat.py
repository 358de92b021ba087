"""Client-side heartbeat scheduler.

Keeps one session live by heartbeating every interval. On the first failure
the loop stops and the session is reported as not live; it never retries on
its own. Re-registering (and restarting the loop) is the caller's decision.
"""

import threading
from collections.abc import Callable

from rendezvous.client.api import CoordinatorClient, CoordinatorError
from rendezvous.logging import get_logger, handle_prefix

logger = get_logger(__name__)

DEFAULT_HEARTBEAT_INTERVAL_SECONDS = 30.0


class HeartbeatLoop:
    """Heartbeat a single session until stopped or until a heartbeat fails.

    Args:
        client: Coordinator client acting as the session's owner.
        handle: Session handle to keep alive.
        interval_seconds: Period between heartbeats.
        on_stopped: Called once with the failure that stopped the loop.
    """

    def __init__(
        self,
        client: CoordinatorClient,
        handle: str,
        interval_seconds: float = DEFAULT_HEARTBEAT_INTERVAL_SECONDS,
        on_stopped: Callable[[CoordinatorError], None] | None = None,
    ):
        self._client = client
        self._handle = handle
        self._interval = interval_seconds
        self._on_stopped = on_stopped
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self._live = True
        self.last_error: CoordinatorError | None = None

    @property
    def is_live(self) -> bool:
        return self._live

    @property
    def handle(self) -> str:
        return self._handle

    def beat(self) -> bool:
        """Send one heartbeat. Returns False (and stops the loop) on failure."""
        if not self._live:
            return False
        try:
            self._client.heartbeat(self._handle)
        except CoordinatorError as e:
            self._fail(e)
            return False
        return True

    def _fail(self, error: CoordinatorError) -> None:
        self._live = False
        self.last_error = error
        self._stop_event.set()
        logger.warning(
            "heartbeat_failed",
            handle_prefix=handle_prefix(self._handle),
            code=error.code,
        )
        if self._on_stopped is not None:
            self._on_stopped(error)

    def _run(self) -> None:
        while not self._stop_event.wait(self._interval):
            if not self.beat():
                return

    def start(self) -> None:
        """Start heartbeating on a daemon thread."""
        if self._thread is not None:
            return
        self._thread = threading.Thread(
            target=self._run, name=f"heartbeat-{handle_prefix(self._handle)}", daemon=True
        )
        self._thread.start()

    def stop(self, timeout: float | None = None) -> None:
        """Stop the loop. The session stays registered until it is deactivated or goes stale."""
        self._stop_event.set()
        # on_stopped runs on the loop thread and may call stop() from there.
        if self._thread is None or self._thread is threading.current_thread():
            return
        self._thread.join(timeout)
        self._thread = None
