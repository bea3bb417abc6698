"""
Poll-based sync with the ledger.

There is no push channel, so the poller fetches the record and the clock on a
fixed interval while the view is visible. Hiding the view cancels the timer;
showing it again fetches immediately and restarts the timer. A finished game
stops the poller for good.
"""
import logging

from ledger_chess.collaborators import SessionContext
from ledger_chess.coordinator import OptimisticMoveCoordinator
from ledger_chess.models import TimeStatus
from ledger_chess.scheduling import PeriodicHandle, Scheduler, VisibilitySource

log = logging.getLogger(__name__)


class SyncPoller:
    def __init__(
        self,
        context: SessionContext,
        coordinator: OptimisticMoveCoordinator,
        scheduler: Scheduler,
        visibility: VisibilitySource,
        interval: float | None = None,
    ) -> None:
        self.context = context
        self.coordinator = coordinator
        self.scheduler = scheduler
        self.visibility = visibility
        self.interval = interval if interval is not None else context.settings.poll_interval_s
        self.time_status: TimeStatus | None = None

        self._handle: PeriodicHandle | None = None
        self._unsubscribe = None
        self._in_flight = False
        self._stopped = False

    @property
    def running(self) -> bool:
        """True while the periodic timer is armed."""
        return self._handle is not None

    @property
    def stopped(self) -> bool:
        return self._stopped

    def start(self) -> None:
        if self._stopped:
            raise RuntimeError("poller was stopped and cannot be restarted")
        if self._unsubscribe is not None:
            return
        if self.coordinator.record.is_terminal:
            log.info("game %s already finished; not polling", self.context.game_id)
            self._stopped = True
            return
        self._unsubscribe = self.visibility.subscribe(self._on_visibility)
        if self.visibility.is_visible():
            self._start_timer()

    def stop(self) -> None:
        """Tear down timers and the visibility subscription. In-flight writes are untouched."""
        self._stopped = True
        self._cancel_timer()
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    async def refresh(self) -> bool:
        """Poll right now, outside the timer (e.g. after a resign or draw write)."""
        return await self.poll_once()

    async def poll_once(self) -> bool:
        """
        Fetch the record and clock once and feed them to the coordinator.
        Returns False when skipped or failed; the next tick simply tries again.
        """
        if self._stopped:
            return False
        if self._in_flight:
            log.debug("poll still outstanding for game %s; skipping tick", self.context.game_id)
            return False
        self._in_flight = True
        try:
            return await self._poll()
        finally:
            self._in_flight = False

    async def _poll(self) -> bool:
        game_id = self.context.game_id
        reader = self.context.reader
        try:
            record = await reader.fetch_game_record(game_id)
            time_status = await reader.fetch_time_status(game_id) if record is not None else None
        except Exception:
            log.warning("poll of game %s failed; retrying next tick", game_id, exc_info=True)
            return False

        if record is None:
            log.warning("game %s not found on the ledger", game_id)
            return False
        if self._stopped:
            return False

        if record.moves != self.coordinator.record.moves:
            log.info(
                "game %s: history changed (%d -> %d moves)",
                game_id,
                len(self.coordinator.record.moves),
                len(record.moves),
            )
            self.coordinator.apply_authoritative(record)
        else:
            self.coordinator.refresh_metadata(record)
        self.time_status = time_status

        if record.is_terminal:
            log.info("game %s finished with status %s; polling stopped", game_id, record.status)
            self.stop()
        return True

    # ---- timer / visibility ----
    async def _tick(self) -> None:
        await self.poll_once()

    def _start_timer(self) -> None:
        if self._handle is None and not self._stopped:
            self._handle = self.scheduler.every(self.interval, self._tick)

    def _cancel_timer(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _on_visibility(self, visible: bool) -> None:
        if self._stopped:
            return
        if not visible:
            log.debug("view hidden; pausing polling for game %s", self.context.game_id)
            self._cancel_timer()
            return
        log.debug("view visible; refreshing game %s", self.context.game_id)
        self.scheduler.spawn(self.poll_once())
        self._start_timer()
