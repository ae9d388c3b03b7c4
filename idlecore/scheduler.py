from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Callable

from idlecore._sync import KeyedLock
from idlecore.economy import EconomyEngine
from idlecore.persistence import Database
from idlecore.state import PlayerState

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL = 1.0
DEFAULT_MAX_WORKERS = 8


class _PlayerUpdateError(Exception):
    def __init__(self, player_id: str, cause: Exception) -> None:
        super().__init__(str(cause))
        self.player_id = player_id


@dataclass
class TickReport:
    """Outcome of one update pass over every stored player."""

    updated: list[str] = field(default_factory=list)
    failures: dict[str, str] = field(default_factory=dict)
    skipped: bool = False

    @property
    def ok(self) -> bool:
        return not self.failures and not self.skipped


class UpdateScheduler:
    """Advances every player once per interval on a bounded worker pool.

    Each player is updated under its own lock, which callers mutating the
    same players outside the scheduler should share via *locks*.
    """

    def __init__(
        self,
        economy: EconomyEngine,
        database: Database,
        max_workers: int = DEFAULT_MAX_WORKERS,
        interval: float = DEFAULT_INTERVAL,
        locks: KeyedLock | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if max_workers < 1:
            raise ValueError(f"max_workers must be at least 1, got {max_workers!r}")
        if interval <= 0:
            raise ValueError(f"interval must be positive, got {interval!r}")
        self.economy = economy
        self.database = database
        self.interval = interval
        self.locks = locks or KeyedLock()
        self.clock = clock
        self._pool = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="idlecore-tick"
        )
        self._ticking = threading.Lock()
        self.ticks = 0

    # ── Core loop ────────────────────────────────────────────────────

    def tick(self) -> TickReport:
        """Update every stored player and wait for all of them to finish."""
        if not self._ticking.acquire(blocking=False):
            logger.warning("Previous tick still running; skipping this one")
            return TickReport(skipped=True)
        try:
            return self._tick()
        finally:
            self._ticking.release()

    def run(
        self,
        stop_event: threading.Event | None = None,
        max_ticks: int | None = None,
    ) -> int:
        """Tick on a fixed schedule until *stop_event* is set or *max_ticks* ran.

        Interval slots that pass while a tick is still running are skipped.
        Returns the number of ticks performed.
        """
        stop_event = stop_event or threading.Event()
        performed = 0
        next_at = time.monotonic()
        logger.info("Scheduler started, interval %.2fs", self.interval)
        while not stop_event.is_set():
            if max_ticks is not None and performed >= max_ticks:
                break
            report = self.tick()
            if not report.skipped:
                performed += 1
            next_at += self.interval
            now = time.monotonic()
            if now > next_at:
                missed = int((now - next_at) // self.interval) + 1
                logger.warning("Tick overran; skipping %d interval(s)", missed)
                next_at += missed * self.interval
            if max_ticks is not None and performed >= max_ticks:
                break
            stop_event.wait(max(0.0, next_at - time.monotonic()))
        logger.info("Scheduler stopped after %d tick(s)", performed)
        return performed

    def close(self) -> None:
        self._pool.shutdown(wait=True)

    def __enter__(self) -> UpdateScheduler:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    # ── Private helpers ──────────────────────────────────────────────

    def _tick(self) -> TickReport:
        report = TickReport()
        try:
            blobs = self.database.load_all_players()
        except Exception as exc:
            logger.exception("Could not load players for tick")
            report.failures["*"] = str(exc)
            return report

        now = self.clock()
        futures: list[tuple[str, Future[str]]] = [
            (f"blob[{i}]", self._pool.submit(self._update_one, blob, now))
            for i, blob in enumerate(blobs)
        ]
        for label, future in futures:
            try:
                report.updated.append(future.result())
            except _PlayerUpdateError as exc:
                logger.error(
                    "Update failed for %s: %s", exc.player_id, exc, exc_info=exc.__cause__
                )
                report.failures[exc.player_id] = str(exc)
            except Exception as exc:
                logger.exception("Update failed for %s", label)
                report.failures[label] = str(exc)

        self.ticks += 1
        logger.debug(
            "Tick %d: %d updated, %d failed",
            self.ticks,
            len(report.updated),
            len(report.failures),
        )
        return report

    def _update_one(self, blob: bytes, now: float) -> str:
        player_id = PlayerState.from_bytes(blob).player_id
        try:
            with self.locks.hold(player_id):
                player = PlayerState.from_bytes(self.database.load_player(player_id))
                self.economy.update_player(player, now)
                self.database.save_player(player_id, player.to_bytes())
        except Exception as exc:
            raise _PlayerUpdateError(player_id, exc) from exc
        return player_id
