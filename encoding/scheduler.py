import logging
import threading
from concurrent.futures import wait as wait_futures
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

from django.conf import settings
from django.db import DatabaseError
from django.utils import timezone

from .dispatch import get_dispatcher
from .exceptions import DiscoveryFailed
from .models import Video
from .runner import run_pipeline_for

logger = logging.getLogger(__name__)


class _Reserved:
    """Placeholder for a slot taken while the dispatcher is still submitting."""

    cancelled = False

    def done(self) -> bool:
        return False

    def cancel(self) -> None:
        # Honoured once the real run handle replaces the placeholder
        self.cancelled = True


@dataclass
class SchedulerConfig:
    poll_interval: float = 5.0
    max_concurrent: Optional[int] = None   # None = unbounded
    dispatch: str = "thread"
    stale_after: float = 60.0   # seconds without a heartbeat before an encoding row counts as orphaned

    @classmethod
    def from_settings(cls, **overrides):
        values = {
            "poll_interval": settings.ENCODING_POLL_INTERVAL,
            "max_concurrent": settings.ENCODING_MAX_CONCURRENT,
            "dispatch": settings.ENCODING_DISPATCH,
            "stale_after": settings.ENCODING_STALE_AFTER,
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)


class JobScheduler:
    """
    Background loop that finds unencoded videos and starts a run for each.

    Active runs are tracked by video id so a video seen again while its run
    is live is left alone. Runs are fire-and-forget; a finished run removes
    its own entry (thread dispatch) or is reaped on the next scan (Celery).
    """

    IDLE = "idle"
    SCANNING = "scanning"
    DISPATCHING = "dispatching"

    def __init__(self, config: SchedulerConfig, run_video=None, dispatcher=None):
        self.config = config
        self.dispatcher = dispatcher or get_dispatcher(config.dispatch, run_video or run_pipeline_for)
        self.state = self.IDLE
        self._active = {}
        self._lock = threading.Lock()
        self._stop = threading.Event()
        self._thread = None

    # -- tracking -------------------------------------------------------

    def active_ids(self) -> set:
        with self._lock:
            return set(self._active)

    def _clear(self, video_id, run) -> None:
        with self._lock:
            if self._active.get(video_id) is run:
                del self._active[video_id]
        future = getattr(run, "future", None)
        if future is not None and future.exception() is not None:
            logger.error("Run for video %s raised %r", video_id, future.exception())

    def _reap(self) -> None:
        with self._lock:
            for video_id in [vid for vid, run in self._active.items() if run.done()]:
                del self._active[video_id]

    def cancel(self, video_id) -> bool:
        with self._lock:
            run = self._active.get(video_id)
            if isinstance(run, _Reserved):
                run.cancel()
                return True
        if run is None:
            return False
        run.cancel()
        return True

    # -- scanning -------------------------------------------------------

    def recover(self) -> int:
        """Reset encoding rows whose run stopped sending heartbeats."""
        stale_before = timezone.now() - timedelta(seconds=self.config.stale_after)
        count = Video.objects.reset_encoding_videos(stale_before=stale_before)
        if count:
            logger.warning("Reset %d video(s) left encoding by a run that is no longer alive", count)
        return count

    def _discover(self) -> list:
        try:
            return list(Video.objects.unencoded().order_by("created_at", "id").values_list("id", flat=True))
        except DatabaseError as e:
            raise DiscoveryFailed(str(e)) from e

    def scan_once(self) -> list:
        """Start runs for pending videos; returns the ids dispatched this time."""
        self.state = self.SCANNING
        self._reap()
        try:
            pending = self._discover()
        except DiscoveryFailed as e:
            logger.error("Could not look up pending videos, retrying next interval: %s", e)
            self.state = self.IDLE
            return []

        self.state = self.DISPATCHING
        dispatched = []
        for video_id in pending:
            with self._lock:
                if video_id in self._active:
                    continue
                limit = self.config.max_concurrent
                if limit is not None and len(self._active) >= limit:
                    break
                # Reserve the slot before submitting so an overlapping scan sees it
                self._active[video_id] = _Reserved()
            try:
                run = self.dispatcher.submit(video_id)
            except Exception:
                logger.exception("Could not dispatch video %s", video_id)
                with self._lock:
                    self._active.pop(video_id, None)
                continue
            with self._lock:
                reservation = self._active.get(video_id)
                self._active[video_id] = run
            if getattr(reservation, "cancelled", False):
                run.cancel()
            run.add_done_callback(lambda r, vid=video_id: self._clear(vid, r))
            logger.info("Dispatched video %s", video_id)
            dispatched.append(video_id)

        self.state = self.IDLE
        return dispatched

    # -- lifecycle ------------------------------------------------------

    def run_forever(self) -> None:
        logger.info(
            "Encoding queue started (interval=%ss, max_concurrent=%s, dispatch=%s)",
            self.config.poll_interval,
            self.config.max_concurrent or "unbounded",
            self.config.dispatch,
        )
        while not self._stop.is_set():
            try:
                # Also catches rows whose run died after this process started
                self.recover()
                self.scan_once()
            except Exception:
                logger.exception("Encoding queue scan failed")
                self.state = self.IDLE
            self._stop.wait(self.config.poll_interval)
        logger.info("Encoding queue stopped")

    def start(self) -> threading.Thread:
        self._stop.clear()
        self._thread = threading.Thread(target=self.run_forever, name="encoding-queue", daemon=True)
        self._thread.start()
        return self._thread

    def stop(self, cancel_runs: bool = False, timeout: Optional[float] = None) -> None:
        self._stop.set()
        if cancel_runs:
            for video_id in self.active_ids():
                self.cancel(video_id)
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None

    def wait(self, timeout: Optional[float] = None) -> None:
        """Block until in-process runs finish; Celery runs are not waited on."""
        with self._lock:
            futures = [run.future for run in self._active.values() if hasattr(run, "future")]
        wait_futures(futures, timeout)
