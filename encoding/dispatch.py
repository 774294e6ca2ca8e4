import logging
import threading
from concurrent.futures import Future

from django.db import connection

logger = logging.getLogger(__name__)


class ThreadRun:
    def __init__(self, future: Future, cancel_event: threading.Event):
        self.future = future
        self.cancel_event = cancel_event

    def done(self) -> bool:
        return self.future.done()

    def cancel(self) -> None:
        self.cancel_event.set()

    def add_done_callback(self, fn) -> None:
        self.future.add_done_callback(lambda _f: fn(self))


class ThreadDispatcher:
    """Runs each video in its own thread inside this process."""

    def __init__(self, run_video):
        self.run_video = run_video

    def submit(self, video_id) -> ThreadRun:
        future = Future()
        cancel_event = threading.Event()

        def target():
            if not future.set_running_or_notify_cancel():
                return
            try:
                future.set_result(self.run_video(video_id, cancel_event=cancel_event))
            except BaseException as e:
                future.set_exception(e)
            finally:
                # Each thread gets its own DB connection; don't leak it
                connection.close()

        thread = threading.Thread(target=target, name=f"encode-video-{video_id}", daemon=True)
        run = ThreadRun(future, cancel_event)
        thread.start()
        return run


class CeleryRun:
    def __init__(self, result):
        self.result = result

    def done(self) -> bool:
        return self.result.ready()

    def cancel(self) -> None:
        # Only stops runs that have not started yet; a live run notices deletion itself
        self.result.revoke()

    def add_done_callback(self, fn) -> None:
        # AsyncResult has no callbacks; the scheduler reaps finished runs on each scan
        pass


class CeleryDispatcher:
    """Hands each video to a Celery worker via encode_video.delay()."""

    def submit(self, video_id) -> CeleryRun:
        from .tasks import encode_video

        return CeleryRun(encode_video.delay(video_id))


def get_dispatcher(name: str, run_video):
    if name == "celery":
        return CeleryDispatcher()
    return ThreadDispatcher(run_video)
