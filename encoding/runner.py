import logging
import os
import socket
import time
import uuid
from dataclasses import dataclass
from pathlib import Path

from django.conf import settings
from django.utils import timezone

from .chain import TaskChain
from .exceptions import MAX_ERROR_LENGTH, ExecutionFailed, RunCancelled
from .ffmpeg import FfmpegInvoker
from .models import Video
from .notifications import get_notifier

logger = logging.getLogger(__name__)

CANCELLED = "cancelled"
SKIPPED = "skipped"


@dataclass(frozen=True)
class Outcome:
    state: str          # Video.State.COMPLETE / ERROR, or CANCELLED / SKIPPED
    reason: str = ""

    @property
    def ok(self) -> bool:
        return self.state == Video.State.COMPLETE


def new_owner() -> str:
    return f"{socket.gethostname()[:64]}:{os.getpid()}:{uuid.uuid4().hex[:12]}"


def _update(video_id, owner, *, state=None, progress=None, error=None) -> None:
    now = timezone.now()
    fields = {"updated_at": now, "heartbeat_at": now}
    if state:
        fields["state"] = state
    if progress is not None:
        fields["progress"] = max(0, min(100, int(progress)))
    if error is not None:
        fields["error"] = error[:MAX_ERROR_LENGTH]
    if not Video.objects.filter(pk=video_id, claimed_by=owner).update(**fields):
        raise RunCancelled(f"video {video_id} was deleted or claimed by another run")


class PipelineRunner:
    """
    Drives one video through its encoder's steps, in order.

    Each step reads the previous step's output (the source file for the
    first one) and writes <source stem><suffix> next to the source. The
    first failing step puts the video in the error state and ends the run.
    Progress is the current step's own percentage.

    Every write is scoped to the owner token recorded by the claim, and
    refreshes the row's heartbeat. If the row is deleted or reset and
    claimed by someone else, the next write stops this run.
    """

    def __init__(self, invoker=None, notifier=None, heartbeat_interval=None):
        self.invoker = invoker or FfmpegInvoker.from_settings()
        self.notifier = notifier or get_notifier()
        if heartbeat_interval is None:
            heartbeat_interval = settings.ENCODING_HEARTBEAT_INTERVAL
        self.heartbeat_interval = heartbeat_interval

    def execute(self, video: Video, chain: TaskChain, cancel_event=None) -> Outcome:
        video_id = video.pk
        owner = new_owner()
        if not Video.objects.claim(video_id, owner):
            logger.info("Video %s is not pending, skipping", video_id)
            return Outcome(SKIPPED, "not pending")

        logger.info("Encoding video %s with %r (%d steps)", video_id, chain.encoder_name, len(chain))
        source = Path(video.file)
        current_input = source
        last_write = time.monotonic()

        def write(**fields):
            nonlocal last_write
            _update(video_id, owner, **fields)
            last_write = time.monotonic()

        def on_progress(pct):
            write(progress=pct)

        def on_tick():
            if time.monotonic() - last_write >= self.heartbeat_interval:
                write()

        def fail(reason):
            Video.objects.filter(pk=video_id, claimed_by=owner).update(
                state=Video.State.ERROR,
                error=reason[:MAX_ERROR_LENGTH],
                updated_at=timezone.now(),
            )

        try:
            for idx, step in enumerate(chain, start=1):
                if cancel_event is not None and cancel_event.is_set():
                    raise RunCancelled(f"video {video_id} cancelled before step {step.label}")
                if idx > 1:
                    write(progress=0)
                output = chain.output_path_for(source, step)
                if output.resolve() == Path(current_input).resolve():
                    raise ExecutionFailed(step, f"Output {output} would overwrite its own input")
                logger.info("Video %s: step %d/%d %s -> %s", video_id, idx, len(chain), step.label, output)
                result = self.invoker.run(
                    step,
                    current_input,
                    output,
                    on_progress=on_progress,
                    cancel_event=cancel_event,
                    on_tick=on_tick,
                )
                current_input = result.output_path

            write(state=Video.State.COMPLETE, progress=100, error="")
        except ExecutionFailed as e:
            reason = e.diagnostic()
            logger.warning("Video %s failed: %s", video_id, reason)
            fail(reason)
            return Outcome(Video.State.ERROR, reason)
        except RunCancelled as e:
            logger.info("Video %s run stopped: %s", video_id, e)
            return Outcome(CANCELLED, str(e))
        except Exception as e:
            logger.exception("Video %s crashed while encoding", video_id)
            fail(str(e))
            raise

        logger.info("Video %s complete", video_id)
        self.notifier.notify_complete(video_id)
        return Outcome(Video.State.COMPLETE)


def run_pipeline_for(video_id, cancel_event=None, runner=None) -> Outcome:
    try:
        video = Video.objects.select_related("encoder").get(pk=video_id)
    except Video.DoesNotExist:
        logger.info("Video %s disappeared before its run started", video_id)
        return Outcome(SKIPPED, "not found")
    chain = video.encoder.task_chain()
    return (runner or PipelineRunner()).execute(video, chain, cancel_event=cancel_event)
