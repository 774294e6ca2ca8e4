import logging
import shlex
import subprocess
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional

from .chain import Step
from .exceptions import ExecutionFailed, MissingInput, RunCancelled

logger = logging.getLogger(__name__)

STDERR_TAIL = 2000
TERMINATE_GRACE_SECONDS = 5.0


@dataclass(frozen=True)
class StepResult:
    output_path: Path


def probe_duration(path, ffprobe_binary: str = "ffprobe") -> Optional[float]:
    """Return the media duration in seconds, or None when ffprobe can't tell."""
    cmd = [
        ffprobe_binary,
        "-v", "error",
        "-show_entries", "format=duration",
        "-of", "default=noprint_wrappers=1:nokey=1",
        str(path),
    ]
    try:
        proc = subprocess.run(cmd, check=True, stdout=subprocess.PIPE, stderr=subprocess.PIPE)
    except (OSError, subprocess.CalledProcessError) as e:
        logger.warning("ffprobe failed for %s: %s", path, e)
        return None
    try:
        duration = float(proc.stdout.decode("utf-8", errors="ignore").strip())
    except ValueError:
        # ffprobe prints "N/A" for streams without a known length
        return None
    return duration if duration > 0 else None


def parse_progress_line(line: str, duration: Optional[float]) -> Optional[int]:
    """
    Map one `-progress` key=value line to an integer percentage.

    ffmpeg reports `out_time_us` (and `out_time_ms`, which is also in
    microseconds). Without a duration only the final `progress=end` counts.
    """
    key, sep, value = line.strip().partition("=")
    if not sep:
        return None
    if key == "progress":
        return 100 if value == "end" else None
    if key in ("out_time_us", "out_time_ms") and duration:
        try:
            micros = int(value)
        except ValueError:
            return None
        fraction = micros / 1_000_000 / duration
        return max(0, min(100, int(fraction * 100)))
    return None


class FfmpegInvoker:
    """Runs a single encoding step through ffmpeg and streams its progress."""

    def __init__(self, ffmpeg_binary: str = "ffmpeg", ffprobe_binary: str = "ffprobe"):
        self.ffmpeg_binary = ffmpeg_binary
        self.ffprobe_binary = ffprobe_binary

    @classmethod
    def from_settings(cls):
        from django.conf import settings

        return cls(settings.FFMPEG_BINARY, settings.FFPROBE_BINARY)

    def build_command(self, step: Step, input_path: Path, output_path: Path) -> list[str]:
        try:
            options = shlex.split(step.command)
        except ValueError as e:
            raise ExecutionFailed(step, f"Invalid command template {step.command!r}: {e}")
        # -progress emits a block every stats period (0.5s by default)
        return [
            self.ffmpeg_binary,
            "-y",
            "-nostdin",
            "-nostats",
            "-loglevel", "error",
            "-progress", "pipe:1",
            "-i", str(input_path),
            *options,
            str(output_path),
        ]

    def run(
        self,
        step: Step,
        input_path,
        output_path,
        on_progress: Optional[Callable[[int], None]] = None,
        cancel_event=None,
        on_tick: Optional[Callable[[], None]] = None,
    ) -> StepResult:
        """
        Encode `input_path` into `output_path`.

        `on_progress` gets each new, higher percentage; `on_tick` is called
        once per progress block ffmpeg writes, whether or not the percentage
        moved. Whatever ffmpeg left at `output_path` is removed when the step
        fails or is cancelled.
        """
        input_path = Path(input_path)
        output_path = Path(output_path)
        if not input_path.is_file():
            raise MissingInput(step, input_path)
        if output_path.resolve() == input_path.resolve():
            raise ExecutionFailed(step, f"Output {output_path} would overwrite its own input")

        cmd = self.build_command(step, input_path, output_path)
        duration = probe_duration(input_path, self.ffprobe_binary)
        logger.debug("Starting ffmpeg: %s", shlex.join(cmd))

        try:
            returncode, stderr = self._execute(cmd, step, duration, on_progress, on_tick, cancel_event)
            if cancel_event is not None and cancel_event.is_set():
                raise RunCancelled(f"step {step.label} cancelled")
            if returncode != 0:
                detail = stderr[-STDERR_TAIL:] or "no output on stderr"
                raise ExecutionFailed(step, f"ffmpeg exited with status {returncode}: {detail}")
            if not output_path.is_file() or output_path.stat().st_size == 0:
                raise ExecutionFailed(step, f"ffmpeg produced no output at {output_path}")
        except BaseException:
            self._discard(output_path)
            raise
        return StepResult(output_path=output_path)

    def _execute(self, cmd, step, duration, on_progress, on_tick, cancel_event):
        with tempfile.TemporaryFile() as errfile:
            try:
                proc = subprocess.Popen(
                    cmd,
                    stdin=subprocess.DEVNULL,
                    stdout=subprocess.PIPE,
                    stderr=errfile,
                    text=True,
                )
            except OSError as e:
                raise ExecutionFailed(step, f"Could not start {self.ffmpeg_binary}: {e}")

            last = -1
            try:
                for line in proc.stdout:
                    if cancel_event is not None and cancel_event.is_set():
                        raise RunCancelled(f"step {step.label} cancelled")
                    if on_tick is not None and line.startswith("progress="):
                        on_tick()
                    pct = parse_progress_line(line, duration)
                    if pct is not None and pct > last:
                        last = pct
                        if on_progress is not None:
                            on_progress(pct)
                returncode = proc.wait()
            except BaseException:
                self._terminate(proc)
                raise
            finally:
                proc.stdout.close()

            errfile.seek(0)
            return returncode, errfile.read().decode("utf-8", errors="ignore").strip()

    @staticmethod
    def _discard(output_path: Path) -> None:
        try:
            output_path.unlink(missing_ok=True)
        except OSError as e:
            logger.warning("Could not remove partial output %s: %s", output_path, e)

    @staticmethod
    def _terminate(proc) -> None:
        if proc.poll() is not None:
            return
        proc.terminate()
        try:
            proc.wait(timeout=TERMINATE_GRACE_SECONDS)
        except subprocess.TimeoutExpired:
            proc.kill()
            proc.wait()
