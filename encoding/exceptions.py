MAX_ERROR_LENGTH = 4000


class EncodingError(Exception):
    """Base class for encoding pipeline errors."""


class ExecutionFailed(EncodingError):
    """An external transcode step did not produce its output."""

    def __init__(self, step, reason: str):
        self.step = step
        self.reason = reason
        super().__init__(reason)

    def diagnostic(self) -> str:
        label = getattr(self.step, "label", None)
        text = f"[{label}] {self.reason}" if label else self.reason
        return text[:MAX_ERROR_LENGTH]


class MissingInput(ExecutionFailed):
    def __init__(self, step, path):
        self.path = path
        super().__init__(step, f"Input file not found: {path}")


class RunCancelled(EncodingError):
    """The run was stopped because its video went away or was cancelled."""


class DiscoveryFailed(EncodingError):
    """Querying for pending videos failed; the scheduler retries next interval."""
