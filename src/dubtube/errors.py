"""
Exception types raised by the dubbing pipeline and its adapters.
"""


class DubbingError(RuntimeError):
    """Base class for all pipeline errors."""

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


# Media toolchain


class MediaError(DubbingError):
    pass


class ExtractionFailed(MediaError):
    """Cutting a time range out of the source audio failed."""


class ConcatenationFailed(MediaError):
    """Stream-copy concatenation failed or had nothing to join."""


class ProbeFailed(MediaError):
    """Duration metadata could not be read (includes missing files)."""


class ProbeTimeout(ProbeFailed):
    """ffprobe did not answer within its time budget."""


class NormalizationFailed(MediaError):
    """Padding, tempo scaling or trimming a clip failed."""


# Remote services


class SynthesisFailed(DubbingError):
    pass


class CloningFailed(DubbingError):
    pass


class TranscriptionFailed(DubbingError):
    pass


class TranslationFailed(DubbingError):
    pass


class AudioDownloadFailed(DubbingError):
    """Every yt-dlp attempt for a video failed."""


# Job level


class InvalidDubbingRequest(DubbingError):
    """The request is missing inputs or they are inconsistent; nothing was started."""


class DubbingJobFailed(DubbingError):
    """A job-fatal failure, reported to the caller as a single reason."""

    def __init__(self, reason: str, state: str | None = None):
        super().__init__(reason)
        self.state = state
