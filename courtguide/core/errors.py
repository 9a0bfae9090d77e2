"""Exception hierarchy for courtguide."""


class CourtGuideError(Exception):
    """Base exception for courtguide errors."""

    def __init__(self, message: str, hint: str | None = None):
        self.message = message
        self.hint = hint
        super().__init__(message)


class FrameError(CourtGuideError):
    """Malformed frame buffer, unsupported format or bad dimensions."""
    pass


class CameraError(CourtGuideError):
    """Failure reported by the frame source."""
    pass


class CacheError(CourtGuideError):
    """Calibration cache store failure."""
    pass


class ConfigError(CourtGuideError):
    """Invalid or unreadable configuration."""
    pass
