"""
Exceptions raised while converting recordings.
"""


class CollapseError(Exception):
    """Base class for every error raised by collapse_jfr."""


class ConfigurationError(CollapseError):
    """Bad or missing arguments; fatal before any file is processed."""


class RecordingOpenError(CollapseError):
    """A recording could not be read or decoded."""

    def __init__(self, path, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"could not open recording {path}: {reason}")


class FrameFormatError(CollapseError):
    """A stack frame could not be rendered (e.g. no resolvable package)."""
