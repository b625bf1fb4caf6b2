"""gapwatch: real-time observation engine for thinking out loud."""

__version__ = "0.1.0"
