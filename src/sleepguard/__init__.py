"""SleepGuard — confidential sleep metrics with authorized disclosure."""

__version__ = "0.1.0"
