"""SprintKeeper: fixed-length sprint cycles with self-healing lifecycle state."""

__version__ = "0.1.0"
