"""
Error taxonomy.

Only adapters raise these. The analytics stages turn them into explicit
statuses on their result objects, so an unreachable source never looks like
a confirmed zero.
"""


class SignalEngineError(Exception):
    """Base class for all errors raised by this package."""


class DataUnavailableError(SignalEngineError):
    """An upstream source (events, inventory, history) could not be reached."""


class MalformedRecordError(SignalEngineError):
    """A single record failed the minimal shape checks."""


class SnapshotConflictError(SignalEngineError):
    """A snapshot with the same id already exists; history is append-only."""
