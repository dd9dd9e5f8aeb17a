"""
Custom exceptions for persistq.

Only configuration and input errors reach callers. Persistence and delivery
failures are absorbed by the queue and surfaced through logs, metrics,
notifications and the discard list.
"""


class QueueError(Exception):
    """Base error for persistq."""

    pass


class QueueConfigError(QueueError, ValueError):
    """Invalid construction arguments or sink registration."""

    pass


class SinkConflictError(QueueConfigError):
    """A handler and a remote sink cannot be active on the same queue."""

    pass


class InvalidItemError(QueueError, TypeError):
    """Submitted item is missing or not a JSON object."""

    pass


class PersistenceError(QueueError):
    """Snapshot could not be read or decoded."""

    pass
