"""Exceptions raised by the reconcile pipeline and the store boundary."""

from __future__ import annotations


class ReconcileError(Exception):
    """Base class for reconcile failures.

    ``retryable`` tells the caller whether the key should be requeued.
    """

    retryable = True


class InvalidKeyError(ReconcileError):
    retryable = False

    def __init__(self, key: str) -> None:
        super().__init__(f"invalid resource key: {key!r}")
        self.key = key


class TrafficResolutionError(ReconcileError):
    """A traffic entry references something that cannot be routed to.

    ``reason`` and ``message`` are surfaced on the Route's conditions.
    """

    reason = "TrafficResolutionFailed"

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(self.message)

    @property
    def message(self) -> str:
        return f'Traffic target "{self.name}" cannot be resolved'


class ConfigurationMissing(TrafficResolutionError):
    reason = "ConfigurationMissing"

    @property
    def message(self) -> str:
        return f'Referenced Configuration "{self.name}" not found'


class RevisionMissing(TrafficResolutionError):
    reason = "RevisionMissing"

    @property
    def message(self) -> str:
        return f'Referenced Revision "{self.name}" not found'


class ConfigurationConflict(ReconcileError):
    """The Configuration is already bound to a different Route."""

    def __init__(self, name: str, owner: str) -> None:
        super().__init__(
            f'Configuration "{name}" is already in use by Route "{owner}"'
        )
        self.name = name
        self.owner = owner


class StoreError(ReconcileError):
    """Write against the authoritative store failed."""


class ConflictError(StoreError):
    """The object changed since it was last observed."""


class AlreadyExistsError(StoreError):
    pass


class NotFoundError(StoreError):
    pass
