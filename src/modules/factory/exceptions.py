"""Factory routing exceptions.

Raised by the ledger, resolver and transition controller when a request
does not fit the current state.  None of them is retried inside the core:
the caller re-reads state and issues the correct operation.  The API layer
(Views) translates them into HTTP responses.
"""

from __future__ import annotations


class FactoryError(Exception):
    """Base class for every routing-engine failure."""

    code = "factory_error"


# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------


class OrderNotFound(FactoryError):
    """The requested order does not exist or has been soft-deleted."""

    code = "order_not_found"


class WorkerNotFound(FactoryError):
    """The requested worker does not exist."""

    code = "worker_not_found"


class UnknownDepartment(FactoryError, ValueError):
    """The department identifier is not part of the production sequence."""

    code = "unknown_department"


# ---------------------------------------------------------------------------
# Ledger / transition validation
# ---------------------------------------------------------------------------


class InvalidTransitionError(FactoryError):
    """The order cannot move to the requested department or status."""

    code = "invalid_transition"


class DuplicateOpenEntryError(FactoryError):
    """The order already has an open tracking entry."""

    code = "duplicate_open_entry"


class InvalidStateError(FactoryError):
    """The tracking entry is not in a state that allows the operation."""

    code = "invalid_state"


class UnassignedEntryError(FactoryError):
    """A tracking entry without a worker cannot be completed."""

    code = "unassigned_entry"


class AlreadyInFactoryError(FactoryError):
    """The order already has an open tracking entry in the factory."""

    code = "already_in_factory"


class NoOpenEntryError(FactoryError):
    """The order has no current department entry to act on."""

    code = "no_open_entry"


# ---------------------------------------------------------------------------
# Worker assignment
# ---------------------------------------------------------------------------


class WorkerUnavailable(FactoryError):
    """The worker is inactive and cannot receive assignments."""

    code = "worker_unavailable"


class WorkerDepartmentMismatch(FactoryError):
    """The worker's home department differs from the entry's department."""

    code = "worker_department_mismatch"


# ---------------------------------------------------------------------------
# Persistence boundary
# ---------------------------------------------------------------------------


class ConcurrentModificationError(FactoryError):
    """Another transaction changed or locked the same rows first.

    Detected at the persistence boundary (stale ``version`` or a lock
    failure reported by the database).  Retry with fresh state.
    """

    code = "concurrent_modification"
