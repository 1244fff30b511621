"""Department Sequence Table.

Single source of truth for the production path every order follows.
Pure data and lookups; nothing here touches the database.
"""

from __future__ import annotations

from typing import Optional

from modules.factory.constants import DEPARTMENT_SEQUENCE, Department
from modules.factory.exceptions import UnknownDepartment


def _index_of(department: str) -> int:
    try:
        return DEPARTMENT_SEQUENCE.index(department)
    except ValueError:
        raise UnknownDepartment(f"Unknown department: {department!r}.") from None


def all_departments() -> list[Department]:
    """Return the nine departments in production order."""
    return [Department(code) for code in DEPARTMENT_SEQUENCE]


def first_department() -> Department:
    return Department(DEPARTMENT_SEQUENCE[0])


def sequence_of(department: str) -> int:
    """Return the 1-based position of *department* in the production path.

    Raises:
        UnknownDepartment: *department* is not one of the nine departments.
    """
    return _index_of(department) + 1


def next_department(department: str) -> Optional[Department]:
    """Return the department after *department*, or ``None`` after the last."""
    index = _index_of(department)
    if index == len(DEPARTMENT_SEQUENCE) - 1:
        return None
    return Department(DEPARTMENT_SEQUENCE[index + 1])


def previous_department(department: str) -> Optional[Department]:
    """Return the department before *department*, or ``None`` for the first."""
    index = _index_of(department)
    if index == 0:
        return None
    return Department(DEPARTMENT_SEQUENCE[index - 1])


def department_at(position: int) -> Department:
    """Return the department at 1-based *position*.

    Raises:
        UnknownDepartment: *position* is outside ``1..9``.
    """
    if not 1 <= position <= len(DEPARTMENT_SEQUENCE):
        raise UnknownDepartment(f"No department at sequence position {position}.")
    return Department(DEPARTMENT_SEQUENCE[position - 1])


def display_name(department: str) -> str:
    """Human-readable label, e.g. ``"Stone Setting"`` for ``SETTING``."""
    _index_of(department)
    return Department(department).label
