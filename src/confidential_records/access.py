"""Owner checks shared by every mutating or disclosure-sensitive operation."""

from __future__ import annotations

from .errors import UnauthorizedError
from .logger import get_logger
from .storage import Record

log = get_logger(__name__)


def authorize(caller: str, record: Record) -> bool:
    return caller == record.owner


def authorize_any(caller: str, *records: Record) -> bool:
    """True when caller owns at least one of the records."""
    return any(authorize(caller, record) for record in records)


def require_owner(caller: str, record: Record, action: str) -> None:
    """
    Raise unless caller owns record.

    Must run before any state mutation or gateway call so a refusal has no
    side effects.

    Raises:
        UnauthorizedError: If caller is not the owner
    """
    if not authorize(caller, record):
        log.warning("%s refused on record %d for %s", action, record.record_id, caller)
        raise UnauthorizedError(f"{caller} may not {action} record {record.record_id}")


def require_any_owner(caller: str, *records: Record, action: str) -> None:
    if not authorize_any(caller, *records):
        ids = ", ".join(str(r.record_id) for r in records)
        log.warning("%s refused on records %s for %s", action, ids, caller)
        raise UnauthorizedError(f"{caller} owns none of records {ids}")
