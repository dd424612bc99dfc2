# Overview: Service-layer operations for document numbering; allocates per-tenant order numbers.

from __future__ import annotations

from datetime import date

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from ..models import DocumentSequence
from ..time_utils import date_stamp
from .errors import ValidationError


ORDER_PREFIX = "ORD"


def _allocate(org_id: int, sequence_key: str) -> int:
    """
    Atomically allocate the next number for (org_id, sequence_key).

    The UPDATE takes the row lock, so two concurrent callers can never read
    the same value. Runs inside the caller's transaction.
    """
    stmt = (
        update(DocumentSequence)
        .where(
            DocumentSequence.org_id == org_id,
            DocumentSequence.sequence_key == sequence_key,
        )
        .values(next_number=DocumentSequence.next_number + 1)
    )

    result = db.session.execute(stmt)
    if result.rowcount:
        current = (
            db.session.query(DocumentSequence.next_number)
            .filter_by(org_id=org_id, sequence_key=sequence_key)
            .scalar()
        )
        return current - 1

    seq = DocumentSequence(org_id=org_id, sequence_key=sequence_key, next_number=2)
    db.session.add(seq)
    try:
        db.session.flush()
    except IntegrityError as exc:
        # Another transaction created the row first. The whole unit of work
        # is rolled back and retried by run_with_retry.
        raise StaleDataError(f"Document sequence {sequence_key} created concurrently") from exc
    return 1


def next_order_number(org_id: int, day: date | None = None, *, pad: int = 3) -> str:
    """
    Allocate ORD-YYYYMMDD-NNN for the tenant.

    Numbering restarts at 001 each day and is independent per tenant. NNN
    widens past 999 rather than wrapping.
    """
    if not org_id:
        raise ValidationError("org_id is required")

    stamp = date_stamp(day)
    number = _allocate(org_id, f"ORDER-{stamp}")
    return f"{ORDER_PREFIX}-{stamp}-{number:0{pad}d}"
