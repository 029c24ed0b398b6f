# Overview: Daily document numbering (OT-001, OT-002, ...) backed by DocumentSequence.

from __future__ import annotations

from datetime import date

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import DocumentSequence
from .concurrency import RetryableConflict


class DocumentSequenceError(Exception):
    """Raised when document sequence operations fail."""
    pass


def format_document_number(prefix: str, number: int, pad: int = 3) -> str:
    return f"{prefix}-{number:0{pad}d}"


def next_document_number(
    *,
    document_type: str,
    prefix: str,
    on_date: date,
    pad: int = 3,
) -> str:
    """
    Allocate the next number for (document_type, on_date).

    The counter restarts at 1 each day. The increment is a single UPDATE on
    the sequence row, so concurrent callers serialize on that row instead of
    scanning existing documents. Runs inside the caller's transaction and
    must be called from a run_with_retry() operation.
    """
    if not document_type:
        raise DocumentSequenceError("document_type is required")

    stmt = (
        update(DocumentSequence)
        .where(
            DocumentSequence.document_type == document_type,
            DocumentSequence.sequence_date == on_date,
        )
        .values(next_number=DocumentSequence.next_number + 1)
        .execution_options(synchronize_session=False)
    )

    result = db.session.execute(stmt)
    if result.rowcount:
        current = (
            db.session.query(DocumentSequence.next_number)
            .filter_by(document_type=document_type, sequence_date=on_date)
            .scalar()
        )
        return format_document_number(prefix, current - 1, pad)

    # First document of the day
    seq = DocumentSequence(document_type=document_type, sequence_date=on_date, next_number=2)
    db.session.add(seq)
    try:
        db.session.flush()
    except IntegrityError as exc:
        # Another request created today's row first; replay the operation
        raise RetryableConflict(f"{document_type} sequence for {on_date} created concurrently") from exc

    return format_document_number(prefix, 1, pad)
