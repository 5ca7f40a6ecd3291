# Overview: Invoice number allocation backed by the document sequence table.

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..models import DocumentSequence
from posledger.time_utils import utcnow
from .errors import StorageFailure


class DocumentSequenceError(StorageFailure):
    """Raised when document sequence operations fail."""
    pass


def next_sequence_number(session, *, document_type: str) -> int:
    """
    Atomically allocate the next number for a document type.

    Runs inside the caller's transaction: the UPDATE takes the row lock (or,
    on SQLite, relies on the open write transaction), so the value is only
    visible to others once the caller commits.
    """
    if not document_type:
        raise DocumentSequenceError("document_type is required")

    stmt = (
        update(DocumentSequence)
        .where(DocumentSequence.document_type == document_type)
        .values(next_number=DocumentSequence.next_number + 1)
    )

    result = session.execute(stmt)
    if not result.rowcount:
        seq = DocumentSequence(document_type=document_type, next_number=2)
        try:
            with session.begin_nested():
                session.add(seq)
            return 1
        except IntegrityError:
            # Another writer created the row first
            result = session.execute(stmt)
            if not result.rowcount:
                raise DocumentSequenceError(f"Could not allocate {document_type} number")

    current = (
        session.query(DocumentSequence.next_number)
        .filter_by(document_type=document_type)
        .scalar()
    )
    return current - 1


def format_invoice_number(sequence: int, at: datetime | None = None) -> str:
    """INV-<epoch milliseconds>-<sequence>; the sequence part alone is unique."""
    at = at or utcnow()
    epoch_ms = int(at.replace(tzinfo=timezone.utc).timestamp() * 1000)
    return f"INV-{epoch_ms}-{sequence}"


def next_invoice_number(session, at: datetime | None = None) -> str:
    return format_invoice_number(next_sequence_number(session, document_type="SALE"), at)
