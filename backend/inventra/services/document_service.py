# Overview: Global document number allocation (invoice numbers, payment references).

from __future__ import annotations

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import DocumentSequence, Invoice
from ..validation import StorageError

INVOICE_SEQUENCE = ("INVOICE", "INV", 4)
REFERENCE_SEQUENCE = ("REFERENCE", "REF", 3)


class DocumentSequenceError(StorageError):
    """Raised when document sequence operations fail."""


def _existing_column(document_type: str):
    if document_type == INVOICE_SEQUENCE[0]:
        return Invoice.invoice_number
    if document_type == REFERENCE_SEQUENCE[0]:
        return Invoice.reference_number
    return None


def highest_existing_suffix(column, prefix: str) -> int:
    """
    Largest numeric suffix among values shaped like "<prefix>-<n>".

    Used once per document type to seed the counter so numbering continues
    from data created before the counter row existed.
    """
    if column is None:
        return 0
    values = db.session.query(column).filter(column.like(f"{prefix}-%")).all()
    highest = 0
    for (value,) in values:
        suffix = value.rsplit("-", 1)[-1]
        if suffix.isdigit():
            highest = max(highest, int(suffix))
    return highest


def next_document_number(*, document_type: str, prefix: str, pad: int = 4) -> str:
    """
    Atomically allocate the next global document number for a type.

    Runs inside the caller's transaction: the increment is committed or
    rolled back together with the document that uses the number.
    """
    if not document_type:
        raise DocumentSequenceError("document_type is required")

    stmt = (
        update(DocumentSequence)
        .where(DocumentSequence.document_type == document_type)
        .values(next_number=DocumentSequence.next_number + 1)
    )

    result = db.session.execute(stmt)
    if not result.rowcount:
        seed = highest_existing_suffix(_existing_column(document_type), prefix) + 1
        try:
            with db.session.begin_nested():
                db.session.add(DocumentSequence(document_type=document_type, next_number=seed + 1))
            next_num = seed
        except IntegrityError:
            # Another writer created the row first
            result = db.session.execute(stmt)
            if not result.rowcount:
                raise DocumentSequenceError(f"Sequence {document_type} unavailable")
            next_num = _current_next(document_type) - 1
    else:
        next_num = _current_next(document_type) - 1

    return f"{prefix}-{next_num:0{pad}d}"


def _current_next(document_type: str) -> int:
    db.session.flush()
    return (
        db.session.query(DocumentSequence.next_number)
        .filter_by(document_type=document_type)
        .scalar()
    )


def next_invoice_number() -> str:
    document_type, prefix, pad = INVOICE_SEQUENCE
    return next_document_number(document_type=document_type, prefix=prefix, pad=pad)


def next_reference_number() -> str:
    document_type, prefix, pad = REFERENCE_SEQUENCE
    return next_document_number(document_type=document_type, prefix=prefix, pad=pad)
