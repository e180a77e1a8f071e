# Overview: Atomic order number allocation backed by DocumentSequence.

from __future__ import annotations

from sqlalchemy import update

from ..extensions import db
from ..models import DocumentSequence

ORDER_DOCUMENT_TYPE = "ORDER"
ORDER_PREFIX = "O"


class DocumentSequenceError(Exception):
    """Raised when document sequence operations fail."""
    pass


def next_document_number(*, document_type: str, prefix: str, pad: int = 6) -> str:
    """
    Allocate the next number for a document type, e.g. "O-000042".

    Runs inside the caller's transaction (flush only). The increment is a
    single UPDATE so concurrent writers serialize on the sequence row; a
    losing writer on first use fails with IntegrityError and the whole
    pricing transaction rolls back.
    """
    if not document_type:
        raise DocumentSequenceError("document_type is required")

    stmt = (
        update(DocumentSequence)
        .where(DocumentSequence.document_type == document_type)
        .values(next_number=DocumentSequence.next_number + 1)
        .execution_options(synchronize_session=False)
    )

    result = db.session.execute(stmt)
    if result.rowcount:
        current = (
            db.session.query(DocumentSequence.next_number)
            .filter_by(document_type=document_type)
            .scalar()
        )
        next_num = current - 1
    else:
        db.session.add(DocumentSequence(document_type=document_type, next_number=2))
        db.session.flush()
        next_num = 1

    return f"{prefix}-{next_num:0{pad}d}"


def next_order_number() -> str:
    return next_document_number(document_type=ORDER_DOCUMENT_TYPE, prefix=ORDER_PREFIX)
