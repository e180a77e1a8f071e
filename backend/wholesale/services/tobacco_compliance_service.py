# Overview: IL-TP1 tobacco sales tracking built from a pricing run's frozen line results.

"""
Tobacco compliance.

Records are derived only from the per-line applied flat taxes and tobacco
flags of a pricing run; this module never looks up current rules or product
prices. Repricing an order supersedes its pending record with a new one.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from ..extensions import db
from ..models import TobaccoSaleRecord
from ..validation import ValidationError
from wholesale.time_utils import utcnow, reporting_period

logger = logging.getLogger(__name__)

STATUS_PENDING = "pending"
STATUS_SUBMITTED = "submitted"
STATUS_SUPERSEDED = "superseded"


@dataclass(frozen=True)
class TobaccoSummary:
    lines: tuple
    total_value_cents: int
    total_tax_cents: int

    @property
    def has_tobacco(self) -> bool:
        return bool(self.lines)

    def to_dict(self) -> dict:
        return {
            "lines": list(self.lines),
            "total_value_cents": self.total_value_cents,
            "total_tax_cents": self.total_tax_cents,
        }


def build_tobacco_summary(result) -> TobaccoSummary:
    """Pure: tobacco lines of a pricing result and their flat tax totals."""
    lines = []
    for idx, line in enumerate(result.lines, start=1):
        if not line.is_tobacco_product:
            continue
        lines.append({
            "line_number": idx,
            "product_id": line.product_id,
            "tobacco_product_type": line.tobacco_product_type,
            "quantity": line.quantity,
            "unit_price_cents": line.unit_price_cents,
            "line_base_cents": line.line_base_cents,
            "flat_tax_cents": line.flat_tax_cents,
            "applied_flat_taxes": [t.to_dict() for t in line.applied_flat_taxes],
        })
    return TobaccoSummary(
        lines=tuple(lines),
        total_value_cents=sum(l["line_base_cents"] for l in lines),
        total_tax_cents=sum(l["flat_tax_cents"] for l in lines),
    )


def record_tobacco_sale(*, order_id: int, audit_id: int, customer_id: int, summary: TobaccoSummary, sale_date=None):
    """
    Write the tobacco record for one pricing run (flush only).

    Returns None when the run had no tobacco lines. Pending records from
    earlier runs of the same order are marked superseded.
    """
    previous = (
        db.session.query(TobaccoSaleRecord)
        .filter_by(order_id=order_id, reporting_status=STATUS_PENDING)
        .all()
    )
    for rec in previous:
        rec.reporting_status = STATUS_SUPERSEDED

    if not summary.has_tobacco:
        db.session.flush()
        return None

    sale_date = sale_date or utcnow()
    record = TobaccoSaleRecord(
        order_id=order_id,
        audit_id=audit_id,
        customer_id=customer_id,
        sale_date=sale_date,
        reporting_period=reporting_period(sale_date),
        tobacco_lines=list(summary.lines),
        total_tobacco_value_cents=summary.total_value_cents,
        total_tobacco_tax_cents=summary.total_tax_cents,
        reporting_status=STATUS_PENDING,
    )
    db.session.add(record)
    db.session.flush()
    logger.info(
        "Tobacco sale recorded for order %s (period %s, tax %s cents)",
        order_id, record.reporting_period, record.total_tobacco_tax_cents,
    )
    return record


def _check_period(period: str) -> str:
    period = (period or "").strip()
    parts = period.split("-")
    if len(parts) != 2 or len(parts[0]) != 4 or len(parts[1]) != 2 or not all(p.isdigit() for p in parts):
        raise ValidationError("reporting_period must be YYYY-MM", details={"reporting_period": period})
    if not 1 <= int(parts[1]) <= 12:
        raise ValidationError("reporting_period month must be 01-12", details={"reporting_period": period})
    return period


def list_tobacco_sales(period: str, *, status: str | None = None) -> list[TobaccoSaleRecord]:
    query = db.session.query(TobaccoSaleRecord).filter_by(reporting_period=_check_period(period))
    if status:
        query = query.filter_by(reporting_status=status)
    else:
        query = query.filter(TobaccoSaleRecord.reporting_status != STATUS_SUPERSEDED)
    return query.order_by(TobaccoSaleRecord.sale_date.asc(), TobaccoSaleRecord.id.asc()).all()


def period_totals(period: str) -> dict:
    records = list_tobacco_sales(period)
    return {
        "reporting_period": period,
        "record_count": len(records),
        "total_tobacco_value_cents": sum(r.total_tobacco_value_cents for r in records),
        "total_tobacco_tax_cents": sum(r.total_tobacco_tax_cents for r in records),
    }


def mark_submitted(period: str) -> int:
    """Flag every pending record of a period as filed. Returns the count."""
    records = list_tobacco_sales(period, status=STATUS_PENDING)
    now = utcnow()
    for rec in records:
        rec.reporting_status = STATUS_SUBMITTED
        rec.submitted_at = now
    db.session.commit()
    logger.info("Marked %s tobacco records submitted for %s", len(records), period)
    return len(records)
