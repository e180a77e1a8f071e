from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any

from sqlalchemy import Boolean, Integer, JSON, Numeric, String, Text
from sqlalchemy.orm import DeclarativeMeta

from .money import FRACTION_QUANTUM, to_decimal


# Maximum price: $9,999,999.99 (999,999,999 cents)
# This prevents database overflow issues and nonsensical prices
MAX_PRICE_CENTS = 999_999_999


VALID_CUSTOMER_TIERS = frozenset({1, 2, 3, 4, 5})


class PricingError(Exception):
    """Base for pricing engine errors; carries structured details for API responses."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


class ValidationError(PricingError, ValueError):
    """400-level input problem. Aborts an order pricing run."""


class ConfigurationError(PricingError):
    """
    Tax configuration problem (a referenced flat tax rule is gone or inactive).

    Never fatal: the calculator skips the rule and flags the line.
    """


class ConsistencyError(PricingError):
    """Attempt to mutate history that must stay frozen (audit rows)."""


class NotFoundError(PricingError):
    """404-level missing entity."""


class ConflictError(PricingError, ValueError):
    """409-level business rule conflict (e.g., duplicate flat tax name)."""


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Which columns an admin payload may set, and which a create must carry.

    writable_fields is an allowlist; anything else in the payload is rejected.
    """
    writable_fields: set[str]
    required_on_create: frozenset[str] = frozenset()


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    return {c.key: c for c in model.__mapper__.columns}


def _coerce_value(col, value: Any):
    coltype = col.type

    # Numeric columns hold fractional cents or basis points
    if isinstance(coltype, Numeric):
        if isinstance(value, bool) or not isinstance(value, (int, float, str, Decimal)):
            raise ValidationError(f"{col.key} must be a number", details={col.key: value})
        try:
            number = to_decimal(value.strip() if isinstance(value, str) else value)
        except InvalidOperation:
            raise ValidationError(f"{col.key} must be a number", details={col.key: value}) from None
        if not number.is_finite():
            raise ValidationError(f"{col.key} must be a finite number", details={col.key: value})
        return number

    # Integer columns hold cents or ids: no floats, no bools, no "1e3"
    if isinstance(coltype, Integer):
        if isinstance(value, int) and not isinstance(value, bool):
            return value
        if isinstance(value, str) and value.strip().isdigit():
            return int(value.strip())
        raise ValidationError(f"{col.key} must be an integer", details={col.key: value})

    if isinstance(coltype, Boolean):
        if not isinstance(value, bool):
            raise ValidationError(f"{col.key} must be a boolean", details={col.key: value})
        return value

    if isinstance(coltype, JSON):
        if not isinstance(value, (list, dict)):
            raise ValidationError(f"{col.key} must be a JSON array or object")
        return value

    if isinstance(coltype, (String, Text)):
        text = str(value).strip()
        if not text and not col.nullable:
            raise ValidationError(f"{col.key} cannot be blank")
        if isinstance(coltype, String) and coltype.length and len(text) > coltype.length:
            raise ValidationError(f"{col.key} exceeds max length {coltype.length}")
        return text

    return value


def validate_payload(
    *,
    model: DeclarativeMeta,
    payload: dict,
    policy: ModelValidationPolicy,
    partial: bool,
) -> dict:
    """
    Check an admin JSON payload against the policy and the model's columns.

    partial=False is create: every required_on_create field must be present.
    partial=True is patch: only the keys provided are checked.
    Returns the cleaned patch (writable fields only, values coerced).
    """
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    if not partial:
        missing = sorted(set(policy.required_on_create) - set(payload))
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    cols = _columns_by_key(model)
    rejected = sorted(k for k in payload if k not in policy.writable_fields or k not in cols)
    if rejected:
        raise ValidationError(f"Field not allowed: {', '.join(rejected)}", details={"fields": rejected})

    patch: dict = {}
    for key, raw in payload.items():
        col = cols[key]
        if raw is None:
            if not col.nullable:
                raise ValidationError(f"{key} cannot be null")
            patch[key] = None
        else:
            patch[key] = _coerce_value(col, raw)
    return patch


def require_cents(name: str, value: Any, *, allow_none: bool = False) -> int | None:
    """Range-check a cents amount (0..MAX_PRICE_CENTS)."""
    if value is None:
        if allow_none:
            return None
        raise ValidationError(f"{name} is required")
    if not isinstance(value, int) or isinstance(value, bool):
        raise ValidationError(f"{name} must be an integer number of cents")
    if value < 0:
        raise ValidationError(f"{name} must be >= 0")
    if value > MAX_PRICE_CENTS:
        raise ValidationError(f"{name} cannot exceed {MAX_PRICE_CENTS} (${MAX_PRICE_CENTS / 100:,.2f})")
    return value


def require_fractional_cents(name: str, value: Any) -> Decimal:
    """Range-check a per-unit amount in cents that may carry up to four decimal places."""
    if value is None:
        raise ValidationError(f"{name} is required")
    if isinstance(value, bool) or not isinstance(value, (int, float, Decimal)):
        raise ValidationError(f"{name} must be a number of cents")
    amount = to_decimal(value)
    if not amount.is_finite():
        raise ValidationError(f"{name} must be a finite number")
    if amount < 0:
        raise ValidationError(f"{name} must be >= 0")
    if amount > MAX_PRICE_CENTS:
        raise ValidationError(f"{name} cannot exceed {MAX_PRICE_CENTS}")
    if amount != amount.quantize(FRACTION_QUANTUM):
        raise ValidationError(f"{name} allows at most four decimal places", details={name: str(amount)})
    return amount


def require_quantity(value: Any) -> int:
    if not isinstance(value, int) or isinstance(value, bool):
        raise ValidationError("quantity must be an integer", details={"quantity": value})
    if value <= 0:
        raise ValidationError("quantity must be > 0", details={"quantity": value})
    return value


def normalize_customer_tiers(value: Any) -> list[int]:
    if not isinstance(value, (list, tuple)) or not value:
        raise ValidationError("customer_tiers must be a non-empty list of tier levels")
    tiers = set()
    for tier in value:
        if not isinstance(tier, int) or isinstance(tier, bool) or tier not in VALID_CUSTOMER_TIERS:
            raise ValidationError(f"customer_tiers entries must be integers 1-5, got {tier!r}")
        tiers.add(tier)
    return sorted(tiers)


def enforce_rules_flat_tax(patch: dict) -> None:
    if "tax_amount_cents" in patch:
        patch["tax_amount_cents"] = require_fractional_cents("tax_amount_cents", patch["tax_amount_cents"])

    if "customer_tiers" in patch:
        patch["customer_tiers"] = normalize_customer_tiers(patch["customer_tiers"])

    # Empty restrictions mean "no restriction"
    for key in ("county_restriction", "zip_code_restriction"):
        if key in patch and patch[key] == "":
            patch[key] = None
