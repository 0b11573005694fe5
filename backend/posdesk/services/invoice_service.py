# Overview: Service-layer operations for invoice numbering; runs inside the caller's transaction.

from __future__ import annotations

from datetime import date

from ..errors import BusinessRuleError, ValidationError
from ..extensions import db
from ..models import Sale
from posdesk.time_utils import local_today

SEQUENCE_WIDTH = 5
MAX_SEQUENCE = 10 ** SEQUENCE_WIDTH - 1


class InvoiceSequenceExhaustedError(BusinessRuleError):
    """Raised when a single day has used every invoice number."""


def invoice_prefix(day: date) -> str:
    return f"{day:%Y%m%d}-"


def format_invoice_number(day: date, sequence: int) -> str:
    return f"{invoice_prefix(day)}{sequence:0{SEQUENCE_WIDTH}d}"


def parse_invoice_number(value: str) -> tuple[str, int]:
    """Split 'YYYYMMDD-NNNNN' into its date part and integer sequence."""
    date_part, sep, seq_part = (value or "").partition("-")
    if (
        not sep
        or len(date_part) != 8
        or not date_part.isdigit()
        or len(seq_part) != SEQUENCE_WIDTH
        or not seq_part.isdigit()
    ):
        raise ValidationError.for_field("invoice_number", f"Malformed invoice number: {value!r}")
    return date_part, int(seq_part)


def next_invoice_number(today: date | None = None) -> str:
    """
    Derive the next invoice number for a calendar day.

    Looks up the greatest invoice number carrying today's prefix; numbering
    restarts at 00001 each day. Must run in the same transaction as the
    insert of the Sale that will carry the number, otherwise two writers
    can read the same maximum. Never commits.
    """
    day = today or local_today()
    prefix = invoice_prefix(day)

    last = (
        db.session.query(Sale.invoice_number)
        .filter(Sale.invoice_number.like(f"{prefix}%"))
        .order_by(Sale.invoice_number.desc())
        .limit(1)
        .scalar()
    )

    if last is None:
        sequence = 1
    else:
        _, last_sequence = parse_invoice_number(last)
        sequence = last_sequence + 1

    if sequence > MAX_SEQUENCE:
        raise InvoiceSequenceExhaustedError(
            f"Invoice numbers for {day:%Y-%m-%d} are exhausted ({MAX_SEQUENCE} sales)"
        )

    return format_invoice_number(day, sequence)
