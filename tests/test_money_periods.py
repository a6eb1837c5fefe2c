from datetime import date
from decimal import Decimal

import pytest
from pydantic import ValidationError

from money import parse_amount
from periods import DateWindow, resolve_window
from schemas import ReimbursementIn


@pytest.mark.parametrize(
    "raw, cents",
    [
        ("100", 10_000),
        ("60.00", 6_000),
        ("12,5", 1_250),
        ("1.234,56", 123_456),
        ("€ 7.10", 710),
        (Decimal("0.01"), 1),
        (19.99, 1_999),
        (3, 300),
    ],
)
def test_parse_amount_accepts_decimal_input(raw, cents) -> None:
    assert parse_amount(raw) == cents


@pytest.mark.parametrize(
    "raw", ["", "abc", "0", "-5", "0.001", "1.999", "NaN", "Infinity", True]
)
def test_parse_amount_rejects_bad_input(raw) -> None:
    with pytest.raises(ValueError):
        parse_amount(raw)


def test_payment_payload_accepts_amount_or_cents() -> None:
    from_amount = ReimbursementIn.model_validate({"expense_id": 1, "amount": "40.00"})
    from_cents = ReimbursementIn.model_validate({"expense_id": 1, "amount_cents": 4_000})
    assert from_amount.amount_cents == from_cents.amount_cents == 4_000

    with pytest.raises(ValidationError):
        ReimbursementIn.model_validate({"expense_id": 1, "amount": "0.005"})
    with pytest.raises(ValidationError):
        ReimbursementIn.model_validate(
            {"expense_id": 1, "amount_cents": 100, "currency": "EUR"}
        )
    with pytest.raises(ValidationError, match="either amount or amount_cents"):
        ReimbursementIn.model_validate(
            {"expense_id": 1, "amount": "40.00", "amount_cents": 4_100}
        )


def test_resolve_window() -> None:
    assert resolve_window(None, None) == DateWindow()
    assert resolve_window("2025-01-01", "") == DateWindow(start=date(2025, 1, 1))
    assert resolve_window("2025-01-01", "2025-01-01") == DateWindow(
        date(2025, 1, 1), date(2025, 1, 1)
    )

    with pytest.raises(ValueError, match="Start date must be before end date"):
        resolve_window("2025-02-01", "2025-01-31")
    with pytest.raises(ValueError):
        resolve_window("01/02/2025", None)
