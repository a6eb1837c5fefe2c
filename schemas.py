from datetime import date, datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from money import parse_amount


def _amount_to_cents(data: Any) -> Any:
    # Accept a decimal "amount" as an alternative to integer "amount_cents".
    if isinstance(data, dict) and "amount" in data:
        data = dict(data)
        raw = data.pop("amount")
        if raw is None:
            return data
        if data.get("amount_cents") is not None:
            raise ValueError("Send either amount or amount_cents, not both")
        data["amount_cents"] = parse_amount(raw)
    return data


class CategoryIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    display_order: Optional[int] = None


class CategoryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    display_order: Optional[int]


class ExpenseIn(BaseModel):
    model_config = ConfigDict(extra="forbid")

    amount_cents: int = Field(..., gt=0)
    date_paid: date
    payment_method: str = Field(..., min_length=1, max_length=60)
    description: Optional[str] = Field(default=None, max_length=500)
    category_id: Optional[int] = None

    @model_validator(mode="before")
    @classmethod
    def accept_decimal_amount(cls, data: Any) -> Any:
        return _amount_to_cents(data)


class ExpenseUpdateIn(BaseModel):
    model_config = ConfigDict(extra="forbid")

    amount_cents: Optional[int] = Field(default=None, gt=0)
    date_paid: Optional[date] = None
    payment_method: Optional[str] = Field(default=None, min_length=1, max_length=60)
    description: Optional[str] = Field(default=None, max_length=500)
    category_id: Optional[int] = None

    @model_validator(mode="before")
    @classmethod
    def accept_decimal_amount(cls, data: Any) -> Any:
        return _amount_to_cents(data)


class ExpenseOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    amount_cents: int
    date_paid: date
    payment_method: str
    description: Optional[str]
    category_id: Optional[int]
    is_archived: bool
    is_reimbursed: bool
    reimbursed_at: Optional[datetime]
    reimbursement_method: Optional[str]
    reimbursement_notes: Optional[str]


class ReimbursementIn(BaseModel):
    model_config = ConfigDict(extra="forbid")

    expense_id: int
    amount_cents: int = Field(..., gt=0)
    method: Optional[str] = Field(default=None, max_length=60)
    notes: Optional[str] = Field(default=None, max_length=500)
    reimbursed_at: Optional[datetime] = None

    @model_validator(mode="before")
    @classmethod
    def accept_decimal_amount(cls, data: Any) -> Any:
        return _amount_to_cents(data)


class ReimbursementOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    expense_id: int
    amount_cents: int
    reimbursed_at: datetime
    method: Optional[str]
    notes: Optional[str]


class ReimbursementTotalsOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    expense_amount_cents: int
    total_reimbursed_cents: int
    remaining_cents: int
    is_fully_reimbursed: bool


class PaymentOutcomeOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    reimbursement: ReimbursementOut
    expense: Optional[ExpenseOut] = None
    totals: Optional[ReimbursementTotalsOut] = None
    summary_stale: bool = False


class RetractionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    message: str = "Reimbursement deleted successfully."
    expense: Optional[ExpenseOut] = None
    totals: Optional[ReimbursementTotalsOut] = None
    summary_stale: bool = False


class CategoryRollupOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    category_id: Optional[int]
    category_name: str
    total_eligible_cents: int
    total_reimbursed_cents: int
    remaining_cents: int


class RollupOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    total_eligible_cents: int
    total_reimbursed_cents: int
    remaining_cents: int
    by_category: list[CategoryRollupOut]
