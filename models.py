from datetime import date, datetime, timezone
from typing import Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    false,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from database import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, onupdate=utcnow, nullable=False
    )


class Category(Base, TimestampMixin):
    __tablename__ = "categories"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    display_order: Mapped[Optional[int]] = mapped_column(Integer)

    expenses: Mapped[list["Expense"]] = relationship(
        "Expense", back_populates="category"
    )


class Expense(Base, TimestampMixin):
    __tablename__ = "expenses"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[str] = mapped_column(String(128), nullable=False)
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    date_paid: Mapped[date] = mapped_column(Date, nullable=False)
    payment_method: Mapped[str] = mapped_column(String(60), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    category_id: Mapped[Optional[int]] = mapped_column(ForeignKey("categories.id"))
    is_archived: Mapped[bool] = mapped_column(
        Boolean, default=False, server_default=false(), nullable=False
    )

    # Derived from the non-retracted payments; written only by summary recomputation.
    is_reimbursed: Mapped[bool] = mapped_column(
        Boolean, default=False, server_default=false(), nullable=False
    )
    reimbursed_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    reimbursement_method: Mapped[Optional[str]] = mapped_column(String(60))
    reimbursement_notes: Mapped[Optional[str]] = mapped_column(Text)

    category: Mapped[Optional["Category"]] = relationship(
        "Category", back_populates="expenses"
    )
    payments: Mapped[list["ReimbursementPayment"]] = relationship(
        "ReimbursementPayment", back_populates="expense"
    )

    __table_args__ = (
        Index("ix_expenses_user_date_paid", "user_id", "date_paid"),
        CheckConstraint(
            "amount_cents >= 0", name="ck_expenses_amount_non_negative"
        ),
    )


class ReimbursementPayment(Base, TimestampMixin):
    __tablename__ = "reimbursement_payments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    expense_id: Mapped[int] = mapped_column(ForeignKey("expenses.id"), nullable=False)
    user_id: Mapped[str] = mapped_column(String(128), nullable=False)
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    reimbursed_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    method: Mapped[Optional[str]] = mapped_column(String(60))
    notes: Mapped[Optional[str]] = mapped_column(Text)
    is_retracted: Mapped[bool] = mapped_column(
        Boolean, default=False, server_default=false(), nullable=False
    )

    expense: Mapped["Expense"] = relationship("Expense", back_populates="payments")

    __table_args__ = (
        Index(
            "ix_reimbursement_payments_user_expense",
            "user_id",
            "expense_id",
            "is_retracted",
        ),
        CheckConstraint(
            "amount_cents > 0", name="ck_reimbursement_payments_amount_positive"
        ),
    )
