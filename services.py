from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterable, Iterator, Optional

from sqlalchemy import (
    Boolean,
    DateTime,
    Integer,
    String,
    Text,
    func,
    insert,
    literal,
    select,
    update,
)
from sqlalchemy import exc as sa_exc
from sqlalchemy.orm import Session

from models import Category, Expense, ReimbursementPayment, utcnow
from periods import DateWindow
from rollups import ExpenseLine, RollupSummary, aggregate_rollup
from schemas import CategoryIn, ExpenseIn, ExpenseUpdateIn


logger = logging.getLogger(__name__)


class LedgerError(ValueError):
    pass


class NotFound(LedgerError):
    pass


class InvalidInput(LedgerError):
    pass


class OverdraftRejected(LedgerError):
    def __init__(
        self,
        expense_amount_cents: int,
        current_total_cents: int,
        attempted_amount_cents: int,
    ) -> None:
        self.expense_amount_cents = expense_amount_cents
        self.current_total_cents = current_total_cents
        self.attempted_amount_cents = attempted_amount_cents
        self.resulting_total_cents = current_total_cents + attempted_amount_cents
        super().__init__("Reimbursement amount exceeds original expense amount")

    def as_dict(self) -> dict[str, object]:
        return {
            "message": str(self),
            "expense_amount_cents": self.expense_amount_cents,
            "current_total_cents": self.current_total_cents,
            "attempted_amount_cents": self.attempted_amount_cents,
            "resulting_total_cents": self.resulting_total_cents,
        }


class StoreUnavailable(RuntimeError):
    pass


@contextmanager
def store_call(session: Session, action: str) -> Iterator[None]:
    try:
        yield
    except (
        sa_exc.OperationalError,
        sa_exc.InterfaceError,
        sa_exc.TimeoutError,
    ) as exc:
        session.rollback()
        raise StoreUnavailable(f"Store unavailable during {action}") from exc


def is_fully_reimbursed(total_reimbursed_cents: int, expense_amount_cents: int) -> bool:
    return expense_amount_cents > 0 and total_reimbursed_cents >= expense_amount_cents


def _clean_text(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


def _naive_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


@dataclass(frozen=True)
class ReimbursementTotals:
    expense_amount_cents: int
    total_reimbursed_cents: int
    is_fully_reimbursed: bool

    @property
    def remaining_cents(self) -> int:
        return self.expense_amount_cents - self.total_reimbursed_cents


@dataclass
class ExpenseSummary:
    expense: Expense
    expense_amount_cents: int
    total_reimbursed_cents: int

    @property
    def totals(self) -> ReimbursementTotals:
        return ReimbursementTotals(
            expense_amount_cents=self.expense_amount_cents,
            total_reimbursed_cents=self.total_reimbursed_cents,
            is_fully_reimbursed=self.expense.is_reimbursed,
        )


@dataclass
class PaymentOutcome:
    reimbursement: ReimbursementPayment
    expense: Optional[Expense] = None
    totals: Optional[ReimbursementTotals] = None
    summary_stale: bool = False


class CategoryService:
    def __init__(self, session: Session) -> None:
        self.session = session

    def list_all(self) -> list[Category]:
        stmt = select(Category).order_by(
            Category.display_order.asc().nulls_last(), Category.name
        )
        with store_call(self.session, "list_categories"):
            return list(self.session.scalars(stmt).all())

    def create(self, data: CategoryIn) -> Category:
        existing = self.session.scalar(
            select(Category).where(func.lower(Category.name) == data.name.lower())
        )
        if existing:
            raise InvalidInput("Category with this name already exists")
        category = Category(name=data.name.strip(), display_order=data.display_order)
        self.session.add(category)
        self.session.commit()
        self.session.refresh(category)
        return category

    def resolve_names(self, category_ids: Iterable[int]) -> dict[int, str]:
        ids = sorted(set(category_ids))
        if not ids:
            return {}
        with store_call(self.session, "resolve_category_names"):
            rows = self.session.execute(
                select(Category.id, Category.name).where(Category.id.in_(ids))
            ).all()
        return {int(row.id): row.name for row in rows}


class ExpenseService:
    def __init__(self, session: Session, user_id: str) -> None:
        self.session = session
        self.user_id = user_id

    def _check_category(self, category_id: Optional[int]) -> None:
        if category_id is None:
            return
        if self.session.get(Category, category_id) is None:
            raise NotFound("Category not found")

    def create(self, data: ExpenseIn) -> Expense:
        with store_call(self.session, "create_expense"):
            self._check_category(data.category_id)
            expense = Expense(
                user_id=self.user_id,
                amount_cents=data.amount_cents,
                date_paid=data.date_paid,
                payment_method=data.payment_method.strip(),
                description=_clean_text(data.description),
                category_id=data.category_id,
            )
            self.session.add(expense)
            self.session.commit()
            self.session.refresh(expense)
        logger.info(
            f"expense_created: expense_id={expense.id} user_id={self.user_id} "
            f"amount_cents={expense.amount_cents}"
        )
        return expense

    def get_owned(self, expense_id: int) -> Optional[Expense]:
        return self.session.scalar(
            select(Expense)
            .where(Expense.id == expense_id, Expense.user_id == self.user_id)
            .execution_options(populate_existing=True)
        )

    def get(self, expense_id: int) -> Expense:
        with store_call(self.session, "get_expense"):
            expense = self.get_owned(expense_id)
        if expense is None:
            raise NotFound("Expense not found or not authorized.")
        return expense

    def list(self, *, include_archived: bool = False) -> list[Expense]:
        stmt = (
            select(Expense)
            .where(Expense.user_id == self.user_id)
            .order_by(Expense.date_paid.desc(), Expense.id.desc())
        )
        if not include_archived:
            stmt = stmt.where(Expense.is_archived.is_(False))
        with store_call(self.session, "list_expenses"):
            return list(self.session.scalars(stmt).all())

    def list_eligible(self, window: DateWindow) -> list[Expense]:
        stmt = select(Expense).where(
            Expense.user_id == self.user_id,
            Expense.is_archived.is_(False),
        )
        if window.start is not None:
            stmt = stmt.where(Expense.date_paid >= window.start)
        if window.end is not None:
            stmt = stmt.where(Expense.date_paid <= window.end)
        stmt = stmt.order_by(Expense.date_paid, Expense.id)
        return list(self.session.scalars(stmt).all())

    def update(self, expense_id: int, data: ExpenseUpdateIn) -> Expense:
        expense = self.get(expense_id)
        fields = data.model_dump(exclude_unset=True)
        for required in ("amount_cents", "date_paid", "payment_method"):
            if required in fields and fields[required] is None:
                del fields[required]
        if "payment_method" in fields:
            fields["payment_method"] = fields["payment_method"].strip()
        if "description" in fields:
            fields["description"] = _clean_text(fields["description"])
        if not fields:
            return expense

        new_amount = fields.get("amount_cents")
        with store_call(self.session, "update_expense"):
            self._check_category(fields.get("category_id"))
            stmt = update(Expense).where(
                Expense.id == expense_id, Expense.user_id == self.user_id
            )
            if new_amount is not None:
                # Lowering the amount must not leave the ledger above it.
                reimbursed = (
                    select(
                        func.coalesce(func.sum(ReimbursementPayment.amount_cents), 0)
                    )
                    .where(
                        ReimbursementPayment.expense_id == expense_id,
                        ReimbursementPayment.user_id == self.user_id,
                        ReimbursementPayment.is_retracted.is_(False),
                    )
                    .scalar_subquery()
                )
                stmt = stmt.where(reimbursed <= new_amount)
            result = self.session.execute(
                stmt.values(**fields).execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                self.session.rollback()
                raise InvalidInput("Expense amount cannot be less than reimbursed total")
            self.session.commit()

        if new_amount is not None:
            ReimbursementService(self.session, self.user_id).recompute_summary(
                expense_id
            )
        with store_call(self.session, "update_expense"):
            self.session.refresh(expense)
        return expense

    def archive(self, expense_id: int) -> None:
        expense = self.get(expense_id)
        if expense.is_archived:
            return
        with store_call(self.session, "archive_expense"):
            expense.is_archived = True
            self.session.commit()
        logger.info(f"expense_archived: expense_id={expense_id} user_id={self.user_id}")

    def update_summary(
        self,
        expense_id: int,
        *,
        is_reimbursed: bool,
        reimbursed_at: Optional[datetime],
        reimbursement_method: Optional[str],
        reimbursement_notes: Optional[str],
    ) -> Optional[Expense]:
        """Write the derived reimbursement fields; reserved for summary recomputation.

        Does not commit. Returns ``None`` when the expense vanished or changed
        owner since it was read.
        """
        result = self.session.execute(
            update(Expense)
            .where(Expense.id == expense_id, Expense.user_id == self.user_id)
            .values(
                is_reimbursed=is_reimbursed,
                reimbursed_at=reimbursed_at,
                reimbursement_method=reimbursement_method,
                reimbursement_notes=reimbursement_notes,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            return None
        return self.get_owned(expense_id)


class ReimbursementService:
    def __init__(self, session: Session, user_id: str) -> None:
        self.session = session
        self.user_id = user_id
        self.expenses = ExpenseService(session, user_id)

    def _active_payments(self):
        return (
            ReimbursementPayment.user_id == self.user_id,
            ReimbursementPayment.is_retracted.is_(False),
        )

    def reimbursed_total(self, expense_id: int) -> int:
        return int(
            self.session.execute(
                select(
                    func.coalesce(func.sum(ReimbursementPayment.amount_cents), 0)
                ).where(
                    ReimbursementPayment.expense_id == expense_id,
                    *self._active_payments(),
                )
            ).scalar_one()
            or 0
        )

    def reimbursed_totals(self, expense_ids: Iterable[int]) -> dict[int, int]:
        ids = list(expense_ids)
        if not ids:
            return {}
        rows = self.session.execute(
            select(
                ReimbursementPayment.expense_id,
                func.coalesce(func.sum(ReimbursementPayment.amount_cents), 0).label(
                    "total"
                ),
            )
            .where(ReimbursementPayment.expense_id.in_(ids), *self._active_payments())
            .group_by(ReimbursementPayment.expense_id)
        ).all()
        return {int(row.expense_id): int(row.total or 0) for row in rows}

    def _latest_payment(self, expense_id: int) -> Optional[ReimbursementPayment]:
        # Ties on the effective timestamp go to the most recently inserted row.
        return self.session.scalar(
            select(ReimbursementPayment)
            .where(ReimbursementPayment.expense_id == expense_id, *self._active_payments())
            .order_by(
                ReimbursementPayment.reimbursed_at.desc(),
                ReimbursementPayment.id.desc(),
            )
            .limit(1)
        )

    def list_payments(self, expense_id: int) -> list[ReimbursementPayment]:
        stmt = (
            select(ReimbursementPayment)
            .where(ReimbursementPayment.expense_id == expense_id, *self._active_payments())
            .order_by(ReimbursementPayment.reimbursed_at, ReimbursementPayment.id)
        )
        with store_call(self.session, "list_payments"):
            return list(self.session.scalars(stmt).all())

    def _insert_within_limit(
        self,
        expense_id: int,
        amount_cents: int,
        reimbursed_at: datetime,
        method: Optional[str],
        notes: Optional[str],
    ):
        """Insert the payment only if the running total stays within the expense.

        The check and the insert are one statement, so concurrent intakes on
        the same expense cannot both pass against a stale total. Returns the
        inserted row, or ``None`` when the payment would overdraw.
        """
        payments = ReimbursementPayment.__table__
        current_total = (
            select(func.coalesce(func.sum(payments.c.amount_cents), 0))
            .where(
                payments.c.expense_id == expense_id,
                payments.c.user_id == self.user_id,
                payments.c.is_retracted.is_(False),
            )
            .correlate(None)
            .scalar_subquery()
        )
        now = utcnow()
        source = select(
            literal(expense_id, Integer),
            literal(self.user_id, String),
            literal(amount_cents, Integer),
            literal(reimbursed_at, DateTime),
            literal(method, String),
            literal(notes, Text),
            literal(False, Boolean),
            literal(now, DateTime),
            literal(now, DateTime),
        ).where(
            Expense.id == expense_id,
            Expense.user_id == self.user_id,
            current_total + amount_cents <= Expense.amount_cents,
        )
        stmt = (
            insert(payments)
            .from_select(
                [
                    payments.c.expense_id,
                    payments.c.user_id,
                    payments.c.amount_cents,
                    payments.c.reimbursed_at,
                    payments.c.method,
                    payments.c.notes,
                    payments.c.is_retracted,
                    payments.c.created_at,
                    payments.c.updated_at,
                ],
                source,
            )
            .returning(*payments.c)
        )
        return self.session.execute(stmt).first()

    def record_payment(
        self,
        expense_id: int,
        amount_cents: int,
        *,
        method: Optional[str] = None,
        notes: Optional[str] = None,
        reimbursed_at: Optional[datetime] = None,
    ) -> PaymentOutcome:
        if (
            isinstance(amount_cents, bool)
            or not isinstance(amount_cents, int)
            or amount_cents <= 0
        ):
            raise InvalidInput("amount must be a positive number")
        method = _clean_text(method)
        notes = _clean_text(notes)
        effective_at = _naive_utc(reimbursed_at) if reimbursed_at else utcnow()

        with store_call(self.session, "record_payment"):
            expense = self.session.scalar(
                select(Expense)
                .where(Expense.id == expense_id, Expense.user_id == self.user_id)
                .with_for_update()
            )
            if expense is None:
                self.session.rollback()
                raise NotFound("Expense not found or not authorized.")
            expense_amount = expense.amount_cents

            row = self._insert_within_limit(
                expense_id, amount_cents, effective_at, method, notes
            )
            if row is None:
                current_total = self.reimbursed_total(expense_id)
                self.session.rollback()
                logger.info(
                    f"reimbursement_rejected: expense_id={expense_id} user_id={self.user_id} "
                    f"current_total={current_total} attempted={amount_cents} "
                    f"expense_amount={expense_amount}"
                )
                raise OverdraftRejected(expense_amount, current_total, amount_cents)
            self.session.commit()
        # Transient copy of the inserted row; session rollbacks leave it intact.
        payment = ReimbursementPayment(**row._asdict())

        logger.info(
            f"reimbursement_recorded: payment_id={payment.id} expense_id={expense_id} "
            f"user_id={self.user_id} amount_cents={amount_cents}"
        )
        return self._outcome(payment)

    def retract_payment(self, payment_id: int) -> PaymentOutcome:
        with store_call(self.session, "retract_payment"):
            payment = self.session.scalar(
                select(ReimbursementPayment).where(
                    ReimbursementPayment.id == payment_id,
                    ReimbursementPayment.user_id == self.user_id,
                )
            )
            if payment is None:
                raise NotFound("Reimbursement not found or not authorized.")
            if not payment.is_retracted:
                payment.is_retracted = True
                self.session.commit()
                logger.info(
                    f"reimbursement_retracted: payment_id={payment_id} "
                    f"expense_id={payment.expense_id} user_id={self.user_id}"
                )
            self.session.expunge(payment)
        return self._outcome(payment)

    def _outcome(self, payment: ReimbursementPayment) -> PaymentOutcome:
        outcome = PaymentOutcome(reimbursement=payment)
        expense_id = payment.expense_id
        try:
            summary = self.recompute_summary(expense_id)
        except StoreUnavailable:
            # The ledger row is durable; the next recomputation repairs the summary.
            logger.exception(
                f"summary_recompute_failed: expense_id={expense_id} "
                f"user_id={self.user_id}"
            )
            outcome.summary_stale = True
            return outcome
        if summary is None:
            logger.warning(
                f"summary_expense_missing: expense_id={expense_id} "
                f"user_id={self.user_id}"
            )
            return outcome
        outcome.expense = summary.expense
        outcome.totals = summary.totals
        return outcome

    def recompute_summary(self, expense_id: int) -> Optional[ExpenseSummary]:
        with store_call(self.session, "recompute_summary"):
            expense = self.expenses.get_owned(expense_id)
            if expense is None:
                return None
            expense_amount = expense.amount_cents
            total = self.reimbursed_total(expense_id)
            latest = self._latest_payment(expense_id) if total > 0 else None
            updated = self.expenses.update_summary(
                expense_id,
                is_reimbursed=is_fully_reimbursed(total, expense_amount),
                reimbursed_at=latest.reimbursed_at if latest else None,
                reimbursement_method=latest.method if latest else None,
                reimbursement_notes=latest.notes if latest else None,
            )
            if updated is None:
                self.session.rollback()
                return None
            self.session.commit()
        return ExpenseSummary(
            expense=updated,
            expense_amount_cents=expense_amount,
            total_reimbursed_cents=total,
        )

    def overall_summary(self, window: Optional[DateWindow] = None) -> RollupSummary:
        window = window or DateWindow()
        with store_call(self.session, "overall_summary"):
            expenses = self.expenses.list_eligible(window)
            if not expenses:
                return RollupSummary()
            reimbursed = self.reimbursed_totals(e.id for e in expenses)
            names = CategoryService(self.session).resolve_names(
                e.category_id for e in expenses if e.category_id is not None
            )
        return aggregate_rollup(
            (ExpenseLine(e.id, e.amount_cents, e.category_id) for e in expenses),
            reimbursed,
            names,
        )


def rebuild_expense_summaries(session: Session, user_id: Optional[str] = None) -> int:
    stmt = select(Expense.id, Expense.user_id).order_by(Expense.id)
    if user_id is not None:
        stmt = stmt.where(Expense.user_id == user_id)
    with store_call(session, "rebuild_expense_summaries"):
        rows = session.execute(stmt).all()

    rebuilt = 0
    for row in rows:
        summary = ReimbursementService(session, row.user_id).recompute_summary(row.id)
        if summary is not None:
            rebuilt += 1
    logger.info(f"summary_rebuild: user_id={user_id or '*'} expenses={rebuilt}")
    return rebuilt
