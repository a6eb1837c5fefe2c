from datetime import date

import pytest

from database import Base, create_store_engine, make_session_factory
from periods import DateWindow
from rollups import (
    UNCATEGORIZED_LABEL,
    UNKNOWN_CATEGORY_LABEL,
    ExpenseLine,
    aggregate_rollup,
)
from schemas import CategoryIn, ExpenseIn
from services import CategoryService, ExpenseService, ReimbursementService


def make_session():
    engine = create_store_engine("sqlite+pysqlite:///:memory:", timeout_secs=5)
    Base.metadata.create_all(engine)
    return make_session_factory(engine)()


def add_expense(session, owner, amount_cents, date_paid, category_id=None):
    return ExpenseService(session, owner).create(
        ExpenseIn(
            amount_cents=amount_cents,
            date_paid=date_paid,
            payment_method="card",
            category_id=category_id,
        )
    )


def test_aggregate_with_no_expenses_is_all_zero() -> None:
    summary = aggregate_rollup([], {}, {})

    assert summary.total_eligible_cents == 0
    assert summary.total_reimbursed_cents == 0
    assert summary.remaining_cents == 0
    assert summary.by_category == []


def test_aggregate_groups_by_category_and_labels_buckets() -> None:
    expenses = [
        ExpenseLine(1, 10_000, category_id=2),
        ExpenseLine(2, 5_000, category_id=None),
        ExpenseLine(3, 2_000, category_id=2),
        ExpenseLine(4, 700, category_id=9),
        ExpenseLine(5, 1_500, category_id=1),
    ]
    reimbursed = {1: 10_000, 3: 500, 4: 700}
    names = {1: "Vision", 2: "Dental"}

    summary = aggregate_rollup(expenses, reimbursed, names)

    assert [(b.category_id, b.category_name) for b in summary.by_category] == [
        (2, "Dental"),
        (9, UNKNOWN_CATEGORY_LABEL),
        (1, "Vision"),
        (None, UNCATEGORIZED_LABEL),
    ]
    dental = summary.by_category[0]
    assert dental.total_eligible_cents == 12_000
    assert dental.total_reimbursed_cents == 10_500
    assert dental.remaining_cents == 1_500

    uncategorized = summary.by_category[-1]
    assert uncategorized.total_reimbursed_cents == 0
    assert uncategorized.remaining_cents == 5_000

    assert summary.total_eligible_cents == 19_200
    assert summary.total_reimbursed_cents == 11_200
    assert summary.remaining_cents == 8_000
    for bucket in summary.by_category:
        assert bucket.remaining_cents == (
            bucket.total_eligible_cents - bucket.total_reimbursed_cents
        )


def test_aggregate_order_does_not_depend_on_input_order() -> None:
    expenses = [
        ExpenseLine(1, 100, category_id=None),
        ExpenseLine(2, 200, category_id=3),
        ExpenseLine(3, 300, category_id=4),
    ]
    names = {3: "pharmacy", 4: "Lab"}

    forward = aggregate_rollup(expenses, {}, names)
    backward = aggregate_rollup(list(reversed(expenses)), {}, names)

    assert [b.category_id for b in forward.by_category] == [4, 3, None]
    assert [b.category_id for b in backward.by_category] == [4, 3, None]


def test_overall_summary_respects_window_archive_owner_and_retractions() -> None:
    session = make_session()
    categories = CategoryService(session)
    dental = categories.create(CategoryIn(name="Dental", display_order=1))
    vision = categories.create(CategoryIn(name="Vision", display_order=2))

    cleaning = add_expense(session, "alice", 10_000, date(2025, 1, 1), dental.id)
    glasses = add_expense(session, "alice", 30_000, date(2025, 1, 31), vision.id)
    copay = add_expense(session, "alice", 2_000, date(2025, 1, 15))
    add_expense(session, "alice", 99_000, date(2024, 12, 31), dental.id)
    archived = add_expense(session, "alice", 50_000, date(2025, 1, 20), dental.id)
    add_expense(session, "bob", 70_000, date(2025, 1, 10), dental.id)

    reimb = ReimbursementService(session, "alice")
    reimb.record_payment(cleaning.id, 10_000)
    reimb.record_payment(glasses.id, 5_000)
    dropped = reimb.record_payment(glasses.id, 7_000)
    reimb.retract_payment(dropped.reimbursement.id)
    reimb.record_payment(archived.id, 1_000)
    ExpenseService(session, "alice").archive(archived.id)

    summary = reimb.overall_summary(DateWindow(date(2025, 1, 1), date(2025, 1, 31)))

    assert summary.total_eligible_cents == 42_000
    assert summary.total_reimbursed_cents == 15_000
    assert summary.remaining_cents == 27_000
    buckets = {b.category_name: b for b in summary.by_category}
    assert set(buckets) == {"Dental", "Vision", UNCATEGORIZED_LABEL}
    assert buckets["Dental"].total_eligible_cents == 10_000
    assert buckets["Dental"].remaining_cents == 0
    assert buckets["Vision"].total_reimbursed_cents == 5_000
    assert buckets[UNCATEGORIZED_LABEL].total_eligible_cents == copay.amount_cents
    assert buckets[UNCATEGORIZED_LABEL].total_reimbursed_cents == 0


@pytest.mark.parametrize(
    "window, expected_eligible",
    [
        (DateWindow(), 6_000),
        (DateWindow(start=date(2025, 2, 1)), 5_000),
        (DateWindow(end=date(2025, 2, 1)), 3_000),
        (DateWindow(date(2025, 2, 1), date(2025, 2, 1)), 2_000),
    ],
)
def test_overall_summary_open_and_inclusive_bounds(window, expected_eligible) -> None:
    session = make_session()
    add_expense(session, "alice", 1_000, date(2025, 1, 1))
    add_expense(session, "alice", 2_000, date(2025, 2, 1))
    add_expense(session, "alice", 3_000, date(2025, 3, 1))

    summary = ReimbursementService(session, "alice").overall_summary(window)

    assert summary.total_eligible_cents == expected_eligible
    assert summary.remaining_cents == expected_eligible


def test_overall_summary_with_no_matching_expenses() -> None:
    session = make_session()
    add_expense(session, "alice", 1_000, date(2025, 1, 1))

    summary = ReimbursementService(session, "alice").overall_summary(
        DateWindow(date(2026, 1, 1), date(2026, 12, 31))
    )

    assert summary.total_eligible_cents == 0
    assert summary.total_reimbursed_cents == 0
    assert summary.remaining_cents == 0
    assert summary.by_category == []


def test_category_names_resolve_and_list_in_display_order() -> None:
    session = make_session()
    categories = CategoryService(session)
    later = categories.create(CategoryIn(name="Lab", display_order=5))
    first = categories.create(CategoryIn(name="Pharmacy", display_order=1))
    unordered = categories.create(CategoryIn(name="Acupuncture"))

    assert [c.id for c in categories.list_all()] == [first.id, later.id, unordered.id]
    assert categories.resolve_names([later.id, 404]) == {later.id: "Lab"}
    assert categories.resolve_names([]) == {}
