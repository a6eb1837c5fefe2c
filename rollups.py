"""Category rollups of eligible expenses against their reimbursed totals.

Everything here works on plain values so it can be exercised without a
database; the services layer feeds it rows it has already loaded.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Mapping, Optional

UNCATEGORIZED_LABEL = "Uncategorized"
UNKNOWN_CATEGORY_LABEL = "Unknown"


@dataclass(frozen=True)
class ExpenseLine:
    expense_id: int
    amount_cents: int
    category_id: Optional[int] = None


@dataclass
class CategoryRollup:
    category_id: Optional[int]
    category_name: str
    total_eligible_cents: int = 0
    total_reimbursed_cents: int = 0

    @property
    def remaining_cents(self) -> int:
        return self.total_eligible_cents - self.total_reimbursed_cents


@dataclass
class RollupSummary:
    total_eligible_cents: int = 0
    total_reimbursed_cents: int = 0
    by_category: list[CategoryRollup] = field(default_factory=list)

    @property
    def remaining_cents(self) -> int:
        return self.total_eligible_cents - self.total_reimbursed_cents


def _bucket_sort_key(bucket: CategoryRollup) -> tuple:
    if bucket.category_id is None:
        return (1, "", 0)
    return (0, bucket.category_name.casefold(), bucket.category_id)


def aggregate_rollup(
    expenses: Iterable[ExpenseLine],
    reimbursed_by_expense: Mapping[int, int],
    category_names: Mapping[int, str],
) -> RollupSummary:
    """Sum eligible and reimbursed cents overall and per category.

    Expenses missing from ``reimbursed_by_expense`` count as unreimbursed.
    Named buckets come first, ordered by name then id; the uncategorized
    bucket is always last.
    """
    summary = RollupSummary()
    buckets: dict[Optional[int], CategoryRollup] = {}

    for line in expenses:
        reimbursed = int(reimbursed_by_expense.get(line.expense_id, 0))
        summary.total_eligible_cents += line.amount_cents
        summary.total_reimbursed_cents += reimbursed

        bucket = buckets.get(line.category_id)
        if bucket is None:
            if line.category_id is None:
                name = UNCATEGORIZED_LABEL
            else:
                name = category_names.get(line.category_id) or UNKNOWN_CATEGORY_LABEL
            bucket = CategoryRollup(category_id=line.category_id, category_name=name)
            buckets[line.category_id] = bucket
        bucket.total_eligible_cents += line.amount_cents
        bucket.total_reimbursed_cents += reimbursed

    summary.by_category = sorted(buckets.values(), key=_bucket_sort_key)
    return summary
