# ledger/services/recurring.py
#
# Recurring Expense Detector
# Finds yearly expenses (insurance, subscriptions, memberships) whose next
# occurrence falls inside the look-ahead horizon.
#
# Heuristic, per merchant (grouped on lower-cased, trimmed text):
#   - take the most recent expense
#   - walk older expenses newest-first; the first one roughly a year older
#     (10-14 "months" of 30 days) with a similar amount (within 20% of the
#     pair's average) is the match
#   - predict the next occurrence one year (365 days) after the recent one

import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Dict, List, Optional

from sqlalchemy.orm import Session

from models import Category, Transaction

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RecurringPolicy:
    min_gap_months: int = 10
    max_gap_months: int = 14
    month_days: int = 30
    amount_tolerance: float = 0.2
    year_days: int = 365
    horizon_days: int = 60

    @property
    def min_gap_days(self) -> int:
        return self.min_gap_months * self.month_days

    @property
    def max_gap_days(self) -> int:
        return self.max_gap_months * self.month_days


DEFAULT_POLICY = RecurringPolicy()


@dataclass(frozen=True)
class UpcomingExpense:
    merchant: str
    expected_amount: float
    expected_date: date
    days_until: int
    category_id: Optional[str] = None
    category_name: Optional[str] = None


@dataclass(frozen=True)
class _Expense:
    date: date
    merchant: str
    amount: float
    category_id: Optional[str]
    category_name: Optional[str]


def amounts_similar(a: float, b: float, tolerance: float) -> bool:
    """Relative difference of |a| and |b| against their average is within tolerance."""
    a, b = abs(a), abs(b)
    avg = (a + b) / 2
    if avg == 0:
        return True
    return abs(a - b) / avg <= tolerance


def _load_expenses(db: Session) -> List[_Expense]:
    rows = (
        db.query(
            Transaction.date,
            Transaction.merchant,
            Transaction.amount,
            Transaction.category_id,
            Category.name.label("category_name"),
        )
        .outerjoin(Category, Transaction.category_id == Category.id)
        .filter(Transaction.amount < 0)
        .all()
    )
    return [
        _Expense(
            date=r.date,
            merchant=r.merchant,
            amount=float(r.amount),
            category_id=r.category_id,
            category_name=r.category_name,
        )
        for r in rows
    ]


def find_yearly_match(expenses: List[_Expense], policy: RecurringPolicy) -> Optional[_Expense]:
    """
    `expenses` sorted newest first. Returns the older expense pairing with the
    newest one, or None.
    """
    recent = expenses[0]
    for older in expenses[1:]:
        gap = (recent.date - older.date).days
        if gap < policy.min_gap_days or gap > policy.max_gap_days:
            continue
        if not amounts_similar(recent.amount, older.amount, policy.amount_tolerance):
            continue
        return older
    return None


def detect_upcoming(
    db: Session,
    today: Optional[date] = None,
    policy: RecurringPolicy = DEFAULT_POLICY,
) -> List[UpcomingExpense]:
    """
    Yearly expenses expected within the next `policy.horizon_days` days,
    soonest first. Expenses already due today or overdue are not reported.
    """
    today = today or date.today()

    groups: Dict[str, List[_Expense]] = defaultdict(list)
    for expense in _load_expenses(db):
        groups[expense.merchant.lower().strip()].append(expense)

    upcoming: List[UpcomingExpense] = []
    for key, expenses in groups.items():
        if len(expenses) < 2:
            continue
        expenses.sort(key=lambda e: e.date, reverse=True)

        older = find_yearly_match(expenses, policy)
        if older is None:
            continue

        recent = expenses[0]
        expected_date = recent.date + timedelta(days=policy.year_days)
        days_until = (expected_date - today).days
        if days_until <= 0 or days_until > policy.horizon_days:
            continue

        upcoming.append(
            UpcomingExpense(
                merchant=recent.merchant,
                expected_amount=round((abs(recent.amount) + abs(older.amount)) / 2, 2),
                expected_date=expected_date,
                days_until=days_until,
                category_id=recent.category_id,
                category_name=recent.category_name,
            )
        )

    upcoming.sort(key=lambda u: (u.days_until, u.merchant.lower()))
    logger.debug("Detected %d upcoming yearly expenses", len(upcoming))
    return upcoming
