# ledger/services/aggregation.py
#
# Aggregation Query Layer (dashboard side)
# Read-only summaries over the ledger for a date range or a series of periods.
# Totals are computed in SQL; period bucketing is done in Python so the same
# code runs on SQLite and Postgres.
#
# Sign convention: income = sum of positive amounts, expenses = absolute sum of
# negative amounts, net = income - expenses.

from collections import defaultdict
from datetime import date
from typing import Any, Dict, List, Optional

from sqlalchemy import case, func
from sqlalchemy.orm import Query, Session

from ledger.services.periods import (
    DateRange,
    Period,
    date_range_for,
    monthly_periods_between,
    period_key_for,
    period_progress,
    periods_ending,
    previous_period_range,
    range_label,
    year_ago_range,
)
from models import Category, Transaction


def in_range(query: Query, range_: Optional[DateRange]) -> Query:
    if range_ is None:
        return query
    return query.filter(Transaction.date >= range_.start, Transaction.date < range_.end)


def _money(value) -> float:
    return round(float(value or 0), 2)


def _series_range(periods: List[Period]) -> DateRange:
    return DateRange(periods[0].start, periods[-1].end)


# ---- Totals ----

def income_and_expenses(db: Session, range_: Optional[DateRange]) -> Dict[str, float]:
    income, expenses = in_range(
        db.query(
            func.coalesce(
                func.sum(case((Transaction.amount > 0, Transaction.amount), else_=0)),
                0,
            ).label("income"),
            func.coalesce(
                func.sum(case((Transaction.amount < 0, Transaction.amount), else_=0)),
                0,
            ).label("expenses"),
        ),
        range_,
    ).one()

    income = _money(income)
    expenses = abs(_money(expenses))
    return {"income": income, "expenses": expenses, "net": round(income - expenses, 2)}


def total_income(db: Session, range_: Optional[DateRange]) -> float:
    return income_and_expenses(db, range_)["income"]


def total_expenses(db: Session, range_: Optional[DateRange]) -> float:
    return income_and_expenses(db, range_)["expenses"]


def category_summary(db: Session, range_: Optional[DateRange]) -> List[Dict[str, Any]]:
    """
    Signed total and row count per category. Uncategorized rows are grouped
    under category_id None. Largest absolute totals first.
    """
    total = func.sum(Transaction.amount)
    rows = (
        in_range(
            db.query(
                Transaction.category_id,
                Category.name.label("category_name"),
                Category.icon.label("category_icon"),
                total.label("total"),
                func.count(Transaction.id).label("count"),
            ).outerjoin(Category, Transaction.category_id == Category.id),
            range_,
        )
        .group_by(Transaction.category_id, Category.name, Category.icon)
        .all()
    )

    summary = [
        {
            "category_id": r.category_id,
            "category_name": r.category_name,
            "category_icon": r.category_icon,
            "total": _money(r.total),
            "count": int(r.count),
        }
        for r in rows
    ]
    summary.sort(key=lambda s: (-abs(s["total"]), s["category_name"] or ""))
    return summary


def expenses_by_category(db: Session, range_: Optional[DateRange]) -> Dict[Optional[str], float]:
    """Absolute expense total per category id (None = uncategorized)."""
    rows = (
        in_range(
            db.query(
                Transaction.category_id,
                func.sum(Transaction.amount).label("total"),
            ).filter(Transaction.amount < 0),
            range_,
        )
        .group_by(Transaction.category_id)
        .all()
    )
    return {r.category_id: abs(_money(r.total)) for r in rows}


# ---- Trend series ----

def bucket_by_period(timeframe: str, periods: List[Period], rows) -> Dict[str, List[Any]]:
    """Group rows (anything with a .date) under the key of the period holding them."""
    keys = {p.key for p in periods}
    buckets: Dict[str, List[Any]] = defaultdict(list)
    for row in rows:
        key = period_key_for(timeframe, row.date)
        if key in keys:
            buckets[key].append(row)
    return buckets


def trend_entries(timeframe: str, periods: List[Period], rows) -> List[Dict[str, Any]]:
    """One zero-filled {period, period_key, income, expenses, net} entry per period."""
    buckets = bucket_by_period(timeframe, periods, rows)
    entries = []
    for p in periods:
        income = 0.0
        expenses = 0.0
        for row in buckets.get(p.key, []):
            amount = float(row.amount)
            if amount > 0:
                income += amount
            else:
                expenses += -amount
        entries.append(
            {
                "period": p.label,
                "period_key": p.key,
                "income": round(income, 2),
                "expenses": round(expenses, 2),
                "net": round(income - expenses, 2),
            }
        )
    return entries


def period_trends(
    db: Session,
    timeframe: str,
    count: int,
    end_period: Optional[str] = None,
    today: Optional[date] = None,
) -> List[Dict[str, Any]]:
    """
    Income / expenses / net for `count` consecutive periods ending at
    `end_period` (current period if None), oldest first. Periods without
    transactions are present with zeros.
    """
    periods = periods_ending(timeframe, count, end_period, today)
    rows = in_range(db.query(Transaction.date, Transaction.amount), _series_range(periods)).all()
    return trend_entries(timeframe, periods, rows)


def category_period_trends(
    db: Session,
    timeframe: str,
    count: int,
    end_period: Optional[str] = None,
    today: Optional[date] = None,
) -> Dict[str, Any]:
    """
    Expense totals per category per period. Every category with expenses in
    the window gets a full series (zeros where it had none).

    Returns {"periods": [...], "series": [{category_id, category_name, values: {period_key: amount}}]}.
    """
    periods = periods_ending(timeframe, count, end_period, today)
    rows = (
        in_range(
            db.query(
                Transaction.date,
                Transaction.amount,
                Transaction.category_id,
                Category.name.label("category_name"),
            )
            .outerjoin(Category, Transaction.category_id == Category.id)
            .filter(Transaction.amount < 0),
            _series_range(periods),
        ).all()
    )

    names: Dict[Optional[str], Optional[str]] = {}
    totals: Dict[Optional[str], Dict[str, float]] = defaultdict(lambda: {p.key: 0.0 for p in periods})
    for key, bucket in bucket_by_period(timeframe, periods, rows).items():
        for row in bucket:
            names[row.category_id] = row.category_name
            totals[row.category_id][key] += -float(row.amount)

    series = [
        {
            "category_id": category_id,
            "category_name": names.get(category_id),
            "values": {k: round(v, 2) for k, v in values.items()},
        }
        for category_id, values in totals.items()
    ]
    series.sort(key=lambda s: -sum(s["values"].values()))

    return {
        "periods": [{"period": p.label, "period_key": p.key} for p in periods],
        "series": series,
    }


# ---- Rankings ----

def top_merchants(db: Session, range_: Optional[DateRange], limit: int = 10) -> List[Dict[str, Any]]:
    """
    Merchants with the largest absolute expense totals. Merchants are grouped
    case-insensitively and reported with the casing of their earliest row.
    """
    rows = (
        in_range(
            db.query(Transaction.date, Transaction.merchant, Transaction.amount).filter(Transaction.amount < 0),
            range_,
        )
        .order_by(Transaction.date.asc(), Transaction.created_at.asc())
        .all()
    )

    grouped: Dict[str, Dict[str, Any]] = {}
    for row in rows:
        key = row.merchant.lower().strip()
        entry = grouped.get(key)
        if entry is None:
            entry = grouped[key] = {"merchant": row.merchant, "total": 0.0, "count": 0}
        entry["total"] += -float(row.amount)
        entry["count"] += 1

    ranked = sorted(grouped.values(), key=lambda e: (-e["total"], e["merchant"].lower()))
    for entry in ranked:
        entry["total"] = round(entry["total"], 2)
    return ranked[: max(limit, 0)]


# ---- Comparison ----

def _percent_change(current: float, previous: float) -> Optional[float]:
    if previous == 0:
        return None
    return round((current - previous) / previous * 100, 1)


def period_comparison(
    db: Session,
    timeframe: str,
    period_key: Optional[str] = None,
    today: Optional[date] = None,
) -> Dict[str, Any]:
    """
    The selected period against the one before it and the same range a year
    earlier, plus per-category expense changes versus the previous period.
    """
    today = today or date.today()
    current = date_range_for(timeframe, period_key, today)
    previous = previous_period_range(timeframe, period_key, today)
    year_ago = year_ago_range(timeframe, period_key, today)

    current_totals = income_and_expenses(db, current)
    previous_totals = income_and_expenses(db, previous)
    year_ago_totals = income_and_expenses(db, year_ago)

    current_cats = expenses_by_category(db, current)
    previous_cats = expenses_by_category(db, previous)

    category_ids = set(current_cats) | set(previous_cats)
    names = {
        c.id: c.name
        for c in db.query(Category.id, Category.name).filter(Category.id.in_([i for i in category_ids if i]))
    }

    categories = []
    for category_id in category_ids:
        now = current_cats.get(category_id, 0.0)
        before = previous_cats.get(category_id, 0.0)
        categories.append(
            {
                "category_id": category_id,
                "category_name": names.get(category_id),
                "current": now,
                "previous": before,
                "change": round(now - before, 2),
                "percent_change": _percent_change(now, before),
            }
        )
    categories.sort(key=lambda c: (-abs(c["change"]), c["category_name"] or ""))

    def _block(range_: DateRange, totals: Dict[str, float]) -> Dict[str, Any]:
        return {
            "label": range_.label or range_label(timeframe, range_.start, range_.end),
            "start": range_.start,
            "end": range_.end,
            **totals,
        }

    return {
        "timeframe": timeframe,
        "current": _block(current, current_totals),
        "previous": _block(previous, previous_totals),
        "year_ago": _block(year_ago, year_ago_totals),
        "change": {
            key: {
                "vs_previous": _percent_change(current_totals[key], previous_totals[key]),
                "vs_year_ago": _percent_change(current_totals[key], year_ago_totals[key]),
            }
            for key in ("income", "expenses", "net")
        },
        "categories": categories,
        "progress": period_progress(current, today),
    }


# ---- Months ----

def available_months(db: Session) -> List[Dict[str, Any]]:
    """Months that have transactions, newest first, with net and row count."""
    months: Dict[str, Dict[str, Any]] = {}
    for row in db.query(Transaction.date, Transaction.amount):
        key = period_key_for("month", row.date)
        entry = months.get(key)
        if entry is None:
            start = row.date.replace(day=1)
            entry = months[key] = {"period_key": key, "label": start.strftime("%B %Y"), "net": 0.0, "count": 0}
        entry["net"] += float(row.amount)
        entry["count"] += 1

    result = sorted(months.values(), key=lambda m: m["period_key"], reverse=True)
    for entry in result:
        entry["net"] = round(entry["net"], 2)
    return result


def trend_periods(
    timeframe: str,
    count: int,
    end_period: Optional[str] = None,
    date_range: Optional[DateRange] = None,
    today: Optional[date] = None,
) -> List[Period]:
    """
    Periods for a detail-page trend chart: month buckets spanning `date_range`
    when one is given, otherwise `count` periods ending at `end_period`.
    """
    if date_range is not None:
        return monthly_periods_between(date_range.start, date_range.end)
    return periods_ending(timeframe, count, end_period, today)
