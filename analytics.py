"""
Derived views over transactions and budgets.

Every function here is pure: it reads the lists it is given, never touches
the database, and takes the evaluation instant ``now`` explicitly whenever
the result depends on the calendar. ``None`` is treated as an empty list and
zero denominators resolve to 0, so degenerate input never raises.

Ties in amount/percentage orderings are broken by category name ascending.
"""

import calendar
from collections import defaultdict
from datetime import date, datetime
from typing import Dict, Iterable, List, Optional, Tuple, Union

from schemas import (
    Budget,
    BudgetComparison,
    BudgetOverview,
    CategoryAmount,
    CategoryTotal,
    FinanceSummary,
    MonthlyExpense,
    MonthlyOverview,
    SpendingInsights,
    Transaction,
)

Instant = Union[date, datetime]

OVER_BUDGET_PERCENT = 100.0
ON_TRACK_PERCENT = 80.0
TRAILING_MONTHS = 6

# fixed English labels, independent of the process locale
MONTH_ABBR = ("Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")


# -----------------------------
# Calendar helpers
# -----------------------------
def to_day(now: Instant) -> date:
    return now.date() if isinstance(now, datetime) else now


def month_label(day: date) -> str:
    return f"{MONTH_ABBR[day.month - 1]} {day.year}"


def month_key(day: date) -> str:
    return day.strftime("%Y-%m")


def shift_month(day: date, delta: int) -> date:
    """First day of the month ``delta`` months away from ``day``'s month."""
    index = day.year * 12 + (day.month - 1) + delta
    year, month = divmod(index, 12)
    return date(year, month + 1, 1)


def month_range(day: date) -> Tuple[date, date]:
    # inclusive on both ends
    start = day.replace(day=1)
    last = calendar.monthrange(start.year, start.month)[1]
    return start, start.replace(day=last)


def percent(part: float, whole: float) -> float:
    return (part / whole) * 100 if whole > 0 else 0.0


# -----------------------------
# Filtering / grouping
# -----------------------------
def expenses(transactions: Optional[Iterable[Transaction]]) -> List[Transaction]:
    return [t for t in (transactions or []) if t.type == "expense"]


def in_month(transactions: Iterable[Transaction], day: date) -> List[Transaction]:
    start, end = month_range(day)
    return [t for t in transactions if start <= t.date <= end]


def sum_by_category(transactions: Iterable[Transaction]) -> Dict[str, float]:
    totals: Dict[str, float] = defaultdict(float)
    for t in transactions:
        totals[t.category] += t.amount
    return dict(totals)


def rank_categories(totals: Dict[str, float]) -> List[Tuple[str, float]]:
    return sorted(totals.items(), key=lambda item: (-item[1], item[0]))


def top_category(totals: Dict[str, float]) -> Optional[CategoryAmount]:
    ranked = rank_categories(totals)
    if not ranked:
        return None
    category, amount = ranked[0]
    return CategoryAmount(category=category, amount=amount)


# -----------------------------
# Derivations
# -----------------------------
def category_totals(transactions: Optional[Iterable[Transaction]]) -> List[CategoryTotal]:
    """Expense amount and share of total spend per category, largest first."""
    ranked = rank_categories(sum_by_category(expenses(transactions)))
    total = sum(amount for _, amount in ranked)
    return [
        CategoryTotal(category=category, amount=amount, percentage=percent(amount, total))
        for category, amount in ranked
    ]


def monthly_expenses(
    transactions: Optional[Iterable[Transaction]],
    now: Instant,
    months: int = TRAILING_MONTHS,
) -> List[MonthlyExpense]:
    """Expense totals for the trailing ``months`` calendar months, oldest first.

    Every month in the window is present, including months with no expenses.
    Transactions dated outside the window are ignored.
    """
    today = to_day(now)
    buckets: Dict[str, MonthlyExpense] = {}
    for offset in range(months - 1, -1, -1):
        first = shift_month(today, -offset)
        key = month_key(first)
        buckets[key] = MonthlyExpense(month=month_label(first), key=key)

    for t in expenses(transactions):
        bucket = buckets.get(month_key(t.date))
        if bucket is not None:
            bucket.amount += t.amount
            bucket.count += 1

    return list(buckets.values())


def budget_status(percentage: float) -> str:
    if percentage > OVER_BUDGET_PERCENT:
        return "over"
    if percentage >= ON_TRACK_PERCENT:
        return "on-track"
    return "under"


def budget_comparisons(
    transactions: Optional[Iterable[Transaction]],
    budgets: Optional[Iterable[Budget]],
    now: Instant,
) -> List[BudgetComparison]:
    """Budget vs. actual spend for the calendar month containing ``now``."""
    spent = sum_by_category(in_month(expenses(transactions), to_day(now)))

    comparisons = []
    for budget in budgets or []:
        actual = spent.get(budget.category, 0.0)
        percentage = percent(actual, budget.monthly_limit)
        comparisons.append(
            BudgetComparison(
                category=budget.category,
                budgeted=budget.monthly_limit,
                actual=actual,
                percentage=percentage,
                status=budget_status(percentage),
            )
        )
    comparisons.sort(key=lambda c: (-c.percentage, c.category))
    return comparisons


def monthly_overview(
    transactions: Optional[Iterable[Transaction]],
    now: Instant,
    months: int = TRAILING_MONTHS,
) -> MonthlyOverview:
    """The trailing-month series plus its total, per-month average and count."""
    series = monthly_expenses(transactions, now, months)
    total = sum(m.amount for m in series)
    return MonthlyOverview(
        months=series,
        total=total,
        average=total / len(series) if series else 0.0,
        transaction_count=sum(m.count for m in series),
    )


def budget_overview(
    transactions: Optional[Iterable[Transaction]],
    budgets: Optional[Iterable[Budget]],
    now: Instant,
) -> BudgetOverview:
    comparisons = budget_comparisons(transactions, budgets, now)
    statuses = [c.status for c in comparisons]
    return BudgetOverview(
        comparisons=comparisons,
        over_budget_count=statuses.count("over"),
        on_track_count=statuses.count("on-track"),
        under_count=statuses.count("under"),
    )


def spending_trend(change: float) -> str:
    if change < -10:
        return "positive"
    if change > 20:
        return "negative"
    if change > 10:
        return "warning"
    return "info"


def spending_insights(
    transactions: Optional[Iterable[Transaction]],
    budgets: Optional[Iterable[Budget]],
    now: Instant,
) -> SpendingInsights:
    today = to_day(now)
    budgets = list(budgets or [])
    spent = expenses(transactions)

    current = in_month(spent, today)
    current_total = sum(t.amount for t in current)
    last_total = sum(t.amount for t in in_month(spent, shift_month(today, -1)))

    by_category = sum_by_category(current)

    total_budget = sum(b.monthly_limit for b in budgets)
    over_budget = [
        b.category for b in budgets if by_category.get(b.category, 0.0) > b.monthly_limit
    ]

    days_in_month = calendar.monthrange(today.year, today.month)[1]
    avg_daily = current_total / today.day
    change = percent(current_total - last_total, last_total)

    return SpendingInsights(
        current_month_expenses=current_total,
        last_month_expenses=last_total,
        spending_change=change,
        highest_category=top_category(by_category),
        total_budget=total_budget,
        budget_usage=percent(current_total, total_budget),
        budget_remaining=max(0.0, total_budget - current_total),
        over_budget_categories=over_budget,
        avg_daily_spending=avg_daily,
        projected_monthly_spending=avg_daily * days_in_month,
        trend=spending_trend(change),
    )


def finance_summary(
    transactions: Optional[Iterable[Transaction]],
    recent: int = 5,
) -> FinanceSummary:
    """All-time income/expense totals; the only view that reads income."""
    transactions = list(transactions or [])
    income = [t for t in transactions if t.type == "income"]
    spent = expenses(transactions)

    total_income = sum(t.amount for t in income)
    total_expenses = sum(t.amount for t in spent)

    return FinanceSummary(
        total_income=total_income,
        total_expenses=total_expenses,
        net_balance=total_income - total_expenses,
        income_count=len(income),
        expense_count=len(spent),
        top_category=top_category(sum_by_category(spent)),
        recent_transactions=transactions[:recent],
    )
