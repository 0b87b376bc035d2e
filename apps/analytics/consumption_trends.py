"""
Monthly consumption trend and next-month usage prediction.

Contributions are bucketed by the month of the purchase they settle and a
least-squares line is fitted over the months (x = 1..n).
"""

from collections import OrderedDict
from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, List, Optional, Tuple
from uuid import UUID

from apps.purchases.services.snapshots import ContributionSnapshot

ZERO = Decimal('0')
PURCHASE_BUFFER = Decimal('1.15')
STABLE_SLOPE_RATIO = Decimal('0.1')


@dataclass(frozen=True)
class MonthlyUsage:
    month: str
    tokens_consumed: Decimal
    contributed: Decimal
    emergency_tokens: Decimal


@dataclass(frozen=True)
class UsagePrediction:
    user_id: Optional[UUID]
    monthly_usage: List[MonthlyUsage]
    months_analyzed: int
    total_usage: Decimal
    average_monthly_usage: Decimal
    slope: Decimal
    intercept: Decimal
    trend: str
    predicted_next_month: Decimal
    confidence: str
    recommended_purchase: Decimal


def monthly_series(contributions: Iterable[ContributionSnapshot]) -> List[MonthlyUsage]:
    """Bucket consumption by purchase month, oldest month first."""
    buckets = OrderedDict()
    for contribution in sorted(contributions, key=lambda c: c.purchase.sort_key):
        month = contribution.purchase.purchase_date.strftime('%Y-%m')
        tokens, paid, emergency = buckets.get(month, (ZERO, ZERO, ZERO))
        tokens += contribution.tokens_consumed
        paid += contribution.contribution_amount
        if contribution.purchase.is_emergency:
            emergency += contribution.tokens_consumed
        buckets[month] = (tokens, paid, emergency)

    return [
        MonthlyUsage(month=month, tokens_consumed=t, contributed=p, emergency_tokens=e)
        for month, (t, p, e) in buckets.items()
    ]


def least_squares(values: List[Decimal]) -> Tuple[Decimal, Decimal]:
    """Slope and intercept of the best-fit line through (1, v1) .. (n, vn)."""
    n = len(values)
    xs = [Decimal(i) for i in range(1, n + 1)]
    sum_x = sum(xs, ZERO)
    sum_y = sum(values, ZERO)
    sum_xy = sum((x * y for x, y in zip(xs, values)), ZERO)
    sum_xx = sum((x * x for x in xs), ZERO)

    slope = (n * sum_xy - sum_x * sum_y) / (n * sum_xx - sum_x * sum_x)
    intercept = (sum_y - slope * sum_x) / n
    return slope, intercept


def confidence_level(months: int, coefficient_of_variation: Decimal) -> str:
    if months >= 6 and coefficient_of_variation < Decimal('0.3'):
        return 'high'
    if months >= 4 and coefficient_of_variation < Decimal('0.5'):
        return 'medium'
    if months >= 3:
        return 'low'
    return 'very-low'


def _trend(slope: Decimal, average: Decimal) -> str:
    if abs(slope) < abs(average) * STABLE_SLOPE_RATIO:
        return 'stable'
    return 'increasing' if slope > 0 else 'decreasing'


def predict_usage(
    contributions: Iterable[ContributionSnapshot],
    user_id: Optional[UUID] = None,
) -> UsagePrediction:
    """
    Predict next month's consumption for a member, or the household when
    ``user_id`` is None.
    """
    contributions = list(contributions)
    if user_id is not None:
        contributions = [c for c in contributions if str(c.user_id) == str(user_id)]

    series = monthly_series(contributions)
    values = [m.tokens_consumed for m in series]
    months = len(values)
    total = sum(values, ZERO)

    if months < 2:
        return UsagePrediction(
            user_id=user_id,
            monthly_usage=series,
            months_analyzed=months,
            total_usage=total,
            average_monthly_usage=total,
            slope=ZERO,
            intercept=total,
            trend='stable',
            predicted_next_month=total,
            confidence='very-low',
            recommended_purchase=total * PURCHASE_BUFFER,
        )

    average = total / months
    slope, intercept = least_squares(values)
    predicted = max(ZERO, intercept + slope * (months + 1))

    variance = sum(((v - average) ** 2 for v in values), ZERO) / months
    if average > 0:
        coefficient_of_variation = variance.sqrt() / average
    else:
        coefficient_of_variation = Decimal('1')

    return UsagePrediction(
        user_id=user_id,
        monthly_usage=series,
        months_analyzed=months,
        total_usage=total,
        average_monthly_usage=average,
        slope=slope,
        intercept=intercept,
        trend=_trend(slope, average),
        predicted_next_month=predicted,
        confidence=confidence_level(months, coefficient_of_variation),
        recommended_purchase=predicted * PURCHASE_BUFFER,
    )
