"""
Balance projection.

Projects what a member (or the household) will owe for electricity used
since the last settled purchase, priced at the historical average rate.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Iterable, Optional
from uuid import UUID

from apps.purchases.services.snapshots import ContributionSnapshot, PurchaseSnapshot

from .cost_allocation import ensure_unique_settlements, global_overpayment, user_overpayment
from .exceptions import CostComputationError

ZERO = Decimal('0')

STATUS_HEALTHY = 'healthy'
STATUS_WARNING = 'warning'
STATUS_CRITICAL = 'critical'


@dataclass(frozen=True)
class BalanceThresholds:
    """
    Balance bands, both expressed as positive amounts of money.

    healthy: balance >= -healthy_tolerance
    critical: balance < -critical_threshold
    warning: anything in between
    """

    healthy_tolerance: Decimal = Decimal('5')
    critical_threshold: Decimal = Decimal('20')


@dataclass(frozen=True)
class RunningBalance:
    user_id: Optional[UUID]
    contribution_balance: Decimal
    historical_cost_per_kwh: Decimal
    current_reading: Decimal
    reference_reading: Optional[Decimal]
    tokens_consumed_since_last_contribution: Decimal
    anticipated_payment: Decimal
    household_tokens_since_last_contribution: Decimal
    anticipated_others_payment: Decimal
    anticipated_token_purchase: Decimal
    status: str
    thresholds: BalanceThresholds = field(default_factory=BalanceThresholds)


def balance_status(balance: Decimal, thresholds: BalanceThresholds = BalanceThresholds()) -> str:
    """Classify a contribution balance into healthy, warning or critical."""
    if balance >= -thresholds.healthy_tolerance:
        return STATUS_HEALTHY
    if balance < -thresholds.critical_threshold:
        return STATUS_CRITICAL
    return STATUS_WARNING


def historical_cost_per_kwh(purchases: Iterable[PurchaseSnapshot]) -> Decimal:
    """Total paid over total kWh bought across every purchase."""
    purchases = list(purchases)
    if not purchases:
        raise CostComputationError("No purchases recorded; historical rate is undefined")

    total_tokens = sum((p.total_tokens for p in purchases), ZERO)
    if total_tokens <= 0:
        raise CostComputationError("Purchases carry no tokens; historical rate is undefined")
    return sum((p.total_payment for p in purchases), ZERO) / total_tokens


def _latest(contributions):
    if not contributions:
        return None
    return max(contributions, key=lambda c: c.purchase.sort_key)


def running_balance(
    contributions: Iterable[ContributionSnapshot],
    purchases: Iterable[PurchaseSnapshot],
    current_reading: Decimal,
    user_id: Optional[UUID] = None,
    thresholds: BalanceThresholds = BalanceThresholds(),
) -> RunningBalance:
    """
    Project a member's balance forward to the current meter reading.

    With ``user_id`` None the projection covers the whole household.

    Args:
        contributions: Every contribution on record
        purchases: Every purchase on record
        current_reading: Most recent known meter value
        user_id: Member to project for
        thresholds: Balance status bands

    Returns:
        RunningBalance

    Raises:
        CostComputationError: If no purchases exist or a purchase has no tokens
        DuplicateSettlementError: If a purchase appears twice in ``contributions``
    """
    contributions = ensure_unique_settlements(contributions)
    current_reading = Decimal(current_reading)
    rate = historical_cost_per_kwh(purchases)

    household_balance = global_overpayment(contributions)
    if user_id is None:
        balance = household_balance
        own = contributions
    else:
        balance = user_overpayment(contributions, user_id)
        own = [c for c in contributions if str(c.user_id) == str(user_id)]

    system_latest = _latest(contributions)
    reference = _latest(own) or system_latest

    if reference is not None:
        tokens_since = max(ZERO, current_reading - reference.meter_reading)
    else:
        tokens_since = ZERO

    if system_latest is not None:
        household_since = max(ZERO, current_reading - system_latest.meter_reading)
    else:
        household_since = ZERO

    anticipated_payment = tokens_since * rate - balance

    others_tokens = max(ZERO, household_since - tokens_since)
    others_balance = household_balance - balance
    anticipated_others_payment = others_tokens * rate - others_balance

    return RunningBalance(
        user_id=user_id,
        contribution_balance=balance,
        historical_cost_per_kwh=rate,
        current_reading=current_reading,
        reference_reading=reference.meter_reading if reference is not None else None,
        tokens_consumed_since_last_contribution=tokens_since,
        anticipated_payment=anticipated_payment,
        household_tokens_since_last_contribution=household_since,
        anticipated_others_payment=anticipated_others_payment,
        anticipated_token_purchase=anticipated_payment + anticipated_others_payment,
        status=balance_status(balance, thresholds),
        thresholds=thresholds,
    )
