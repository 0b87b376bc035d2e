"""
Cost Allocation Engine
======================

Computes what each member's consumed electricity really cost against what
they paid. Every contribution is priced at the unit cost of the purchase it
settles::

    unit_cost = total_payment / total_tokens
    true_cost = tokens_consumed * unit_cost
    overpayment = contribution_amount - true_cost

All arithmetic is done in ``Decimal`` without intermediate rounding;
figures are rounded only when serialized (2 dp money, 4 dp rates).

Emergency purchases use the same formula. The flag only feeds the
emergency impact figures of ``cost_summary`` and
``cost_recommendations``.

Functions here are pure: they take snapshots and return dataclasses.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Dict, Iterable, List, Optional
from uuid import UUID

from apps.purchases.services.snapshots import ContributionSnapshot, PurchaseSnapshot

from .exceptions import CostComputationError, DuplicateSettlementError

ZERO = Decimal('0')
HUNDRED = Decimal('100')


@dataclass(frozen=True)
class CostBreakdown:
    user_id: UUID
    contribution_count: int
    total_tokens_consumed: Decimal
    total_contributed: Decimal
    total_true_cost: Decimal
    overpayment: Decimal
    average_cost_per_kwh: Optional[Decimal]
    efficiency: Optional[Decimal]
    emergency_tokens: Decimal
    emergency_true_cost: Decimal


@dataclass(frozen=True)
class PurchaseComparisonRow:
    purchase_id: UUID
    purchase_date: datetime
    is_emergency: bool
    unit_cost: Decimal
    tokens_consumed: Decimal
    actual_contribution: Decimal
    fair_contribution: Decimal
    difference: Decimal


@dataclass(frozen=True)
class CostSummary:
    total_tokens_consumed: Decimal
    total_contributed: Decimal
    total_true_cost: Decimal
    overpayment: Decimal
    average_cost_per_kwh: Optional[Decimal]
    efficiency: Optional[Decimal]
    regular_purchases: int
    emergency_purchases: int
    average_regular_rate: Optional[Decimal]
    average_emergency_rate: Optional[Decimal]
    emergency_tokens_consumed: Decimal
    additional_cost_due_to_emergency: Decimal
    percentage_increase: Optional[Decimal]


def unit_cost(purchase: PurchaseSnapshot) -> Decimal:
    """Cost per kWh of a purchase; undefined when it carries no tokens."""
    if purchase.total_tokens <= 0:
        raise CostComputationError(
            f"Purchase {purchase.id} has no tokens; unit cost is undefined"
        )
    return purchase.total_payment / purchase.total_tokens


def true_cost(contribution: ContributionSnapshot) -> Decimal:
    """What the consumed tokens actually cost at the purchase's unit cost."""
    return contribution.tokens_consumed * unit_cost(contribution.purchase)


def optimal_contribution(tokens_consumed: Decimal, purchase: PurchaseSnapshot) -> Decimal:
    """The fair amount to pay for ``tokens_consumed`` kWh of ``purchase``."""
    return Decimal(tokens_consumed) * unit_cost(purchase)


def ensure_unique_settlements(contributions: Iterable[ContributionSnapshot]) -> List[ContributionSnapshot]:
    """Return the contributions as a list, rejecting any purchase settled twice."""
    contributions = list(contributions)
    seen = set()
    for contribution in contributions:
        if contribution.purchase_id in seen:
            raise DuplicateSettlementError(
                f"Purchase {contribution.purchase_id} is settled by more than one contribution"
            )
        seen.add(contribution.purchase_id)
    return contributions


def _ratio(numerator, denominator) -> Optional[Decimal]:
    if denominator == 0:
        return None
    return numerator / denominator


def true_cost_breakdown(contributions: Iterable[ContributionSnapshot]) -> List[CostBreakdown]:
    """
    Per-user cost breakdown in order of each user's first contribution.

    Raises:
        CostComputationError: If a referenced purchase has no tokens
        DuplicateSettlementError: If a purchase appears twice in the batch
    """
    contributions = ensure_unique_settlements(contributions)

    totals: Dict[UUID, dict] = {}
    for contribution in contributions:
        cost = true_cost(contribution)
        entry = totals.setdefault(contribution.user_id, {
            'count': 0,
            'tokens': ZERO,
            'paid': ZERO,
            'cost': ZERO,
            'emergency_tokens': ZERO,
            'emergency_cost': ZERO,
        })
        entry['count'] += 1
        entry['tokens'] += contribution.tokens_consumed
        entry['paid'] += contribution.contribution_amount
        entry['cost'] += cost
        if contribution.purchase.is_emergency:
            entry['emergency_tokens'] += contribution.tokens_consumed
            entry['emergency_cost'] += cost

    breakdown = []
    for user_id, entry in totals.items():
        efficiency = _ratio(entry['cost'], entry['paid'])
        breakdown.append(CostBreakdown(
            user_id=user_id,
            contribution_count=entry['count'],
            total_tokens_consumed=entry['tokens'],
            total_contributed=entry['paid'],
            total_true_cost=entry['cost'],
            overpayment=entry['paid'] - entry['cost'],
            average_cost_per_kwh=_ratio(entry['cost'], entry['tokens']),
            efficiency=efficiency * HUNDRED if efficiency is not None else None,
            emergency_tokens=entry['emergency_tokens'],
            emergency_true_cost=entry['emergency_cost'],
        ))
    return breakdown


def purchase_comparison(contributions: Iterable[ContributionSnapshot]) -> List[PurchaseComparisonRow]:
    """Actual against fair contribution for each settled purchase, in purchase order."""
    contributions = ensure_unique_settlements(contributions)

    rows = []
    for contribution in sorted(contributions, key=lambda c: c.purchase.sort_key):
        purchase = contribution.purchase
        fair = optimal_contribution(contribution.tokens_consumed, purchase)
        rows.append(PurchaseComparisonRow(
            purchase_id=purchase.id,
            purchase_date=purchase.purchase_date,
            is_emergency=purchase.is_emergency,
            unit_cost=unit_cost(purchase),
            tokens_consumed=contribution.tokens_consumed,
            actual_contribution=contribution.contribution_amount,
            fair_contribution=fair,
            difference=contribution.contribution_amount - fair,
        ))
    return rows


def global_overpayment(contributions: Iterable[ContributionSnapshot]) -> Decimal:
    """Sum of everyone's overpayment; negative when the household is behind."""
    contributions = ensure_unique_settlements(contributions)
    return sum(
        (c.contribution_amount - true_cost(c) for c in contributions),
        ZERO,
    )


def user_overpayment(contributions: Iterable[ContributionSnapshot], user_id) -> Decimal:
    """Overpayment of a single user."""
    contributions = ensure_unique_settlements(contributions)
    return sum(
        (c.contribution_amount - true_cost(c) for c in contributions if str(c.user_id) == str(user_id)),
        ZERO,
    )


def _average_rate(purchases: List[PurchaseSnapshot]) -> Optional[Decimal]:
    if not purchases:
        return None
    return sum((unit_cost(p) for p in purchases), ZERO) / len(purchases)


def cost_summary(
    contributions: Iterable[ContributionSnapshot],
    purchases: Iterable[PurchaseSnapshot],
) -> CostSummary:
    """
    Aggregate cost figures plus the impact of emergency purchases.

    Emergency impact compares the average unit cost of emergency purchases
    with the average of regular ones and prices the emergency kWh consumed
    at that difference.

    Raises:
        CostComputationError: If there are no contributions
        DuplicateSettlementError: If a purchase appears twice in the batch
    """
    contributions = ensure_unique_settlements(contributions)
    if not contributions:
        raise CostComputationError("No contributions to summarise")

    purchases = list(purchases)
    tokens = sum((c.tokens_consumed for c in contributions), ZERO)
    paid = sum((c.contribution_amount for c in contributions), ZERO)
    cost = sum((true_cost(c) for c in contributions), ZERO)
    efficiency = _ratio(cost, paid)

    regular = [p for p in purchases if not p.is_emergency]
    emergency = [p for p in purchases if p.is_emergency]
    regular_rate = _average_rate(regular)
    emergency_rate = _average_rate(emergency)

    emergency_tokens = sum(
        (c.tokens_consumed for c in contributions if c.purchase.is_emergency),
        ZERO,
    )

    if regular_rate and emergency_rate is not None:
        additional = emergency_tokens * (emergency_rate - regular_rate)
        increase = (emergency_rate - regular_rate) / regular_rate * HUNDRED
    else:
        additional = ZERO
        increase = None

    return CostSummary(
        total_tokens_consumed=tokens,
        total_contributed=paid,
        total_true_cost=cost,
        overpayment=paid - cost,
        average_cost_per_kwh=_ratio(cost, tokens),
        efficiency=efficiency * HUNDRED if efficiency is not None else None,
        regular_purchases=len(regular),
        emergency_purchases=len(emergency),
        average_regular_rate=regular_rate,
        average_emergency_rate=emergency_rate,
        emergency_tokens_consumed=emergency_tokens,
        additional_cost_due_to_emergency=additional,
        percentage_increase=increase,
    )


# Alignment bands (percent) and the share of the misallocated amount that
# better-matched contributions would recover.
EXCELLENT_ALIGNMENT = Decimal('95')
GOOD_ALIGNMENT = Decimal('85')
FAIR_ALIGNMENT = Decimal('70')
FAIR_SAVINGS_SHARE = Decimal('0.5')
POOR_SAVINGS_SHARE = Decimal('0.8')

EMERGENCY_IMPACT_THRESHOLD = Decimal('20')
BALANCE_ADVICE_SHARE = Decimal('0.1')


@dataclass(frozen=True)
class CostRecommendations:
    user_id: UUID
    efficiency_rating: str
    alignment: Optional[Decimal]
    potential_savings: Decimal
    emergency_premium: Decimal
    emergency_impact: Optional[Decimal]
    recommendations: List[str]


def _alignment(breakdown: CostBreakdown) -> Optional[Decimal]:
    """
    How closely payments match true cost, as a percentage up to 100.

    ``efficiency`` exceeds 100 when a member pays less than their usage
    cost; it is mirrored around 100 so under- and overpayment rate alike.
    """
    efficiency = breakdown.efficiency
    if efficiency is None:
        return None
    if efficiency > HUNDRED:
        return HUNDRED * HUNDRED / efficiency
    return efficiency


def emergency_premium(breakdown: CostBreakdown) -> Decimal:
    """
    Extra paid for emergency kWh over the member's own regular unit cost.

    Zero when the member consumed only one kind of purchase.
    """
    regular_tokens = breakdown.total_tokens_consumed - breakdown.emergency_tokens
    regular_cost = breakdown.total_true_cost - breakdown.emergency_true_cost
    if breakdown.emergency_tokens <= 0 or regular_tokens <= 0 or regular_cost <= 0:
        return ZERO
    regular_rate = regular_cost / regular_tokens
    return breakdown.emergency_true_cost - breakdown.emergency_tokens * regular_rate


def cost_recommendations(breakdown: CostBreakdown) -> CostRecommendations:
    """
    Rate how well a member's payments track their usage and suggest changes.

    Ratings by alignment: ``excellent`` from 95, ``good`` from 85, ``fair``
    from 70, ``poor`` below. Fair and poor members could recover half and
    80% of their over- or underpayment respectively. Emergency purchases
    that raised the member's cost by more than 20% and balances off by
    more than 10% of the true cost each add a recommendation.
    """
    alignment = _alignment(breakdown)
    misallocated = abs(breakdown.overpayment)
    recommendations = []

    if alignment is None:
        # Nothing paid
        rating = 'excellent' if breakdown.total_true_cost == 0 else 'poor'
    elif alignment >= EXCELLENT_ALIGNMENT:
        rating = 'excellent'
    elif alignment >= GOOD_ALIGNMENT:
        rating = 'good'
    elif alignment >= FAIR_ALIGNMENT:
        rating = 'fair'
    else:
        rating = 'poor'

    if rating == 'excellent':
        recommendations.append('You are paying very close to your true usage cost.')
        savings = ZERO
    elif rating == 'good':
        recommendations.append('Your payments are reasonably aligned with your usage.')
        savings = ZERO
    elif rating == 'fair':
        recommendations.append(
            'Consider adjusting your contribution amounts to better match your usage.'
        )
        savings = misallocated * FAIR_SAVINGS_SHARE
    else:
        recommendations.append(
            'Your payments are significantly misaligned with your actual usage.'
        )
        savings = misallocated * POOR_SAVINGS_SHARE

    premium = emergency_premium(breakdown)
    impact = None
    if premium > 0:
        impact = premium / breakdown.total_true_cost * HUNDRED
        if impact > EMERGENCY_IMPACT_THRESHOLD:
            recommendations.append(
                f"Emergency purchases increased your costs by {impact:.1f}%. "
                f"Consider planning purchases ahead to avoid emergency rates."
            )

    margin = breakdown.total_true_cost * BALANCE_ADVICE_SHARE
    if breakdown.overpayment > margin:
        recommendations.append(
            f"You are overpaying by {breakdown.overpayment:.2f}. "
            f"Consider reducing your contribution amounts."
        )
    elif breakdown.overpayment < -margin:
        recommendations.append(
            f"You are underpaying by {misallocated:.2f}. "
            f"Consider increasing your contribution amounts."
        )

    return CostRecommendations(
        user_id=breakdown.user_id,
        efficiency_rating=rating,
        alignment=alignment,
        potential_savings=savings,
        emergency_premium=premium,
        emergency_impact=impact,
        recommendations=recommendations,
    )
