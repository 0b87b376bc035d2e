"""
Sequential contribution gate.

Purchases are settled strictly in chronological order: only the oldest
purchase without a contribution may receive one. Admins may bypass the
order to enter corrective contributions, but nobody may settle a purchase
twice. New purchases are held back the same way until the purchase
before them has been settled.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, List, Optional
from uuid import UUID

from .snapshots import PurchaseSnapshot


@dataclass(frozen=True)
class GateDecision:
    can_contribute: bool
    reason: Optional[str] = None
    next_available_purchase_id: Optional[UUID] = None


@dataclass(frozen=True)
class ContributionProgress:
    total_purchases: int
    purchases_with_contributions: int
    next_purchase: Optional[PurchaseSnapshot]
    progress_percentage: int


def _ordered(purchases: Iterable[PurchaseSnapshot]) -> List[PurchaseSnapshot]:
    return sorted(purchases, key=lambda p: p.sort_key)


def find_next_purchase_to_settle(purchases: Iterable[PurchaseSnapshot]) -> Optional[PurchaseSnapshot]:
    """Return the oldest purchase without a contribution, or None."""
    for purchase in _ordered(purchases):
        if not purchase.has_contribution:
            return purchase
    return None


def can_accept_contribution(
    purchase_id: UUID,
    is_admin: bool,
    purchases: Iterable[PurchaseSnapshot],
) -> GateDecision:
    """
    Decide whether a contribution may be recorded against ``purchase_id``.

    Args:
        purchase_id: Target purchase
        is_admin: Whether the acting user may bypass the sequential order
        purchases: Every purchase on record

    Returns:
        GateDecision; when rejected for ordering reasons,
        ``next_available_purchase_id`` names the purchase to settle first
    """
    purchases = list(purchases)
    target = next((p for p in purchases if str(p.id) == str(purchase_id)), None)

    if target is None:
        return GateDecision(can_contribute=False, reason='Purchase not found')

    if target.has_contribution:
        return GateDecision(
            can_contribute=False,
            reason='Purchase already has a contribution',
        )

    next_purchase = find_next_purchase_to_settle(purchases)
    if next_purchase is None:
        return GateDecision(
            can_contribute=False,
            reason='All purchases already have contributions',
        )

    if next_purchase.id == target.id:
        return GateDecision(can_contribute=True)

    if is_admin:
        # Corrective entry out of order
        return GateDecision(can_contribute=True)

    return GateDecision(
        can_contribute=False,
        reason='You must contribute to older purchases first',
        next_available_purchase_id=next_purchase.id,
    )


def contribution_progress(purchases: Iterable[PurchaseSnapshot]) -> ContributionProgress:
    """Summarise how far settlement has progressed."""
    purchases = list(purchases)
    total = len(purchases)
    settled = sum(1 for p in purchases if p.has_contribution)
    percentage = round(settled / total * 100) if total else 100

    return ContributionProgress(
        total_purchases=total,
        purchases_with_contributions=settled,
        next_purchase=find_next_purchase_to_settle(purchases),
        progress_percentage=percentage,
    )


@dataclass(frozen=True)
class PurchaseGateDecision:
    can_create: bool
    reason: Optional[str] = None
    blocking_purchase: Optional[PurchaseSnapshot] = None
    context: Optional[str] = None

    @property
    def blocking_purchase_id(self) -> Optional[UUID]:
        return self.blocking_purchase.id if self.blocking_purchase else None


def can_accept_purchase(
    purchase_date: datetime,
    is_admin: bool,
    purchases: Iterable[PurchaseSnapshot],
) -> PurchaseGateDecision:
    """
    Decide whether a new purchase dated ``purchase_date`` may be recorded.

    The most recent purchase dated strictly before the new one must already
    be settled, otherwise its consumption could never be attributed. Admins
    bypass the check.

    Returns:
        PurchaseGateDecision; when rejected, ``blocking_purchase`` is the
        unsettled predecessor
    """
    if is_admin:
        return PurchaseGateDecision(
            can_create=True,
            context='Admin bypass: sequential purchase order not enforced',
        )

    earlier = [p for p in purchases if p.purchase_date < purchase_date]
    if not earlier:
        return PurchaseGateDecision(
            can_create=True,
            context='No earlier purchase recorded',
        )

    previous = _ordered(earlier)[-1]
    if not previous.has_contribution:
        return PurchaseGateDecision(
            can_create=False,
            reason=(
                f"The purchase of {previous.purchase_date:%Y-%m-%d} "
                f"({previous.total_tokens} kWh) needs a contribution "
                f"before a newer purchase can be recorded"
            ),
            blocking_purchase=previous,
        )

    return PurchaseGateDecision(
        can_create=True,
        context=f"Previous purchase of {previous.purchase_date:%Y-%m-%d} is settled",
    )
