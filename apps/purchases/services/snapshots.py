"""
Immutable snapshots of stored records.

The reconciliation engine works on these instead of model instances so
that it stays free of database access and can be tested in isolation.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID


@dataclass(frozen=True)
class PurchaseSnapshot:
    id: UUID
    total_tokens: Decimal
    total_payment: Decimal
    meter_reading: Decimal
    purchase_date: datetime
    is_emergency: bool = False
    created_at: Optional[datetime] = None
    has_contribution: bool = False

    @property
    def sort_key(self):
        """Total settlement order: date, insertion time, id."""
        return (
            self.purchase_date,
            self.created_at or self.purchase_date,
            str(self.id),
        )


@dataclass(frozen=True)
class ContributionSnapshot:
    id: UUID
    user_id: UUID
    purchase: PurchaseSnapshot
    contribution_amount: Decimal
    meter_reading: Decimal
    tokens_consumed: Decimal

    @property
    def purchase_id(self):
        return self.purchase.id


@dataclass(frozen=True)
class ReadingPoint:
    """A dated meter value from a purchase, a contribution or a standalone reading."""

    value: Decimal
    date: datetime
    source: str
    record_id: Optional[UUID] = None


def purchase_snapshot(purchase, has_contribution=None) -> PurchaseSnapshot:
    """Build a snapshot from a TokenPurchase instance."""
    if has_contribution is None:
        has_contribution = purchase.is_settled
    return PurchaseSnapshot(
        id=purchase.id,
        total_tokens=purchase.total_tokens,
        total_payment=purchase.total_payment,
        meter_reading=purchase.meter_reading,
        purchase_date=purchase.purchase_date,
        is_emergency=purchase.is_emergency,
        created_at=purchase.created_at,
        has_contribution=has_contribution,
    )


def contribution_snapshot(contribution) -> ContributionSnapshot:
    """Build a snapshot from a UserContribution instance."""
    return ContributionSnapshot(
        id=contribution.id,
        user_id=contribution.user_id,
        purchase=purchase_snapshot(contribution.purchase, has_contribution=True),
        contribution_amount=contribution.contribution_amount,
        meter_reading=contribution.meter_reading,
        tokens_consumed=contribution.tokens_consumed,
    )


def load_purchase_snapshots(date_from=None, date_to=None):
    """Load purchases in settlement order, optionally within a date range."""
    from apps.purchases.models import TokenPurchase

    purchases = TokenPurchase.objects.select_related('contribution')
    if date_from is not None:
        purchases = purchases.filter(purchase_date__date__gte=date_from)
    if date_to is not None:
        purchases = purchases.filter(purchase_date__date__lte=date_to)
    purchases = purchases.order_by('purchase_date', 'created_at', 'id')
    return [purchase_snapshot(p) for p in purchases]


def load_contribution_snapshots(user_id=None, date_from=None, date_to=None):
    """
    Load contributions in purchase order.

    Optionally restricted to one user and to purchases dated within
    ``date_from`` and ``date_to`` (inclusive calendar dates).
    """
    from apps.purchases.models import UserContribution

    contributions = UserContribution.objects.select_related('purchase')
    if user_id is not None:
        contributions = contributions.filter(user_id=user_id)
    if date_from is not None:
        contributions = contributions.filter(purchase__purchase_date__date__gte=date_from)
    if date_to is not None:
        contributions = contributions.filter(purchase__purchase_date__date__lte=date_to)
    contributions = contributions.order_by(
        'purchase__purchase_date', 'purchase__created_at', 'purchase__id'
    )
    return [contribution_snapshot(c) for c in contributions]


def load_reading_history():
    """Collect every dated meter value known to the system."""
    from apps.purchases.models import TokenPurchase, MeterReading

    points = []
    for purchase in TokenPurchase.objects.select_related('contribution'):
        points.append(ReadingPoint(
            value=purchase.meter_reading,
            date=purchase.purchase_date,
            source='purchase',
            record_id=purchase.id,
        ))
        if purchase.is_settled:
            # Contributions are dated by their purchase and share its id for exclusion
            points.append(ReadingPoint(
                value=purchase.contribution.meter_reading,
                date=purchase.purchase_date,
                source='contribution',
                record_id=purchase.id,
            ))
    for reading in MeterReading.objects.all():
        points.append(ReadingPoint(
            value=reading.reading,
            date=reading.reading_date,
            source='reading',
            record_id=reading.id,
        ))
    return points
