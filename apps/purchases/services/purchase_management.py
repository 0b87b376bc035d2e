"""
Purchase management service.

Handles token purchase CRUD with meter reading checks. A purchase that
already has its contribution is locked until that contribution is removed.
"""

import logging
from datetime import datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from django.db import transaction

from apps.accounts.models import User
from apps.purchases.models import TokenPurchase, UserContribution

from .exceptions import (
    MeterReadingValidationError,
    PurchaseLockedError,
    PurchaseNotFoundError,
    SequentialContributionError,
)
from .meter_validation import (
    suggest_tokens_consumed,
    validate_reading_against_history,
)
from .sequential_gate import can_accept_purchase
from .snapshots import load_reading_history, purchase_snapshot

logger = logging.getLogger(__name__)


def _ensure_valid_reading(*, meter_reading, purchase_date, exclude_id=None):
    result = validate_reading_against_history(
        candidate_reading=meter_reading,
        candidate_date=purchase_date,
        kind='purchase',
        exclude_id=exclude_id,
    )
    if not result.valid:
        raise MeterReadingValidationError(
            result.error,
            suggested_minimum=result.suggested_minimum,
            suggested_maximum=result.suggested_maximum,
            context=result.context,
        )


def get_purchase_by_id(*, purchase_id: UUID) -> TokenPurchase:
    """
    Get a purchase by ID.

    Raises:
        PurchaseNotFoundError: If purchase doesn't exist
    """
    try:
        return (
            TokenPurchase.objects
            .select_related('created_by', 'contribution__user')
            .get(id=purchase_id)
        )
    except TokenPurchase.DoesNotExist:
        raise PurchaseNotFoundError(f"Purchase with ID {purchase_id} not found")


@transaction.atomic
def create_purchase(
    *,
    created_by: User,
    total_tokens: Decimal,
    total_payment: Decimal,
    meter_reading: Decimal,
    purchase_date: datetime,
    is_emergency: bool = False,
) -> TokenPurchase:
    """
    Record a new token purchase.

    Args:
        created_by: User who bought the tokens
        total_tokens: kWh bought
        total_payment: Amount paid
        meter_reading: Meter value at purchase time
        purchase_date: When the tokens were bought
        is_emergency: Whether this was an emergency top-up

    Returns:
        Created TokenPurchase instance

    Raises:
        MeterReadingValidationError: If the reading breaks chronology
        SequentialContributionError: If the purchase before this one is
            still unsettled and ``created_by`` is not an admin
    """
    purchases = list(
        TokenPurchase.objects
        .select_for_update()
        .order_by('purchase_date', 'created_at', 'id')
    )
    _ensure_valid_reading(meter_reading=meter_reading, purchase_date=purchase_date)

    settled_ids = set(UserContribution.objects.values_list('purchase_id', flat=True))
    decision = can_accept_purchase(
        purchase_date,
        created_by.is_admin,
        [purchase_snapshot(p, has_contribution=p.id in settled_ids) for p in purchases],
    )
    if not decision.can_create:
        logger.warning(
            "Sequential gate rejected purchase by %s dated %s: blocked by %s",
            created_by.email, purchase_date, decision.blocking_purchase_id,
        )
        raise SequentialContributionError(
            decision.reason,
            next_available_purchase_id=decision.blocking_purchase_id,
        )

    purchase = TokenPurchase.objects.create(
        created_by=created_by,
        total_tokens=total_tokens,
        total_payment=total_payment,
        meter_reading=meter_reading,
        purchase_date=purchase_date,
        is_emergency=is_emergency,
    )
    logger.info(
        "Purchase %s created by %s: %s kWh for %s",
        purchase.id, created_by.email, total_tokens, total_payment,
    )
    return purchase


@transaction.atomic
def update_purchase(
    *,
    purchase_id: UUID,
    total_tokens: Optional[Decimal] = None,
    total_payment: Optional[Decimal] = None,
    meter_reading: Optional[Decimal] = None,
    purchase_date: Optional[datetime] = None,
    is_emergency: Optional[bool] = None,
) -> TokenPurchase:
    """
    Update an unsettled purchase.

    The reading is re-validated against history with this purchase's own
    points excluded.

    Raises:
        PurchaseNotFoundError: If purchase doesn't exist
        PurchaseLockedError: If the purchase already has a contribution
        MeterReadingValidationError: If the new reading breaks chronology
    """
    try:
        purchase = TokenPurchase.objects.select_for_update().get(id=purchase_id)
    except TokenPurchase.DoesNotExist:
        raise PurchaseNotFoundError(f"Purchase with ID {purchase_id} not found")

    if purchase.is_settled:
        raise PurchaseLockedError(
            "Purchase has a contribution and cannot be changed. "
            "Delete the contribution first."
        )

    if total_tokens is not None:
        purchase.total_tokens = total_tokens
    if total_payment is not None:
        purchase.total_payment = total_payment
    if meter_reading is not None:
        purchase.meter_reading = meter_reading
    if purchase_date is not None:
        purchase.purchase_date = purchase_date
    if is_emergency is not None:
        purchase.is_emergency = is_emergency

    if meter_reading is not None or purchase_date is not None:
        _ensure_valid_reading(
            meter_reading=purchase.meter_reading,
            purchase_date=purchase.purchase_date,
            exclude_id=purchase.id,
        )

    purchase.save()
    logger.info("Purchase %s updated", purchase.id)
    return purchase


@transaction.atomic
def delete_purchase(*, purchase_id: UUID) -> None:
    """
    Delete an unsettled purchase.

    Raises:
        PurchaseNotFoundError: If purchase doesn't exist
        PurchaseLockedError: If the purchase already has a contribution
    """
    try:
        purchase = TokenPurchase.objects.select_for_update().get(id=purchase_id)
    except TokenPurchase.DoesNotExist:
        raise PurchaseNotFoundError(f"Purchase with ID {purchase_id} not found")

    if purchase.is_settled:
        raise PurchaseLockedError(
            "Purchase has a contribution and cannot be deleted. "
            "Delete the contribution first."
        )

    purchase.delete()
    logger.info("Purchase %s deleted", purchase_id)


def _neighbour(purchase):
    if purchase is None:
        return None
    return {
        'id': purchase.id,
        'meter_reading': purchase.meter_reading,
        'total_tokens': purchase.total_tokens,
        'purchase_date': purchase.purchase_date,
    }


def get_purchase_context(*, purchase_id: UUID) -> dict:
    """
    Describe where a purchase sits in the timeline.

    Returns the neighbouring purchases in settlement order and the
    consumption a contribution to this purchase is expected to cover.
    """
    purchase = get_purchase_by_id(purchase_id=purchase_id)
    ordered = list(TokenPurchase.objects.order_by('purchase_date', 'created_at', 'id'))
    index = next(i for i, p in enumerate(ordered) if p.id == purchase.id)

    previous_purchase = ordered[index - 1] if index > 0 else None
    next_purchase = ordered[index + 1] if index + 1 < len(ordered) else None

    return {
        'purchase_id': purchase.id,
        'is_settled': purchase.is_settled,
        'previous_purchase': _neighbour(previous_purchase),
        'next_purchase': _neighbour(next_purchase),
        'suggested_tokens_consumed': suggest_tokens_consumed(
            purchase_snapshot(purchase),
            load_reading_history(),
        ),
    }
