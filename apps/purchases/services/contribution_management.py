"""
Contribution management service.

A contribution settles exactly one purchase. Creation runs the sequential
gate, the meter reading checks and the tokens-consumed sanity check inside
one transaction while the purchase rows are locked; the one-to-one
constraint on ``purchase`` is the final guard against a concurrent insert.
"""

import logging
from decimal import Decimal
from typing import Optional
from uuid import UUID

from django.conf import settings
from django.db import transaction, IntegrityError

from apps.accounts.models import User
from apps.purchases.models import TokenPurchase, UserContribution

from .exceptions import (
    ContributionNotFoundError,
    DuplicateContributionError,
    InconsistentConsumptionError,
    InsufficientPermissionsError,
    MeterReadingValidationError,
    PurchaseNotFoundError,
    SequentialContributionError,
)
from .meter_validation import (
    DEFAULT_TOKENS_TOLERANCE,
    check_tokens_consumed,
    validate_contribution_reading,
    validate_reading_against_history,
)
from .sequential_gate import can_accept_contribution
from .snapshots import purchase_snapshot

logger = logging.getLogger(__name__)


def _tokens_tolerance():
    return Decimal(str(getattr(settings, 'TOKENS_CONSUMED_TOLERANCE', DEFAULT_TOKENS_TOLERANCE)))


def _raise_for(result):
    if not result.valid:
        raise MeterReadingValidationError(
            result.error,
            suggested_minimum=result.suggested_minimum,
            suggested_maximum=result.suggested_maximum,
            context=result.context,
        )


def _ensure_readings(*, purchase, meter_reading, tokens_consumed):
    _raise_for(validate_contribution_reading(meter_reading, purchase))
    _raise_for(validate_reading_against_history(
        candidate_reading=meter_reading,
        candidate_date=purchase.purchase_date,
        kind='contribution',
        exclude_id=purchase.id,
    ))

    if not check_tokens_consumed(tokens_consumed, meter_reading, _tokens_tolerance()):
        raise InconsistentConsumptionError(
            f"Tokens consumed ({tokens_consumed} kWh) is not plausible "
            f"for a meter reading of {meter_reading} kWh."
        )


def get_contribution_by_id(*, contribution_id: UUID) -> UserContribution:
    """
    Get a contribution by ID.

    Raises:
        ContributionNotFoundError: If contribution doesn't exist
    """
    try:
        return (
            UserContribution.objects
            .select_related('user', 'purchase')
            .get(id=contribution_id)
        )
    except UserContribution.DoesNotExist:
        raise ContributionNotFoundError(f"Contribution with ID {contribution_id} not found")


def create_contribution(
    *,
    actor: User,
    purchase_id: UUID,
    contribution_amount: Decimal,
    meter_reading: Decimal,
    tokens_consumed: Decimal,
    user: Optional[User] = None,
) -> UserContribution:
    """
    Settle a purchase with a contribution.

    Steps, all inside one transaction:
    1. Lock every purchase row so concurrent settlements queue up
    2. Run the sequential gate
    3. Validate the meter reading and tokens consumed
    4. Insert, relying on the one-to-one constraint for uniqueness

    Args:
        actor: User submitting the request
        purchase_id: Purchase being settled
        contribution_amount: Amount paid
        meter_reading: Meter value at settlement
        tokens_consumed: kWh covered by this contribution
        user: Member the contribution is recorded for; only admins may
            record on behalf of someone else

    Returns:
        Created UserContribution instance

    Raises:
        PurchaseNotFoundError: If purchase doesn't exist
        InsufficientPermissionsError: If a non-admin records for another member
        DuplicateContributionError: If the purchase is already settled
        SequentialContributionError: If an older purchase is still unsettled
        MeterReadingValidationError: If the reading breaks chronology
        InconsistentConsumptionError: If tokens consumed is implausible
    """
    contributor = user or actor
    if contributor.pk != actor.pk and not actor.is_admin:
        raise InsufficientPermissionsError(
            "Only admins can record contributions for other members"
        )

    try:
        with transaction.atomic():
            purchases = list(
                TokenPurchase.objects
                .select_for_update()
                .order_by('purchase_date', 'created_at', 'id')
            )
            settled_ids = set(
                UserContribution.objects.values_list('purchase_id', flat=True)
            )
            snapshots = [
                purchase_snapshot(p, has_contribution=p.id in settled_ids)
                for p in purchases
            ]

            purchase = next((p for p in purchases if str(p.id) == str(purchase_id)), None)
            if purchase is None:
                raise PurchaseNotFoundError(f"Purchase with ID {purchase_id} not found")

            if purchase.id in settled_ids:
                raise DuplicateContributionError(
                    "Contribution already exists for this purchase"
                )

            decision = can_accept_contribution(purchase.id, actor.is_admin, snapshots)
            if not decision.can_contribute:
                logger.warning(
                    "Sequential gate rejected contribution by %s to purchase %s: %s",
                    actor.email, purchase.id, decision.reason,
                )
                raise SequentialContributionError(
                    decision.reason,
                    next_available_purchase_id=decision.next_available_purchase_id,
                )

            _ensure_readings(
                purchase=purchase,
                meter_reading=meter_reading,
                tokens_consumed=tokens_consumed,
            )

            contribution = UserContribution.objects.create(
                purchase=purchase,
                user=contributor,
                contribution_amount=contribution_amount,
                meter_reading=meter_reading,
                tokens_consumed=tokens_consumed,
            )
    except IntegrityError:
        raise DuplicateContributionError("Contribution already exists for this purchase")

    logger.info(
        "Contribution %s recorded for purchase %s by %s (%s kWh, %s)",
        contribution.id, purchase.id, contributor.email, tokens_consumed, contribution_amount,
    )
    return contribution


@transaction.atomic
def update_contribution(
    *,
    contribution_id: UUID,
    actor: User,
    contribution_amount: Optional[Decimal] = None,
    meter_reading: Optional[Decimal] = None,
    tokens_consumed: Optional[Decimal] = None,
) -> UserContribution:
    """
    Correct an existing contribution (admin only).

    Raises:
        InsufficientPermissionsError: If actor is not an admin
        ContributionNotFoundError: If contribution doesn't exist
        MeterReadingValidationError: If the new reading breaks chronology
        InconsistentConsumptionError: If tokens consumed is implausible
    """
    if not actor.is_admin:
        raise InsufficientPermissionsError("Only admins can edit contributions")

    try:
        contribution = (
            UserContribution.objects
            .select_for_update()
            .select_related('purchase')
            .get(id=contribution_id)
        )
    except UserContribution.DoesNotExist:
        raise ContributionNotFoundError(f"Contribution with ID {contribution_id} not found")

    if contribution_amount is not None:
        contribution.contribution_amount = contribution_amount
    if meter_reading is not None:
        contribution.meter_reading = meter_reading
    if tokens_consumed is not None:
        contribution.tokens_consumed = tokens_consumed

    _ensure_readings(
        purchase=contribution.purchase,
        meter_reading=contribution.meter_reading,
        tokens_consumed=contribution.tokens_consumed,
    )

    contribution.save()
    logger.info("Contribution %s updated by %s", contribution.id, actor.email)
    return contribution


@transaction.atomic
def delete_contribution(*, contribution_id: UUID, actor: User) -> None:
    """
    Remove a contribution (admin only), reopening its purchase for settlement.

    Raises:
        InsufficientPermissionsError: If actor is not an admin
        ContributionNotFoundError: If contribution doesn't exist
    """
    if not actor.is_admin:
        raise InsufficientPermissionsError("Only admins can delete contributions")

    try:
        contribution = UserContribution.objects.select_for_update().get(id=contribution_id)
    except UserContribution.DoesNotExist:
        raise ContributionNotFoundError(f"Contribution with ID {contribution_id} not found")

    purchase_id = contribution.purchase_id
    contribution.delete()
    logger.info(
        "Contribution %s deleted by %s; purchase %s reopened",
        contribution_id, actor.email, purchase_id,
    )
