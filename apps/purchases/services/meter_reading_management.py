"""
Standalone meter reading service.

Readings taken between purchases give the balance projector an up to date
view of the meter.
"""

import logging
from datetime import datetime
from decimal import Decimal
from typing import Optional

from django.db import transaction

from apps.accounts.models import User
from apps.purchases.models import MeterReading

from .exceptions import MeterReadingValidationError
from .meter_validation import validate_reading_against_history
from .snapshots import load_reading_history

logger = logging.getLogger(__name__)


@transaction.atomic
def create_meter_reading(
    *,
    user: User,
    reading: Decimal,
    reading_date: datetime,
    notes: str = '',
) -> MeterReading:
    """
    Record a meter reading.

    Raises:
        MeterReadingValidationError: If the reading breaks chronology
    """
    result = validate_reading_against_history(
        candidate_reading=reading,
        candidate_date=reading_date,
        kind='reading',
    )
    if not result.valid:
        raise MeterReadingValidationError(
            result.error,
            suggested_minimum=result.suggested_minimum,
            suggested_maximum=result.suggested_maximum,
            context=result.context,
        )

    meter_reading = MeterReading.objects.create(
        user=user,
        reading=reading,
        reading_date=reading_date,
        notes=notes,
    )
    logger.info("Meter reading %s kWh recorded by %s", reading, user.email)
    return meter_reading


def get_latest_meter_reading() -> Optional[MeterReading]:
    """Return the highest reading on the most recent reading date, or None."""
    latest = MeterReading.objects.order_by('-reading_date').first()
    if latest is None:
        return None
    return (
        MeterReading.objects
        .select_related('user')
        .filter(reading_date=latest.reading_date)
        .order_by('-reading')
        .first()
    )


def get_current_meter_value() -> Optional[Decimal]:
    """
    Most recent known meter value.

    Looks at every dated point (purchases, contributions and standalone
    readings) and returns the highest value on the most recent date, so an
    old standalone reading never hides a newer purchase.
    """
    history = load_reading_history()
    if not history:
        return None
    latest_date = max(point.date for point in history)
    return max(point.value for point in history if point.date == latest_date)
