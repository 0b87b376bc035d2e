"""
Meter reading validation service.

A prepaid meter only ever counts up, so every reading recorded against a
purchase, a contribution or on its own must fit between the readings taken
before it and the readings taken after it.

Contribution readings are dated by their purchase's date, so a restored or
back-filled contribution lands where its purchase sits in the timeline.
"""

import logging
import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Iterable, Optional
from uuid import UUID

from .snapshots import ReadingPoint, load_reading_history

logger = logging.getLogger(__name__)

READING_KINDS = ('purchase', 'contribution', 'reading')

DEFAULT_TOKENS_TOLERANCE = Decimal('1.1')
DEFAULT_DAILY_KWH = Decimal('12')
MINIMUM_SUGGESTED_INCREMENT = Decimal('10')
FIRST_READING_SUGGESTION = Decimal('5000')


@dataclass(frozen=True)
class MeterReadingValidation:
    valid: bool
    error: Optional[str] = None
    suggested_minimum: Optional[Decimal] = None
    suggested_maximum: Optional[Decimal] = None
    context: Optional[str] = None
    last_reading: Optional[ReadingPoint] = None


@dataclass(frozen=True)
class MeterReadingSuggestion:
    minimum: Decimal
    suggestion: Decimal
    context: str


def format_kwh(value) -> str:
    """Render a reading without trailing zeros or exponent notation."""
    value = Decimal(value)
    if value == value.to_integral_value():
        return str(value.quantize(Decimal('1')))
    return format(value.normalize(), 'f')


def _describe(point: ReadingPoint, prefix: str) -> str:
    return f"{prefix} {point.source} recorded {format_kwh(point.value)} kWh on {point.date:%Y-%m-%d}"


def _relevant_points(history, exclude_id):
    if exclude_id is None:
        return list(history)
    return [p for p in history if p.record_id != exclude_id]


def validate_meter_reading(
    candidate_reading: Decimal,
    candidate_date: datetime,
    kind: str,
    history: Iterable[ReadingPoint],
    exclude_id: Optional[UUID] = None,
) -> MeterReadingValidation:
    """
    Check a candidate reading against the recorded reading history.

    The candidate must be at least the highest reading recorded strictly
    before ``candidate_date`` (equal is fine, the meter may not have moved)
    and at most the lowest reading recorded strictly after it.

    Args:
        candidate_reading: Submitted meter value in kWh
        candidate_date: When the reading applies (purchase date for
            purchases and contributions)
        kind: 'purchase', 'contribution' or 'reading'
        history: Known reading points
        exclude_id: Record id whose points are ignored, used when an
            existing purchase is being edited

    Returns:
        MeterReadingValidation describing the outcome
    """
    if kind not in READING_KINDS:
        raise ValueError(f"Unknown reading kind: {kind}")

    candidate_reading = Decimal(candidate_reading)
    if candidate_reading < 0:
        return MeterReadingValidation(
            valid=False,
            error="Meter reading cannot be negative.",
            suggested_minimum=Decimal('0'),
        )

    points = _relevant_points(history, exclude_id)
    prior = [p for p in points if p.date < candidate_date]
    later = [p for p in points if p.date > candidate_date]

    last = max(prior, key=lambda p: (p.value, p.date)) if prior else None

    if last is not None and candidate_reading < last.value:
        return MeterReadingValidation(
            valid=False,
            error=(
                f"Meter reading cannot decrease. The previous {last.source} on "
                f"{last.date:%Y-%m-%d} recorded {format_kwh(last.value)} kWh."
            ),
            suggested_minimum=last.value,
            context=_describe(last, 'previous'),
            last_reading=last,
        )

    if later:
        lowest_later = min(later, key=lambda p: (p.value, p.date))
        if lowest_later.value < candidate_reading:
            return MeterReadingValidation(
                valid=False,
                error=(
                    f"Meter reading is higher than a later {lowest_later.source} on "
                    f"{lowest_later.date:%Y-%m-%d} which recorded "
                    f"{format_kwh(lowest_later.value)} kWh."
                ),
                suggested_minimum=last.value if last is not None else None,
                suggested_maximum=lowest_later.value,
                context=_describe(lowest_later, 'later'),
                last_reading=last,
            )

    return MeterReadingValidation(
        valid=True,
        suggested_minimum=last.value if last is not None else None,
        context=_describe(last, 'previous') if last is not None else None,
        last_reading=last,
    )


def validate_reading_against_history(
    *,
    candidate_reading: Decimal,
    candidate_date: datetime,
    kind: str,
    exclude_id: Optional[UUID] = None,
) -> MeterReadingValidation:
    """Validate a reading against every purchase, contribution and standalone reading on record."""
    result = validate_meter_reading(
        candidate_reading,
        candidate_date,
        kind,
        load_reading_history(),
        exclude_id=exclude_id,
    )
    if not result.valid:
        logger.warning(
            "Rejected %s meter reading %s for %s: %s",
            kind, candidate_reading, candidate_date, result.error,
        )
    return result


def validate_contribution_reading(reading: Decimal, purchase) -> MeterReadingValidation:
    """A contribution's reading cannot be below the reading of the purchase it settles."""
    reading = Decimal(reading)
    if reading < purchase.meter_reading:
        return MeterReadingValidation(
            valid=False,
            error=(
                f"Contribution meter reading must be at least the purchase meter reading "
                f"of {format_kwh(purchase.meter_reading)} kWh. "
                f"Current: {format_kwh(reading)} kWh."
            ),
            suggested_minimum=purchase.meter_reading,
            context=f"purchase recorded {format_kwh(purchase.meter_reading)} kWh on {purchase.purchase_date:%Y-%m-%d}",
        )
    return MeterReadingValidation(valid=True, suggested_minimum=purchase.meter_reading)


def check_tokens_consumed(
    tokens_consumed: Decimal,
    meter_reading: Decimal,
    tolerance: Decimal = DEFAULT_TOKENS_TOLERANCE,
) -> bool:
    """
    Loose sanity check on a contribution's consumption figure.

    Tokens consumed can never be negative and should not exceed the meter
    reading itself by more than ``tolerance``.
    """
    tokens_consumed = Decimal(tokens_consumed)
    if tokens_consumed < 0:
        return False
    return tokens_consumed <= Decimal(meter_reading) * Decimal(str(tolerance))


def suggest_meter_reading(
    candidate_date: datetime,
    history: Iterable[ReadingPoint],
    exclude_id: Optional[UUID] = None,
    daily_kwh: Decimal = DEFAULT_DAILY_KWH,
) -> MeterReadingSuggestion:
    """Propose a plausible reading for a new entry dated ``candidate_date``."""
    points = _relevant_points(history, exclude_id)
    prior = [p for p in points if p.date < candidate_date]

    if not prior:
        return MeterReadingSuggestion(
            minimum=Decimal('0'),
            suggestion=FIRST_READING_SUGGESTION,
            context="No previous meter readings found. Enter your current meter reading.",
        )

    last = max(prior, key=lambda p: (p.value, p.date))
    days = math.ceil((candidate_date - last.date) / timedelta(days=1))
    increment = max(Decimal(days) * Decimal(str(daily_kwh)), MINIMUM_SUGGESTED_INCREMENT)

    return MeterReadingSuggestion(
        minimum=last.value,
        suggestion=last.value + increment,
        context=(
            f"Last reading was {format_kwh(last.value)} kWh on {last.date:%Y-%m-%d} "
            f"({last.source}). Suggested: ~{format_kwh(increment)} kWh increase."
        ),
    )


def suggest_tokens_consumed(purchase, history: Iterable[ReadingPoint]) -> Decimal:
    """
    Estimate consumption settled by a purchase's contribution.

    This is the distance between the purchase's own reading and the highest
    reading taken before it; the first purchase has nothing to compare
    against and yields 0.
    """
    prior = [
        p for p in history
        if p.date < purchase.purchase_date and p.record_id != purchase.id
    ]
    if not prior:
        return Decimal('0')
    highest = max(p.value for p in prior)
    return max(Decimal('0'), purchase.meter_reading - highest)
