"""
Analytics Module
=================

This module loads the household's purchases and contributions from the
database and feeds them to the pure cost allocation and balance projection
engines. It powers the analytics endpoints.

Classes:
    AnalyticsQueries: Static methods for each analytics query.

Key Features:
    - Per-member true cost breakdown with emergency impact summary
    - Actual against fair contribution per settled purchase
    - Running balance projected to the current meter reading
    - Next-month usage prediction from the monthly consumption trend

Example:
    Getting a member's running balance::

        from apps.analytics.analytics import AnalyticsQueries

        balance = AnalyticsQueries.running_balance(user_id=user.id)
        print(f"Balance: {balance.contribution_balance} ({balance.status})")
        print(f"Anticipated payment: {balance.anticipated_payment}")

Note:
    This module is read-only and doesn't modify any data. All methods
    are static and can be called without instantiation.
"""

import logging
from decimal import Decimal

from django.conf import settings

from apps.accounts.models import User
from apps.purchases.services import get_current_meter_value
from apps.purchases.services.snapshots import (
    load_contribution_snapshots,
    load_purchase_snapshots,
)

from .balance_projection import BalanceThresholds, running_balance
from .consumption_trends import predict_usage
from .cost_allocation import (
    cost_recommendations,
    cost_summary,
    purchase_comparison,
    true_cost_breakdown,
)
from .exceptions import CostComputationError, UserNotFoundError

logger = logging.getLogger(__name__)


def thresholds_from_settings():
    """Build balance thresholds from ``BALANCE_*`` settings."""
    return BalanceThresholds(
        healthy_tolerance=Decimal(str(getattr(settings, 'BALANCE_HEALTHY_TOLERANCE', 5))),
        critical_threshold=Decimal(str(getattr(settings, 'BALANCE_CRITICAL_THRESHOLD', 20))),
    )


class AnalyticsQueries:
    """
    Read-side queries for analytics endpoints.

    Each method loads snapshots once (two queries at most) and runs the
    engine over them. Results are the engine's dataclasses; rounding to
    2 dp for money and 4 dp for rates is left to the response serializers.

    Methods:
        cost_breakdown: Per-member true cost with household summary.
        purchase_comparison: Actual against fair contribution per purchase.
        running_balance: Balance projected to the current meter reading.
        usage_prediction: Next-month consumption forecast.
    """

    @staticmethod
    def _ensure_user(user_id):
        if user_id is not None and not User.objects.filter(id=user_id).exists():
            raise UserNotFoundError('User not found')

    @staticmethod
    def cost_breakdown(user_id=None, date_from=None, date_to=None, require_summary=False):
        """
        Compute what every member's consumption truly cost against what
        they paid.

        Args:
            user_id (UUID, optional): Restrict the per-member rows to one
                member. The household summary always covers everyone.
            date_from (date, optional): Only purchases dated on or after.
            date_to (date, optional): Only purchases dated on or before.
            require_summary (bool): Fail instead of returning a null
                summary when nothing in range is settled.

        Returns:
            dict: A dictionary containing:
                - users (list[dict]): One entry per member with a ``user``
                  object, a ``breakdown`` (CostBreakdown) and its
                  ``recommendations`` (CostRecommendations).
                - summary (CostSummary | None): Household totals and the
                  emergency impact, None when nothing is settled yet.

        Raises:
            CostComputationError: If a settled purchase carries no tokens,
                or ``require_summary`` is set and nothing is settled.
            UserNotFoundError: If ``user_id`` does not exist.

        Note:
            Users are listed in order of their first contribution, which
            follows purchase order.
        """
        AnalyticsQueries._ensure_user(user_id)

        contributions = load_contribution_snapshots(date_from=date_from, date_to=date_to)
        breakdown = true_cost_breakdown(contributions)
        if user_id is not None:
            breakdown = [b for b in breakdown if str(b.user_id) == str(user_id)]

        users = User.objects.in_bulk([b.user_id for b in breakdown])
        summary = None
        if contributions or require_summary:
            summary = cost_summary(
                contributions,
                load_purchase_snapshots(date_from=date_from, date_to=date_to),
            )

        return {
            'users': [
                {
                    'user': users.get(b.user_id),
                    'breakdown': b,
                    'recommendations': cost_recommendations(b),
                }
                for b in breakdown
            ],
            'summary': summary,
        }

    @staticmethod
    def purchase_comparison(user_id=None, date_from=None, date_to=None):
        """
        Compare actual and fair contribution for each settled purchase.

        Args:
            user_id (UUID, optional): Only rows settled by this member.
            date_from (date, optional): Only purchases dated on or after.
            date_to (date, optional): Only purchases dated on or before.

        Returns:
            list[PurchaseComparisonRow]: In purchase order.
        """
        AnalyticsQueries._ensure_user(user_id)
        return purchase_comparison(load_contribution_snapshots(
            user_id=user_id, date_from=date_from, date_to=date_to,
        ))

    @staticmethod
    def running_balance(user_id=None, current_reading=None):
        """
        Project a member's balance (or the household's) to the current
        meter reading.

        Args:
            user_id (UUID, optional): Member to project for. None covers
                the whole household.
            current_reading (Decimal, optional): Meter value to project to.
                Defaults to the highest value on the most recent date among
                purchases, contributions and standalone readings.

        Returns:
            RunningBalance

        Raises:
            CostComputationError: If no purchases exist, a purchase carries
                no tokens, or no meter value is known.
            UserNotFoundError: If ``user_id`` does not exist.

        Example:
            ::

                balance = AnalyticsQueries.running_balance(user.id)
                if balance.status == 'critical':
                    notify(user, balance.anticipated_payment)
        """
        AnalyticsQueries._ensure_user(user_id)

        if current_reading is None:
            current_reading = get_current_meter_value()
        if current_reading is None:
            raise CostComputationError('No meter reading recorded; balance cannot be projected')

        result = running_balance(
            contributions=load_contribution_snapshots(),
            purchases=load_purchase_snapshots(),
            current_reading=current_reading,
            user_id=user_id,
            thresholds=thresholds_from_settings(),
        )
        if result.status != 'healthy':
            logger.info(
                "Balance for %s is %s: %s",
                user_id or 'household', result.status, result.contribution_balance,
            )
        return result

    @staticmethod
    def usage_prediction(user_id=None, date_from=None, date_to=None):
        """Forecast next month's consumption for a member or the household."""
        AnalyticsQueries._ensure_user(user_id)
        contributions = load_contribution_snapshots(date_from=date_from, date_to=date_to)
        return predict_usage(contributions, user_id=user_id)
