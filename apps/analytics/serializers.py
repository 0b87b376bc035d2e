"""
Serializers for analytics app.

This module contains:
1. Input serializers - Query parameter validation
2. Response serializers - Output formatting of engine results

Engine results are exact ``Decimal`` values. They are rounded here and
nowhere else: money to 2 decimal places, rates to 4.

Input Serializers:
    AnalyticsUserQuerySerializer - Optional member filter and period
    CostBreakdownQuerySerializer - Adds the strict summary flag
    RunningBalanceQuerySerializer - Optional meter value override

Response Serializers:
    CostBreakdownResponseSerializer - Per-member costs plus summary
    PurchaseComparisonSerializer - Actual vs fair per purchase
    RunningBalanceSerializer - Projected balance
    UsagePredictionSerializer - Monthly trend and forecast
"""

from rest_framework import serializers

from apps.purchases.serializers import UserMinimalSerializer


def money_field(**kwargs):
    return serializers.DecimalField(max_digits=None, decimal_places=2, read_only=True, **kwargs)


def rate_field(**kwargs):
    return serializers.DecimalField(max_digits=None, decimal_places=4, read_only=True, **kwargs)


def kwh_field(**kwargs):
    return serializers.DecimalField(max_digits=None, decimal_places=4, read_only=True, **kwargs)


# =============================================================================
# Input Serializers (Query Parameter Validation)
# =============================================================================

class AnalyticsUserQuerySerializer(serializers.Serializer):
    """
    Validate the optional member filter and period.

    Used by: cost_breakdown, purchase_comparison, usage_prediction

    Query Parameters:
        user_id (UUID): Restrict results to one member
        date_from (date): Only purchases dated on or after this date
        date_to (date): Only purchases dated on or before this date
    """

    user_id = serializers.UUIDField(required=False)
    date_from = serializers.DateField(required=False)
    date_to = serializers.DateField(required=False)

    def validate(self, attrs):
        """Validate date range."""
        date_from = attrs.get('date_from')
        date_to = attrs.get('date_to')

        if date_from and date_to:
            if date_from > date_to:
                raise serializers.ValidationError({
                    'date_to': 'End date must be after start date'
                })

        return attrs


class CostBreakdownQuerySerializer(AnalyticsUserQuerySerializer):
    """
    Validate query parameters for the cost breakdown.

    Query Parameters:
        require_summary (bool): Answer 422 instead of a null summary when
            nothing in the period is settled
    """

    require_summary = serializers.BooleanField(default=False)


class RunningBalanceQuerySerializer(serializers.Serializer):
    """
    Validate query parameters for running balance endpoints.

    Query Parameters:
        current_reading (Decimal): Meter value to project to. Defaults to
            the latest recorded meter reading.
        scope (str): 'user' for the requesting member, 'household' for
            everyone. Ignored when a user id is in the URL.
    """

    current_reading = serializers.DecimalField(
        max_digits=12,
        decimal_places=2,
        min_value=0,
        required=False,
    )
    scope = serializers.ChoiceField(
        choices=('user', 'household'),
        default='user',
    )


# =============================================================================
# Response Serializers
# =============================================================================

class CostBreakdownSerializer(serializers.Serializer):
    """Totals of a single member."""
    contribution_count = serializers.IntegerField(read_only=True)
    total_tokens_consumed = kwh_field()
    total_contributed = money_field()
    total_true_cost = money_field()
    overpayment = money_field()
    average_cost_per_kwh = rate_field(allow_null=True)
    efficiency = money_field(allow_null=True)
    emergency_tokens = kwh_field()
    emergency_true_cost = money_field()


class CostRecommendationsSerializer(serializers.Serializer):
    """Efficiency rating and advice for a single member."""
    efficiency_rating = serializers.CharField(read_only=True)
    alignment = money_field(allow_null=True)
    potential_savings = money_field()
    emergency_premium = money_field()
    emergency_impact = money_field(allow_null=True)
    recommendations = serializers.ListField(child=serializers.CharField(), read_only=True)


class UserCostBreakdownSerializer(serializers.Serializer):
    user = UserMinimalSerializer(allow_null=True)
    breakdown = CostBreakdownSerializer()
    recommendations = CostRecommendationsSerializer()


class CostSummarySerializer(serializers.Serializer):
    """Household totals and emergency impact."""
    total_tokens_consumed = kwh_field()
    total_contributed = money_field()
    total_true_cost = money_field()
    overpayment = money_field()
    average_cost_per_kwh = rate_field(allow_null=True)
    efficiency = money_field(allow_null=True)
    regular_purchases = serializers.IntegerField(read_only=True)
    emergency_purchases = serializers.IntegerField(read_only=True)
    average_regular_rate = rate_field(allow_null=True)
    average_emergency_rate = rate_field(allow_null=True)
    emergency_tokens_consumed = kwh_field()
    additional_cost_due_to_emergency = money_field()
    percentage_increase = money_field(allow_null=True)


class CostBreakdownResponseSerializer(serializers.Serializer):
    users = UserCostBreakdownSerializer(many=True)
    summary = CostSummarySerializer(allow_null=True)


class PurchaseComparisonSerializer(serializers.Serializer):
    """One settled purchase: what was paid against what was fair."""
    purchase_id = serializers.UUIDField(read_only=True)
    purchase_date = serializers.DateTimeField(read_only=True)
    is_emergency = serializers.BooleanField(read_only=True)
    unit_cost = rate_field()
    tokens_consumed = kwh_field()
    actual_contribution = money_field()
    fair_contribution = money_field()
    difference = money_field()


class BalanceThresholdsSerializer(serializers.Serializer):
    healthy_tolerance = money_field()
    critical_threshold = money_field()


class RunningBalanceSerializer(serializers.Serializer):
    """Balance projected to the current meter reading."""
    user_id = serializers.UUIDField(read_only=True, allow_null=True)
    contribution_balance = money_field()
    historical_cost_per_kwh = rate_field()
    current_reading = money_field()
    reference_reading = money_field(allow_null=True)
    tokens_consumed_since_last_contribution = kwh_field()
    anticipated_payment = money_field()
    household_tokens_since_last_contribution = kwh_field()
    anticipated_others_payment = money_field()
    anticipated_token_purchase = money_field()
    status = serializers.CharField(read_only=True)
    thresholds = BalanceThresholdsSerializer(read_only=True)


class MonthlyUsageSerializer(serializers.Serializer):
    month = serializers.CharField(read_only=True)
    tokens_consumed = kwh_field()
    contributed = money_field()
    emergency_tokens = kwh_field()


class UsagePredictionSerializer(serializers.Serializer):
    """Monthly consumption series and next-month forecast."""
    user_id = serializers.UUIDField(read_only=True, allow_null=True)
    monthly_usage = MonthlyUsageSerializer(many=True, read_only=True)
    months_analyzed = serializers.IntegerField(read_only=True)
    total_usage = kwh_field()
    average_monthly_usage = kwh_field()
    slope = kwh_field()
    intercept = kwh_field()
    trend = serializers.CharField(read_only=True)
    predicted_next_month = kwh_field()
    confidence = serializers.CharField(read_only=True)
    recommended_purchase = kwh_field()


class ErrorSerializer(serializers.Serializer):
    """Standard error response serializer."""
    error = serializers.CharField()
    code = serializers.CharField()
