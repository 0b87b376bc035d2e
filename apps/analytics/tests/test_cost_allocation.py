import pytest
from decimal import Decimal
from datetime import datetime, timezone
from uuid import uuid4

from apps.analytics.cost_allocation import (
    unit_cost,
    true_cost,
    optimal_contribution,
    true_cost_breakdown,
    purchase_comparison,
    global_overpayment,
    user_overpayment,
    cost_summary,
    cost_recommendations,
    emergency_premium,
)
from apps.analytics.exceptions import CostComputationError, DuplicateSettlementError
from apps.purchases.services.snapshots import PurchaseSnapshot, ContributionSnapshot


def aware(year, month, day, hour=12):
    return datetime(year, month, day, hour, tzinfo=timezone.utc)


def make_purchase(tokens, payment, reading, when, emergency=False):
    return PurchaseSnapshot(
        id=uuid4(),
        total_tokens=Decimal(tokens),
        total_payment=Decimal(payment),
        meter_reading=Decimal(reading),
        purchase_date=when,
        is_emergency=emergency,
        has_contribution=True,
    )


def make_contribution(user_id, purchase, amount, tokens, reading=None):
    return ContributionSnapshot(
        id=uuid4(),
        user_id=user_id,
        purchase=purchase,
        contribution_amount=Decimal(amount),
        meter_reading=Decimal(reading) if reading else purchase.meter_reading,
        tokens_consumed=Decimal(tokens),
    )


@pytest.fixture
def alice():
    return uuid4()


@pytest.fixture
def bob():
    return uuid4()


@pytest.fixture
def purchase_a():
    return make_purchase('1000', '250', '5000', aware(2024, 6, 1))


@pytest.fixture
def purchase_b():
    return make_purchase('500', '150', '6100', aware(2024, 6, 15), emergency=True)


@pytest.fixture
def settled(alice, purchase_a, purchase_b):
    return [
        make_contribution(alice, purchase_a, '250', '0'),
        make_contribution(alice, purchase_b, '143', '1100'),
    ]


class TestPrimitives:
    def test_unit_cost(self, purchase_b):
        assert unit_cost(purchase_b) == Decimal('0.3')

    def test_zero_tokens_cannot_be_priced(self):
        empty = make_purchase('0', '100', '5000', aware(2024, 6, 1))

        with pytest.raises(CostComputationError):
            unit_cost(empty)

    def test_true_cost_of_first_purchase_is_zero(self, alice, purchase_a):
        contribution = make_contribution(alice, purchase_a, '250', '0')

        assert true_cost(contribution) == Decimal('0')
        assert contribution.contribution_amount - true_cost(contribution) == Decimal('250')

    def test_underpaid_emergency_purchase(self, alice, purchase_b):
        contribution = make_contribution(alice, purchase_b, '143', '1100')

        assert true_cost(contribution) == Decimal('330')
        assert contribution.contribution_amount - true_cost(contribution) == Decimal('-187')

    def test_optimal_contribution_matches_true_cost(self, alice, purchase_b):
        contribution = make_contribution(alice, purchase_b, '143', '1100')

        assert optimal_contribution(Decimal('1100'), purchase_b) == true_cost(contribution)

    def test_emergency_flag_does_not_change_price(self, alice):
        regular = make_purchase('500', '150', '6100', aware(2024, 6, 15))
        emergency = make_purchase('500', '150', '6100', aware(2024, 6, 15), emergency=True)

        assert unit_cost(regular) == unit_cost(emergency)


class TestTrueCostBreakdown:
    def test_single_member_totals(self, alice, settled):
        [row] = true_cost_breakdown(settled)

        assert row.user_id == alice
        assert row.contribution_count == 2
        assert row.total_tokens_consumed == Decimal('1100')
        assert row.total_contributed == Decimal('393')
        assert row.total_true_cost == Decimal('330')
        assert row.overpayment == Decimal('63')
        assert row.average_cost_per_kwh == Decimal('0.3')
        assert row.emergency_tokens == Decimal('1100')
        assert row.emergency_true_cost == Decimal('330')

    def test_efficiency_is_cost_over_paid(self, settled):
        [row] = true_cost_breakdown(settled)

        assert row.efficiency == Decimal('330') / Decimal('393') * 100

    def test_no_tokens_leaves_average_undefined(self, alice, purchase_a):
        [row] = true_cost_breakdown([make_contribution(alice, purchase_a, '250', '0')])

        assert row.average_cost_per_kwh is None
        assert row.efficiency == Decimal('0')

    def test_members_in_order_of_first_contribution(self, alice, bob, purchase_a, purchase_b):
        rows = true_cost_breakdown([
            make_contribution(bob, purchase_a, '250', '0'),
            make_contribution(alice, purchase_b, '143', '1100'),
        ])

        assert [r.user_id for r in rows] == [bob, alice]

    def test_duplicate_purchase_is_rejected(self, alice, bob, purchase_a):
        with pytest.raises(DuplicateSettlementError):
            true_cost_breakdown([
                make_contribution(alice, purchase_a, '250', '0'),
                make_contribution(bob, purchase_a, '100', '10'),
            ])

    def test_zero_token_purchase_cannot_be_computed(self, alice):
        broken = make_purchase('0', '100', '5000', aware(2024, 6, 1))

        with pytest.raises(CostComputationError):
            true_cost_breakdown([make_contribution(alice, broken, '100', '10')])

    def test_repeated_runs_are_identical(self, settled):
        assert true_cost_breakdown(settled) == true_cost_breakdown(list(settled))


class TestPurchaseComparison:
    def test_rows_follow_purchase_order(self, alice, purchase_a, purchase_b):
        rows = purchase_comparison([
            make_contribution(alice, purchase_b, '143', '1100'),
            make_contribution(alice, purchase_a, '250', '0'),
        ])

        assert [r.purchase_id for r in rows] == [purchase_a.id, purchase_b.id]

    def test_fair_and_difference(self, settled, purchase_b):
        rows = purchase_comparison(settled)
        emergency_row = rows[1]

        assert emergency_row.purchase_id == purchase_b.id
        assert emergency_row.is_emergency is True
        assert emergency_row.unit_cost == Decimal('0.3')
        assert emergency_row.fair_contribution == Decimal('330')
        assert emergency_row.difference == Decimal('-187')


class TestConservation:
    """Per-member figures always add up to household figures."""

    def test_member_overpayments_sum_to_global(self, alice, bob):
        purchases = [
            make_purchase('1000', '250', '5000', aware(2024, 6, 1)),
            make_purchase('500', '150', '6100', aware(2024, 6, 15), emergency=True),
            make_purchase('800', '240', '6400', aware(2024, 7, 1)),
        ]
        contributions = [
            make_contribution(alice, purchases[0], '250', '0'),
            make_contribution(bob, purchases[1], '143', '1100'),
            make_contribution(alice, purchases[2], '95.55', '300'),
        ]

        total = user_overpayment(contributions, alice) + user_overpayment(contributions, bob)
        assert total == global_overpayment(contributions)

        rows = true_cost_breakdown(contributions)
        summary = cost_summary(contributions, purchases)
        assert sum(r.total_true_cost for r in rows) == summary.total_true_cost
        assert sum(r.total_contributed for r in rows) == summary.total_contributed
        assert summary.overpayment == global_overpayment(contributions)

    def test_empty_batch_has_no_overpayment(self):
        assert global_overpayment([]) == Decimal('0')


class TestCostSummary:
    def test_emergency_impact(self, settled, purchase_a, purchase_b):
        summary = cost_summary(settled, [purchase_a, purchase_b])

        assert summary.regular_purchases == 1
        assert summary.emergency_purchases == 1
        assert summary.average_regular_rate == Decimal('0.25')
        assert summary.average_emergency_rate == Decimal('0.3')
        assert summary.emergency_tokens_consumed == Decimal('1100')
        assert summary.additional_cost_due_to_emergency == Decimal('55')
        assert summary.percentage_increase == Decimal('20')

    def test_without_emergency_purchases(self, alice, purchase_a):
        contributions = [make_contribution(alice, purchase_a, '250', '0')]
        summary = cost_summary(contributions, [purchase_a])

        assert summary.average_emergency_rate is None
        assert summary.additional_cost_due_to_emergency == Decimal('0')
        assert summary.percentage_increase is None

    def test_empty_contributions_cannot_be_summarised(self, purchase_a):
        with pytest.raises(CostComputationError):
            cost_summary([], [purchase_a])


class TestCostRecommendations:
    """Efficiency rating and advice derived from a member's breakdown."""

    def recommend(self, *contributions):
        [breakdown] = true_cost_breakdown(contributions)
        return cost_recommendations(breakdown)

    def test_exact_payment_is_excellent(self, alice, purchase_a):
        result = self.recommend(make_contribution(alice, purchase_a, '100', '400'))

        assert result.efficiency_rating == 'excellent'
        assert result.alignment == Decimal('100')
        assert result.potential_savings == Decimal('0')
        assert len(result.recommendations) == 1

    def test_small_overpayment_is_good_with_advice(self, alice, purchase_a):
        result = self.recommend(make_contribution(alice, purchase_a, '115', '400'))

        assert result.efficiency_rating == 'good'
        assert result.potential_savings == Decimal('0')
        assert result.recommendations[-1].startswith('You are overpaying by 15.00.')

    def test_overpayment_within_margin_gets_no_balance_advice(self, alice, purchase_a):
        result = self.recommend(make_contribution(alice, purchase_a, '110', '400'))

        assert result.efficiency_rating == 'good'
        assert result.recommendations == ['Your payments are reasonably aligned with your usage.']

    def test_fair_recovers_half(self, alice, purchase_a):
        result = self.recommend(make_contribution(alice, purchase_a, '125', '400'))

        assert result.efficiency_rating == 'fair'
        assert result.potential_savings == Decimal('12.5')

    def test_underpayment_is_not_rated_excellent(self, bob, purchase_b):
        """143 paid for 1100 kWh costing 330."""
        result = self.recommend(make_contribution(bob, purchase_b, '143', '1100'))

        assert result.efficiency_rating == 'poor'
        assert result.potential_savings == Decimal('149.6')
        assert result.recommendations[-1].startswith('You are underpaying by 187.00.')

    def test_emergency_premium_over_own_regular_rate(self, alice, purchase_a):
        expensive = make_purchase('500', '200', '6100', aware(2024, 6, 15), emergency=True)
        result = self.recommend(
            make_contribution(alice, purchase_a, '100', '400'),
            make_contribution(alice, expensive, '200', '500'),
        )

        assert result.emergency_premium == Decimal('75')
        assert result.emergency_impact == Decimal('25')
        assert any('increased your costs by 25.0%' in r for r in result.recommendations)

    def test_mild_emergency_premium_gets_no_advice(self, alice, purchase_a, purchase_b):
        result = self.recommend(
            make_contribution(alice, purchase_a, '100', '400'),
            make_contribution(alice, purchase_b, '150', '500'),
        )

        assert result.emergency_premium == Decimal('25')
        assert result.emergency_impact == Decimal('10')
        assert not any('Emergency' in r for r in result.recommendations)

    def test_emergency_only_has_no_premium(self, bob, purchase_b):
        [breakdown] = true_cost_breakdown([make_contribution(bob, purchase_b, '150', '500')])

        assert emergency_premium(breakdown) == Decimal('0')

    def test_nothing_paid_nothing_used(self, alice, purchase_a):
        result = self.recommend(make_contribution(alice, purchase_a, '0', '0'))

        assert result.alignment is None
        assert result.efficiency_rating == 'excellent'

    def test_nothing_paid_for_usage_is_poor(self, alice, purchase_a):
        result = self.recommend(make_contribution(alice, purchase_a, '0', '400'))

        assert result.efficiency_rating == 'poor'
        assert result.potential_savings == Decimal('80.0')
