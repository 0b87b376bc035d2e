import pytest
from decimal import Decimal
from datetime import datetime, timezone
from uuid import uuid4

from apps.analytics.balance_projection import (
    BalanceThresholds,
    balance_status,
    historical_cost_per_kwh,
    running_balance,
)
from apps.analytics.exceptions import CostComputationError, DuplicateSettlementError
from apps.purchases.services.snapshots import PurchaseSnapshot, ContributionSnapshot


def aware(year, month, day, hour=12):
    return datetime(year, month, day, hour, tzinfo=timezone.utc)


def make_purchase(tokens, payment, reading, when):
    return PurchaseSnapshot(
        id=uuid4(),
        total_tokens=Decimal(tokens),
        total_payment=Decimal(payment),
        meter_reading=Decimal(reading),
        purchase_date=when,
        has_contribution=True,
    )


def make_contribution(user_id, purchase, amount, tokens, reading):
    return ContributionSnapshot(
        id=uuid4(),
        user_id=user_id,
        purchase=purchase,
        contribution_amount=Decimal(amount),
        meter_reading=Decimal(reading),
        tokens_consumed=Decimal(tokens),
    )


class TestBalanceStatus:
    @pytest.mark.parametrize('balance,expected', [
        ('10', 'healthy'),
        ('0', 'healthy'),
        ('-5', 'healthy'),
        ('-5.01', 'warning'),
        ('-20', 'warning'),
        ('-20.01', 'critical'),
    ])
    def test_default_bands(self, balance, expected):
        assert balance_status(Decimal(balance)) == expected

    def test_custom_thresholds(self):
        strict = BalanceThresholds(healthy_tolerance=Decimal('0'), critical_threshold=Decimal('1'))

        assert balance_status(Decimal('-0.5'), strict) == 'warning'
        assert balance_status(Decimal('-2'), strict) == 'critical'


class TestHistoricalRate:
    def test_weighted_by_tokens(self):
        purchases = [
            make_purchase('1000', '250', '5000', aware(2024, 6, 1)),
            make_purchase('500', '150', '6100', aware(2024, 6, 15)),
        ]

        assert historical_cost_per_kwh(purchases) == Decimal('400') / Decimal('1500')

    def test_no_purchases(self):
        with pytest.raises(CostComputationError):
            historical_cost_per_kwh([])


class TestRunningBalance:
    def test_anticipated_payment(self):
        """Balance -50 with 100 kWh since at 0.3 per kWh owes 80."""
        user = uuid4()
        purchase = make_purchase('1000', '300', '4900', aware(2024, 6, 1))
        contribution = make_contribution(user, purchase, '100', '500', '5000')

        result = running_balance([contribution], [purchase], Decimal('5100'), user_id=user)

        assert result.contribution_balance == Decimal('-50')
        assert result.historical_cost_per_kwh == Decimal('0.3')
        assert result.tokens_consumed_since_last_contribution == Decimal('100')
        assert result.anticipated_payment == Decimal('80')
        assert result.status == 'critical'

    def test_reference_is_users_latest_contribution(self):
        alice, bob = uuid4(), uuid4()
        first = make_purchase('1000', '300', '5000', aware(2024, 6, 1))
        second = make_purchase('1000', '300', '5200', aware(2024, 6, 15))
        contributions = [
            make_contribution(alice, first, '60', '200', '5000'),
            make_contribution(bob, second, '60', '200', '5200'),
        ]

        result = running_balance(contributions, [first, second], Decimal('5300'), user_id=alice)

        assert result.reference_reading == Decimal('5000')
        assert result.tokens_consumed_since_last_contribution == Decimal('300')
        assert result.household_tokens_since_last_contribution == Decimal('100')
        # Others: max(0, 100 - 300) tokens, balance 0
        assert result.anticipated_others_payment == Decimal('0')
        assert result.anticipated_token_purchase == result.anticipated_payment

    def test_falls_back_to_system_latest_for_new_member(self):
        alice, newcomer = uuid4(), uuid4()
        purchase = make_purchase('1000', '300', '5000', aware(2024, 6, 1))
        contribution = make_contribution(alice, purchase, '60', '200', '5000')

        result = running_balance([contribution], [purchase], Decimal('5050'), user_id=newcomer)

        assert result.contribution_balance == Decimal('0')
        assert result.reference_reading == Decimal('5000')
        assert result.tokens_consumed_since_last_contribution == Decimal('50')
        assert result.status == 'healthy'

    def test_others_share(self):
        alice, bob = uuid4(), uuid4()
        first = make_purchase('1000', '300', '5000', aware(2024, 6, 1))
        second = make_purchase('1000', '300', '5200', aware(2024, 6, 15))
        contributions = [
            make_contribution(alice, first, '60', '200', '5000'),
            make_contribution(bob, second, '50', '200', '5200'),
        ]

        result = running_balance(contributions, [first, second], Decimal('5500'), user_id=bob)

        # Bob: 300 kWh since 5200, balance -10
        assert result.anticipated_payment == Decimal('100')
        # Household: 300 kWh since 5200, others have nothing left to use
        assert result.anticipated_others_payment == Decimal('0')
        assert result.anticipated_token_purchase == Decimal('100')

    def test_household_projection(self):
        alice = uuid4()
        purchase = make_purchase('1000', '300', '5000', aware(2024, 6, 1))
        contribution = make_contribution(alice, purchase, '60', '200', '5000')

        result = running_balance([contribution], [purchase], Decimal('5100'))

        assert result.user_id is None
        assert result.contribution_balance == Decimal('0')
        assert result.anticipated_payment == Decimal('30')

    def test_current_reading_below_reference_is_clamped(self):
        alice = uuid4()
        purchase = make_purchase('1000', '300', '5000', aware(2024, 6, 1))
        contribution = make_contribution(alice, purchase, '60', '200', '5000')

        result = running_balance([contribution], [purchase], Decimal('4990'), user_id=alice)

        assert result.tokens_consumed_since_last_contribution == Decimal('0')
        assert result.household_tokens_since_last_contribution == Decimal('0')

    def test_no_contributions_yet(self):
        purchase = make_purchase('1000', '300', '5000', aware(2024, 6, 1))

        result = running_balance([], [purchase], Decimal('5100'), user_id=uuid4())

        assert result.reference_reading is None
        assert result.tokens_consumed_since_last_contribution == Decimal('0')
        assert result.anticipated_payment == Decimal('0')

    def test_no_purchases(self):
        with pytest.raises(CostComputationError):
            running_balance([], [], Decimal('5100'))

    def test_duplicate_settlement(self):
        alice = uuid4()
        purchase = make_purchase('1000', '300', '5000', aware(2024, 6, 1))
        contributions = [
            make_contribution(alice, purchase, '60', '200', '5000'),
            make_contribution(alice, purchase, '60', '200', '5000'),
        ]

        with pytest.raises(DuplicateSettlementError):
            running_balance(contributions, [purchase], Decimal('5100'))
