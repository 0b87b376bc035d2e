import pytest
from decimal import Decimal
from datetime import datetime, timezone
from uuid import uuid4
from dataclasses import replace

from apps.purchases.services.sequential_gate import (
    can_accept_contribution,
    can_accept_purchase,
    find_next_purchase_to_settle,
    contribution_progress,
)
from apps.purchases.services.snapshots import PurchaseSnapshot


def aware(year, month, day, hour=12):
    return datetime(year, month, day, hour, tzinfo=timezone.utc)


def make_purchase(day, settled=False, created_hour=12, reading='5000'):
    return PurchaseSnapshot(
        id=uuid4(),
        total_tokens=Decimal('500'),
        total_payment=Decimal('150'),
        meter_reading=Decimal(reading),
        purchase_date=aware(2024, 6, day),
        created_at=aware(2024, 6, day, created_hour),
        has_contribution=settled,
    )


class TestCanAcceptContribution:
    """Only the oldest unsettled purchase may be settled by regular members."""

    def test_next_in_line_is_accepted(self):
        a = make_purchase(1, settled=True)
        b = make_purchase(15)
        decision = can_accept_contribution(b.id, False, [a, b])

        assert decision.can_contribute is True
        assert decision.next_available_purchase_id is None

    def test_skipping_ahead_is_rejected_for_members(self):
        """With A settled and B open, C is rejected and B is named."""
        a = make_purchase(1, settled=True)
        b = make_purchase(15)
        c = make_purchase(30)
        decision = can_accept_contribution(c.id, False, [c, a, b])

        assert decision.can_contribute is False
        assert decision.next_available_purchase_id == b.id
        assert decision.reason == 'You must contribute to older purchases first'

    def test_admin_may_skip_ahead(self):
        a = make_purchase(1, settled=True)
        b = make_purchase(15)
        c = make_purchase(30)
        decision = can_accept_contribution(c.id, True, [a, b, c])

        assert decision.can_contribute is True

    def test_settled_purchase_is_rejected_for_everyone(self):
        a = make_purchase(1, settled=True)
        b = make_purchase(15)

        for is_admin in (False, True):
            decision = can_accept_contribution(a.id, is_admin, [a, b])
            assert decision.can_contribute is False
            assert decision.reason == 'Purchase already has a contribution'

    def test_unknown_purchase(self):
        a = make_purchase(1)
        decision = can_accept_contribution(uuid4(), True, [a])

        assert decision.can_contribute is False
        assert decision.reason == 'Purchase not found'

    def test_string_ids_are_accepted(self):
        a = make_purchase(1)
        decision = can_accept_contribution(str(a.id), False, [a])
        assert decision.can_contribute is True

    def test_same_date_ordered_by_creation_time(self):
        """Ties on purchase date fall back to insertion order."""
        earlier = make_purchase(10, created_hour=9)
        later = make_purchase(10, created_hour=18)

        decision = can_accept_contribution(later.id, False, [later, earlier])
        assert decision.can_contribute is False
        assert decision.next_available_purchase_id == earlier.id


class TestCanAcceptPurchase:
    """A new purchase waits until the one before it is settled."""

    def test_first_purchase_is_accepted(self):
        decision = can_accept_purchase(aware(2024, 6, 1), False, [])

        assert decision.can_create is True
        assert decision.blocking_purchase_id is None

    def test_unsettled_predecessor_blocks_members(self):
        """With A settled and B open, a purchase on 1 July is blocked by B."""
        a = make_purchase(1, settled=True)
        b = make_purchase(15)
        decision = can_accept_purchase(aware(2024, 7, 1), False, [b, a])

        assert decision.can_create is False
        assert decision.blocking_purchase_id == b.id
        assert '2024-06-15' in decision.reason

    def test_settled_predecessor_accepts(self):
        a = make_purchase(1, settled=True)
        b = make_purchase(15, settled=True)
        decision = can_accept_purchase(aware(2024, 7, 1), False, [a, b])

        assert decision.can_create is True
        assert decision.reason is None

    def test_admin_bypasses_order(self):
        a = make_purchase(1, settled=True)
        b = make_purchase(15)
        decision = can_accept_purchase(aware(2024, 7, 1), True, [a, b])

        assert decision.can_create is True
        assert decision.context.startswith('Admin bypass')

    def test_only_earlier_purchases_count(self):
        """A backdated purchase is checked against its own predecessor."""
        a = make_purchase(1, settled=True)
        b = make_purchase(15)
        decision = can_accept_purchase(aware(2024, 6, 10), False, [a, b])

        assert decision.can_create is True

    def test_same_day_purchase_is_not_a_predecessor(self):
        a = make_purchase(1, settled=True)
        b = make_purchase(15)
        decision = can_accept_purchase(b.purchase_date, False, [a, b])

        assert decision.can_create is True

    def test_latest_of_same_date_predecessors_blocks(self):
        settled = make_purchase(10, settled=True, created_hour=9)
        open_one = make_purchase(10, created_hour=18)
        decision = can_accept_purchase(aware(2024, 6, 20), False, [open_one, settled])

        assert decision.blocking_purchase_id == open_one.id


class TestProgress:

    def test_next_purchase_skips_settled(self):
        a = make_purchase(1, settled=True)
        b = make_purchase(15)
        assert find_next_purchase_to_settle([b, a]) == b

    def test_nothing_to_settle(self):
        a = make_purchase(1, settled=True)
        assert find_next_purchase_to_settle([a]) is None

    def test_progress_percentage(self):
        purchases = [
            make_purchase(1, settled=True),
            make_purchase(2, settled=True),
            make_purchase(3),
        ]
        progress = contribution_progress(purchases)

        assert progress.total_purchases == 3
        assert progress.purchases_with_contributions == 2
        assert progress.progress_percentage == 67
        assert progress.next_purchase == purchases[2]

    def test_empty_system_is_complete(self):
        progress = contribution_progress([])

        assert progress.total_purchases == 0
        assert progress.progress_percentage == 100
        assert progress.next_purchase is None


@pytest.mark.parametrize('order', [[0, 1, 2], [2, 1, 0], [1, 2, 0]])
def test_settling_in_gate_order_accepts_every_purchase(order):
    """Following the gate's suggestions settles purchases oldest first."""
    purchases = [make_purchase(day) for day in (1, 2, 3)]
    shuffled = [purchases[i] for i in order]
    settled = []

    while True:
        candidates = [
            replace(p, has_contribution=p.id in settled)
            for p in shuffled
        ]
        nxt = find_next_purchase_to_settle(candidates)
        if nxt is None:
            break
        assert can_accept_contribution(nxt.id, False, candidates).can_contribute
        settled.append(nxt.id)

    assert settled == [p.id for p in purchases]
