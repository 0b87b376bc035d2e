import pytest
from decimal import Decimal
from datetime import datetime, timezone
from rest_framework.test import APIClient
from rest_framework_simplejwt.tokens import RefreshToken
from apps.accounts.models import User, UserRole
from apps.purchases.models import TokenPurchase, UserContribution, MeterReading


def aware(year, month, day, hour=12):
    """Timezone-aware datetime helper for purchase dates."""
    return datetime(year, month, day, hour, tzinfo=timezone.utc)


def client_for(user):
    """Return a fresh API client authenticated as ``user`` via JWT."""
    client = APIClient()
    refresh = RefreshToken.for_user(user)
    client.credentials(HTTP_AUTHORIZATION=f'Bearer {refresh.access_token}')
    return client


@pytest.fixture
def api_client():
    """Return an unauthenticated API client."""
    return APIClient()


# =============================================================================
# Users
# =============================================================================

@pytest.fixture
def analytics_member(db):
    """Create the main analytics test member."""
    return User.objects.create_user(
        email='analytics_member@example.com',
        password='TestPass123!',
        name='Analytics Member',
    )


@pytest.fixture
def analytics_other(db):
    """Create a second household member."""
    return User.objects.create_user(
        email='analytics_other@example.com',
        password='TestPass123!',
        name='Analytics Other',
    )


@pytest.fixture
def analytics_admin(db):
    """Create a household admin."""
    return User.objects.create_user(
        email='analytics_admin@example.com',
        password='TestPass123!',
        name='Analytics Admin',
        role=UserRole.ADMIN,
    )


@pytest.fixture
def member_client(analytics_member):
    """Return API client authenticated as the main member."""
    return client_for(analytics_member)


@pytest.fixture
def other_client(analytics_other):
    """Return API client authenticated as the second member."""
    return client_for(analytics_other)


@pytest.fixture
def admin_client(analytics_admin):
    """Return API client authenticated as the admin."""
    return client_for(analytics_admin)


# =============================================================================
# Purchases and contributions
# =============================================================================

@pytest.fixture
def regular_purchase(db, analytics_member):
    """1000 kWh for 250 (0.25 per kWh) at meter 5000."""
    return TokenPurchase.objects.create(
        created_by=analytics_member,
        total_tokens=Decimal('1000'),
        total_payment=Decimal('250.00'),
        meter_reading=Decimal('5000'),
        purchase_date=aware(2024, 6, 1),
    )


@pytest.fixture
def emergency_purchase(db, analytics_other):
    """Emergency 500 kWh for 150 (0.30 per kWh) at meter 6100."""
    return TokenPurchase.objects.create(
        created_by=analytics_other,
        total_tokens=Decimal('500'),
        total_payment=Decimal('150.00'),
        meter_reading=Decimal('6100'),
        purchase_date=aware(2024, 6, 15),
        is_emergency=True,
    )


@pytest.fixture
def settled_household(db, analytics_member, analytics_other, regular_purchase, emergency_purchase):
    """
    Both purchases settled.

    The member paid 250 for nothing consumed (overpaid by 250); the other
    member paid 143 for 1100 kWh costing 330 (underpaid by 187).
    """
    first = UserContribution.objects.create(
        purchase=regular_purchase,
        user=analytics_member,
        contribution_amount=Decimal('250.00'),
        meter_reading=Decimal('5000'),
        tokens_consumed=Decimal('0'),
    )
    second = UserContribution.objects.create(
        purchase=emergency_purchase,
        user=analytics_other,
        contribution_amount=Decimal('143.00'),
        meter_reading=Decimal('6100'),
        tokens_consumed=Decimal('1100'),
    )
    return first, second


@pytest.fixture
def latest_reading(db, analytics_member, emergency_purchase):
    """Standalone meter reading of 6250 taken after the emergency purchase."""
    return MeterReading.objects.create(
        user=analytics_member,
        reading=Decimal('6250'),
        reading_date=aware(2024, 6, 25),
    )
