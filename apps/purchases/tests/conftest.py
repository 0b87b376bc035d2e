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


@pytest.fixture
def member(db):
    """Create and return a household member."""
    return User.objects.create_user(
        email='member@example.com',
        password='TestPass123!',
        name='Member One',
    )


@pytest.fixture
def other_member(db):
    """Create and return a second household member."""
    return User.objects.create_user(
        email='other@example.com',
        password='TestPass123!',
        name='Member Two',
    )


@pytest.fixture
def household_admin(db):
    """Create and return an admin."""
    return User.objects.create_user(
        email='admin@example.com',
        password='TestPass123!',
        name='House Admin',
        role=UserRole.ADMIN,
    )


@pytest.fixture
def member_client(member):
    """Return API client authenticated as member."""
    return client_for(member)


@pytest.fixture
def other_client(other_member):
    """Return API client authenticated as other_member."""
    return client_for(other_member)


@pytest.fixture
def admin_client(household_admin):
    """Return API client authenticated as admin."""
    return client_for(household_admin)


@pytest.fixture
def purchase_a(db, member):
    """First purchase: 1000 kWh for 250 at meter 5000."""
    return TokenPurchase.objects.create(
        created_by=member,
        total_tokens=Decimal('1000'),
        total_payment=Decimal('250.00'),
        meter_reading=Decimal('5000'),
        purchase_date=aware(2024, 6, 1),
    )


@pytest.fixture
def purchase_b(db, member):
    """Emergency purchase: 500 kWh for 150 at meter 6100."""
    return TokenPurchase.objects.create(
        created_by=member,
        total_tokens=Decimal('500'),
        total_payment=Decimal('150.00'),
        meter_reading=Decimal('6100'),
        purchase_date=aware(2024, 6, 15),
        is_emergency=True,
    )


@pytest.fixture
def purchase_c(db, other_member):
    """Third purchase: 800 kWh for 240 at meter 6400."""
    return TokenPurchase.objects.create(
        created_by=other_member,
        total_tokens=Decimal('800'),
        total_payment=Decimal('240.00'),
        meter_reading=Decimal('6400'),
        purchase_date=aware(2024, 7, 1),
    )


@pytest.fixture
def contribution_a(db, purchase_a, member):
    """Contribution settling purchase A with nothing consumed yet."""
    return UserContribution.objects.create(
        purchase=purchase_a,
        user=member,
        contribution_amount=Decimal('250.00'),
        meter_reading=Decimal('5000'),
        tokens_consumed=Decimal('0'),
    )


@pytest.fixture
def meter_reading(db, member, purchase_b):
    """Standalone reading taken after purchase B."""
    return MeterReading.objects.create(
        user=member,
        reading=Decimal('6250'),
        reading_date=aware(2024, 6, 25),
        notes='Monthly check',
    )
