from django.db import models
from django.core.validators import MinValueValidator
from decimal import Decimal
import uuid


class TokenPurchase(models.Model):
    """Bulk purchase of prepaid electricity tokens for the shared meter."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    # Who bought the tokens
    created_by = models.ForeignKey(
        'accounts.User',
        on_delete=models.PROTECT,
        related_name='token_purchases'
    )

    # Quantities (kWh) and money
    total_tokens = models.DecimalField(
        max_digits=12,
        decimal_places=4,
        validators=[MinValueValidator(Decimal('0.0001'))]
    )
    total_payment = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        validators=[MinValueValidator(Decimal('0.01'))]
    )

    # Meter reading taken at purchase time
    meter_reading = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        validators=[MinValueValidator(Decimal('0.01'))]
    )

    purchase_date = models.DateTimeField()
    is_emergency = models.BooleanField(default=False)

    # Timestamps
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'token_purchases'
        indexes = [
            models.Index(fields=['purchase_date', 'created_at'], name='token_purch_purchas_5d1f0e_idx'),
            models.Index(fields=['created_by', 'purchase_date'], name='token_purch_created_a3c4b7_idx'),
        ]
        # Settlement order: date, then insertion time, then id
        ordering = ['purchase_date', 'created_at', 'id']

    def __str__(self):
        kind = "Emergency" if self.is_emergency else "Regular"
        return f"{kind} purchase {self.total_tokens} kWh for {self.total_payment} ({self.purchase_date:%Y-%m-%d})"

    @property
    def is_settled(self):
        """True once a contribution references this purchase."""
        return hasattr(self, 'contribution')

    def get_unit_cost(self):
        """Return cost per kWh for this purchase."""
        return self.total_payment / self.total_tokens


class UserContribution(models.Model):
    """The single contribution that settles one purchase."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    # One-to-one: the database enforces at most one contribution per purchase
    purchase = models.OneToOneField(
        TokenPurchase,
        on_delete=models.PROTECT,
        related_name='contribution'
    )
    user = models.ForeignKey(
        'accounts.User',
        on_delete=models.PROTECT,
        related_name='contributions'
    )

    contribution_amount = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        validators=[MinValueValidator(Decimal('0.00'))]
    )
    meter_reading = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        validators=[MinValueValidator(Decimal('0.00'))]
    )
    tokens_consumed = models.DecimalField(
        max_digits=12,
        decimal_places=4,
        validators=[MinValueValidator(Decimal('0.00'))]
    )

    # Timestamps
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'user_contributions'
        indexes = [
            models.Index(fields=['user', 'created_at'], name='user_contri_user_id_8e2a61_idx'),
        ]
        ordering = ['purchase__purchase_date', 'purchase__created_at', 'purchase__id']

    def __str__(self):
        return f"{self.user.get_display_name()} paid {self.contribution_amount} for {self.tokens_consumed} kWh"


class MeterReading(models.Model):
    """Standalone meter reading submitted between purchases."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    user = models.ForeignKey(
        'accounts.User',
        on_delete=models.CASCADE,
        related_name='meter_readings'
    )
    reading = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        validators=[MinValueValidator(Decimal('0.00'))]
    )
    reading_date = models.DateTimeField()
    notes = models.TextField(blank=True)

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'meter_readings'
        indexes = [
            models.Index(fields=['reading_date'], name='meter_readi_reading_2f7c90_idx'),
        ]
        ordering = ['-reading_date', '-created_at']

    def __str__(self):
        return f"{self.reading} kWh on {self.reading_date:%Y-%m-%d}"
