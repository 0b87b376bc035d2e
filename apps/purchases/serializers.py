from decimal import Decimal
from rest_framework import serializers
from .models import TokenPurchase, UserContribution, MeterReading
from apps.accounts.models import User


# =============================================================================
# Input Serializers
# =============================================================================

class PurchaseFilterSerializer(serializers.Serializer):
    """
    Validate query parameters for purchase filtering.

    Query Parameters:
        date_from (date): Filter purchases from this date
        date_to (date): Filter purchases to this date
        is_emergency (bool): Filter emergency top-ups
        has_contribution (bool): Filter by settlement state
    """

    date_from = serializers.DateField(required=False)
    date_to = serializers.DateField(required=False)
    is_emergency = serializers.BooleanField(required=False)
    has_contribution = serializers.BooleanField(required=False)

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


class ContributionFilterSerializer(serializers.Serializer):
    """
    Validate query parameters for contribution filtering.

    Query Parameters:
        user (UUID): Filter by contributing user
        purchase (UUID): Filter by purchase
    """

    user = serializers.UUIDField(required=False)
    purchase = serializers.UUIDField(required=False)


class MeterReadingValidationInputSerializer(serializers.Serializer):
    """
    Validate input for the meter reading check endpoint.

    Fields:
        meter_reading (Decimal): Candidate reading
        date (datetime): When the reading applies
        type (str): purchase, contribution or reading
        exclude_id (UUID): Purchase being edited, ignored in the check
    """

    meter_reading = serializers.DecimalField(max_digits=12, decimal_places=2)
    date = serializers.DateTimeField()
    type = serializers.ChoiceField(
        choices=[('purchase', 'Purchase'), ('contribution', 'Contribution'), ('reading', 'Reading')],
        default='purchase'
    )
    exclude_id = serializers.UUIDField(required=False)


class SequentialPurchaseInputSerializer(serializers.Serializer):
    """
    Validate input for the sequential purchase check endpoint.

    Fields:
        purchase_date (datetime): Date of the purchase about to be recorded
    """

    purchase_date = serializers.DateTimeField()


# =============================================================================
# Output Serializers
# =============================================================================


class UserMinimalSerializer(serializers.ModelSerializer):
    """Minimal user info for nested serialization."""

    display_name = serializers.SerializerMethodField()

    class Meta:
        model = User
        fields = ['id', 'email', 'display_name']
        read_only_fields = fields

    def get_display_name(self, obj):
        return obj.get_display_name()


class ContributionMinimalSerializer(serializers.ModelSerializer):
    """Contribution info nested under its purchase."""

    user = UserMinimalSerializer(read_only=True)

    class Meta:
        model = UserContribution
        fields = [
            'id',
            'user',
            'contribution_amount',
            'meter_reading',
            'tokens_consumed',
            'created_at',
        ]
        read_only_fields = fields


class TokenPurchaseSerializer(serializers.ModelSerializer):
    """Main serializer for token purchases."""

    created_by = UserMinimalSerializer(read_only=True)
    contribution = serializers.SerializerMethodField()
    has_contribution = serializers.SerializerMethodField()

    class Meta:
        model = TokenPurchase
        fields = [
            'id',
            'created_by',
            'total_tokens',
            'total_payment',
            'meter_reading',
            'purchase_date',
            'is_emergency',
            'has_contribution',
            'contribution',
            'created_at',
            'updated_at',
        ]
        read_only_fields = [
            'id',
            'created_by',
            'created_at',
            'updated_at',
        ]

    def get_has_contribution(self, obj):
        return obj.is_settled

    def get_contribution(self, obj):
        if not obj.is_settled:
            return None
        return ContributionMinimalSerializer(obj.contribution).data


class TokenPurchaseCreateSerializer(serializers.ModelSerializer):
    """Serializer for creating and editing token purchases."""

    class Meta:
        model = TokenPurchase
        fields = [
            'total_tokens',
            'total_payment',
            'meter_reading',
            'purchase_date',
            'is_emergency',
        ]


class UserContributionSerializer(serializers.ModelSerializer):
    """Contribution with its purchase summary."""

    user = UserMinimalSerializer(read_only=True)
    purchase_date = serializers.DateTimeField(source='purchase.purchase_date', read_only=True)
    is_emergency = serializers.BooleanField(source='purchase.is_emergency', read_only=True)

    class Meta:
        model = UserContribution
        fields = [
            'id',
            'purchase',
            'purchase_date',
            'is_emergency',
            'user',
            'contribution_amount',
            'meter_reading',
            'tokens_consumed',
            'created_at',
            'updated_at',
        ]
        read_only_fields = fields


class UserContributionCreateSerializer(serializers.Serializer):
    """
    Input for recording a contribution.

    ``user`` may only differ from the requester when an admin records on
    someone else's behalf.
    """

    purchase = serializers.UUIDField()
    user = serializers.PrimaryKeyRelatedField(
        queryset=User.objects.filter(is_active=True),
        required=False
    )
    contribution_amount = serializers.DecimalField(
        max_digits=12, decimal_places=2, min_value=Decimal('0')
    )
    meter_reading = serializers.DecimalField(
        max_digits=12, decimal_places=2, min_value=Decimal('0')
    )
    tokens_consumed = serializers.DecimalField(
        max_digits=12, decimal_places=4, min_value=Decimal('0')
    )


class UserContributionUpdateSerializer(serializers.Serializer):
    """Input for admin corrections; every field is optional."""

    contribution_amount = serializers.DecimalField(
        max_digits=12, decimal_places=2, min_value=Decimal('0'), required=False
    )
    meter_reading = serializers.DecimalField(
        max_digits=12, decimal_places=2, min_value=Decimal('0'), required=False
    )
    tokens_consumed = serializers.DecimalField(
        max_digits=12, decimal_places=4, min_value=Decimal('0'), required=False
    )


class MeterReadingSerializer(serializers.ModelSerializer):
    """Serializer for standalone meter readings."""

    user = UserMinimalSerializer(read_only=True)

    class Meta:
        model = MeterReading
        fields = [
            'id',
            'user',
            'reading',
            'reading_date',
            'notes',
            'created_at',
        ]
        read_only_fields = [
            'id',
            'user',
            'created_at',
        ]


class MeterReadingValidationResultSerializer(serializers.Serializer):
    """Outcome of a meter reading check."""

    valid = serializers.BooleanField()
    error = serializers.CharField(allow_null=True)
    suggested_minimum = serializers.DecimalField(max_digits=12, decimal_places=2, allow_null=True)
    suggested_maximum = serializers.DecimalField(max_digits=12, decimal_places=2, allow_null=True)
    context = serializers.CharField(allow_null=True)
    suggestion = serializers.DecimalField(max_digits=12, decimal_places=2)
    suggestion_context = serializers.CharField()


class NeighbourPurchaseSerializer(serializers.Serializer):
    id = serializers.UUIDField()
    meter_reading = serializers.DecimalField(max_digits=12, decimal_places=2)
    total_tokens = serializers.DecimalField(max_digits=12, decimal_places=4)
    purchase_date = serializers.DateTimeField()


class PurchaseContextSerializer(serializers.Serializer):
    """Where a purchase sits among its neighbours."""

    purchase_id = serializers.UUIDField()
    is_settled = serializers.BooleanField()
    previous_purchase = NeighbourPurchaseSerializer(allow_null=True)
    next_purchase = NeighbourPurchaseSerializer(allow_null=True)
    suggested_tokens_consumed = serializers.DecimalField(max_digits=12, decimal_places=2)


class ContributionProgressSerializer(serializers.Serializer):
    """Settlement progress across all purchases."""

    total_purchases = serializers.IntegerField()
    purchases_with_contributions = serializers.IntegerField()
    next_purchase_id = serializers.UUIDField(source='next_purchase.id', allow_null=True, default=None)
    next_purchase_date = serializers.DateTimeField(source='next_purchase.purchase_date', allow_null=True, default=None)
    progress_percentage = serializers.IntegerField()


class BlockingPurchaseSerializer(serializers.Serializer):
    id = serializers.UUIDField()
    purchase_date = serializers.DateTimeField()
    total_tokens = serializers.DecimalField(max_digits=12, decimal_places=4)


class SequentialPurchaseResultSerializer(serializers.Serializer):
    """Whether a purchase may be recorded at a given date."""

    valid = serializers.BooleanField(source='can_create')
    error = serializers.CharField(source='reason', allow_null=True)
    context = serializers.CharField(allow_null=True)
    blocking_purchase = BlockingPurchaseSerializer(allow_null=True)
