# ==========================================
# apps/purchases/admin.py
# ==========================================

from django.contrib import admin
from django.utils.html import format_html
from .models import TokenPurchase, UserContribution, MeterReading


class UserContributionInline(admin.StackedInline):
    """Inline admin for the contribution settling a purchase."""
    model = UserContribution
    extra = 0
    fields = [
        'user',
        'contribution_amount',
        'meter_reading',
        'tokens_consumed',
        'created_at',
    ]
    readonly_fields = ['created_at']

    def has_add_permission(self, request, obj=None):
        """Contributions go through the API so the sequential order is enforced."""
        return False


@admin.register(TokenPurchase)
class TokenPurchaseAdmin(admin.ModelAdmin):
    """
    Admin interface for Token Purchases.

    Provides purchase management including:
    - Purchase listing with settlement status
    - Inline contribution
    - Filtering by emergency flag and date
    """

    list_display = [
        'purchase_date',
        'created_by',
        'total_tokens',
        'total_payment',
        'get_unit_cost_display',
        'meter_reading',
        'emergency_badge',
        'settlement_badge',
    ]

    list_filter = [
        'is_emergency',
        'purchase_date',
        'created_at',
    ]

    search_fields = [
        'created_by__email',
        'created_by__name',
    ]

    readonly_fields = [
        'id',
        'created_at',
        'updated_at',
    ]

    fieldsets = (
        ('Purchase', {
            'fields': ('id', 'created_by', 'purchase_date', 'is_emergency')
        }),
        ('Amounts', {
            'fields': ('total_tokens', 'total_payment', 'meter_reading')
        }),
        ('Timestamps', {
            'fields': ('created_at', 'updated_at'),
            'classes': ('collapse',),
        }),
    )

    inlines = [UserContributionInline]

    date_hierarchy = 'purchase_date'
    ordering = ['-purchase_date', '-created_at']

    def get_queryset(self, request):
        return super().get_queryset(request).select_related('created_by', 'contribution')

    def get_unit_cost_display(self, obj):
        return f"{obj.get_unit_cost():.4f}"
    get_unit_cost_display.short_description = 'Cost / kWh'

    def emergency_badge(self, obj):
        """Display emergency flag as colored badge."""
        if obj.is_emergency:
            return format_html(
                '<span style="background: #B85C5C; color: white; padding: 3px 8px; '
                'border-radius: 10px; font-size: 11px;">Emergency</span>'
            )
        return format_html(
            '<span style="background: #ccc; color: #666; padding: 3px 8px; '
            'border-radius: 10px; font-size: 11px;">Regular</span>'
        )
    emergency_badge.short_description = 'Type'
    emergency_badge.admin_order_field = 'is_emergency'

    def settlement_badge(self, obj):
        """Display settlement status as colored badge."""
        if obj.is_settled:
            return format_html(
                '<span style="background: #6B8E5E; color: white; padding: 3px 8px; '
                'border-radius: 10px; font-size: 11px;">Settled</span>'
            )
        return format_html(
            '<span style="background: #E5C49A; color: #2C1810; padding: 3px 8px; '
            'border-radius: 10px; font-size: 11px;">Open</span>'
        )
    settlement_badge.short_description = 'Settlement'


@admin.register(UserContribution)
class UserContributionAdmin(admin.ModelAdmin):
    """Admin interface for contributions."""

    list_display = [
        'user',
        'purchase',
        'contribution_amount',
        'tokens_consumed',
        'meter_reading',
        'created_at',
    ]

    list_filter = ['created_at']
    search_fields = ['user__email', 'user__name']
    readonly_fields = ['id', 'purchase', 'created_at', 'updated_at']
    ordering = ['-purchase__purchase_date']

    def has_add_permission(self, request):
        return False


@admin.register(MeterReading)
class MeterReadingAdmin(admin.ModelAdmin):
    """Admin interface for standalone meter readings."""

    list_display = [
        'reading_date',
        'reading',
        'user',
        'created_at',
    ]

    list_filter = ['reading_date']
    search_fields = ['user__email', 'notes']
    readonly_fields = ['id', 'created_at']
    ordering = ['-reading_date']
