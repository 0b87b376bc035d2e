from decimal import Decimal
from rest_framework import viewsets, mixins, status
from rest_framework.decorators import action, api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.pagination import PageNumberPagination
from django.conf import settings
from drf_spectacular.utils import extend_schema
from .models import TokenPurchase, UserContribution, MeterReading
from .serializers import (
    TokenPurchaseSerializer,
    TokenPurchaseCreateSerializer,
    UserContributionSerializer,
    UserContributionCreateSerializer,
    UserContributionUpdateSerializer,
    MeterReadingSerializer,
    MeterReadingValidationResultSerializer,
    PurchaseContextSerializer,
    ContributionProgressSerializer,
    # Input serializers
    PurchaseFilterSerializer,
    ContributionFilterSerializer,
    MeterReadingValidationInputSerializer,
    SequentialPurchaseInputSerializer,
    SequentialPurchaseResultSerializer,
)
from .services import (
    PurchaseServiceError,
    create_purchase,
    update_purchase,
    delete_purchase,
    get_purchase_context,
    create_contribution,
    update_contribution,
    delete_contribution,
    create_meter_reading,
    get_latest_meter_reading,
)
from .services.meter_validation import (
    DEFAULT_DAILY_KWH,
    validate_meter_reading,
    suggest_meter_reading,
)
from .services.sequential_gate import can_accept_purchase, contribution_progress
from .services.snapshots import load_purchase_snapshots, load_reading_history
from .exceptions import to_api_exception
from .permissions import IsHouseholdAdmin, CanManagePurchase


class PurchasePagination(PageNumberPagination):
    """Custom pagination for purchases."""
    page_size = 20
    page_size_query_param = 'page_size'
    max_page_size = 100


class TokenPurchaseViewSet(viewsets.ModelViewSet):
    """
    ViewSet for TokenPurchase CRUD operations.

    list: Get all purchases, newest first
    create: Record a purchase (meter reading must fit the timeline and the
        previous purchase must be settled unless an admin records it)
    retrieve: Get a specific purchase
    update: Update an unsettled purchase
    destroy: Delete an unsettled purchase
    """

    queryset = TokenPurchase.objects.select_related(
        'created_by',
        'contribution__user',
    )
    serializer_class = TokenPurchaseSerializer
    permission_classes = [IsAuthenticated]
    pagination_class = PurchasePagination

    def get_permissions(self):
        """Use different permissions for different actions."""
        if self.action in ['update', 'partial_update', 'destroy']:
            return [IsAuthenticated(), CanManagePurchase()]
        return super().get_permissions()

    def get_queryset(self):
        """Filter purchases using input serializer validation."""
        queryset = super().get_queryset()

        filter_serializer = PurchaseFilterSerializer(data=self.request.query_params)
        filter_serializer.is_valid(raise_exception=True)
        params = filter_serializer.validated_data

        if 'date_from' in params:
            queryset = queryset.filter(purchase_date__date__gte=params['date_from'])
        if 'date_to' in params:
            queryset = queryset.filter(purchase_date__date__lte=params['date_to'])
        if 'is_emergency' in params:
            queryset = queryset.filter(is_emergency=params['is_emergency'])
        if 'has_contribution' in params:
            queryset = queryset.filter(contribution__isnull=not params['has_contribution'])

        return queryset.order_by('-purchase_date', '-created_at')

    def get_serializer_class(self):
        """Use different serializers for different actions."""
        if self.action in ['create', 'update', 'partial_update']:
            return TokenPurchaseCreateSerializer
        return TokenPurchaseSerializer

    @extend_schema(responses={201: TokenPurchaseSerializer})
    def create(self, request, *args, **kwargs):
        serializer = TokenPurchaseCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            purchase = create_purchase(created_by=request.user, **serializer.validated_data)
        except PurchaseServiceError as e:
            raise to_api_exception(e)

        return Response(
            TokenPurchaseSerializer(purchase).data,
            status=status.HTTP_201_CREATED
        )

    @extend_schema(responses={200: TokenPurchaseSerializer})
    def update(self, request, *args, **kwargs):
        partial = kwargs.pop('partial', False)
        purchase = self.get_object()

        serializer = TokenPurchaseCreateSerializer(purchase, data=request.data, partial=partial)
        serializer.is_valid(raise_exception=True)

        try:
            purchase = update_purchase(purchase_id=purchase.id, **serializer.validated_data)
        except PurchaseServiceError as e:
            raise to_api_exception(e)

        return Response(TokenPurchaseSerializer(purchase).data)

    def destroy(self, request, *args, **kwargs):
        purchase = self.get_object()
        try:
            delete_purchase(purchase_id=purchase.id)
        except PurchaseServiceError as e:
            raise to_api_exception(e)
        return Response(status=status.HTTP_204_NO_CONTENT)

    @extend_schema(responses={200: PurchaseContextSerializer})
    @action(detail=True, methods=['get'])
    def context(self, request, pk=None):
        """
        Get neighbouring purchases and the expected consumption.

        GET /api/purchases/{id}/context/
        """
        purchase = self.get_object()
        try:
            data = get_purchase_context(purchase_id=purchase.id)
        except PurchaseServiceError as e:
            raise to_api_exception(e)
        return Response(PurchaseContextSerializer(data).data)

    @extend_schema(responses={200: ContributionProgressSerializer})
    @action(detail=False, methods=['get'])
    def progress(self, request):
        """
        Get settlement progress and the next purchase to settle.

        GET /api/purchases/progress/
        """
        progress = contribution_progress(load_purchase_snapshots())
        return Response(ContributionProgressSerializer(progress).data)


class UserContributionViewSet(viewsets.ModelViewSet):
    """
    ViewSet for UserContribution operations.

    list: Get contributions (filterable by user/purchase)
    create: Settle the next purchase in line (admins may settle any)
    retrieve: Get a specific contribution
    update: Correct a contribution (admin only)
    destroy: Remove a contribution and reopen its purchase (admin only)
    """

    queryset = UserContribution.objects.select_related('user', 'purchase')
    serializer_class = UserContributionSerializer
    permission_classes = [IsAuthenticated]
    pagination_class = PurchasePagination

    def get_permissions(self):
        """Edits are admin-only."""
        if self.action in ['update', 'partial_update', 'destroy']:
            return [IsAuthenticated(), IsHouseholdAdmin()]
        return super().get_permissions()

    def get_queryset(self):
        """Filter contributions using input serializer validation."""
        queryset = super().get_queryset()

        filter_serializer = ContributionFilterSerializer(data=self.request.query_params)
        filter_serializer.is_valid(raise_exception=True)
        params = filter_serializer.validated_data

        if 'user' in params:
            queryset = queryset.filter(user_id=params['user'])
        if 'purchase' in params:
            queryset = queryset.filter(purchase_id=params['purchase'])

        return queryset.order_by('-purchase__purchase_date', '-purchase__created_at')

    def get_serializer_class(self):
        if self.action == 'create':
            return UserContributionCreateSerializer
        if self.action in ['update', 'partial_update']:
            return UserContributionUpdateSerializer
        return UserContributionSerializer

    @extend_schema(responses={201: UserContributionSerializer})
    def create(self, request, *args, **kwargs):
        serializer = UserContributionCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        try:
            contribution = create_contribution(
                actor=request.user,
                purchase_id=data['purchase'],
                contribution_amount=data['contribution_amount'],
                meter_reading=data['meter_reading'],
                tokens_consumed=data['tokens_consumed'],
                user=data.get('user'),
            )
        except PurchaseServiceError as e:
            raise to_api_exception(e)

        return Response(
            UserContributionSerializer(contribution).data,
            status=status.HTTP_201_CREATED
        )

    @extend_schema(responses={200: UserContributionSerializer})
    def update(self, request, *args, **kwargs):
        kwargs.pop('partial', False)
        contribution = self.get_object()

        serializer = UserContributionUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            contribution = update_contribution(
                contribution_id=contribution.id,
                actor=request.user,
                **serializer.validated_data
            )
        except PurchaseServiceError as e:
            raise to_api_exception(e)

        return Response(UserContributionSerializer(contribution).data)

    def destroy(self, request, *args, **kwargs):
        contribution = self.get_object()
        try:
            delete_contribution(contribution_id=contribution.id, actor=request.user)
        except PurchaseServiceError as e:
            raise to_api_exception(e)
        return Response(status=status.HTTP_204_NO_CONTENT)


class MeterReadingViewSet(mixins.ListModelMixin,
                          mixins.CreateModelMixin,
                          viewsets.GenericViewSet):
    """
    ViewSet for standalone meter readings.

    list: Get readings, newest first
    create: Record a reading (must fit the timeline)
    """

    queryset = MeterReading.objects.select_related('user')
    serializer_class = MeterReadingSerializer
    permission_classes = [IsAuthenticated]
    pagination_class = PurchasePagination

    def create(self, request, *args, **kwargs):
        serializer = MeterReadingSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            reading = create_meter_reading(user=request.user, **serializer.validated_data)
        except PurchaseServiceError as e:
            raise to_api_exception(e)

        return Response(
            MeterReadingSerializer(reading).data,
            status=status.HTTP_201_CREATED
        )

    @action(detail=False, methods=['get'])
    def latest(self, request):
        """
        Get the latest meter reading from any member.

        GET /api/purchases/meter-readings/latest/
        """
        reading = get_latest_meter_reading()
        if reading is None:
            return Response({
                'reading': None,
                'message': 'No meter readings available'
            })
        return Response(MeterReadingSerializer(reading).data)


@extend_schema(
    request=MeterReadingValidationInputSerializer,
    responses={200: MeterReadingValidationResultSerializer},
    description="Check a meter reading against recorded history and get a suggested value.",
    tags=['purchases'],
)
@api_view(['POST'])
@permission_classes([IsAuthenticated])
def validate_meter_reading_view(request):
    """Check whether a meter reading fits the recorded timeline."""
    input_serializer = MeterReadingValidationInputSerializer(data=request.data)
    input_serializer.is_valid(raise_exception=True)
    params = input_serializer.validated_data

    history = load_reading_history()
    exclude_id = params.get('exclude_id')

    result = validate_meter_reading(
        params['meter_reading'],
        params['date'],
        params['type'],
        history,
        exclude_id=exclude_id,
    )
    suggestion = suggest_meter_reading(
        params['date'],
        history,
        exclude_id=exclude_id,
        daily_kwh=Decimal(str(getattr(settings, 'METER_SUGGESTION_DAILY_KWH', DEFAULT_DAILY_KWH))),
    )

    return Response(MeterReadingValidationResultSerializer({
        'valid': result.valid,
        'error': result.error,
        'suggested_minimum': result.suggested_minimum,
        'suggested_maximum': result.suggested_maximum,
        'context': result.context,
        'suggestion': suggestion.suggestion,
        'suggestion_context': suggestion.context,
    }).data)


@extend_schema(
    request=SequentialPurchaseInputSerializer,
    responses={200: SequentialPurchaseResultSerializer},
    description="Check whether a purchase may be recorded before the previous one is settled.",
    tags=['purchases'],
)
@api_view(['POST'])
@permission_classes([IsAuthenticated])
def validate_sequential_purchase_view(request):
    """Check whether the purchase before the given date already has its contribution."""
    input_serializer = SequentialPurchaseInputSerializer(data=request.data)
    input_serializer.is_valid(raise_exception=True)

    decision = can_accept_purchase(
        input_serializer.validated_data['purchase_date'],
        request.user.is_admin,
        load_purchase_snapshots(),
    )
    return Response(SequentialPurchaseResultSerializer(decision).data)
