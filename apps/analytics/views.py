from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from drf_spectacular.utils import extend_schema, OpenApiParameter
from drf_spectacular.types import OpenApiTypes
from .analytics import AnalyticsQueries
from .serializers import (
    # Input serializers
    AnalyticsUserQuerySerializer,
    CostBreakdownQuerySerializer,
    RunningBalanceQuerySerializer,
    # Response serializers
    CostBreakdownResponseSerializer,
    PurchaseComparisonSerializer,
    RunningBalanceSerializer,
    UsagePredictionSerializer,
    ErrorSerializer,
)
from .permissions import CanViewMemberAnalytics
from .exceptions import AnalyticsServiceError, to_api_exception


USER_ID_PARAMETER = OpenApiParameter(
    'user_id', OpenApiTypes.UUID, description='Restrict results to one member'
)
PERIOD_PARAMETERS = [
    OpenApiParameter('date_from', OpenApiTypes.DATE, description='Only purchases dated on or after this date'),
    OpenApiParameter('date_to', OpenApiTypes.DATE, description='Only purchases dated on or before this date'),
]


@extend_schema(
    parameters=[
        USER_ID_PARAMETER,
        *PERIOD_PARAMETERS,
        OpenApiParameter('require_summary', OpenApiTypes.BOOL, description='Answer 422 when nothing in the period is settled'),
    ],
    responses={
        200: CostBreakdownResponseSerializer,
        403: ErrorSerializer,
        422: ErrorSerializer,
    },
    description="True cost of every member's consumption against what they paid, with recommendations and household summary.",
    tags=['analytics'],
)
@api_view(['GET'])
@permission_classes([IsAuthenticated, CanViewMemberAnalytics])
def cost_breakdown(request):
    """Per-member true cost breakdown - thin HTTP handler."""
    query_serializer = CostBreakdownQuerySerializer(data=request.query_params)
    query_serializer.is_valid(raise_exception=True)
    params = query_serializer.validated_data

    try:
        data = AnalyticsQueries.cost_breakdown(
            user_id=params.get('user_id'),
            date_from=params.get('date_from'),
            date_to=params.get('date_to'),
            require_summary=params['require_summary'],
        )
    except AnalyticsServiceError as e:
        raise to_api_exception(e)

    return Response(CostBreakdownResponseSerializer(data).data)


@extend_schema(
    parameters=[USER_ID_PARAMETER, *PERIOD_PARAMETERS],
    responses={
        200: PurchaseComparisonSerializer(many=True),
        422: ErrorSerializer,
    },
    description="Actual against fair contribution for each settled purchase.",
    tags=['analytics'],
)
@api_view(['GET'])
@permission_classes([IsAuthenticated, CanViewMemberAnalytics])
def purchase_comparison(request):
    """Actual vs fair contribution per purchase - thin HTTP handler."""
    query_serializer = AnalyticsUserQuerySerializer(data=request.query_params)
    query_serializer.is_valid(raise_exception=True)
    params = query_serializer.validated_data

    try:
        rows = AnalyticsQueries.purchase_comparison(
            user_id=params.get('user_id'),
            date_from=params.get('date_from'),
            date_to=params.get('date_to'),
        )
    except AnalyticsServiceError as e:
        raise to_api_exception(e)

    return Response(PurchaseComparisonSerializer(rows, many=True).data)


def _running_balance_response(request, user_id):
    query_serializer = RunningBalanceQuerySerializer(data=request.query_params)
    query_serializer.is_valid(raise_exception=True)
    params = query_serializer.validated_data

    if user_id is None and params['scope'] == 'user':
        user_id = request.user.id

    try:
        balance = AnalyticsQueries.running_balance(
            user_id=user_id,
            current_reading=params.get('current_reading'),
        )
    except AnalyticsServiceError as e:
        raise to_api_exception(e)

    return Response(RunningBalanceSerializer(balance).data)


@extend_schema(
    parameters=[
        OpenApiParameter('current_reading', OpenApiTypes.DECIMAL, description='Meter value to project to (defaults to latest reading)'),
        OpenApiParameter('scope', OpenApiTypes.STR, description="'user' or 'household'", default='user'),
    ],
    responses={
        200: RunningBalanceSerializer,
        422: ErrorSerializer,
    },
    description="Running balance of the current member (or the household) projected to the current meter reading.",
    tags=['analytics'],
)
@api_view(['GET'])
@permission_classes([IsAuthenticated])
def running_balance(request):
    """Running balance for current user or household - thin HTTP handler."""
    return _running_balance_response(request, user_id=None)


@extend_schema(
    parameters=[
        OpenApiParameter('current_reading', OpenApiTypes.DECIMAL, description='Meter value to project to (defaults to latest reading)'),
    ],
    responses={
        200: RunningBalanceSerializer,
        403: ErrorSerializer,
        404: ErrorSerializer,
        422: ErrorSerializer,
    },
    description="Running balance of a specific member projected to the current meter reading.",
    tags=['analytics'],
)
@api_view(['GET'])
@permission_classes([IsAuthenticated, CanViewMemberAnalytics])
def user_running_balance(request, user_id):
    """Running balance for a given member - thin HTTP handler."""
    return _running_balance_response(request, user_id=user_id)


@extend_schema(
    parameters=[USER_ID_PARAMETER, *PERIOD_PARAMETERS],
    responses={200: UsagePredictionSerializer},
    description="Monthly consumption trend and next month's usage forecast. Household-wide without user_id.",
    tags=['analytics'],
)
@api_view(['GET'])
@permission_classes([IsAuthenticated, CanViewMemberAnalytics])
def usage_prediction(request):
    """Next month's usage forecast - thin HTTP handler."""
    query_serializer = AnalyticsUserQuerySerializer(data=request.query_params)
    query_serializer.is_valid(raise_exception=True)
    params = query_serializer.validated_data

    try:
        prediction = AnalyticsQueries.usage_prediction(
            user_id=params.get('user_id'),
            date_from=params.get('date_from'),
            date_to=params.get('date_to'),
        )
    except AnalyticsServiceError as e:
        raise to_api_exception(e)

    return Response(UsagePredictionSerializer(prediction).data)
