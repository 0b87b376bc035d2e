from django.urls import path, include
from rest_framework.routers import DefaultRouter
from . import views

app_name = 'purchases'

# Router for ViewSets
# Note: contributions and meter-readings must be registered BEFORE empty prefix to avoid URL conflicts
router = DefaultRouter()
router.register(r'contributions', views.UserContributionViewSet, basename='contribution')
router.register(r'meter-readings', views.MeterReadingViewSet, basename='meter-reading')
router.register(r'', views.TokenPurchaseViewSet, basename='purchase')

urlpatterns = [
    # Purchase ViewSet routes
    # GET    /api/purchases/              - List purchases
    # POST   /api/purchases/              - Record purchase
    # GET    /api/purchases/{id}/         - Get purchase details
    # PUT    /api/purchases/{id}/         - Update unsettled purchase
    # PATCH  /api/purchases/{id}/         - Partial update
    # DELETE /api/purchases/{id}/         - Delete unsettled purchase
    # GET    /api/purchases/{id}/context/ - Neighbouring purchases
    # GET    /api/purchases/progress/     - Settlement progress
    # POST   /api/purchases/validate-meter-reading/       - Check a reading
    # POST   /api/purchases/validate-sequential-purchase/ - Check purchase order

    # Contribution routes
    # GET    /api/purchases/contributions/       - List contributions
    # POST   /api/purchases/contributions/       - Settle next purchase
    # PUT    /api/purchases/contributions/{id}/  - Correct (admin)
    # DELETE /api/purchases/contributions/{id}/  - Remove (admin)

    # Meter reading routes
    # GET    /api/purchases/meter-readings/         - List readings
    # POST   /api/purchases/meter-readings/         - Record reading
    # GET    /api/purchases/meter-readings/latest/  - Latest reading

    # Additional endpoints
    path('validate-meter-reading/', views.validate_meter_reading_view, name='validate-meter-reading'),
    path('validate-sequential-purchase/', views.validate_sequential_purchase_view, name='validate-sequential-purchase'),

    # Include router URLs
    path('', include(router.urls)),
]
