from django.urls import path
from . import views

app_name = 'analytics'

urlpatterns = [
    # Cost allocation
    path('cost-breakdown/', views.cost_breakdown, name='cost-breakdown'),
    path('purchase-comparison/', views.purchase_comparison, name='purchase-comparison'),

    # Balance projection
    path('running-balance/', views.running_balance, name='running-balance'),  # Current user
    path('user/<uuid:user_id>/running-balance/', views.user_running_balance, name='user-running-balance'),

    # Consumption trend
    path('usage-prediction/', views.usage_prediction, name='usage-prediction'),
]
