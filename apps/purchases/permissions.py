"""
Custom permission classes for purchases app.

Any authenticated household member may read the ledger, record purchases
and settle the next purchase in line. Changing or removing recorded data
is reserved for admins, except that the buyer may still correct a
purchase nobody has contributed to yet.
"""
from rest_framework.permissions import BasePermission, SAFE_METHODS


class IsHouseholdAdmin(BasePermission):
    """
    Permission for admin-only endpoints.

    Usage:
        def get_permissions(self):
            if self.action in ['update', 'partial_update', 'destroy']:
                return [IsAuthenticated(), IsHouseholdAdmin()]
            return super().get_permissions()
    """

    message = 'Only admins can perform this action.'

    def has_permission(self, request, view):
        return bool(request.user and request.user.is_authenticated and request.user.is_admin)


class CanManagePurchase(BasePermission):
    """
    Permission to update or delete a purchase.

    Allows if:
    - User is an admin
    - User recorded the purchase
    """

    message = 'You do not have permission to manage this purchase.'

    def has_object_permission(self, request, view, obj):
        if request.method in SAFE_METHODS:
            return True
        return request.user.is_admin or obj.created_by_id == request.user.pk
