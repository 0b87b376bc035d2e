"""
Custom permission classes for analytics app.

This module contains DRF permission classes that control access to
analytics endpoints. These replace inline permission checks in views.

Permission Classes:
    CanViewMemberAnalytics - Restricts per-member figures to the member or an admin

Usage:
    from apps.analytics.permissions import CanViewMemberAnalytics

    @api_view(['GET'])
    @permission_classes([IsAuthenticated, CanViewMemberAnalytics])
    def user_running_balance(request, user_id):
        # Permission already verified by CanViewMemberAnalytics
        ...
"""

from rest_framework.permissions import BasePermission


class CanViewMemberAnalytics(BasePermission):
    """
    Permission check for another member's analytics.

    The member is taken from the URL kwargs (for endpoints like
    /user/{id}/running-balance/) or the ``user_id`` query parameter
    (for endpoints like /cost-breakdown/?user_id={id}).

    Access is allowed if:
    - No member is specified (household-level request)
    - The member is the requesting user
    - The requesting user is a household admin

    Household totals stay visible to every member since the household
    shares one meter.
    """

    message = 'Only household admins can view analytics of other members.'

    def has_permission(self, request, view):
        user_id = view.kwargs.get('user_id')
        if not user_id:
            user_id = request.query_params.get('user_id')

        if not user_id:
            return True

        if request.user.is_admin:
            return True
        return str(user_id) == str(request.user.pk)
