from rest_framework import permissions

from .auth import AuthContext


class RoleWritePermission(permissions.BasePermission):
    """
    Every dashboard role may read; only admins and editors may write.
    """
    message = 'Access denied. Editor or administrator role required.'

    def has_permission(self, request, view):
        context = AuthContext.from_user(request.user)
        if context.user is None:
            return False
        if request.method in permissions.SAFE_METHODS:
            return context.can_view
        return context.can_edit
