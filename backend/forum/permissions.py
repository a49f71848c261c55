"""
Permission classes for the StackIt API.
"""
from rest_framework import permissions


class IsAdmin(permissions.BasePermission):
    """Authenticated user with the StackIt admin flag set."""
    message = 'Admin access required'

    def has_permission(self, request, view):
        user = request.user
        return bool(user and user.is_authenticated and user.is_admin)


def is_owner(user, author_id) -> bool:
    return user.is_authenticated and user.id == author_id
