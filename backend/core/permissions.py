from rest_framework import permissions


class IsDoctor(permissions.BasePermission):
    """
    Doctors (and admins) only.
    """
    def has_permission(self, request, view):
        return bool(
            request.user and request.user.is_authenticated
            and (getattr(request.user, 'role', None) in ['DOCTOR', 'ADMIN'] or request.user.is_superuser)
        )


class IsMother(permissions.BasePermission):
    def has_permission(self, request, view):
        return bool(request.user and request.user.is_authenticated and getattr(request.user, 'role', None) == 'MOTHER')


class IsBookletParticipant(permissions.BasePermission):
    """
    Object-level check for anything owned by a booklet: the owning mother, or
    a doctor holding an active access grant. The object must expose
    ``booklet`` or be a booklet itself.
    """
    def has_object_permission(self, request, view, obj):
        booklet = getattr(obj, 'booklet', obj)
        return booklet.is_visible_to(request.user)
