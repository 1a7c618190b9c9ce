"""
Campus Market — users/permissions.py
Permissions personnalisées pour l'API DRF.
"""
from rest_framework.permissions import BasePermission


class EstParticipant(BasePermission):
    """
    L'utilisateur doit faire partie de la conversation.
    L'objet doit exposer est_participant(user).
    """
    def has_object_permission(self, request, view, obj):
        return obj.est_participant(request.user)
