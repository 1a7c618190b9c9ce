"""
Campus Market — users/api_views.py

Endpoints gérés :
  - GET/PATCH /api/utilisateurs/moi/ → Voir/modifier son profil
"""
from rest_framework import generics, permissions

from .serializers import ProfilSerializer


class ProfilAPIView(generics.RetrieveUpdateAPIView):
    """
    Profil de l'utilisateur connecté.
    Le compte est créé à la première requête authentifiée
    (voir users/identity.py).
    """
    serializer_class   = ProfilSerializer
    permission_classes = [permissions.IsAuthenticated]
    http_method_names  = ['get', 'patch', 'head', 'options']

    def get_object(self):
        return self.request.user
