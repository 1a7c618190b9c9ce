"""
Campus Market — achats/api_views.py
Vues API REST du paiement à la remise.

Endpoints :
  POST /api/annonces/<id>/achat/initier/  → l'acheteur demande un code
  POST /api/annonces/<id>/achat/verifier/ → le vendeur saisit le code {code}

Le code n'est jamais renvoyé dans la réponse HTTP : il arrive à
l'acheteur par l'événement WebSocket purchase_otp.
"""
from django.core.exceptions import ValidationError
from django.shortcuts import get_object_or_404
from rest_framework import permissions, status
from rest_framework.response import Response
from rest_framework.views import APIView

from apps.annonces.models import Annonce
from apps.annonces.serializers import AnnonceSerializer
from . import otp
from .serializers import TentativeAchatSerializer, VerifierCodeSerializer
from .services import AchatService


class InitierAchatAPIView(APIView):
    permission_classes = [permissions.IsAuthenticated]

    def post(self, request, pk):
        annonce = get_object_or_404(Annonce, pk=pk)
        try:
            tentative = AchatService.initier(annonce, request.user)
        except ValidationError as e:
            return Response({'detail': e.messages[0]}, status=status.HTTP_400_BAD_REQUEST)

        return Response({
            'detail'   : "Code envoyé à l'acheteur. Il doit le communiquer au vendeur pour confirmer.",
            'tentative': TentativeAchatSerializer(tentative).data,
        })


class VerifierAchatAPIView(APIView):
    """
    400 : code mal formé, incorrect, ou aucune tentative active
    403 : ni vendeur ni administrateur
    404 : annonce inexistante
    """
    permission_classes = [permissions.IsAuthenticated]

    def post(self, request, pk):
        serializer = VerifierCodeSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        code = serializer.validated_data['code']

        # Le format est contrôlé avant même de chercher l'annonce
        if not otp.code_valide(code):
            return Response({'detail': "Code OTP invalide."}, status=status.HTTP_400_BAD_REQUEST)

        annonce = get_object_or_404(Annonce, pk=pk)
        try:
            AchatService.verifier(annonce, code, request.user)
        except ValidationError as e:
            return Response({'detail': e.messages[0]}, status=status.HTTP_400_BAD_REQUEST)

        annonce.refresh_from_db()
        return Response({
            'detail' : "Achat confirmé. L'annonce est marquée comme vendue.",
            'annonce': AnnonceSerializer(annonce).data,
        })
