"""
Serializers pour les achats.

- TentativeAchatSerializer → état d'une tentative (jamais l'empreinte ni le sel)
- VerifierCodeSerializer   → corps de POST /api/annonces/<id>/achat/verifier/
"""
from rest_framework import serializers

from .models import TentativeAchat


class TentativeAchatSerializer(serializers.ModelSerializer):

    class Meta:
        model  = TentativeAchat
        fields = ['id', 'annonce', 'vendeur', 'acheteur', 'statut', 'est_expiree', 'date_expiration', 'date_creation']
        read_only_fields = fields


class VerifierCodeSerializer(serializers.Serializer):
    # Format contrôlé par AchatService pour renvoyer "Code OTP invalide."
    code = serializers.CharField(required=False, allow_blank=True, default='', trim_whitespace=False)
