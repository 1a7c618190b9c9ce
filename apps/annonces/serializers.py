"""
Campus Market — annonces/serializers.py
Format des annonces diffusées en temps réel (new_listing, listing_update).
"""
from rest_framework import serializers

from apps.users.serializers import UtilisateurPublicSerializer
from .models import Annonce


class AnnonceSerializer(serializers.ModelSerializer):
    vendeur = UtilisateurPublicSerializer(read_only=True)

    class Meta:
        model  = Annonce
        fields = [
            'id', 'titre', 'description', 'prix',
            'categorie', 'etat', 'vendeur',
            'est_active', 'est_vendue', 'date_creation',
        ]
