"""
Campus Market — users/serializers.py
"""
from rest_framework import serializers
from .models import CustomUser


# ═══════════════════════════════════════════════════════════════
# SERIALIZER — Informations publiques d'un utilisateur
# Affiché comme participant d'une conversation ou vendeur d'une annonce
# ═══════════════════════════════════════════════════════════════

class UtilisateurPublicSerializer(serializers.ModelSerializer):
    nom = serializers.CharField(source='get_full_name', read_only=True)

    class Meta:
        model  = CustomUser
        fields = ['id', 'uid_externe', 'username', 'nom', 'bloc_residence']


# ═══════════════════════════════════════════════════════════════
# SERIALIZER — Profil de l'utilisateur connecté
# ═══════════════════════════════════════════════════════════════

class ProfilSerializer(serializers.ModelSerializer):

    class Meta:
        model  = CustomUser
        fields = [
            'id', 'uid_externe', 'username', 'email',
            'nom_affiche', 'bloc_residence',
            'nombre_ventes', 'is_admin', 'date_inscription',
        ]
        # L'identité vient du fournisseur externe : non modifiable ici
        read_only_fields = [
            'uid_externe', 'email', 'nombre_ventes',
            'is_admin', 'date_inscription',
        ]
