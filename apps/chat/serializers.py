"""
Serializers pour le chat.

- MessageChatSerializer        → un message (lecture)
- EnvoyerMessageSerializer     → corps de POST /api/chat/<id>/envoyer/
- ModifierMessageSerializer    → corps de PATCH /api/chat/<id>/messages/<mid>/
- ConversationListSerializer   → liste des conversations (aperçu)
- ConversationDetailSerializer → détail avec participants
- CreerConversationSerializer  → démarrer une conversation avec un utilisateur
"""
from django.contrib.auth import get_user_model
from rest_framework import serializers

from apps.annonces.models import Annonce
from apps.users.serializers import UtilisateurPublicSerializer
from .models import MAX_CONTENU, MAX_IMAGES, Conversation, MessageChat

User = get_user_model()


# ═══════════════════════════════════════════════════════════════
# SERIALIZERS — Messages
# ═══════════════════════════════════════════════════════════════

class MessageChatSerializer(serializers.ModelSerializer):

    nom_expediteur = serializers.CharField(source='expediteur.get_full_name', read_only=True, allow_null=True)
    uid_expediteur = serializers.CharField(source='expediteur.uid_externe', read_only=True, allow_null=True)
    apercu         = serializers.CharField(read_only=True)
    est_modifie    = serializers.BooleanField(read_only=True)

    class Meta:
        model  = MessageChat
        fields = [
            'id', 'conversation',
            'expediteur', 'uid_expediteur', 'nom_expediteur',
            'type_message', 'contenu', 'images', 'apercu',
            'is_read', 'date_lecture',
            'is_deleted', 'est_modifie', 'date_modification_contenu',
            'date_envoi',
        ]
        read_only_fields = fields


class EnvoyerMessageSerializer(serializers.Serializer):
    contenu = serializers.CharField(max_length=MAX_CONTENU, required=False, allow_blank=True, default='')
    images  = serializers.ListField(
        child=serializers.CharField(max_length=500),
        max_length=MAX_IMAGES,
        required=False,
        default=list,
    )

    def validate(self, data):
        if not data['contenu'].strip() and not data['images']:
            raise serializers.ValidationError("Le message ne peut pas être vide.")
        return data


class ModifierMessageSerializer(serializers.Serializer):
    contenu = serializers.CharField(max_length=MAX_CONTENU)


# ═══════════════════════════════════════════════════════════════
# SERIALIZERS — Conversations
# ═══════════════════════════════════════════════════════════════

class ConversationListSerializer(serializers.ModelSerializer):
    """
    Une ligne de la liste des chats : interlocuteur, résumé du
    dernier message, compteur non lus de l'utilisateur courant.
    """
    interlocuteur    = serializers.SerializerMethodField()
    messages_non_lus = serializers.SerializerMethodField()

    class Meta:
        model  = Conversation
        fields = [
            'id', 'interlocuteur', 'annonce',
            'dernier_message', 'dernier_message_date',
            'messages_non_lus', 'est_active', 'date_creation',
        ]
        read_only_fields = fields

    def get_interlocuteur(self, obj):
        autre = obj.get_autre_participant(self.context['request'].user)
        if autre is None:
            return None
        return UtilisateurPublicSerializer(autre).data

    def get_messages_non_lus(self, obj):
        return obj.non_lus_pour(self.context['request'].user)


class ConversationDetailSerializer(ConversationListSerializer):
    participants = UtilisateurPublicSerializer(many=True, read_only=True)

    class Meta(ConversationListSerializer.Meta):
        fields = ConversationListSerializer.Meta.fields + ['participants', 'cle_paire']
        read_only_fields = fields


class CreerConversationSerializer(serializers.Serializer):
    """
    Validations :
      1. L'utilisateur destinataire doit exister et être actif
      2. L'annonce, si fournie, doit exister
    (le refus de discuter avec soi-même est porté par ChatService)
    """
    utilisateur_id = serializers.IntegerField()
    annonce_id     = serializers.IntegerField(required=False, allow_null=True)

    def validate_utilisateur_id(self, value):
        if not User.objects.filter(id=value, is_active=True).exists():
            raise serializers.ValidationError("Utilisateur introuvable ou inactif.")
        return value

    def validate_annonce_id(self, value):
        if value is not None and not Annonce.objects.filter(id=value).exists():
            raise serializers.ValidationError("Annonce introuvable.")
        return value
