"""
Vues API REST pour le chat (conversations + messages).

Endpoints :
  GET    /api/chat/                           → mes conversations
  POST   /api/chat/creer/                     → démarrer une conversation
  GET    /api/chat/<id>/                      → détail d'une conversation
  GET    /api/chat/<id>/messages/             → historique (50 par page, plus récents d'abord)
  POST   /api/chat/<id>/envoyer/              → envoyer un message (écriture durable)
  POST   /api/chat/<id>/marquer_lu/           → accusé de lecture
  PATCH  /api/chat/<id>/messages/<mid>/       → modifier un message (15 min)
  DELETE /api/chat/<id>/messages/<mid>/       → supprimer un message
  POST   /api/chat/<id>/quitter/              → quitter la conversation

Toutes les routes nécessitent d'être authentifié.
Un utilisateur ne voit que SES conversations.
"""
from django.core.exceptions import ValidationError
from django.shortcuts import get_object_or_404
from rest_framework import generics, permissions, status
from rest_framework.pagination import PageNumberPagination
from rest_framework.response import Response
from rest_framework.views import APIView

from apps.annonces.models import Annonce
from apps.users.models import CustomUser
from apps.users.permissions import EstParticipant
from .filters import MessageChatFilter
from .models import Conversation, MessageChat
from .serializers import (
    ConversationDetailSerializer,
    ConversationListSerializer,
    CreerConversationSerializer,
    EnvoyerMessageSerializer,
    MessageChatSerializer,
    ModifierMessageSerializer,
)
from .services import ChatService


def erreur_400(e):
    return Response({'detail': e.messages[0]}, status=status.HTTP_400_BAD_REQUEST)


class ConversationMixin:
    """Charge la conversation de l'URL et vérifie l'appartenance (403)."""
    permission_classes = [permissions.IsAuthenticated, EstParticipant]

    def get_conversation(self):
        conversation = get_object_or_404(Conversation, pk=self.kwargs['pk'])
        self.check_object_permissions(self.request, conversation)
        return conversation


# ═══════════════════════════════════════════════════════════════
# VUES API — Conversations
# ═══════════════════════════════════════════════════════════════

class ConversationListeAPIView(generics.ListAPIView):
    """Conversations actives de l'utilisateur, la plus récente d'abord."""
    serializer_class   = ConversationListSerializer
    permission_classes = [permissions.IsAuthenticated]

    def get_queryset(self):
        return Conversation.objects.filter(
            participations__utilisateur=self.request.user,
            est_active=True,
        ).select_related('annonce').order_by('-dernier_message_date', '-date_modification')


class ConversationCreerAPIView(APIView):
    """
    POST /api/chat/creer/ {utilisateur_id, annonce_id?}
    201 si la conversation est créée, 200 si elle existait déjà.
    """
    permission_classes = [permissions.IsAuthenticated]

    def post(self, request):
        serializer = CreerConversationSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        destinataire = CustomUser.objects.get(pk=serializer.validated_data['utilisateur_id'])
        annonce_id   = serializer.validated_data.get('annonce_id')
        annonce      = Annonce.objects.get(pk=annonce_id) if annonce_id else None

        try:
            conversation, created = ChatService.demarrer_conversation(
                request.user, destinataire, annonce=annonce,
            )
        except ValidationError as e:
            return erreur_400(e)

        data = ConversationListSerializer(conversation, context={'request': request}).data
        return Response(data, status=status.HTTP_201_CREATED if created else status.HTTP_200_OK)


class ConversationDetailAPIView(ConversationMixin, APIView):

    def get(self, request, pk):
        conversation = self.get_conversation()
        return Response(ConversationDetailSerializer(conversation, context={'request': request}).data)


class QuitterConversationAPIView(ConversationMixin, APIView):

    def post(self, request, pk):
        conversation = self.get_conversation()
        ChatService.retirer_participant(conversation, request.user)
        return Response({'detail': 'Vous avez quitté la conversation.'})


# ═══════════════════════════════════════════════════════════════
# VUES API — Messages
# ═══════════════════════════════════════════════════════════════

class HistoriquePagination(PageNumberPagination):
    page_size = 50


class MessageListeAPIView(ConversationMixin, generics.ListAPIView):
    """
    Historique durable : seuls les messages enregistrés par /envoyer/
    y figurent (jamais ceux du salon "community" ni les aperçus relayés).
    Les messages supprimés sont exclus.
    """
    serializer_class = MessageChatSerializer
    filterset_class  = MessageChatFilter
    pagination_class = HistoriquePagination

    def get_queryset(self):
        conversation = self.get_conversation()
        return MessageChat.objects.filter(
            conversation=conversation,
            is_deleted=False,
        ).select_related('expediteur').order_by('-date_envoi', '-pk')


class EnvoyerMessageAPIView(ConversationMixin, APIView):

    def post(self, request, pk):
        conversation = self.get_conversation()
        serializer   = EnvoyerMessageSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            message = ChatService.envoyer_message(
                conversation,
                request.user,
                contenu=serializer.validated_data['contenu'],
                images=serializer.validated_data['images'],
            )
        except ValidationError as e:
            return erreur_400(e)

        return Response(MessageChatSerializer(message).data, status=status.HTTP_201_CREATED)


class MarquerLuAPIView(ConversationMixin, APIView):

    def post(self, request, pk):
        conversation = self.get_conversation()
        nombre = ChatService.marquer_lu(conversation, request.user)
        return Response({
            'detail' : f'{nombre} message(s) marqué(s) comme lu(s).',
            'nombre' : nombre,
        })


class MessageDetailAPIView(ConversationMixin, APIView):
    """PATCH modifie le texte (auteur, 15 min). DELETE supprime logiquement."""

    def get_message(self):
        conversation = self.get_conversation()
        return get_object_or_404(MessageChat, pk=self.kwargs['message_id'], conversation=conversation)

    def patch(self, request, pk, message_id):
        message    = self.get_message()
        serializer = ModifierMessageSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            message = ChatService.modifier_message(message, request.user, serializer.validated_data['contenu'])
        except ValidationError as e:
            return erreur_400(e)
        return Response(MessageChatSerializer(message).data)

    def delete(self, request, pk, message_id):
        message = self.get_message()
        ChatService.supprimer_message(message, request.user)
        return Response(status=status.HTTP_204_NO_CONTENT)
