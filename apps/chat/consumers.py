"""
Campus Market — chat/consumers.py
Consumer WebSocket : présence, salons et relais des messages.

Fonctionnement :
  1. Le client ouvre ws://<hôte>/ws/marche/?token=<jeton>
  2. connect()    → jeton résolu par TokenAuthMiddleware, sinon fermeture 4001
                    rejoint son canal privé "utilisateur_<uid>" + le groupe public
  3. receive()    → trame {"event": ..., "data": {...}} dispatchée par nom
  4. disconnect() → quitte tous ses groupes, oublie l'entrée de présence

Événements reçus :
  join_chat    {roomId}                 → user_online {userId} au salon
  leave_chat   {roomId}                 → user_offline {userId} au salon
  typing_start {roomId}                 → user_typing {userId, chatId} aux autres
  typing_stop  {roomId}                 → user_stopped_typing {userId, chatId} aux autres
  send_message {roomId, text?, images?} → new_message au salon

Salon "community" : rien n'est enregistré, l'expéditeur n'est pas diffusé.
Salon de conversation : aperçu optimiste, NON enregistré. L'enregistrement
se fait par POST /api/chat/<id>/envoyer/ (voir services.py).

Trames invalides, événements inconnus et salons mal formés
sont ignorés silencieusement (log debug uniquement).
"""
import json
import logging

from channels.generic.websocket import AsyncWebsocketConsumer
from django.core.exceptions import ValidationError

from apps.notifications.diffusion import (
    GROUPE_PUBLIC, adiffuser_salon, groupe_salon, groupe_utilisateur,
)
from .models import MessageChat
from .presence import est_communaute, registre, salon_valide

logger = logging.getLogger(__name__)


class ChatConsumer(AsyncWebsocketConsumer):
    """
    Attributs définis dans connect() :
      self.user         : utilisateur authentifié (scope)
      self.uid          : identifiant externe (clé du canal privé)
      self.groupe_prive : "utilisateur_<uid>"
    """

    # Événement client → méthode du consumer
    EVENEMENTS = {
        'join_chat'   : 'rejoindre_salon',
        'leave_chat'  : 'quitter_salon',
        'typing_start': 'debut_saisie',
        'typing_stop' : 'fin_saisie',
        'send_message': 'relayer_message',
    }

    async def connect(self):
        self.user = self.scope.get('user')

        # ── Vérification : authentifié ────────────────────────────────────────
        if self.user is None or not self.user.is_authenticated:
            await self.close(code=4001)
            return

        self.uid          = self.user.uid_externe
        self.groupe_prive = groupe_utilisateur(self.uid)

        await self.channel_layer.group_add(self.groupe_prive, self.channel_name)
        await self.channel_layer.group_add(GROUPE_PUBLIC, self.channel_name)
        registre.enregistrer(self.channel_name, self.uid)

        await self.accept()
        logger.debug(f"Connexion WebSocket ouverte : {self.uid}")

    async def disconnect(self, close_code):
        """Quitte tous les groupes. Aucun user_offline n'est diffusé ici."""
        if not hasattr(self, 'groupe_prive'):
            return
        entree = registre.oublier(self.channel_name)
        if entree is not None:
            for salon in entree.salons:
                await self.channel_layer.group_discard(groupe_salon(salon), self.channel_name)
        await self.channel_layer.group_discard(self.groupe_prive, self.channel_name)
        await self.channel_layer.group_discard(GROUPE_PUBLIC, self.channel_name)

    async def receive(self, text_data=None, bytes_data=None):
        try:
            trame = json.loads(text_data)
        except (json.JSONDecodeError, TypeError):
            logger.debug("Trame WebSocket ignorée : JSON invalide")
            return

        if not isinstance(trame, dict):
            return
        donnees = trame.get('data') or {}
        if not isinstance(donnees, dict):
            return

        methode = self.EVENEMENTS.get(trame.get('event'))
        if methode is None:
            logger.debug(f"Événement WebSocket inconnu : {trame.get('event')!r}")
            return

        salon = salon_valide(donnees.get('roomId', donnees.get('chatId')))
        if salon is None:
            logger.debug(f"Salon mal formé ignoré : {donnees.get('roomId')!r}")
            return

        await getattr(self, methode)(salon, donnees)

    # ── Présence ─────────────────────────────────────────────────────────────

    async def rejoindre_salon(self, salon, donnees):
        registre.rejoindre(self.channel_name, salon)
        await self.channel_layer.group_add(groupe_salon(salon), self.channel_name)
        await adiffuser_salon(salon, 'user_online', {'userId': self.uid})

    async def quitter_salon(self, salon, donnees):
        registre.quitter(self.channel_name, salon)
        await self.channel_layer.group_discard(groupe_salon(salon), self.channel_name)
        await adiffuser_salon(salon, 'user_offline', {'userId': self.uid})

    async def debut_saisie(self, salon, donnees):
        await adiffuser_salon(
            salon, 'user_typing', {'userId': self.uid, 'chatId': salon},
            exclure=self.channel_name,
        )

    async def fin_saisie(self, salon, donnees):
        await adiffuser_salon(
            salon, 'user_stopped_typing', {'userId': self.uid, 'chatId': salon},
            exclure=self.channel_name,
        )

    # ── Relais des messages ──────────────────────────────────────────────────

    async def relayer_message(self, salon, donnees):
        texte  = donnees.get('text') or ''
        images = donnees.get('images') or []
        if not isinstance(texte, str) or not isinstance(images, list):
            return

        communaute = est_communaute(salon)

        # Jamais enregistré ici, mais soumis aux mêmes règles qu'un message persisté
        message = MessageChat(
            conversation_id=None if communaute else int(salon),
            expediteur=self.user,
            type_message=MessageChat.TypeMessage.IMAGE if images else MessageChat.TypeMessage.TEXTE,
            contenu=texte,
            images=images,
        )
        try:
            message.valider_contenu()
        except ValidationError as e:
            logger.debug(f"Message relayé rejeté ({salon}) : {e.messages[0]}")
            return

        if communaute:
            await adiffuser_salon(salon, 'new_message', {
                'chatId'   : salon,
                'text'     : message.contenu,
                'images'   : message.images,
                'createdAt': message.date_envoi,
            })
            return

        await adiffuser_salon(salon, 'new_message', {
            'chatId'     : salon,
            'text'       : message.contenu,
            'images'     : message.images,
            'messageType': message.type_message,
            'senderId'   : self.uid,
            'createdAt'  : message.date_envoi,
        })

    # ── Handler Channel Layer ────────────────────────────────────────────────

    async def evenement_relaye(self, event):
        """
        Appelé pour chaque message de type 'evenement.relaye' reçu par un
        groupe de cette connexion (voir notifications/diffusion.py).
        """
        if event.get('exclure') == self.channel_name:
            return
        await self.send(text_data=json.dumps({
            'event': event['evenement'],
            'data' : event['donnees'],
        }))
