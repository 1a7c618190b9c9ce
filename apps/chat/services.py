"""
Campus Market — chat/services.py
Service métier du chat : chemin d'écriture durable.

Le consumer WebSocket ne fait que relayer des aperçus optimistes ;
l'historique d'une conversation ne contient QUE ce qui est passé par ici,
via une requête HTTP authentifiée.

Règles :
  - Un message accepté met à jour le résumé de la conversation et
    incrémente le compteur non lus de chaque AUTRE participant (F()).
  - La lecture (marquer_lu) crée les accusés, passe les messages à lu
    et remet à zéro le compteur du lecteur, en une transaction.
  - Les diffusions temps réel partent après le commit (on_commit),
    au mieux : une panne du Channel Layer n'annule rien.
"""
import logging

from django.core.exceptions import PermissionDenied, ValidationError
from django.db import transaction
from django.db.models import F
from django.utils import timezone

from apps.notifications.diffusion import diffuser_salon
from .models import (
    MAX_DERNIER_MESSAGE, Conversation, LectureMessage, MessageChat, Participation,
    TEXTE_SUPPRIME, tronquer,
)

logger = logging.getLogger(__name__)


def donnees_message(message):
    """Charge utile de l'événement new_message pour un message enregistré."""
    return {
        'chatId'     : str(message.conversation_id),
        'messageId'  : message.pk,
        'text'       : message.contenu,
        'images'     : message.images,
        'messageType': message.type_message,
        'senderId'   : message.expediteur.uid_externe if message.expediteur else None,
        'preview'    : message.apercu,
        'createdAt'  : message.date_envoi,
    }


class ChatService:
    """
    Usage :
      conversation, created = ChatService.demarrer_conversation(alice, bob)
      message = ChatService.envoyer_message(conversation, alice, contenu="Bonjour")
      ChatService.marquer_lu(conversation, bob)
    """

    @staticmethod
    def verifier_participant(conversation, utilisateur):
        if not conversation.est_participant(utilisateur):
            raise PermissionDenied("Vous n'êtes pas membre de cette conversation.")

    # ── Conversations ─────────────────────────────────────────

    @staticmethod
    def demarrer_conversation(utilisateur, destinataire, annonce=None):
        """
        Retourne la conversation directe entre deux utilisateurs,
        créée au premier contact.

        Returns:
            (conversation, created)

        Raises:
            ValidationError : destinataire = soi-même ou compte inactif
        """
        if destinataire.pk == utilisateur.pk:
            raise ValidationError("Vous ne pouvez pas démarrer une conversation avec vous-même.")
        if not destinataire.is_active:
            raise ValidationError("Utilisateur introuvable ou inactif.")

        conversation, created = Conversation.get_or_create_between(
            utilisateur, destinataire, annonce=annonce,
        )
        if created:
            logger.info(f"Conversation #{conversation.pk} créée ({conversation.cle_paire})")
        return conversation, created

    @staticmethod
    @transaction.atomic
    def retirer_participant(conversation, utilisateur):
        """
        Quitte la conversation. Un message système prévient les autres ;
        sans participant restant la conversation est désactivée.
        """
        ChatService.verifier_participant(conversation, utilisateur)
        conversation.retirer_participant(utilisateur)

        if conversation.est_active:
            ChatService.creer_message_systeme(
                conversation, f"{utilisateur.get_full_name()} a quitté la conversation."
            )
        else:
            logger.info(f"Conversation #{conversation.pk} désactivée (plus de participant)")

    # ── Messages ──────────────────────────────────────────────

    @staticmethod
    def envoyer_message(conversation, expediteur, contenu='', images=None):
        """
        Enregistre un message et le diffuse au salon de la conversation.

        Returns:
            MessageChat

        Raises:
            PermissionDenied : l'expéditeur n'est pas participant
            ValidationError  : conversation fermée ou message invalide
        """
        images = images or []
        ChatService.verifier_participant(conversation, expediteur)
        if not conversation.est_active:
            raise ValidationError("Cette conversation est fermée.")

        message = MessageChat(
            conversation=conversation,
            expediteur=expediteur,
            type_message=MessageChat.TypeMessage.IMAGE if images else MessageChat.TypeMessage.TEXTE,
            contenu=(contenu or '').strip(),
            images=images,
        )
        message.valider_contenu()

        with transaction.atomic():
            message.save()
            ChatService._enregistrer_dernier_message(conversation, message)

        transaction.on_commit(
            lambda: diffuser_salon(conversation.pk, 'new_message', donnees_message(message))
        )
        return message

    @staticmethod
    def creer_message_systeme(conversation, texte):
        """Message sans expéditeur, déjà lu, compté pour personne."""
        message = MessageChat(
            conversation=conversation,
            type_message=MessageChat.TypeMessage.SYSTEME,
            contenu=texte,
            is_read=True,
            date_lecture=timezone.now(),
        )
        message.valider_contenu()
        message.save()
        Conversation.objects.filter(pk=conversation.pk).update(
            dernier_message=tronquer(message.apercu, MAX_DERNIER_MESSAGE),
            dernier_message_date=message.date_envoi,
            dernier_expediteur=None,
        )
        transaction.on_commit(
            lambda: diffuser_salon(conversation.pk, 'new_message', donnees_message(message))
        )
        return message

    @staticmethod
    def _resume(message):
        """Texte du résumé de conversation : jamais le contenu d'un message supprimé."""
        if message.is_deleted:
            return tronquer(message.apercu, MAX_DERNIER_MESSAGE)
        return tronquer(message.contenu or message.apercu, MAX_DERNIER_MESSAGE)

    @staticmethod
    def _rafraichir_resume(message):
        """Réécrit le résumé si `message` est le dernier de sa conversation."""
        dernier = MessageChat.objects.filter(
            conversation_id=message.conversation_id,
        ).order_by('-date_envoi', '-pk').values_list('pk', flat=True).first()
        if dernier == message.pk:
            Conversation.objects.filter(pk=message.conversation_id).update(
                dernier_message=ChatService._resume(message),
            )

    @staticmethod
    def _enregistrer_dernier_message(conversation, message):
        Conversation.objects.filter(pk=conversation.pk).update(
            dernier_message=ChatService._resume(message),
            dernier_message_date=message.date_envoi,
            dernier_expediteur=message.expediteur,
            date_modification=timezone.now(),
        )
        Participation.objects.filter(
            conversation=conversation,
        ).exclude(
            utilisateur=message.expediteur,
        ).update(non_lus=F('non_lus') + 1)

    @staticmethod
    @transaction.atomic
    def modifier_message(message, utilisateur, contenu):
        """Texte seulement, par son auteur, dans les 15 minutes."""
        if not message.peut_modifier(utilisateur):
            raise PermissionDenied("Ce message ne peut plus être modifié.")

        message.contenu = (contenu or '').strip()
        message.valider_contenu()
        message.date_modification_contenu = timezone.now()
        message.save(update_fields=['contenu', 'date_modification_contenu'])
        ChatService._rafraichir_resume(message)
        return message

    @staticmethod
    @transaction.atomic
    def supprimer_message(message, utilisateur):
        """Suppression logique : contenu remplacé, images retirées."""
        if not message.peut_supprimer(utilisateur):
            raise PermissionDenied("Vous ne pouvez pas supprimer ce message.")

        message.is_deleted = True
        message.contenu    = TEXTE_SUPPRIME
        message.images     = []
        message.save(update_fields=['is_deleted', 'contenu', 'images'])
        ChatService._rafraichir_resume(message)
        return message

    # ── Lecture ───────────────────────────────────────────────

    @staticmethod
    def marquer_lu(conversation, utilisateur):
        """
        Marque comme lus par `utilisateur` tous les messages des autres
        qu'il n'a pas encore lus, et remet son compteur à zéro.

        Returns:
            int : nombre de messages nouvellement lus
        """
        ChatService.verifier_participant(conversation, utilisateur)
        maintenant = timezone.now()

        with transaction.atomic():
            ids = list(
                MessageChat.objects.filter(
                    conversation=conversation,
                    is_deleted=False,
                ).exclude(
                    expediteur=utilisateur,
                ).exclude(
                    lectures__utilisateur=utilisateur,
                ).values_list('pk', flat=True)
            )
            LectureMessage.objects.bulk_create(
                [LectureMessage(message_id=pk, utilisateur=utilisateur, date_lecture=maintenant) for pk in ids],
                ignore_conflicts=True,
            )
            # date_lecture = premier accusé seulement
            MessageChat.objects.filter(pk__in=ids, is_read=False).update(
                is_read=True, date_lecture=maintenant,
            )
            Participation.objects.filter(
                conversation=conversation, utilisateur=utilisateur,
            ).update(non_lus=0)

        if ids:
            donnees = {'chatId': str(conversation.pk), 'userId': utilisateur.uid_externe}
            transaction.on_commit(lambda: diffuser_salon(conversation.pk, 'messages_read', donnees))
        return len(ids)
