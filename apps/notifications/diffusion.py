"""
Campus Market — notifications/diffusion.py
Diffusion temps réel via le Channel Layer (Redis en production).

Trois primitives, chacune en version synchrone (vues, services, tâches
Celery, signals) et asynchrone (consumer WebSocket) :

  diffuser_salon(salon, evenement, donnees, exclure=None)
      → tous les membres d'un salon ("community" ou id de conversation)
  envoyer_a_utilisateur(uid, evenement, donnees)
      → toutes les connexions d'une identité (canal privé)
  diffuser_a_tous(evenement, donnees)
      → toutes les connexions ouvertes

Format reçu par le client :
  {"event": "<nom>", "data": {...}}

Livraison "au mieux" : une erreur du Channel Layer (Redis arrêté, etc.)
est journalisée en warning et n'est jamais propagée à l'appelant.
Seuls les membres connectés au moment de l'envoi reçoivent l'événement.
"""
import hashlib
import json
import logging
import re

from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer
from django.core.serializers.json import DjangoJSONEncoder

logger = logging.getLogger(__name__)

# Groupe rejoint par toutes les connexions (événements d'annonces)
GROUPE_PUBLIC = 'public'

# Type du message Channel Layer → méthode ChatConsumer.evenement_relaye()
TYPE_EVENEMENT = 'evenement.relaye'

# Caractères et longueur acceptés par Channels pour un nom de groupe
_GROUPE_VALIDE = re.compile(r'^[a-zA-Z0-9\-_.]{1,80}$')


# ═══════════════════════════════════════════════════════════════
# NOMS DE GROUPES
# ═══════════════════════════════════════════════════════════════

def groupe_salon(salon):
    """'community' → 'chat_community', 42 → 'chat_42'"""
    return f"chat_{salon}"


def groupe_utilisateur(uid):
    """
    Canal privé d'une identité externe.
    Un uid hors alphabet Channels est remplacé par son empreinte SHA-256.
    """
    uid = str(uid)
    if not _GROUPE_VALIDE.match(uid):
        uid = hashlib.sha256(uid.encode()).hexdigest()
    return f"utilisateur_{uid}"


def construire_message(evenement, donnees, exclure=None):
    """
    Message Channel Layer. Les données passent par DjangoJSONEncoder
    pour que dates et Decimal restent sérialisables par channels_redis.
    """
    return {
        'type'     : TYPE_EVENEMENT,
        'evenement': evenement,
        'donnees'  : json.loads(json.dumps(donnees, cls=DjangoJSONEncoder)),
        'exclure'  : exclure,
    }


# ═══════════════════════════════════════════════════════════════
# VERSION ASYNCHRONE (consumer)
# ═══════════════════════════════════════════════════════════════

async def _aenvoyer_groupe(groupe, evenement, donnees, exclure=None):
    channel_layer = get_channel_layer()
    if channel_layer is None:
        logger.warning(f"Aucun Channel Layer configuré, '{evenement}' non diffusé")
        return
    try:
        await channel_layer.group_send(groupe, construire_message(evenement, donnees, exclure))
    except Exception as e:
        logger.warning(f"Diffusion '{evenement}' vers {groupe} échouée : {e}")


async def adiffuser_salon(salon, evenement, donnees, exclure=None):
    await _aenvoyer_groupe(groupe_salon(salon), evenement, donnees, exclure)


async def aenvoyer_a_utilisateur(uid, evenement, donnees):
    await _aenvoyer_groupe(groupe_utilisateur(uid), evenement, donnees)


async def adiffuser_a_tous(evenement, donnees):
    await _aenvoyer_groupe(GROUPE_PUBLIC, evenement, donnees)


# ═══════════════════════════════════════════════════════════════
# VERSION SYNCHRONE (vues, services, signals, tâches Celery)
# channel_layer.group_send() est une coroutine → async_to_sync()
# ═══════════════════════════════════════════════════════════════

def _envoyer_groupe(groupe, evenement, donnees, exclure=None):
    try:
        async_to_sync(_aenvoyer_groupe)(groupe, evenement, donnees, exclure)
    except RuntimeError as e:
        # Appel depuis un thread qui exécute déjà une boucle asyncio
        logger.warning(f"Diffusion '{evenement}' vers {groupe} impossible : {e}")


def diffuser_salon(salon, evenement, donnees, exclure=None):
    _envoyer_groupe(groupe_salon(salon), evenement, donnees, exclure)


def envoyer_a_utilisateur(uid, evenement, donnees):
    _envoyer_groupe(groupe_utilisateur(uid), evenement, donnees)


def diffuser_a_tous(evenement, donnees):
    _envoyer_groupe(GROUPE_PUBLIC, evenement, donnees)
