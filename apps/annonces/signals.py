"""
Campus Market — annonces/signals.py

Diffuse le cycle de vie des annonces à toutes les connexions ouvertes :
  - création     → new_listing    {annonce}
  - modification → listing_update {annonce}   (y compris la vente confirmée)
  - suppression  → listing_delete {listingId}

La diffusion attend le commit de la transaction : une annonce annulée
par un rollback n'est jamais annoncée.
"""
import logging

from django.db import transaction
from django.db.models.signals import post_delete, post_save
from django.dispatch import receiver

from apps.notifications.diffusion import diffuser_a_tous

logger = logging.getLogger(__name__)


@receiver(post_save, sender='annonces.Annonce')
def diffuser_annonce_enregistree(sender, instance, created, **kwargs):
    from .serializers import AnnonceSerializer

    evenement = 'new_listing' if created else 'listing_update'
    donnees   = {'annonce': AnnonceSerializer(instance).data}
    transaction.on_commit(lambda: diffuser_a_tous(evenement, donnees))
    logger.debug(f"{evenement} programmé pour l'annonce #{instance.pk}")


@receiver(post_delete, sender='annonces.Annonce')
def diffuser_annonce_supprimee(sender, instance, **kwargs):
    listing_id = instance.pk
    transaction.on_commit(lambda: diffuser_a_tous('listing_delete', {'listingId': listing_id}))
