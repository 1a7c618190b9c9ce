"""
Campus Market — annonces/managers.py

Raccourci pour la requête la plus fréquente :
  Annonce.disponibles.all()
au lieu de
  Annonce.objects.filter(est_active=True, est_vendue=False)
"""
from django.db import models


class AnnonceDisponibleManager(models.Manager):
    """Annonces encore achetables (actives et non vendues)."""
    def get_queryset(self):
        return super().get_queryset().filter(
            est_active=True,
            est_vendue=False,
        ).select_related('vendeur')
