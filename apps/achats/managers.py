"""
Campus Market — achats/managers.py

  TentativeAchat.objects.en_attente() → statut pending, expirées comprises
  TentativeAchat.objects.en_cours()   → pending ET date_expiration future
  TentativeAchat.objects.perimees()   → pending dont l'échéance est passée

L'expiration est appliquée par la requête : une tentative périmée
n'est jamais utilisable, même avant le passage de la tâche de nettoyage.
"""
from django.db import models
from django.utils import timezone


class TentativeAchatQuerySet(models.QuerySet):

    def en_attente(self):
        return self.filter(statut=self.model.EN_ATTENTE)

    def en_cours(self):
        return self.en_attente().filter(date_expiration__gt=timezone.now())

    def perimees(self):
        return self.en_attente().filter(date_expiration__lte=timezone.now())
