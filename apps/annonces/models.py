"""
Campus Market — annonces/models.py
Annonces publiées par les étudiants.

Ce module est le "magasin d'annonces" consommé par le chat et par
le protocole d'achat : lecture par id et passage à l'état vendu.
La publication et l'édition des annonces se font dans l'admin Django.
"""
from django.conf import settings
from django.core.validators import MinValueValidator
from django.db import models
from django.utils import timezone

from .managers import AnnonceDisponibleManager


class Annonce(models.Model):

    class Categorie(models.TextChoices):
        LIVRES       = 'livres',       'Livres & cours'
        ELECTRONIQUE = 'electronique', 'Électronique'
        MEUBLES      = 'meubles',      'Meubles'
        VETEMENTS    = 'vetements',    'Vêtements'
        AUTRE        = 'autre',        'Autre'

    class Etat(models.TextChoices):
        NEUF      = 'neuf',      'Neuf'
        TRES_BON  = 'tres_bon',  'Très bon état'
        BON       = 'bon',       'Bon état'
        USAGE     = 'usage',     'Usagé'

    # ── Informations de base ──────────────────────────────────
    titre = models.CharField(
        max_length=100,
        verbose_name="Titre"
    )
    description = models.TextField(
        max_length=1000,
        blank=True,
        verbose_name="Description"
    )
    prix = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        validators=[MinValueValidator(0)],
        verbose_name="Prix"
    )
    categorie = models.CharField(
        max_length=20,
        choices=Categorie.choices,
        default=Categorie.AUTRE,
        verbose_name="Catégorie"
    )
    etat = models.CharField(
        max_length=10,
        choices=Etat.choices,
        default=Etat.BON,
        verbose_name="État"
    )

    # ── Relations ─────────────────────────────────────────────
    vendeur = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='annonces',
        verbose_name="Vendeur"
    )

    # ── Statuts ───────────────────────────────────────────────
    est_active = models.BooleanField(default=True, verbose_name="Active")
    # Passe à True une seule fois, quand le vendeur confirme la remise par OTP
    est_vendue = models.BooleanField(default=False, verbose_name="Vendue")

    vues = models.PositiveIntegerField(default=0, verbose_name="Vues")

    # ── Dates ─────────────────────────────────────────────────
    date_creation     = models.DateTimeField(default=timezone.now)
    date_modification = models.DateTimeField(auto_now=True)

    # ── Managers ──────────────────────────────────────────────
    objects     = models.Manager()
    disponibles = AnnonceDisponibleManager()

    class Meta:
        verbose_name = "Annonce"
        verbose_name_plural = "Annonces"
        ordering = ['-date_creation']
        indexes = [
            models.Index(fields=['est_active', 'est_vendue'], name='annonce_disponible_idx'),
            models.Index(fields=['vendeur', '-date_creation'], name='annonce_vendeur_date_idx'),
        ]

    def __str__(self):
        return self.titre

    @property
    def est_disponible(self):
        return self.est_active and not self.est_vendue

    def marquer_vendue(self):
        """
        Retire l'annonce du marché.
        Appelé dans la transaction de confirmation d'achat.
        """
        self.est_vendue = True
        self.est_active = False
        self.save(update_fields=['est_vendue', 'est_active', 'date_modification'])
