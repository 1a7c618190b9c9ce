"""
Achat en main propre confirmé par code OTP.

Déroulement :
  1. L'acheteur initie l'achat → une TentativeAchat "pending" est créée
     et le code part sur son canal privé WebSocket
  2. Au moment de la remise, l'acheteur montre le code au vendeur
  3. Le vendeur saisit le code → l'annonce passe à vendue, la tentative
     est confirmée

Machine à états (django-fsm) :
  ┌──────────┐
  │ PENDING  │ ← état initial
  └────┬─────┘
       ├── confirmer() → CONFIRMED  (code correct saisi par le vendeur)
       ├── annuler()   → CANCELLED  (remplacée par une nouvelle tentative,
       │                             ou annonce vendue à un autre acheteur)
       └── expirer()   → EXPIRED    (échéance dépassée ou trop d'essais)

Une seule tentative "pending" par couple (annonce, acheteur),
garantie par une contrainte d'unicité partielle.
"""
from django.conf import settings
from django.db import models
from django.db.models import Q
from django.utils import timezone
from django_fsm import FSMField, transition

from . import otp
from .managers import TentativeAchatQuerySet


class TentativeAchat(models.Model):

    # ── Statuts possibles ─────────────────────────────────────
    EN_ATTENTE = 'pending'
    CONFIRMEE  = 'confirmed'
    ANNULEE    = 'cancelled'
    EXPIREE    = 'expired'

    STATUT_CHOICES = [
        (EN_ATTENTE, 'En attente'),
        (CONFIRMEE,  'Confirmée'),
        (ANNULEE,    'Annulée'),
        (EXPIREE,    'Expirée'),
    ]

    # ── Relations ─────────────────────────────────────────────
    annonce = models.ForeignKey(
        'annonces.Annonce',
        on_delete=models.CASCADE,
        related_name='tentatives_achat',
        verbose_name="Annonce"
    )
    # Copié depuis l'annonce à la création
    vendeur = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='tentatives_vente',
        verbose_name="Vendeur"
    )
    acheteur = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='tentatives_achat',
        verbose_name="Acheteur"
    )
    # Clé du canal privé de l'acheteur (notifications)
    uid_acheteur = models.CharField(max_length=128, verbose_name="Identifiant externe de l'acheteur")

    # ── Code OTP (jamais stocké en clair) ─────────────────────
    otp_hash = models.CharField(max_length=64, verbose_name="Empreinte du code")
    otp_sel  = models.CharField(max_length=24, verbose_name="Sel")
    date_expiration = models.DateTimeField(db_index=True, verbose_name="Expire le")
    essais_echoues  = models.PositiveSmallIntegerField(default=0, verbose_name="Essais échoués")

    # ── Statut FSM ────────────────────────────────────────────
    # protected=False : les annulations groupées passent par queryset.update()
    statut = FSMField(
        default=EN_ATTENTE,
        choices=STATUT_CHOICES,
        protected=False,
        db_index=True,
        verbose_name="Statut"
    )

    date_creation     = models.DateTimeField(default=timezone.now, verbose_name="Initiée le")
    date_modification = models.DateTimeField(auto_now=True)

    objects = TentativeAchatQuerySet.as_manager()

    class Meta:
        verbose_name = "Tentative d'achat"
        verbose_name_plural = "Tentatives d'achat"
        ordering = ['-date_creation', '-pk']
        constraints = [
            models.UniqueConstraint(
                fields=['annonce', 'acheteur'],
                condition=Q(statut='pending'),
                name='tentative_en_attente_unique',
            ),
        ]
        indexes = [
            models.Index(fields=['annonce', 'statut', 'date_expiration'], name='tentative_annonce_statut_idx'),
        ]

    def __str__(self):
        return f"Achat #{self.pk} — annonce #{self.annonce_id} ({self.statut})"

    @property
    def est_expiree(self):
        return timezone.now() >= self.date_expiration

    def verifier_code(self, code):
        return otp.comparer_code(code, self.otp_sel, self.otp_hash)

    # ── Transitions FSM ───────────────────────────────────────

    @transition(field=statut, source=EN_ATTENTE, target=CONFIRMEE)
    def confirmer(self):
        """Code correct : la remise a eu lieu."""

    @transition(field=statut, source=EN_ATTENTE, target=ANNULEE)
    def annuler(self):
        """Remplacée par une nouvelle demande, ou annonce vendue à un autre acheteur."""

    @transition(field=statut, source=EN_ATTENTE, target=EXPIREE)
    def expirer(self):
        """Échéance dépassée ou trop d'essais de code échoués."""
