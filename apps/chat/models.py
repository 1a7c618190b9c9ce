"""
Gestion du chat entre étudiants.

Architecture :
  - Conversation   : discussion entre participants, éventuellement liée à une annonce
  - Participation  : appartenance d'un utilisateur à une conversation + compteur non lus
  - MessageChat    : un message (texte, image ou système)
  - LectureMessage : accusé de lecture d'un message par un utilisateur

Choix de conception :
  - cle_paire = "<petit id>-<grand id>" : une seule conversation ACTIVE par paire
    d'utilisateurs, garantie par une contrainte d'unicité partielle en base
    (deux requêtes simultanées ne peuvent pas créer de doublon).
  - Les compteurs non lus sont modifiés par F() (jamais lus puis réécrits).
  - Le type de message est un discriminant : validation et aperçu passent
    par une table de dispatch, une fonction par type.
"""
from datetime import timedelta

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import IntegrityError, models, transaction
from django.db.models import Q
from django.utils import timezone


# Limites d'un message
MAX_CONTENU         = 2000
MAX_IMAGES          = 5
MAX_DERNIER_MESSAGE = 500
LONGUEUR_APERCU     = 100
DELAI_MODIFICATION  = timedelta(minutes=15)
TEXTE_SUPPRIME      = "Ce message a été supprimé"


def tronquer(texte, longueur):
    """Coupe à `longueur` caractères et ajoute '...' si nécessaire."""
    if len(texte) <= longueur:
        return texte
    return texte[:longueur] + '...'


# ═══════════════════════════════════════════════════════════════
# CONVERSATION
# ═══════════════════════════════════════════════════════════════

class Conversation(models.Model):

    participants = models.ManyToManyField(
        settings.AUTH_USER_MODEL,
        through='Participation',
        related_name='conversations',
        verbose_name="Participants"
    )

    # Vide pour une conversation qui n'est pas un échange direct à deux
    cle_paire = models.CharField(
        max_length=50,
        blank=True,
        db_index=True,
        verbose_name="Clé de paire"
    )

    # Annonce à l'origine de la discussion (optionnelle)
    annonce = models.ForeignKey(
        'annonces.Annonce',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='conversations',
        verbose_name="Annonce"
    )

    # ── Résumé du dernier message (liste des conversations) ───
    dernier_message = models.CharField(
        max_length=MAX_DERNIER_MESSAGE + 3,
        blank=True,
        verbose_name="Dernier message"
    )
    dernier_message_date = models.DateTimeField(null=True, blank=True)
    dernier_expediteur = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='+',
    )

    # False quand le dernier participant a quitté la conversation
    est_active = models.BooleanField(default=True, verbose_name="Active")

    date_creation     = models.DateTimeField(auto_now_add=True, verbose_name="Créée le")
    date_modification = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = "Conversation"
        verbose_name_plural = "Conversations"
        ordering = ['-date_modification']
        constraints = [
            models.UniqueConstraint(
                fields=['cle_paire'],
                condition=Q(est_active=True) & ~Q(cle_paire=''),
                name='conversation_paire_active_unique',
            ),
        ]

    def __str__(self):
        return f"Conversation #{self.pk} ({self.cle_paire or 'groupe'})"

    @staticmethod
    def cle_pour(user1, user2):
        """Clé non ordonnée : (A, B) et (B, A) donnent la même."""
        petit, grand = sorted([user1.pk, user2.pk])
        return f"{petit}-{grand}"

    @classmethod
    def get_or_create_between(cls, user1, user2, annonce=None):
        """
        Retourne la conversation active entre deux utilisateurs ou la crée.
        Idempotent : l'appel répété (ou concurrent) retourne la même conversation.

        Returns:
            (conversation, created)
        """
        cle = cls.cle_pour(user1, user2)
        try:
            with transaction.atomic():
                conversation, created = cls.objects.get_or_create(
                    cle_paire=cle,
                    est_active=True,
                    defaults={'annonce': annonce},
                )
        except IntegrityError:
            # Créée entre-temps par une requête concurrente
            conversation, created = cls.objects.get(cle_paire=cle, est_active=True), False

        # Un participant parti est réintégré s'il relance la discussion
        for user in (user1, user2):
            conversation.ajouter_participant(user)
        return conversation, created

    def est_participant(self, user):
        if not user or not user.is_authenticated:
            return False
        return self.participations.filter(utilisateur=user).exists()

    def get_autre_participant(self, user):
        """Interlocuteur dans une conversation à deux (None si seul)."""
        return self.participants.exclude(pk=user.pk).first()

    def ajouter_participant(self, user):
        Participation.objects.get_or_create(conversation=self, utilisateur=user)

    def retirer_participant(self, user):
        """
        Retire un participant. Sans participant restant,
        la conversation est désactivée (libère la clé de paire).

        Returns:
            bool : True si l'utilisateur faisait partie de la conversation
        """
        supprimes, _ = self.participations.filter(utilisateur=user).delete()
        if not self.participations.exists():
            self.est_active = False
            self.save(update_fields=['est_active', 'date_modification'])
        return supprimes > 0

    def non_lus_pour(self, user):
        participation = self.participations.filter(utilisateur=user).first()
        return participation.non_lus if participation else 0


class Participation(models.Model):

    conversation = models.ForeignKey(
        Conversation,
        on_delete=models.CASCADE,
        related_name='participations'
    )
    utilisateur = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='participations'
    )

    # Messages reçus et pas encore lus par cet utilisateur
    non_lus = models.PositiveIntegerField(default=0, verbose_name="Non lus")

    date_arrivee = models.DateTimeField(auto_now_add=True)

    class Meta:
        verbose_name = "Participation"
        verbose_name_plural = "Participations"
        constraints = [
            models.UniqueConstraint(
                fields=['conversation', 'utilisateur'],
                name='participation_unique',
            ),
        ]

    def __str__(self):
        return f"{self.utilisateur} dans #{self.conversation_id}"


# ═══════════════════════════════════════════════════════════════
# MESSAGE CHAT
# ═══════════════════════════════════════════════════════════════

def _valider_corps(message):
    if not message.contenu.strip():
        raise ValidationError("Le message ne peut pas être vide.")


def _valider_images(message):
    if not message.images:
        raise ValidationError("Un message image doit contenir au moins une image.")


def _apercu_texte(message):
    return tronquer(message.contenu, LONGUEUR_APERCU)


def _apercu_image(message):
    if not message.images:
        return "Message image"
    return f"📷 {len(message.images)} image(s)"


def _apercu_systeme(message):
    return message.contenu


class MessageChat(models.Model):
    """
    Cycle de vie :
      1. Envoyé par POST /api/chat/<id>/envoyer/ (ChatService.envoyer_message)
      2. Diffusé au salon "chat_<id>" du Channel Layer
      3. Lu : une LectureMessage par lecteur, is_read passe à True
      4. Éventuellement modifié (15 min, texte seulement) ou supprimé (logique)
    """

    class TypeMessage(models.TextChoices):
        TEXTE   = 'text',   'Texte'
        IMAGE   = 'image',  'Image'
        SYSTEME = 'system', 'Système'

    conversation = models.ForeignKey(
        Conversation,
        on_delete=models.CASCADE,
        related_name='messages',
        verbose_name="Conversation"
    )

    # NULL uniquement pour les messages système
    expediteur = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='messages_envoyes',
        verbose_name="Expéditeur"
    )

    type_message = models.CharField(
        max_length=10,
        choices=TypeMessage.choices,
        default=TypeMessage.TEXTE,
        verbose_name="Type"
    )

    contenu = models.TextField(max_length=MAX_CONTENU, blank=True, verbose_name="Message")

    # Liste ordonnée de références de pièces jointes (URL ou clé de stockage)
    images = models.JSONField(default=list, blank=True, verbose_name="Images")

    # ── Lecture ───────────────────────────────────────────────
    lecteurs = models.ManyToManyField(
        settings.AUTH_USER_MODEL,
        through='LectureMessage',
        related_name='messages_lus',
        blank=True,
    )
    is_read      = models.BooleanField(default=False, verbose_name="Lu")
    date_lecture = models.DateTimeField(null=True, blank=True, verbose_name="Lu le")

    # ── Modification / suppression ────────────────────────────
    is_deleted = models.BooleanField(default=False, verbose_name="Supprimé")
    date_modification_contenu = models.DateTimeField(null=True, blank=True, verbose_name="Modifié le")

    # Horodatage serveur, aussi porté par les messages relayés non enregistrés
    date_envoi = models.DateTimeField(default=timezone.now, db_index=True, verbose_name="Envoyé le")

    VALIDATEURS = {
        TypeMessage.TEXTE  : _valider_corps,
        TypeMessage.IMAGE  : _valider_images,
        TypeMessage.SYSTEME: _valider_corps,
    }

    APERCUS = {
        TypeMessage.TEXTE  : _apercu_texte,
        TypeMessage.IMAGE  : _apercu_image,
        TypeMessage.SYSTEME: _apercu_systeme,
    }

    class Meta:
        verbose_name = "Message"
        verbose_name_plural = "Messages"
        # Ordre chronologique, l'id départage deux messages de même horodatage
        ordering = ['date_envoi', 'pk']
        indexes = [
            models.Index(fields=['conversation', 'date_envoi'], name='message_conv_date_idx'),
        ]

    def __str__(self):
        exp = self.expediteur.username if self.expediteur else "Système"
        return f"[{exp}] {tronquer(self.apercu, 40)}"

    # ── Validation ────────────────────────────────────────────

    def valider_contenu(self):
        """
        Vérifie le message selon son type.
        Lève ValidationError avec un message lisible.
        """
        if len(self.contenu) > MAX_CONTENU:
            raise ValidationError(f"Le message ne peut pas dépasser {MAX_CONTENU} caractères.")
        if not isinstance(self.images, list) or not all(isinstance(i, str) and i for i in self.images):
            raise ValidationError("Les images doivent être une liste de références.")
        if len(self.images) > MAX_IMAGES:
            raise ValidationError(f"{MAX_IMAGES} images maximum par message.")

        try:
            type_message = self.TypeMessage(self.type_message)
        except ValueError:
            raise ValidationError("Type de message inconnu.")
        self.VALIDATEURS[type_message](self)

        if self.type_message == self.TypeMessage.SYSTEME:
            if self.expediteur_id is not None:
                raise ValidationError("Un message système n'a pas d'expéditeur.")
        elif self.expediteur_id is None:
            raise ValidationError("L'expéditeur est obligatoire.")

    def clean(self):
        self.valider_contenu()

    # ── Affichage ─────────────────────────────────────────────

    @property
    def apercu(self):
        if self.is_deleted:
            return TEXTE_SUPPRIME
        return self.APERCUS[self.TypeMessage(self.type_message)](self)

    @property
    def est_modifie(self):
        return self.date_modification_contenu is not None

    # ── Règles métier ─────────────────────────────────────────

    def peut_modifier(self, user):
        """Texte, non supprimé, de l'auteur, dans les 15 minutes."""
        return (
            self.expediteur_id is not None and
            self.expediteur_id == user.pk and
            not self.is_deleted and
            self.type_message == self.TypeMessage.TEXTE and
            timezone.now() - self.date_envoi < DELAI_MODIFICATION
        )

    def peut_supprimer(self, user):
        return (
            self.expediteur_id is not None and
            self.expediteur_id == user.pk and
            not self.is_deleted
        )


class LectureMessage(models.Model):
    """Accusé de lecture : un par (message, lecteur)."""

    message = models.ForeignKey(
        MessageChat,
        on_delete=models.CASCADE,
        related_name='lectures'
    )
    utilisateur = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='lectures'
    )
    date_lecture = models.DateTimeField(default=timezone.now)

    class Meta:
        verbose_name = "Lecture"
        verbose_name_plural = "Lectures"
        constraints = [
            models.UniqueConstraint(
                fields=['message', 'utilisateur'],
                name='lecture_unique',
            ),
        ]
