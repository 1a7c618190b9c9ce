"""
Campus Market — users/models.py
Annuaire des utilisateurs.

L'authentification est déléguée à un fournisseur d'identité externe :
chaque utilisateur est rattaché à son identifiant externe (uid_externe),
créé automatiquement à la première requête authentifiée (voir identity.py).
"""
import uuid

from django.db import models
from django.contrib.auth.models import AbstractBaseUser, BaseUserManager, PermissionsMixin
from django.utils import timezone


def generer_uid_externe():
    """uid par défaut pour les comptes créés localement (admin, tests)."""
    return uuid.uuid4().hex


# ═══════════════════════════════════════════════════════════════
# MANAGER UTILISATEUR
# ═══════════════════════════════════════════════════════════════

class CustomUserManager(BaseUserManager):

    def create_user(self, email, username, password=None, **extra_fields):
        """
        Crée un utilisateur normal.
        Sans mot de passe, le compte ne peut se connecter que via le
        fournisseur d'identité (set_unusable_password).
        """
        if not email:
            raise ValueError("L'adresse email est obligatoire")
        if not username:
            raise ValueError("Le nom d'utilisateur est obligatoire")

        email = self.normalize_email(email)
        user = self.model(email=email, username=username, **extra_fields)

        if password:
            user.set_password(password)
        else:
            user.set_unusable_password()
        user.save(using=self._db)
        return user

    def create_superuser(self, email, username, password=None, **extra_fields):
        """
        Crée un administrateur (accès total).
        Appelé via : python manage.py createsuperuser
        """
        extra_fields.setdefault('is_staff', True)
        extra_fields.setdefault('is_superuser', True)
        extra_fields.setdefault('is_active', True)
        extra_fields.setdefault('is_admin', True)

        return self.create_user(email, username, password, **extra_fields)

    def par_uid(self, uid):
        """Recherche par identifiant externe. Lève DoesNotExist si absent."""
        return self.get(uid_externe=uid)


# ═══════════════════════════════════════════════════════════════
# MODÈLE UTILISATEUR PERSONNALISÉ
# ═══════════════════════════════════════════════════════════════

class CustomUser(AbstractBaseUser, PermissionsMixin):

    # ── Identité externe ──────────────────────────────────────
    # Identifiant stable fourni par le fournisseur d'identité.
    # C'est aussi la clé du canal privé de notifications.
    uid_externe = models.CharField(
        max_length=128,
        unique=True,
        default=generer_uid_externe,
        verbose_name="Identifiant externe"
    )

    # ── Informations de base ──────────────────────────────────
    username = models.CharField(
        max_length=150,
        unique=True,
        verbose_name="Nom d'utilisateur"
    )
    email = models.EmailField(
        unique=True,
        verbose_name="Adresse email"
    )
    nom_affiche = models.CharField(
        max_length=100,
        blank=True,
        verbose_name="Nom affiché"
    )
    bloc_residence = models.CharField(
        max_length=50,
        blank=True,
        verbose_name="Bloc de résidence"
    )

    # ── Statuts du compte ─────────────────────────────────────
    is_active = models.BooleanField(
        default=True,            # Le fournisseur d'identité a déjà vérifié le compte
        verbose_name="Compte actif"
    )
    is_staff = models.BooleanField(
        default=False,
        verbose_name="Staff"
    )
    is_admin = models.BooleanField(
        default=False,           # Peut confirmer un achat à la place du vendeur
        verbose_name="Administrateur"
    )

    # ── Compteurs ─────────────────────────────────────────────
    # Incrémenté atomiquement (F()) à chaque vente confirmée par OTP
    nombre_ventes = models.PositiveIntegerField(
        default=0,
        verbose_name="Ventes conclues"
    )

    # ── Dates ─────────────────────────────────────────────────
    date_inscription = models.DateTimeField(
        default=timezone.now,
        verbose_name="Date d'inscription"
    )
    derniere_activite = models.DateTimeField(
        null=True,
        blank=True,
        verbose_name="Dernière activité"
    )

    objects = CustomUserManager()

    USERNAME_FIELD = 'email'
    REQUIRED_FIELDS = ['username']

    class Meta:
        verbose_name = "Utilisateur"
        verbose_name_plural = "Utilisateurs"
        ordering = ['-date_inscription']

    def __str__(self):
        return f"{self.username} ({self.email})"

    def get_full_name(self):
        return self.nom_affiche or self.username

    def get_short_name(self):
        return self.nom_affiche.split(' ')[0] if self.nom_affiche else self.username
