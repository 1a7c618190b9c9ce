"""
Campus Market — users/identity.py
Résolution d'identité : jeton opaque → identité stable → utilisateur interne.

Le fournisseur d'identité est un collaborateur externe. Ce module ne connaît
que son contrat :
  verifier(token) → IdentiteExterne(uid, nom, email) | IdentiteInvalide

Le résolveur est choisi par le setting RESOLVEUR_IDENTITE. Par défaut,
ResolveurJWT valide un jeton SimpleJWT dont le claim "uid" porte
l'identifiant externe.

Utilisé :
  - une fois par connexion WebSocket (chat/middleware.py)
  - une fois par requête HTTP authentifiée (users/authentication.py)
"""
import logging
from dataclasses import dataclass
from functools import lru_cache

from django.conf import settings
from django.contrib.auth.hashers import make_password
from django.db import IntegrityError, transaction
from django.utils import timezone
from django.utils.module_loading import import_string
from rest_framework_simplejwt.exceptions import TokenError
from rest_framework_simplejwt.settings import api_settings
from rest_framework_simplejwt.tokens import AccessToken

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IdentiteExterne:
    uid: str
    nom: str = ''
    email: str = ''


class IdentiteInvalide(Exception):
    """Jeton absent, invalide, expiré, ou compte inutilisable."""


def identite_depuis_claims(claims):
    """Construit l'identité à partir des claims d'un jeton validé."""
    uid = claims.get(api_settings.USER_ID_CLAIM)
    if not uid:
        raise IdentiteInvalide("Jeton sans identifiant utilisateur.")
    return IdentiteExterne(
        uid=str(uid),
        nom=claims.get('name') or '',
        email=claims.get('email') or '',
    )


class ResolveurJWT:
    """Valide la signature et l'expiration d'un jeton d'accès SimpleJWT."""

    def verifier(self, token):
        try:
            jeton = AccessToken(token)
        except TokenError as e:
            raise IdentiteInvalide(str(e)) from e
        return identite_depuis_claims(jeton)


@lru_cache(maxsize=None)
def _resolveur(chemin):
    return import_string(chemin)()


def verifier_token(token):
    """
    Point d'entrée du résolveur d'identité.

    Returns:
        IdentiteExterne

    Raises:
        IdentiteInvalide : jeton absent ou refusé par le fournisseur
    """
    if not token:
        raise IdentiteInvalide("Aucun jeton fourni.")
    return _resolveur(settings.RESOLVEUR_IDENTITE).verifier(token)


def utilisateur_pour_identite(identite):
    """
    Retourne l'utilisateur interne lié à l'identité externe.
    Le compte est créé à la première connexion (provisionnement paresseux).

    Raises:
        IdentiteInvalide : compte suspendu ou en conflit avec un autre compte
    """
    from apps.users.models import CustomUser

    try:
        user = CustomUser.objects.par_uid(identite.uid)
    except CustomUser.DoesNotExist:
        user = _provisionner(identite)

    if not user.is_active:
        raise IdentiteInvalide("Compte suspendu.")

    CustomUser.objects.filter(pk=user.pk).update(derniere_activite=timezone.now())
    return user


def _provisionner(identite):
    from apps.users.models import CustomUser

    base = (identite.email.split('@')[0] if identite.email else identite.nom) or 'membre'
    defaults = {
        'username'   : f"{base[:100]}_{identite.uid[:12]}",
        'email'      : identite.email or f"{identite.uid[:100]}@identite.invalid",
        'nom_affiche': identite.nom[:100],
        'password'   : make_password(None),
    }
    try:
        with transaction.atomic():
            user, created = CustomUser.objects.get_or_create(
                uid_externe=identite.uid, defaults=defaults,
            )
    except IntegrityError:
        # Créé en parallèle par une autre requête, ou email déjà pris
        try:
            return CustomUser.objects.par_uid(identite.uid)
        except CustomUser.DoesNotExist:
            raise IdentiteInvalide("Cette identité est en conflit avec un compte existant.")

    if created:
        logger.info(f"Nouvel utilisateur provisionné : {user.username}")
    return user


def resoudre(token):
    """Jeton → (IdentiteExterne, CustomUser)."""
    identite = verifier_token(token)
    return identite, utilisateur_pour_identite(identite)
