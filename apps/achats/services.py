"""
Campus Market — achats/services.py
Service métier du paiement à la remise confirmé par OTP.

Flux :
  1. POST /api/annonces/<id>/achat/initier/  → AchatService.initier()
       a. Verrouille l'annonce (select_for_update)
       b. Vérifie qu'elle est disponible et que l'acheteur n'est pas le vendeur
       c. Annule les tentatives "pending" du même couple (annonce, acheteur)
       d. Crée la tentative : empreinte SHA-256 du code, échéance 10 min
       e. Après commit → purchase_otp {listingId, otp, expiresAt}
          sur le canal privé de l'acheteur UNIQUEMENT
  2. POST /api/annonces/<id>/achat/verifier/ {code} → AchatService.verifier()
       a. Format du code, puis droits (vendeur ou administrateur)
       b. Tentative "pending" la plus récente et non expirée de l'annonce
       c. Code faux → compteur d'échecs +1, la tentative reste "pending"
       d. Code juste, en une transaction :
            annonce vendue, tentative confirmée, ventes du vendeur +1,
            autres tentatives de l'annonce annulées
       e. Après commit → listing_update à tous (signal annonces)
                        purchase_confirmed à l'acheteur

Le code en clair n'apparaît ni dans les logs, ni dans les réponses HTTP,
ni dans un message destiné au vendeur.
"""
import logging
from datetime import timedelta

from django.conf import settings
from django.contrib.auth import get_user_model
from django.core.exceptions import PermissionDenied, ValidationError
from django.db import transaction
from django.db.models import F
from django.utils import timezone

from apps.annonces.models import Annonce
from apps.notifications.diffusion import envoyer_a_utilisateur
from . import otp
from .models import TentativeAchat

logger = logging.getLogger(__name__)

User = get_user_model()


class AchatService:
    """
    Usage :
      tentative = AchatService.initier(annonce, acheteur)
      tentative = AchatService.verifier(annonce, code, vendeur)
    """

    @staticmethod
    def initier(annonce, acheteur):
        """
        Ouvre une tentative d'achat et envoie le code à l'acheteur.

        Returns:
            TentativeAchat : la tentative "pending" créée

        Raises:
            ValidationError : annonce indisponible ou acheteur = vendeur
        """
        code  = otp.generer_code()
        sel   = otp.generer_sel()
        duree = timedelta(minutes=settings.ACHAT_OTP_DUREE_MINUTES)

        with transaction.atomic():
            # Deux initiations simultanées du même couple passent l'une après l'autre
            annonce = Annonce.disponibles.select_for_update(of=('self',)).filter(pk=annonce.pk).first()

            if annonce is None:
                raise ValidationError("Annonce indisponible.")
            if annonce.vendeur_id == acheteur.pk:
                raise ValidationError("Vous ne pouvez pas acheter votre propre annonce.")

            remplacees = AchatService._annuler_en_attente(
                TentativeAchat.objects.filter(annonce=annonce, acheteur=acheteur)
            )

            tentative = TentativeAchat.objects.create(
                annonce         = annonce,
                vendeur_id      = annonce.vendeur_id,
                acheteur        = acheteur,
                uid_acheteur    = acheteur.uid_externe,
                otp_hash        = otp.hacher_code(code, sel),
                otp_sel         = sel,
                date_expiration = timezone.now() + duree,
            )

            donnees = {
                'listingId': annonce.pk,
                'otp'      : code,
                'expiresAt': tentative.date_expiration,
            }
            transaction.on_commit(
                lambda: envoyer_a_utilisateur(tentative.uid_acheteur, 'purchase_otp', donnees)
            )

        logger.info(
            f"Achat initié : tentative #{tentative.pk}, annonce #{annonce.pk}, "
            f"{remplacees} tentative(s) remplacée(s)"
        )
        return tentative

    @staticmethod
    def verifier(annonce, code, acteur):
        """
        Vérifie le code saisi par le vendeur (ou un administrateur).

        Returns:
            TentativeAchat : la tentative confirmée

        Raises:
            ValidationError  : code mal formé, aucune tentative active,
                               code incorrect, annonce indisponible
            PermissionDenied : l'acteur n'est ni le vendeur ni un administrateur
        """
        if not otp.code_valide(code):
            raise ValidationError("Code OTP invalide.")
        if acteur.pk != annonce.vendeur_id and not acteur.is_admin:
            raise PermissionDenied("Seul le vendeur peut confirmer la remise.")

        # L'échec est enregistré dans la transaction, l'erreur est levée après
        # le commit pour que le compteur d'essais ne soit pas annulé.
        with transaction.atomic():
            annonce   = Annonce.objects.select_for_update().get(pk=annonce.pk)
            tentative = TentativeAchat.objects.select_for_update().en_cours().filter(
                annonce=annonce,
            ).order_by('-date_creation', '-pk').first()

            if tentative is None:
                erreur = "Aucun achat actif ou code OTP expiré."
            elif not annonce.est_disponible:
                erreur = "Annonce indisponible."
            elif not tentative.verifier_code(code):
                erreur = "Code OTP incorrect."
                AchatService._enregistrer_echec(tentative)
            else:
                erreur = None
                AchatService._conclure(annonce, tentative)

        if erreur:
            raise ValidationError(erreur)

        logger.info(f"Achat confirmé : tentative #{tentative.pk}, annonce #{annonce.pk}")
        return tentative

    @staticmethod
    def _enregistrer_echec(tentative):
        TentativeAchat.objects.filter(pk=tentative.pk).update(
            essais_echoues=F('essais_echoues') + 1,
        )
        tentative.refresh_from_db(fields=['essais_echoues'])
        logger.warning(
            f"Code OTP incorrect pour la tentative #{tentative.pk} "
            f"({tentative.essais_echoues} échec(s))"
        )

        maximum = settings.ACHAT_OTP_MAX_ESSAIS
        if maximum and tentative.essais_echoues >= maximum:
            tentative.expirer()
            tentative.save(update_fields=['statut', 'date_modification'])
            logger.warning(f"Tentative #{tentative.pk} expirée après {maximum} échecs")

    @staticmethod
    def _conclure(annonce, tentative):
        annonce.marquer_vendue()

        tentative.confirmer()
        tentative.save(update_fields=['statut', 'date_modification'])

        User.objects.filter(pk=annonce.vendeur_id).update(nombre_ventes=F('nombre_ventes') + 1)

        # Les autres acheteurs en attente perdent l'annonce
        AchatService._annuler_en_attente(
            TentativeAchat.objects.filter(annonce=annonce).exclude(pk=tentative.pk)
        )

        donnees = {'listingId': annonce.pk, 'status': tentative.statut}
        transaction.on_commit(
            lambda: envoyer_a_utilisateur(tentative.uid_acheteur, 'purchase_confirmed', donnees)
        )

    @staticmethod
    def _annuler_en_attente(tentatives):
        """Annule une à une les tentatives "pending" du queryset. Retourne leur nombre."""
        annulees = 0
        for tentative in tentatives.en_attente().select_for_update():
            tentative.annuler()
            tentative.save(update_fields=['statut', 'date_modification'])
            annulees += 1
        return annulees

    @staticmethod
    def expirer_perimees():
        """
        Passe à "expired" les tentatives dont l'échéance est dépassée.
        Appelé par la tâche Celery Beat toutes les 5 minutes.

        Returns:
            int : nombre de tentatives expirées
        """
        nombre = TentativeAchat.objects.perimees().update(
            statut=TentativeAchat.EXPIREE,
            date_modification=timezone.now(),
        )
        if nombre:
            logger.info(f"{nombre} tentative(s) d'achat expirée(s)")
        return nombre
