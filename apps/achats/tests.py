"""
Tests pour l'app achats.

Couverture :
  - Module otp (format, génération, empreinte)
  - Modèle TentativeAchat (FSM, unicité "pending" par couple, expiration)
  - AchatService.initier (remplacement, code envoyé à l'acheteur seul, jamais journalisé)
  - AchatService.verifier (empreinte, expiration, droits, vente atomique, plafond d'essais)
  - Tâche Celery expirer_tentatives_perimees
  - API (initier / vérifier, codes HTTP, aucun code dans les réponses)

Note :
  On remplace otp.generer_code par des valeurs fixes pour connaître le code
  sans lire le canal WebSocket, et envoyer_a_utilisateur par un mock pour
  vérifier ce qui part vers l'acheteur (captureOnCommitCallbacks).
"""
import hashlib
import re
from datetime import timedelta
from decimal import Decimal
from unittest.mock import patch

from django.contrib.auth import get_user_model
from django.core.exceptions import PermissionDenied, ValidationError
from django.db import IntegrityError, transaction
from django.test import TestCase, override_settings
from django.utils import timezone
from django_fsm import TransitionNotAllowed
from rest_framework import status
from rest_framework.test import APITestCase
from rest_framework_simplejwt.tokens import AccessToken

from apps.achats import otp
from apps.achats.models import TentativeAchat
from apps.achats.services import AchatService
from apps.achats.tasks import expirer_tentatives_perimees
from apps.annonces.models import Annonce

User = get_user_model()


# ═══════════════════════════════════════════════════════════════
# HELPERS
# ═══════════════════════════════════════════════════════════════

def creer_user(username='user1', **kwargs):
    return User.objects.create_user(username=username, email=f'{username}@campus.cm', **kwargs)


def creer_annonce(vendeur, titre='Lampe de bureau', prix='500', **kwargs):
    return Annonce.objects.create(vendeur=vendeur, titre=titre, prix=Decimal(prix), **kwargs)


def get_jwt_header(user):
    return f'Bearer {AccessToken.for_user(user)}'


def avec_code(*codes):
    """Fixe les codes générés, dans l'ordre des appels."""
    return patch('apps.achats.otp.generer_code', side_effect=list(codes))


def perimer(tentative):
    TentativeAchat.objects.filter(pk=tentative.pk).update(
        date_expiration=timezone.now() - timedelta(seconds=1)
    )


# ═══════════════════════════════════════════════════════════════
# TESTS — Module otp
# ═══════════════════════════════════════════════════════════════

class OtpTest(TestCase):

    def test_code_six_chiffres(self):
        for _ in range(50):
            code = otp.generer_code()
            self.assertRegex(code, r'^[0-9]{6}$')
            self.assertTrue(100000 <= int(code) <= 999999)

    def test_sel_hexadecimal_12_octets(self):
        sel = otp.generer_sel()
        self.assertEqual(len(sel), 24)
        int(sel, 16)
        self.assertNotEqual(sel, otp.generer_sel())

    def test_empreinte_sha256(self):
        attendu = hashlib.sha256('123456:abcdef'.encode()).hexdigest()
        self.assertEqual(otp.hacher_code('123456', 'abcdef'), attendu)
        self.assertTrue(otp.comparer_code('123456', 'abcdef', attendu))
        self.assertFalse(otp.comparer_code('123457', 'abcdef', attendu))

    def test_format_du_code(self):
        self.assertTrue(otp.code_valide('000123'))
        for code in ['12345', '1234567', '12a456', '', ' 123456', '123456\n', '１２３４５６', None, 123456]:
            self.assertFalse(otp.code_valide(code), repr(code))


# ═══════════════════════════════════════════════════════════════
# TESTS — Modèle TentativeAchat
# ═══════════════════════════════════════════════════════════════

class TentativeAchatModelTest(TestCase):

    def setUp(self):
        self.vendeur  = creer_user('vendeur')
        self.acheteur = creer_user('acheteur')
        self.annonce  = creer_annonce(self.vendeur)

    def _tentative(self, **kwargs):
        sel = otp.generer_sel()
        kwargs.setdefault('date_expiration', timezone.now() + timedelta(minutes=10))
        return TentativeAchat.objects.create(
            annonce=self.annonce, vendeur=self.vendeur, acheteur=self.acheteur,
            uid_acheteur=self.acheteur.uid_externe,
            otp_hash=otp.hacher_code('123456', sel), otp_sel=sel,
            **kwargs
        )

    def test_statut_initial_pending(self):
        tentative = self._tentative()
        self.assertEqual(tentative.statut, TentativeAchat.EN_ATTENTE)
        self.assertFalse(tentative.est_expiree)
        self.assertTrue(tentative.verifier_code('123456'))
        self.assertFalse(tentative.verifier_code('123465'))

    def test_transitions(self):
        tentative = self._tentative()
        tentative.confirmer()
        self.assertEqual(tentative.statut, TentativeAchat.CONFIRMEE)

        with self.assertRaises(TransitionNotAllowed):
            tentative.annuler()
        with self.assertRaises(TransitionNotAllowed):
            tentative.expirer()

    def test_une_seule_tentative_pending_par_couple(self):
        self._tentative()
        with self.assertRaises(IntegrityError):
            with transaction.atomic():
                self._tentative()

    def test_plusieurs_tentatives_terminees_autorisees(self):
        premiere = self._tentative()
        premiere.annuler()
        premiere.save()
        self._tentative()
        self.assertEqual(TentativeAchat.objects.filter(acheteur=self.acheteur).count(), 2)

    def test_expiration_par_la_requete(self):
        tentative = self._tentative()
        perimer(tentative)
        tentative.refresh_from_db()

        self.assertTrue(tentative.est_expiree)
        self.assertFalse(TentativeAchat.objects.en_cours().exists())
        self.assertTrue(TentativeAchat.objects.perimees().exists())


# ═══════════════════════════════════════════════════════════════
# TESTS — AchatService.initier
# ═══════════════════════════════════════════════════════════════

@patch('apps.achats.services.envoyer_a_utilisateur')
class InitierAchatTest(TestCase):

    def setUp(self):
        self.vendeur  = creer_user('vendeur')
        self.acheteur = creer_user('acheteur')
        self.annonce  = creer_annonce(self.vendeur)

    def test_initier_cree_une_tentative(self, mock_envoyer):
        with avec_code('482913'):
            tentative = AchatService.initier(self.annonce, self.acheteur)

        self.assertEqual(tentative.statut, TentativeAchat.EN_ATTENTE)
        self.assertEqual(tentative.vendeur, self.vendeur)
        self.assertEqual(tentative.uid_acheteur, self.acheteur.uid_externe)
        self.assertEqual(tentative.otp_hash, otp.hacher_code('482913', tentative.otp_sel))
        self.assertNotIn('482913', tentative.otp_hash)

        delai = tentative.date_expiration - timezone.now()
        self.assertTrue(timedelta(minutes=9) < delai <= timedelta(minutes=10))

    def test_code_envoye_a_l_acheteur_seulement(self, mock_envoyer):
        with self.captureOnCommitCallbacks(execute=True):
            tentative = AchatService.initier(self.annonce, self.acheteur)

        mock_envoyer.assert_called_once()
        uid, evenement, donnees = mock_envoyer.call_args[0]
        self.assertEqual(uid, self.acheteur.uid_externe)
        self.assertEqual(evenement, 'purchase_otp')
        self.assertEqual(donnees['listingId'], self.annonce.pk)
        self.assertRegex(donnees['otp'], r'^[0-9]{6}$')
        self.assertEqual(donnees['expiresAt'], tentative.date_expiration)
        self.assertTrue(tentative.verifier_code(donnees['otp']))

    def test_code_jamais_journalise(self, mock_envoyer):
        with avec_code('739164'), self.assertLogs('apps.achats', level='DEBUG') as logs:
            AchatService.initier(self.annonce, self.acheteur)

        for ligne in logs.output:
            self.assertNotIn('739164', ligne)

    def test_rien_envoye_avant_commit(self, mock_envoyer):
        AchatService.initier(self.annonce, self.acheteur)
        mock_envoyer.assert_not_called()

    def test_nouvelle_initiation_remplace_l_ancienne(self, mock_envoyer):
        premiere = AchatService.initier(self.annonce, self.acheteur)
        seconde  = AchatService.initier(self.annonce, self.acheteur)

        premiere.refresh_from_db()
        self.assertEqual(premiere.statut, TentativeAchat.ANNULEE)
        self.assertEqual(seconde.statut, TentativeAchat.EN_ATTENTE)
        self.assertEqual(TentativeAchat.objects.en_attente().count(), 1)

    def test_remplacement_passe_par_la_transition(self, mock_envoyer):
        AchatService.initier(self.annonce, self.acheteur)
        with patch.object(TentativeAchat, 'annuler', autospec=True,
                          side_effect=TentativeAchat.annuler) as mock_annuler:
            AchatService.initier(self.annonce, self.acheteur)
        self.assertEqual(mock_annuler.call_count, 1)

    def test_autres_acheteurs_non_affectes(self, mock_envoyer):
        autre = creer_user('autre')
        tentative_autre = AchatService.initier(self.annonce, autre)
        AchatService.initier(self.annonce, self.acheteur)

        tentative_autre.refresh_from_db()
        self.assertEqual(tentative_autre.statut, TentativeAchat.EN_ATTENTE)

    def test_vendeur_ne_peut_pas_acheter(self, mock_envoyer):
        with self.assertRaises(ValidationError):
            AchatService.initier(self.annonce, self.vendeur)
        self.assertFalse(TentativeAchat.objects.exists())

    def test_annonce_indisponible(self, mock_envoyer):
        for champs in [{'est_active': False}, {'est_vendue': True}]:
            annonce = creer_annonce(self.vendeur, **champs)
            with self.assertRaisesMessage(ValidationError, "Annonce indisponible."):
                AchatService.initier(annonce, self.acheteur)


# ═══════════════════════════════════════════════════════════════
# TESTS — AchatService.verifier
# ═══════════════════════════════════════════════════════════════

@patch('apps.achats.services.envoyer_a_utilisateur')
class VerifierAchatTest(TestCase):

    def setUp(self):
        self.vendeur  = creer_user('vendeur')
        self.acheteur = creer_user('acheteur')
        self.intrus   = creer_user('intrus')
        self.admin    = creer_user('admin', is_admin=True)
        self.annonce  = creer_annonce(self.vendeur)

    def _initier(self, code='482913', acheteur=None):
        with avec_code(code):
            return AchatService.initier(self.annonce, acheteur or self.acheteur)

    def test_code_correct_conclut_la_vente(self, mock_envoyer):
        tentative = self._initier('482913')
        AchatService.verifier(self.annonce, '482913', self.vendeur)

        self.annonce.refresh_from_db()
        tentative.refresh_from_db()
        self.vendeur.refresh_from_db()
        self.assertTrue(self.annonce.est_vendue)
        self.assertFalse(self.annonce.est_active)
        self.assertEqual(tentative.statut, TentativeAchat.CONFIRMEE)
        self.assertEqual(self.vendeur.nombre_ventes, 1)

    def test_un_caractere_change_echoue(self, mock_envoyer):
        tentative = self._initier('482913')
        for faux in ['482914', '582913', '482903']:
            with self.assertRaisesMessage(ValidationError, "Code OTP incorrect."):
                AchatService.verifier(self.annonce, faux, self.vendeur)

        tentative.refresh_from_db()
        self.assertEqual(tentative.statut, TentativeAchat.EN_ATTENTE)
        self.assertEqual(tentative.essais_echoues, 3)
        self.annonce.refresh_from_db()
        self.assertFalse(self.annonce.est_vendue)

    def test_code_mal_forme(self, mock_envoyer):
        self._initier()
        for code in ['12345', 'abcdef', '']:
            with self.assertRaisesMessage(ValidationError, "Code OTP invalide."):
                AchatService.verifier(self.annonce, code, self.vendeur)

    def test_tentative_remplacee_ne_verifie_plus(self, mock_envoyer):
        self._initier('111111')
        self._initier('222222')

        with self.assertRaisesMessage(ValidationError, "Code OTP incorrect."):
            AchatService.verifier(self.annonce, '111111', self.vendeur)
        AchatService.verifier(self.annonce, '222222', self.vendeur)

    def test_tentative_expiree_refusee_meme_avec_le_bon_code(self, mock_envoyer):
        tentative = self._initier('482913')
        perimer(tentative)

        with self.assertRaisesMessage(ValidationError, "Aucun achat actif ou code OTP expiré."):
            AchatService.verifier(self.annonce, '482913', self.vendeur)
        self.annonce.refresh_from_db()
        self.assertFalse(self.annonce.est_vendue)

    def test_aucune_tentative(self, mock_envoyer):
        with self.assertRaisesMessage(ValidationError, "Aucun achat actif ou code OTP expiré."):
            AchatService.verifier(self.annonce, '123456', self.vendeur)

    def test_seul_le_vendeur_peut_confirmer(self, mock_envoyer):
        self._initier('482913')
        for acteur in [self.intrus, self.acheteur]:
            with self.assertRaises(PermissionDenied):
                AchatService.verifier(self.annonce, '482913', acteur)

        self.annonce.refresh_from_db()
        self.assertFalse(self.annonce.est_vendue)

    def test_administrateur_peut_confirmer(self, mock_envoyer):
        tentative = self._initier('482913')
        AchatService.verifier(self.annonce, '482913', self.admin)
        tentative.refresh_from_db()
        self.assertEqual(tentative.statut, TentativeAchat.CONFIRMEE)

    def test_autres_acheteurs_annules(self, mock_envoyer):
        autre = creer_user('autre')
        tentative_autre = self._initier('111111', acheteur=autre)
        self._initier('222222')

        AchatService.verifier(self.annonce, '222222', self.vendeur)
        tentative_autre.refresh_from_db()
        self.assertEqual(tentative_autre.statut, TentativeAchat.ANNULEE)

    def test_confirmation_envoyee_a_l_acheteur(self, mock_envoyer):
        self._initier('482913')
        mock_envoyer.reset_mock()

        with self.captureOnCommitCallbacks(execute=True):
            AchatService.verifier(self.annonce, '482913', self.vendeur)

        mock_envoyer.assert_called_once_with(
            self.acheteur.uid_externe, 'purchase_confirmed',
            {'listingId': self.annonce.pk, 'status': 'confirmed'},
        )

    def test_listing_update_diffuse_a_tous(self, mock_envoyer):
        self._initier('482913')
        with patch('apps.annonces.signals.diffuser_a_tous') as mock_diffuser, \
                self.captureOnCommitCallbacks(execute=True):
            AchatService.verifier(self.annonce, '482913', self.vendeur)

        evenement, donnees = mock_diffuser.call_args[0]
        self.assertEqual(evenement, 'listing_update')
        self.assertTrue(donnees['annonce']['est_vendue'])

    def test_pas_de_double_vente(self, mock_envoyer):
        self._initier('482913')
        AchatService.verifier(self.annonce, '482913', self.vendeur)
        with self.assertRaises(ValidationError):
            AchatService.verifier(self.annonce, '482913', self.vendeur)

        self.vendeur.refresh_from_db()
        self.assertEqual(self.vendeur.nombre_ventes, 1)

    @override_settings(ACHAT_OTP_MAX_ESSAIS=3)
    def test_plafond_d_essais(self, mock_envoyer):
        tentative = self._initier('482913')
        for _ in range(3):
            with self.assertRaises(ValidationError):
                AchatService.verifier(self.annonce, '000000', self.vendeur)

        tentative.refresh_from_db()
        self.assertEqual(tentative.statut, TentativeAchat.EXPIREE)
        with self.assertRaisesMessage(ValidationError, "Aucun achat actif ou code OTP expiré."):
            AchatService.verifier(self.annonce, '482913', self.vendeur)

    @override_settings(ACHAT_OTP_MAX_ESSAIS=0)
    def test_plafond_desactive(self, mock_envoyer):
        tentative = self._initier('482913')
        for _ in range(8):
            with self.assertRaises(ValidationError):
                AchatService.verifier(self.annonce, '000000', self.vendeur)

        AchatService.verifier(self.annonce, '482913', self.vendeur)
        tentative.refresh_from_db()
        self.assertEqual(tentative.statut, TentativeAchat.CONFIRMEE)


# ═══════════════════════════════════════════════════════════════
# TESTS — Tâche Celery
# ═══════════════════════════════════════════════════════════════

@patch('apps.achats.services.envoyer_a_utilisateur')
class ExpirationTaskTest(TestCase):

    def setUp(self):
        self.vendeur = creer_user('vendeur')
        self.annonce = creer_annonce(self.vendeur)

    def test_expire_seulement_les_tentatives_perimees(self, mock_envoyer):
        perimee = AchatService.initier(self.annonce, creer_user('b1'))
        valide  = AchatService.initier(self.annonce, creer_user('b2'))
        perimer(perimee)

        # CELERY_TASK_ALWAYS_EAGER en test : exécutée sur place
        resultat = expirer_tentatives_perimees.delay()
        self.assertEqual(resultat.get(), 1)

        perimee.refresh_from_db()
        valide.refresh_from_db()
        self.assertEqual(perimee.statut, TentativeAchat.EXPIREE)
        self.assertEqual(valide.statut, TentativeAchat.EN_ATTENTE)

    def test_tentatives_terminees_ignorees(self, mock_envoyer):
        acheteur  = creer_user('b1')
        tentative = AchatService.initier(self.annonce, acheteur)
        tentative.confirmer()
        tentative.save()
        perimer(tentative)

        self.assertEqual(expirer_tentatives_perimees(), 0)
        tentative.refresh_from_db()
        self.assertEqual(tentative.statut, TentativeAchat.CONFIRMEE)


# ═══════════════════════════════════════════════════════════════
# TESTS — API Achats
# ═══════════════════════════════════════════════════════════════

@patch('apps.achats.services.envoyer_a_utilisateur')
class AchatAPITest(APITestCase):

    def setUp(self):
        self.vendeur  = creer_user('vendeur')
        self.acheteur = creer_user('acheteur')
        self.annonce  = creer_annonce(self.vendeur, prix='500')

    def _auth_as(self, user):
        self.client.credentials(HTTP_AUTHORIZATION=get_jwt_header(user))

    def _initier_url(self, pk=None):
        return f'/api/annonces/{pk or self.annonce.pk}/achat/initier/'

    def _verifier_url(self, pk=None):
        return f'/api/annonces/{pk or self.annonce.pk}/achat/verifier/'

    def test_scenario_complet(self, mock_envoyer):
        """Initiation, code faux puis code juste : l'annonce est vendue."""
        self._auth_as(self.acheteur)
        with self.captureOnCommitCallbacks(execute=True):
            response = self.client.post(self._initier_url())
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['tentative']['statut'], TentativeAchat.EN_ATTENTE)
        self.assertFalse(response.data['tentative']['est_expiree'])

        donnees = mock_envoyer.call_args[0][2]
        code    = donnees['otp']
        self.assertTrue(re.fullmatch(r'[0-9]{6}', code))
        delai = donnees['expiresAt'] - timezone.now()
        self.assertTrue(timedelta(minutes=9) < delai <= timedelta(minutes=10))

        self._auth_as(self.vendeur)
        faux = '000000' if code != '000000' else '111111'
        response = self.client.post(self._verifier_url(), {'code': faux})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['detail'], "Code OTP incorrect.")
        self.annonce.refresh_from_db()
        self.assertFalse(self.annonce.est_vendue)

        response = self.client.post(self._verifier_url(), {'code': code})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertTrue(response.data['annonce']['est_vendue'])
        self.annonce.refresh_from_db()
        self.assertTrue(self.annonce.est_vendue)
        self.assertFalse(self.annonce.est_active)

    def test_code_absent_des_reponses(self, mock_envoyer):
        self._auth_as(self.acheteur)
        with avec_code('739164'):
            response = self.client.post(self._initier_url())

        self.assertNotIn('739164', response.content.decode())
        self.assertNotIn('otp_hash', response.data['tentative'])
        self.assertNotIn('otp_sel', response.data['tentative'])

    def test_initier_non_authentifie(self, mock_envoyer):
        response = self.client.post(self._initier_url())
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_initier_annonce_inexistante(self, mock_envoyer):
        self._auth_as(self.acheteur)
        response = self.client.post(self._initier_url(99999))
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_initier_propre_annonce(self, mock_envoyer):
        self._auth_as(self.vendeur)
        response = self.client.post(self._initier_url())
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_initier_annonce_vendue(self, mock_envoyer):
        self.annonce.marquer_vendue()
        self._auth_as(self.acheteur)
        response = self.client.post(self._initier_url())
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['detail'], "Annonce indisponible.")

    def test_verifier_code_mal_forme(self, mock_envoyer):
        self._auth_as(self.vendeur)
        for corps in [{'code': '12ab56'}, {}]:
            response = self.client.post(self._verifier_url(), corps)
            self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
            self.assertEqual(response.data['detail'], "Code OTP invalide.")

    def test_verifier_annonce_inexistante(self, mock_envoyer):
        self._auth_as(self.vendeur)
        response = self.client.post(self._verifier_url(99999), {'code': '123456'})
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_verifier_par_un_autre_que_le_vendeur(self, mock_envoyer):
        with avec_code('482913'):
            AchatService.initier(self.annonce, self.acheteur)

        self._auth_as(self.acheteur)
        response = self.client.post(self._verifier_url(), {'code': '482913'})
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        self.assertEqual(response.data['detail'], "Seul le vendeur peut confirmer la remise.")

    def test_verifier_sans_tentative(self, mock_envoyer):
        self._auth_as(self.vendeur)
        response = self.client.post(self._verifier_url(), {'code': '123456'})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['detail'], "Aucun achat actif ou code OTP expiré.")
