"""
Campus Market — users/tests.py
"""
from datetime import timedelta

from django.test import TestCase, override_settings
from django.urls import reverse
from rest_framework import status
from rest_framework.test import APITestCase
from rest_framework_simplejwt.tokens import AccessToken

from apps.users.identity import (
    IdentiteExterne, IdentiteInvalide, ResolveurJWT,
    resoudre, utilisateur_pour_identite, verifier_token,
)
from apps.users.models import CustomUser


def creer_user(email='etudiant@campus.cm', username='etudiant', **kwargs):
    return CustomUser.objects.create_user(email=email, username=username, **kwargs)


def jeton_pour(user):
    return str(AccessToken.for_user(user))


class ResolveurFactice:
    """Fournisseur d'identité de test : accepte uniquement le jeton 'bon'."""

    def verifier(self, token):
        if token == 'bon':
            return IdentiteExterne(uid='uid-factice', nom='Awa Ndiaye', email='awa@campus.cm')
        raise IdentiteInvalide("Jeton refusé.")


# ═══════════════════════════════════════════════════════════════
# TESTS — Modèle CustomUser
# ═══════════════════════════════════════════════════════════════

class CustomUserModelTest(TestCase):

    def setUp(self):
        self.user = creer_user(nom_affiche='Jean Dupont')

    def test_creation_utilisateur(self):
        self.assertEqual(self.user.email, 'etudiant@campus.cm')
        self.assertTrue(self.user.is_active)
        self.assertFalse(self.user.is_admin)
        self.assertEqual(self.user.nombre_ventes, 0)

    def test_uid_externe_genere(self):
        autre = creer_user(email='b@campus.cm', username='b')
        self.assertTrue(self.user.uid_externe)
        self.assertNotEqual(self.user.uid_externe, autre.uid_externe)

    def test_sans_mot_de_passe_inutilisable(self):
        self.assertFalse(self.user.has_usable_password())

    def test_str(self):
        self.assertEqual(str(self.user), 'etudiant (etudiant@campus.cm)')

    def test_get_full_name(self):
        self.assertEqual(self.user.get_full_name(), 'Jean Dupont')
        self.assertEqual(self.user.get_short_name(), 'Jean')

    def test_get_full_name_sans_nom(self):
        user = creer_user(email='noname@campus.cm', username='noname')
        self.assertEqual(user.get_full_name(), 'noname')
        self.assertEqual(user.get_short_name(), 'noname')

    def test_creation_superuser(self):
        admin = CustomUser.objects.create_superuser(
            email='admin@campus.cm', username='admin', password='AdminPass123!'
        )
        self.assertTrue(admin.is_staff)
        self.assertTrue(admin.is_superuser)
        self.assertTrue(admin.is_admin)
        self.assertTrue(admin.check_password('AdminPass123!'))

    def test_email_obligatoire(self):
        with self.assertRaises(ValueError):
            CustomUser.objects.create_user(email='', username='nomail')

    def test_par_uid(self):
        self.assertEqual(CustomUser.objects.par_uid(self.user.uid_externe), self.user)
        with self.assertRaises(CustomUser.DoesNotExist):
            CustomUser.objects.par_uid('inconnu')


# ═══════════════════════════════════════════════════════════════
# TESTS — Résolution d'identité
# ═══════════════════════════════════════════════════════════════

class ResolveurJWTTest(TestCase):

    def setUp(self):
        self.user = creer_user()

    def test_jeton_valide(self):
        identite = ResolveurJWT().verifier(jeton_pour(self.user))
        self.assertEqual(identite.uid, self.user.uid_externe)

    def test_jeton_corrompu(self):
        with self.assertRaises(IdentiteInvalide):
            ResolveurJWT().verifier('pas.un.jeton')

    def test_jeton_expire(self):
        jeton = AccessToken.for_user(self.user)
        jeton.set_exp(lifetime=-timedelta(minutes=1))
        with self.assertRaises(IdentiteInvalide):
            ResolveurJWT().verifier(str(jeton))

    def test_jeton_absent(self):
        with self.assertRaises(IdentiteInvalide):
            verifier_token('')
        with self.assertRaises(IdentiteInvalide):
            verifier_token(None)

    def test_resoudre_retourne_utilisateur(self):
        identite, user = resoudre(jeton_pour(self.user))
        self.assertEqual(user, self.user)
        self.assertEqual(identite.uid, self.user.uid_externe)
        user.refresh_from_db()
        self.assertIsNotNone(user.derniere_activite)


class ProvisionnementTest(TestCase):

    def test_premiere_connexion_cree_le_compte(self):
        identite = IdentiteExterne(uid='abc123', nom='Awa Ndiaye', email='awa@campus.cm')
        user = utilisateur_pour_identite(identite)
        self.assertEqual(user.uid_externe, 'abc123')
        self.assertEqual(user.email, 'awa@campus.cm')
        self.assertEqual(user.nom_affiche, 'Awa Ndiaye')
        self.assertFalse(user.has_usable_password())

    def test_connexions_suivantes_meme_compte(self):
        identite = IdentiteExterne(uid='abc123')
        premier = utilisateur_pour_identite(identite)
        second  = utilisateur_pour_identite(identite)
        self.assertEqual(premier.pk, second.pk)
        self.assertEqual(CustomUser.objects.filter(uid_externe='abc123').count(), 1)

    def test_sans_email_adresse_de_repli(self):
        user = utilisateur_pour_identite(IdentiteExterne(uid='sansmail'))
        self.assertEqual(user.email, 'sansmail@identite.invalid')

    def test_email_deja_pris(self):
        creer_user(email='pris@campus.cm', username='pris')
        with self.assertRaises(IdentiteInvalide):
            utilisateur_pour_identite(IdentiteExterne(uid='nouveau', email='pris@campus.cm'))

    def test_compte_suspendu(self):
        user = creer_user(is_active=False)
        with self.assertRaises(IdentiteInvalide):
            utilisateur_pour_identite(IdentiteExterne(uid=user.uid_externe))

    @override_settings(RESOLVEUR_IDENTITE='apps.users.tests.ResolveurFactice')
    def test_resolveur_configurable(self):
        identite, user = resoudre('bon')
        self.assertEqual(identite.uid, 'uid-factice')
        self.assertEqual(user.email, 'awa@campus.cm')
        with self.assertRaises(IdentiteInvalide):
            resoudre('mauvais')


# ═══════════════════════════════════════════════════════════════
# TESTS — API profil (authentification par jeton)
# ═══════════════════════════════════════════════════════════════

class ProfilAPITest(APITestCase):

    def setUp(self):
        self.user = creer_user(nom_affiche='Jean Dupont')
        self.url  = reverse('api_profil')

    def test_voir_profil(self):
        self.client.credentials(HTTP_AUTHORIZATION=f'Bearer {jeton_pour(self.user)}')
        response = self.client.get(self.url)
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['uid_externe'], self.user.uid_externe)
        self.assertEqual(response.data['nom_affiche'], 'Jean Dupont')

    def test_modifier_profil_patch(self):
        self.client.credentials(HTTP_AUTHORIZATION=f'Bearer {jeton_pour(self.user)}')
        response = self.client.patch(self.url, {'bloc_residence': 'Bloc C', 'nombre_ventes': 99})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.user.refresh_from_db()
        self.assertEqual(self.user.bloc_residence, 'Bloc C')
        self.assertEqual(self.user.nombre_ventes, 0)

    def test_profil_sans_token(self):
        response = self.client.get(self.url)
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_profil_token_invalide(self):
        self.client.credentials(HTTP_AUTHORIZATION='Bearer tokeninvalide123')
        response = self.client.get(self.url)
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_compte_suspendu_refuse(self):
        self.user.is_active = False
        self.user.save()
        self.client.credentials(HTTP_AUTHORIZATION=f'Bearer {jeton_pour(self.user)}')
        response = self.client.get(self.url)
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)
