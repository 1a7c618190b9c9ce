"""
Campus Market — annonces/tests.py
"""
from decimal import Decimal
from unittest.mock import patch

from django.test import TestCase

from apps.annonces.models import Annonce
from apps.users.models import CustomUser


def creer_user(email='vendeur@campus.cm', username='vendeur', **kwargs):
    return CustomUser.objects.create_user(email=email, username=username, **kwargs)


def creer_annonce(vendeur, titre='Calculatrice TI-83', prix='15000', **kwargs):
    return Annonce.objects.create(vendeur=vendeur, titre=titre, prix=Decimal(prix), **kwargs)


# ═══════════════════════════════════════════════════════════════
# TESTS — Modèle Annonce
# ═══════════════════════════════════════════════════════════════

class AnnonceModelTest(TestCase):

    def setUp(self):
        self.vendeur = creer_user()
        self.annonce = creer_annonce(self.vendeur)

    def test_creation(self):
        self.assertTrue(self.annonce.est_active)
        self.assertFalse(self.annonce.est_vendue)
        self.assertTrue(self.annonce.est_disponible)
        self.assertEqual(str(self.annonce), 'Calculatrice TI-83')

    def test_marquer_vendue(self):
        self.annonce.marquer_vendue()
        self.annonce.refresh_from_db()
        self.assertTrue(self.annonce.est_vendue)
        self.assertFalse(self.annonce.est_active)
        self.assertFalse(self.annonce.est_disponible)

    def test_manager_disponibles(self):
        inactive = creer_annonce(self.vendeur, titre='Chaise', est_active=False)
        vendue   = creer_annonce(self.vendeur, titre='Lampe')
        vendue.marquer_vendue()

        disponibles = list(Annonce.disponibles.all())
        self.assertIn(self.annonce, disponibles)
        self.assertNotIn(inactive, disponibles)
        self.assertNotIn(vendue, disponibles)


# ═══════════════════════════════════════════════════════════════
# TESTS — Diffusion du cycle de vie (signals)
# ═══════════════════════════════════════════════════════════════

@patch('apps.annonces.signals.diffuser_a_tous')
class AnnonceSignalTest(TestCase):

    def setUp(self):
        self.vendeur = creer_user()

    def test_creation_diffuse_new_listing(self, mock_diffuser):
        with self.captureOnCommitCallbacks(execute=True):
            annonce = creer_annonce(self.vendeur)

        mock_diffuser.assert_called_once()
        evenement, donnees = mock_diffuser.call_args[0]
        self.assertEqual(evenement, 'new_listing')
        self.assertEqual(donnees['annonce']['id'], annonce.pk)
        self.assertEqual(donnees['annonce']['vendeur']['uid_externe'], self.vendeur.uid_externe)

    def test_vente_diffuse_listing_update(self, mock_diffuser):
        annonce = creer_annonce(self.vendeur)
        mock_diffuser.reset_mock()

        with self.captureOnCommitCallbacks(execute=True):
            annonce.marquer_vendue()

        evenement, donnees = mock_diffuser.call_args[0]
        self.assertEqual(evenement, 'listing_update')
        self.assertTrue(donnees['annonce']['est_vendue'])
        self.assertFalse(donnees['annonce']['est_active'])

    def test_suppression_diffuse_listing_delete(self, mock_diffuser):
        annonce = creer_annonce(self.vendeur)
        annonce_id = annonce.pk

        with self.captureOnCommitCallbacks(execute=True):
            annonce.delete()

        mock_diffuser.assert_called_with('listing_delete', {'listingId': annonce_id})

    def test_rien_avant_commit(self, mock_diffuser):
        with self.captureOnCommitCallbacks(execute=False) as callbacks:
            creer_annonce(self.vendeur)

        mock_diffuser.assert_not_called()
        self.assertEqual(len(callbacks), 1)
