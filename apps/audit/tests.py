"""
Tests pour le middleware d'audit.
"""
from unittest.mock import patch

from django.contrib.auth import get_user_model
from rest_framework.test import APITestCase
from rest_framework_simplejwt.tokens import AccessToken

from apps.annonces.models import Annonce

User = get_user_model()


class AuditLogMiddlewareTest(APITestCase):

    def setUp(self):
        self.vendeur = User.objects.create_user(username='vendeur', email='vendeur@campus.cm')
        self.annonce = Annonce.objects.create(vendeur=self.vendeur, titre='Vélo', prix=500)

    def test_requete_anonyme_journalisee(self):
        with self.assertLogs('apps.audit.middleware', level='INFO') as logs:
            self.client.post(f'/api/annonces/{self.annonce.pk}/achat/verifier/', {'code': '123456'})

        self.assertIn('[AUDIT] POST', logs.output[0])
        self.assertIn('anonyme', logs.output[0])
        self.assertIn('Status: 401', logs.output[0])

    def test_identite_journalisee_sans_le_corps(self):
        self.client.credentials(HTTP_AUTHORIZATION=f'Bearer {AccessToken.for_user(self.vendeur)}')
        with patch('apps.achats.services.envoyer_a_utilisateur'), \
                self.assertLogs('apps.audit.middleware', level='INFO') as logs:
            self.client.post(f'/api/annonces/{self.annonce.pk}/achat/verifier/', {'code': '654321'})

        self.assertIn(self.vendeur.uid_externe, logs.output[0])
        self.assertNotIn('654321', logs.output[0])

    def test_lecture_non_journalisee(self):
        self.client.credentials(HTTP_AUTHORIZATION=f'Bearer {AccessToken.for_user(self.vendeur)}')
        with self.assertNoLogs('apps.audit.middleware', level='INFO'):
            self.client.get('/api/chat/')
