"""
Tests pour l'app notifications (diffusion temps réel).

Couverture :
  - Noms de groupes Channel Layer (salon, canal privé, uid hors alphabet)
  - Construction du message (dates et Decimal sérialisables)
  - Primitives synchrones et asynchrones (groupe visé, format)
  - Livraison "au mieux" : erreurs du Channel Layer journalisées, jamais levées

Note :
  On remplace get_channel_layer() par un mock dont group_send est un
  AsyncMock : on vérifie exactement ce qui part vers Redis sans worker.
  La livraison réelle jusqu'au client est couverte par chat/tests.py.
"""
import hashlib
from datetime import datetime, timezone as dt_timezone
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock, patch

from asgiref.sync import async_to_sync
from django.test import SimpleTestCase

from apps.notifications.diffusion import (
    GROUPE_PUBLIC, TYPE_EVENEMENT,
    adiffuser_salon, aenvoyer_a_utilisateur,
    construire_message, diffuser_a_tous, diffuser_salon, envoyer_a_utilisateur,
    groupe_salon, groupe_utilisateur,
)


def layer_factice(erreur=None):
    layer = MagicMock()
    layer.group_send = AsyncMock(side_effect=erreur)
    return layer


# ═══════════════════════════════════════════════════════════════
# TESTS — Noms de groupes et format
# ═══════════════════════════════════════════════════════════════

class GroupesTest(SimpleTestCase):

    def test_groupe_salon(self):
        self.assertEqual(groupe_salon('community'), 'chat_community')
        self.assertEqual(groupe_salon(42), 'chat_42')

    def test_groupe_utilisateur_simple(self):
        self.assertEqual(groupe_utilisateur('abc-123_x.y'), 'utilisateur_abc-123_x.y')

    def test_groupe_utilisateur_hors_alphabet(self):
        """Un uid contenant '@' ou '|' est remplacé par son empreinte."""
        uid = 'auth0|alice@campus.cm'
        attendu = 'utilisateur_' + hashlib.sha256(uid.encode()).hexdigest()
        self.assertEqual(groupe_utilisateur(uid), attendu)
        self.assertLess(len(attendu), 100)

    def test_construire_message(self):
        message = construire_message(
            'purchase_otp',
            {'prix': Decimal('2500.00'), 'expiresAt': datetime(2026, 1, 1, 12, 0, tzinfo=dt_timezone.utc)},
            exclure='canal-1',
        )
        self.assertEqual(message['type'], TYPE_EVENEMENT)
        self.assertEqual(message['evenement'], 'purchase_otp')
        self.assertEqual(message['donnees'], {'prix': '2500.00', 'expiresAt': '2026-01-01T12:00:00Z'})
        self.assertEqual(message['exclure'], 'canal-1')


# ═══════════════════════════════════════════════════════════════
# TESTS — Primitives de diffusion
# ═══════════════════════════════════════════════════════════════

class DiffusionTest(SimpleTestCase):

    def test_diffuser_salon(self):
        layer = layer_factice()
        with patch('apps.notifications.diffusion.get_channel_layer', return_value=layer):
            diffuser_salon(7, 'messages_read', {'chatId': '7', 'userId': 'u1'})

        layer.group_send.assert_awaited_once_with('chat_7', {
            'type'     : TYPE_EVENEMENT,
            'evenement': 'messages_read',
            'donnees'  : {'chatId': '7', 'userId': 'u1'},
            'exclure'  : None,
        })

    def test_envoyer_a_utilisateur(self):
        layer = layer_factice()
        with patch('apps.notifications.diffusion.get_channel_layer', return_value=layer):
            envoyer_a_utilisateur('u1', 'purchase_confirmed', {'listingId': 3, 'status': 'confirmed'})

        groupe, message = layer.group_send.await_args[0]
        self.assertEqual(groupe, 'utilisateur_u1')
        self.assertEqual(message['evenement'], 'purchase_confirmed')

    def test_diffuser_a_tous(self):
        layer = layer_factice()
        with patch('apps.notifications.diffusion.get_channel_layer', return_value=layer):
            diffuser_a_tous('listing_delete', {'listingId': 3})

        groupe, _ = layer.group_send.await_args[0]
        self.assertEqual(groupe, GROUPE_PUBLIC)

    def test_version_asynchrone(self):
        layer = layer_factice()

        async def _run():
            await adiffuser_salon('community', 'user_typing', {'userId': 'u1'}, exclure='canal-1')
            await aenvoyer_a_utilisateur('u2', 'purchase_otp', {'listingId': 1})

        with patch('apps.notifications.diffusion.get_channel_layer', return_value=layer):
            async_to_sync(_run)()

        groupes = [appel[0][0] for appel in layer.group_send.await_args_list]
        self.assertEqual(groupes, ['chat_community', 'utilisateur_u2'])
        self.assertEqual(layer.group_send.await_args_list[0][0][1]['exclure'], 'canal-1')

    def test_erreur_channel_layer_journalisee(self):
        """Redis arrêté : warning dans les logs, aucune exception pour l'appelant."""
        layer = layer_factice(erreur=ConnectionError('Redis indisponible'))
        with patch('apps.notifications.diffusion.get_channel_layer', return_value=layer), \
                self.assertLogs('apps.notifications.diffusion', level='WARNING') as logs:
            diffuser_salon(7, 'new_message', {'text': 'Bonjour'})

        self.assertIn('Redis indisponible', logs.output[0])

    def test_sans_channel_layer(self):
        with patch('apps.notifications.diffusion.get_channel_layer', return_value=None), \
                self.assertLogs('apps.notifications.diffusion', level='WARNING'):
            diffuser_a_tous('new_listing', {'annonce': {}})
