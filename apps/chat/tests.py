"""
Campus Market — chat/tests.py
Tests pour l'app chat.

Couverture :
  - Modèle Conversation (clé de paire, idempotence, départ des participants)
  - Modèle MessageChat (validation et aperçu par type, fenêtre de modification)
  - Registre de présence (salons valides, entrées par connexion)
  - ChatService (compteurs non lus, accusés de lecture, diffusion après commit)
  - API Chat (liste, créer, détail, historique, envoyer, marquer lu, modifier, quitter)
  - WebSocket ChatConsumer (jeton, présence, saisie, relais, canal privé)

Note sur TransactionTestCase :
  Les tests WebSocket sont async. TestCase utilise une transaction englobante
  qui peut provoquer des "connection already closed" en contexte async.
  TransactionTestCase vide la DB entre chaque test (TRUNCATE) → plus sûr.
"""
from datetime import timedelta
from unittest.mock import patch

from asgiref.sync import async_to_sync
from django.contrib.auth import get_user_model
from django.core.exceptions import PermissionDenied, ValidationError
from django.test import TestCase, TransactionTestCase
from django.utils import timezone
from rest_framework import status
from rest_framework.test import APITestCase
from rest_framework_simplejwt.tokens import AccessToken

from apps.chat.models import (
    Conversation, LectureMessage, MAX_CONTENU, MAX_IMAGES, MessageChat, Participation, TEXTE_SUPPRIME,
)
from apps.chat.presence import RegistrePresence, salon_valide
from apps.chat.services import ChatService

User = get_user_model()


# ═══════════════════════════════════════════════════════════════
# HELPERS
# ═══════════════════════════════════════════════════════════════

def creer_user(username='user1', email=None, **kwargs):
    return User.objects.create_user(
        username=username, email=email or f'{username}@campus.cm', **kwargs
    )


def jeton_pour(user):
    return str(AccessToken.for_user(user))


def get_jwt_header(user):
    return f'Bearer {jeton_pour(user)}'


def non_lus(conversation, user):
    return Participation.objects.get(conversation=conversation, utilisateur=user).non_lus


# ═══════════════════════════════════════════════════════════════
# TESTS — Modèle Conversation
# ═══════════════════════════════════════════════════════════════

class ConversationModelTest(TestCase):

    def setUp(self):
        self.alice = creer_user('alice')
        self.bob   = creer_user('bob')
        self.carol = creer_user('carol')

    def test_creation_conversation(self):
        """Une conversation est créée avec les deux participants."""
        conv, created = Conversation.get_or_create_between(self.alice, self.bob)
        self.assertTrue(created)
        self.assertEqual(set(conv.participants.all()), {self.alice, self.bob})
        self.assertTrue(conv.est_active)

    def test_get_or_create_between_idempotent(self):
        """Deux demandes pour la même paire → même conversation, dans les deux sens."""
        conv1, created1 = Conversation.get_or_create_between(self.alice, self.bob)
        conv2, created2 = Conversation.get_or_create_between(self.bob, self.alice)
        self.assertTrue(created1)
        self.assertFalse(created2)
        self.assertEqual(conv1.pk, conv2.pk)
        self.assertEqual(Participation.objects.filter(conversation=conv1).count(), 2)

    def test_cle_paire_normalisee(self):
        self.assertEqual(
            Conversation.cle_pour(self.alice, self.bob),
            Conversation.cle_pour(self.bob, self.alice),
        )

    def test_conversations_distinctes_entre_paires_differentes(self):
        conv_ab, _ = Conversation.get_or_create_between(self.alice, self.bob)
        conv_ac, _ = Conversation.get_or_create_between(self.alice, self.carol)
        self.assertNotEqual(conv_ab.pk, conv_ac.pk)

    def test_get_autre_participant(self):
        conv, _ = Conversation.get_or_create_between(self.alice, self.bob)
        self.assertEqual(conv.get_autre_participant(self.alice), self.bob)
        self.assertEqual(conv.get_autre_participant(self.bob), self.alice)

    def test_dernier_participant_desactive(self):
        """Sans participant restant, la conversation est désactivée."""
        conv, _ = Conversation.get_or_create_between(self.alice, self.bob)
        self.assertTrue(conv.retirer_participant(self.alice))
        self.assertTrue(conv.est_active)
        self.assertTrue(conv.retirer_participant(self.bob))
        conv.refresh_from_db()
        self.assertFalse(conv.est_active)

    def test_nouvelle_conversation_apres_desactivation(self):
        """La clé de paire est libérée quand la conversation est désactivée."""
        conv, _ = Conversation.get_or_create_between(self.alice, self.bob)
        conv.retirer_participant(self.alice)
        conv.retirer_participant(self.bob)

        nouvelle, created = Conversation.get_or_create_between(self.alice, self.bob)
        self.assertTrue(created)
        self.assertNotEqual(nouvelle.pk, conv.pk)

    def test_participant_reintegre(self):
        conv, _ = Conversation.get_or_create_between(self.alice, self.bob)
        conv.retirer_participant(self.bob)
        self.assertFalse(conv.est_participant(self.bob))

        meme, created = Conversation.get_or_create_between(self.bob, self.alice)
        self.assertFalse(created)
        self.assertEqual(meme.pk, conv.pk)
        self.assertTrue(conv.est_participant(self.bob))

    def test_suppression_cascade_messages(self):
        conv, _ = Conversation.get_or_create_between(self.alice, self.bob)
        MessageChat.objects.create(conversation=conv, expediteur=self.alice, contenu='Salut')
        conv.delete()
        self.assertEqual(MessageChat.objects.count(), 0)


# ═══════════════════════════════════════════════════════════════
# TESTS — Modèle MessageChat
# ═══════════════════════════════════════════════════════════════

class MessageChatModelTest(TestCase):

    def setUp(self):
        self.alice = creer_user('alice')
        self.bob   = creer_user('bob')
        self.conv, _ = Conversation.get_or_create_between(self.alice, self.bob)

    def _message(self, **kwargs):
        kwargs.setdefault('expediteur', self.alice)
        return MessageChat(conversation=self.conv, **kwargs)

    def test_texte_valide(self):
        self._message(contenu='Toujours dispo ?').valider_contenu()

    def test_texte_vide_refuse(self):
        with self.assertRaises(ValidationError):
            self._message(contenu='   ').valider_contenu()

    def test_texte_trop_long_refuse(self):
        with self.assertRaises(ValidationError):
            self._message(contenu='x' * 2001).valider_contenu()

    def test_image_sans_image_refusee(self):
        with self.assertRaises(ValidationError):
            self._message(type_message=MessageChat.TypeMessage.IMAGE).valider_contenu()

    def test_image_sans_texte_acceptee(self):
        self._message(type_message=MessageChat.TypeMessage.IMAGE, images=['a.jpg']).valider_contenu()

    def test_plus_de_cinq_images_refuse(self):
        with self.assertRaises(ValidationError):
            self._message(
                type_message=MessageChat.TypeMessage.IMAGE,
                images=[f'{i}.jpg' for i in range(6)],
            ).valider_contenu()

    def test_systeme_sans_expediteur(self):
        self._message(expediteur=None, type_message=MessageChat.TypeMessage.SYSTEME, contenu='Bienvenue').valider_contenu()
        with self.assertRaises(ValidationError):
            self._message(type_message=MessageChat.TypeMessage.SYSTEME, contenu='Bienvenue').valider_contenu()

    def test_type_inconnu_refuse(self):
        with self.assertRaises(ValidationError):
            self._message(type_message='video', contenu='x').valider_contenu()

    def test_apercu_texte_tronque(self):
        message = self._message(contenu='a' * 150)
        self.assertEqual(message.apercu, 'a' * 100 + '...')
        self.assertEqual(self._message(contenu='court').apercu, 'court')

    def test_apercu_image(self):
        message = self._message(type_message=MessageChat.TypeMessage.IMAGE, images=['a.jpg', 'b.jpg'])
        self.assertEqual(message.apercu, '📷 2 image(s)')

    def test_apercu_supprime(self):
        message = self._message(contenu='secret', is_deleted=True)
        self.assertEqual(message.apercu, TEXTE_SUPPRIME)

    def test_messages_ordonnes_par_date(self):
        m1 = MessageChat.objects.create(conversation=self.conv, expediteur=self.alice, contenu='Premier')
        m2 = MessageChat.objects.create(conversation=self.conv, expediteur=self.bob,   contenu='Deuxième')
        self.assertEqual(list(self.conv.messages.all()), [m1, m2])

    def test_fenetre_de_modification(self):
        message = MessageChat.objects.create(conversation=self.conv, expediteur=self.alice, contenu='Salut')
        self.assertTrue(message.peut_modifier(self.alice))
        self.assertFalse(message.peut_modifier(self.bob))

        MessageChat.objects.filter(pk=message.pk).update(date_envoi=timezone.now() - timedelta(minutes=16))
        message.refresh_from_db()
        self.assertFalse(message.peut_modifier(self.alice))

    def test_image_non_modifiable(self):
        message = MessageChat.objects.create(
            conversation=self.conv, expediteur=self.alice,
            type_message=MessageChat.TypeMessage.IMAGE, images=['a.jpg'],
        )
        self.assertFalse(message.peut_modifier(self.alice))


# ═══════════════════════════════════════════════════════════════
# TESTS — Registre de présence
# ═══════════════════════════════════════════════════════════════

class PresenceTest(TestCase):

    def test_salon_valide(self):
        self.assertEqual(salon_valide('community'), 'community')
        self.assertEqual(salon_valide('42'), '42')
        self.assertEqual(salon_valide(42), '42')

    def test_salon_mal_forme(self):
        for salon in [None, '', '0', '-3', 'abc', '4 2', '12a', True, 3.5, {'id': 1}, '9' * 40]:
            self.assertIsNone(salon_valide(salon), salon)

    def test_cycle_de_vie_entree(self):
        registre = RegistrePresence()
        registre.enregistrer('canal-1', 'uid-a')
        registre.enregistrer('canal-2', 'uid-b')

        self.assertTrue(registre.rejoindre('canal-1', '7'))
        self.assertFalse(registre.rejoindre('canal-1', '7'))
        registre.rejoindre('canal-1', 'community')
        registre.rejoindre('canal-2', '7')

        self.assertTrue(registre.quitter('canal-2', '7'))
        self.assertFalse(registre.quitter('canal-2', '7'))

        entree = registre.oublier('canal-1')
        self.assertEqual(entree.uid, 'uid-a')
        self.assertEqual(entree.salons, {'7', 'community'})
        self.assertIsNone(registre.oublier('canal-1'))
        self.assertEqual(registre.oublier('canal-2').salons, set())

    def test_connexion_inconnue(self):
        registre = RegistrePresence()
        self.assertFalse(registre.rejoindre('fantome', '1'))
        self.assertFalse(registre.quitter('fantome', '1'))
        self.assertIsNone(registre.oublier('fantome'))


# ═══════════════════════════════════════════════════════════════
# TESTS — ChatService
# ═══════════════════════════════════════════════════════════════

@patch('apps.chat.services.diffuser_salon')
class ChatServiceTest(TestCase):

    def setUp(self):
        self.alice = creer_user('alice')
        self.bob   = creer_user('bob')
        self.carol = creer_user('carol')
        self.conv, _ = Conversation.get_or_create_between(self.alice, self.bob)

    def test_demarrer_avec_soi_meme(self, mock_diffuser):
        with self.assertRaises(ValidationError):
            ChatService.demarrer_conversation(self.alice, self.alice)

    def test_comptage_non_lus(self, mock_diffuser):
        """N messages de A → compteur de B +N, celui de A inchangé ; lecture de B → 0."""
        for i in range(3):
            ChatService.envoyer_message(self.conv, self.alice, contenu=f'Message {i}')

        self.assertEqual(non_lus(self.conv, self.bob), 3)
        self.assertEqual(non_lus(self.conv, self.alice), 0)

        ChatService.envoyer_message(self.conv, self.bob, contenu='Réponse')
        self.assertEqual(non_lus(self.conv, self.alice), 1)

        self.assertEqual(ChatService.marquer_lu(self.conv, self.bob), 3)
        self.assertEqual(non_lus(self.conv, self.bob), 0)
        self.assertEqual(non_lus(self.conv, self.alice), 1)

    def test_marquer_lu_cree_les_accuses(self, mock_diffuser):
        message = ChatService.envoyer_message(self.conv, self.alice, contenu='Hey')
        ChatService.marquer_lu(self.conv, self.bob)

        message.refresh_from_db()
        self.assertTrue(message.is_read)
        self.assertIsNotNone(message.date_lecture)
        lecteurs = LectureMessage.objects.filter(message=message).values_list('utilisateur', flat=True)
        self.assertEqual(list(lecteurs), [self.bob.pk])

    def test_marquer_lu_idempotent(self, mock_diffuser):
        message = ChatService.envoyer_message(self.conv, self.alice, contenu='Hey')
        ChatService.marquer_lu(self.conv, self.bob)
        premiere_lecture = MessageChat.objects.get(pk=message.pk).date_lecture

        self.assertEqual(ChatService.marquer_lu(self.conv, self.bob), 0)
        self.assertEqual(LectureMessage.objects.filter(message=message).count(), 1)
        self.assertEqual(MessageChat.objects.get(pk=message.pk).date_lecture, premiere_lecture)

    def test_marquer_lu_ignore_ses_propres_messages(self, mock_diffuser):
        message = ChatService.envoyer_message(self.conv, self.alice, contenu='Hey')
        self.assertEqual(ChatService.marquer_lu(self.conv, self.alice), 0)
        message.refresh_from_db()
        self.assertFalse(message.is_read)

    def test_non_participant_refuse(self, mock_diffuser):
        with self.assertRaises(PermissionDenied):
            ChatService.envoyer_message(self.conv, self.carol, contenu='intrusion')
        with self.assertRaises(PermissionDenied):
            ChatService.marquer_lu(self.conv, self.carol)

    def test_dernier_message_tronque(self, mock_diffuser):
        ChatService.envoyer_message(self.conv, self.alice, contenu='x' * 2000)
        self.conv.refresh_from_db()
        self.assertEqual(self.conv.dernier_message, 'x' * 500 + '...')
        self.assertEqual(self.conv.dernier_expediteur, self.alice)
        self.assertIsNotNone(self.conv.dernier_message_date)

    def test_message_image(self, mock_diffuser):
        message = ChatService.envoyer_message(self.conv, self.alice, images=['a.jpg'])
        self.assertEqual(message.type_message, MessageChat.TypeMessage.IMAGE)
        self.conv.refresh_from_db()
        self.assertEqual(self.conv.dernier_message, '📷 1 image(s)')

    def test_message_invalide_rien_enregistre(self, mock_diffuser):
        with self.assertRaises(ValidationError):
            ChatService.envoyer_message(self.conv, self.alice, contenu='   ')
        self.assertEqual(MessageChat.objects.count(), 0)
        self.assertEqual(non_lus(self.conv, self.bob), 0)

    def test_diffusion_apres_commit(self, mock_diffuser):
        with self.captureOnCommitCallbacks(execute=True):
            message = ChatService.envoyer_message(self.conv, self.alice, contenu='Bonjour')

        salon, evenement, donnees = mock_diffuser.call_args[0]
        self.assertEqual(salon, self.conv.pk)
        self.assertEqual(evenement, 'new_message')
        self.assertEqual(donnees['messageId'], message.pk)
        self.assertEqual(donnees['senderId'], self.alice.uid_externe)
        self.assertEqual(donnees['chatId'], str(self.conv.pk))

    def test_accuse_de_lecture_diffuse(self, mock_diffuser):
        ChatService.envoyer_message(self.conv, self.alice, contenu='Bonjour')
        with self.captureOnCommitCallbacks(execute=True):
            ChatService.marquer_lu(self.conv, self.bob)

        mock_diffuser.assert_called_with(
            self.conv.pk, 'messages_read',
            {'chatId': str(self.conv.pk), 'userId': self.bob.uid_externe},
        )

    def test_modifier_message(self, mock_diffuser):
        message = ChatService.envoyer_message(self.conv, self.alice, contenu='Bonjour')
        ChatService.modifier_message(message, self.alice, 'Bonsoir')
        message.refresh_from_db()
        self.assertEqual(message.contenu, 'Bonsoir')
        self.assertTrue(message.est_modifie)

        with self.assertRaises(PermissionDenied):
            ChatService.modifier_message(message, self.bob, 'Piraté')

    def test_supprimer_message(self, mock_diffuser):
        message = ChatService.envoyer_message(self.conv, self.alice, contenu='Oups', images=['a.jpg'])
        ChatService.supprimer_message(message, self.alice)
        message.refresh_from_db()
        self.assertTrue(message.is_deleted)
        self.assertEqual(message.images, [])
        self.assertEqual(message.apercu, TEXTE_SUPPRIME)

        with self.assertRaises(PermissionDenied):
            ChatService.supprimer_message(message, self.alice)

    def test_supprimer_dernier_message_efface_le_resume(self, mock_diffuser):
        message = ChatService.envoyer_message(self.conv, self.alice, contenu='mon numero secret 0612')
        ChatService.supprimer_message(message, self.alice)
        self.conv.refresh_from_db()
        self.assertEqual(self.conv.dernier_message, TEXTE_SUPPRIME)
        self.assertNotIn('secret', self.conv.dernier_message)

    def test_modifier_dernier_message_met_a_jour_le_resume(self, mock_diffuser):
        message = ChatService.envoyer_message(self.conv, self.alice, contenu='Rdv à 14h')
        ChatService.modifier_message(message, self.alice, 'Rdv à 16h')
        self.conv.refresh_from_db()
        self.assertEqual(self.conv.dernier_message, 'Rdv à 16h')

    def test_supprimer_ancien_message_garde_le_resume(self, mock_diffuser):
        ancien = ChatService.envoyer_message(self.conv, self.alice, contenu='Premier')
        ChatService.envoyer_message(self.conv, self.bob, contenu='Second')
        ChatService.supprimer_message(ancien, self.alice)
        self.conv.refresh_from_db()
        self.assertEqual(self.conv.dernier_message, 'Second')

    def test_quitter_laisse_un_message_systeme(self, mock_diffuser):
        ChatService.retirer_participant(self.conv, self.alice)
        systeme = MessageChat.objects.get(conversation=self.conv)
        self.assertEqual(systeme.type_message, MessageChat.TypeMessage.SYSTEME)
        self.assertIsNone(systeme.expediteur)
        self.assertTrue(systeme.is_read)
        self.assertEqual(non_lus(self.conv, self.bob), 0)

    def test_quitter_en_dernier_desactive(self, mock_diffuser):
        ChatService.retirer_participant(self.conv, self.alice)
        ChatService.retirer_participant(self.conv, self.bob)
        self.conv.refresh_from_db()
        self.assertFalse(self.conv.est_active)

        with self.assertRaises(PermissionDenied):
            ChatService.envoyer_message(self.conv, self.bob, contenu='Il y a quelqu\'un ?')


# ═══════════════════════════════════════════════════════════════
# TESTS — API Chat
# ═══════════════════════════════════════════════════════════════

class ChatAPITest(APITestCase):

    def setUp(self):
        self.alice = creer_user('alice')
        self.bob   = creer_user('bob')
        self.carol = creer_user('carol')
        self.client.credentials(HTTP_AUTHORIZATION=get_jwt_header(self.alice))

    def _auth_as(self, user):
        self.client.credentials(HTTP_AUTHORIZATION=get_jwt_header(user))

    # ── Liste ─────────────────────────────────────────────────

    def test_liste_conversations_vide(self):
        """GET /api/chat/ retourne liste vide si aucune conversation."""
        response = self.client.get('/api/chat/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['count'], 0)

    def test_liste_conversations_filtre_par_participant(self):
        """GET /api/chat/ ne retourne que les conversations de l'utilisateur connecté."""
        Conversation.get_or_create_between(self.alice, self.bob)
        Conversation.get_or_create_between(self.bob, self.carol)
        response = self.client.get('/api/chat/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['count'], 1)
        self.assertEqual(response.data['results'][0]['interlocuteur']['username'], 'bob')

    def test_liste_non_authentifie(self):
        """GET /api/chat/ sans token → 401."""
        self.client.credentials()
        response = self.client.get('/api/chat/')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    # ── Créer conversation ────────────────────────────────────

    def test_creer_conversation(self):
        """POST /api/chat/creer/ crée une conversation → 201."""
        response = self.client.post('/api/chat/creer/', {'utilisateur_id': self.bob.id})
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        conv = Conversation.objects.get(pk=response.data['id'])
        self.assertTrue(conv.est_participant(self.bob))

    def test_creer_conversation_existante_retourne_200_meme_id(self):
        """Deux appels (dans les deux sens) → même identifiant."""
        premier = self.client.post('/api/chat/creer/', {'utilisateur_id': self.bob.id})
        self._auth_as(self.bob)
        second = self.client.post('/api/chat/creer/', {'utilisateur_id': self.alice.id})
        self.assertEqual(second.status_code, status.HTTP_200_OK)
        self.assertEqual(premier.data['id'], second.data['id'])

    def test_creer_conversation_avec_soi_meme(self):
        """POST /api/chat/creer/ avec soi-même → 400."""
        response = self.client.post('/api/chat/creer/', {'utilisateur_id': self.alice.id})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_creer_conversation_user_inexistant(self):
        """POST /api/chat/creer/ avec un ID inexistant → 400."""
        response = self.client.post('/api/chat/creer/', {'utilisateur_id': 99999})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    # ── Détail ────────────────────────────────────────────────

    def test_detail_conversation_participant(self):
        conv, _ = Conversation.get_or_create_between(self.alice, self.bob)
        response = self.client.get(f'/api/chat/{conv.id}/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data['participants']), 2)

    def test_detail_conversation_non_participant(self):
        """GET /api/chat/<id>/ pour non-participant → 403."""
        conv, _ = Conversation.get_or_create_between(self.bob, self.carol)
        response = self.client.get(f'/api/chat/{conv.id}/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_detail_conversation_inexistante(self):
        response = self.client.get('/api/chat/99999/')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    # ── Envoyer / historique ──────────────────────────────────

    def test_envoyer_message(self):
        """POST /api/chat/<id>/envoyer/ crée un message → 201."""
        conv, _ = Conversation.get_or_create_between(self.alice, self.bob)
        response = self.client.post(f'/api/chat/{conv.id}/envoyer/', {'contenu': 'Hello Bob !'})
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['type_message'], 'text')
        self.assertEqual(response.data['uid_expediteur'], self.alice.uid_externe)
        self.assertEqual(non_lus(conv, self.bob), 1)

    def test_envoyer_message_images(self):
        conv, _ = Conversation.get_or_create_between(self.alice, self.bob)
        response = self.client.post(
            f'/api/chat/{conv.id}/envoyer/', {'images': ['a.jpg', 'b.jpg']}, format='json'
        )
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['type_message'], 'image')
        self.assertEqual(response.data['apercu'], '📷 2 image(s)')

    def test_envoyer_message_vide(self):
        """POST /api/chat/<id>/envoyer/ avec message vide → 400."""
        conv, _ = Conversation.get_or_create_between(self.alice, self.bob)
        response = self.client.post(f'/api/chat/{conv.id}/envoyer/', {'contenu': ''})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_envoyer_message_non_participant(self):
        """POST /api/chat/<id>/envoyer/ pour non-participant → 403."""
        conv, _ = Conversation.get_or_create_between(self.bob, self.carol)
        response = self.client.post(f'/api/chat/{conv.id}/envoyer/', {'contenu': 'intrusion'})
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_historique_plus_recents_d_abord_sans_supprimes(self):
        conv, _ = Conversation.get_or_create_between(self.alice, self.bob)
        premier  = ChatService.envoyer_message(conv, self.alice, contenu='Premier')
        supprime = ChatService.envoyer_message(conv, self.bob,   contenu='Oups')
        dernier  = ChatService.envoyer_message(conv, self.alice, contenu='Dernier')
        ChatService.supprimer_message(supprime, self.bob)

        response = self.client.get(f'/api/chat/{conv.id}/messages/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        ids = [m['id'] for m in response.data['results']]
        self.assertEqual(ids, [dernier.pk, premier.pk])

    def test_historique_filtre_par_type(self):
        conv, _ = Conversation.get_or_create_between(self.alice, self.bob)
        ChatService.envoyer_message(conv, self.alice, contenu='Texte')
        ChatService.envoyer_message(conv, self.alice, images=['a.jpg'])

        response = self.client.get(f'/api/chat/{conv.id}/messages/', {'type_message': 'image'})
        self.assertEqual(response.data['count'], 1)
        self.assertEqual(response.data['results'][0]['type_message'], 'image')

    def test_historique_non_participant(self):
        conv, _ = Conversation.get_or_create_between(self.bob, self.carol)
        response = self.client.get(f'/api/chat/{conv.id}/messages/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    # ── Marquer lu ────────────────────────────────────────────

    def test_marquer_lu(self):
        """POST /api/chat/<id>/marquer_lu/ marque les messages comme lus → 200."""
        conv, _ = Conversation.get_or_create_between(self.alice, self.bob)
        msg = ChatService.envoyer_message(conv, self.bob, contenu='Hey')
        response = self.client.post(f'/api/chat/{conv.id}/marquer_lu/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['nombre'], 1)
        msg.refresh_from_db()
        self.assertTrue(msg.is_read)
        self.assertEqual(non_lus(conv, self.alice), 0)

    # ── Modifier / supprimer ──────────────────────────────────

    def test_modifier_message(self):
        conv, _ = Conversation.get_or_create_between(self.alice, self.bob)
        msg = ChatService.envoyer_message(conv, self.alice, contenu='Bonjour')
        response = self.client.patch(f'/api/chat/{conv.id}/messages/{msg.id}/', {'contenu': 'Bonsoir'})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['contenu'], 'Bonsoir')
        self.assertTrue(response.data['est_modifie'])

    def test_modifier_message_d_un_autre(self):
        conv, _ = Conversation.get_or_create_between(self.alice, self.bob)
        msg = ChatService.envoyer_message(conv, self.bob, contenu='Bonjour')
        response = self.client.patch(f'/api/chat/{conv.id}/messages/{msg.id}/', {'contenu': 'Piraté'})
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_supprimer_message(self):
        conv, _ = Conversation.get_or_create_between(self.alice, self.bob)
        msg = ChatService.envoyer_message(conv, self.alice, contenu='Oups')
        response = self.client.delete(f'/api/chat/{conv.id}/messages/{msg.id}/')
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)
        msg.refresh_from_db()
        self.assertTrue(msg.is_deleted)

    # ── Quitter ───────────────────────────────────────────────

    def test_quitter_conversation(self):
        conv, _ = Conversation.get_or_create_between(self.alice, self.bob)
        response = self.client.post(f'/api/chat/{conv.id}/quitter/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertFalse(conv.est_participant(self.alice))

        response = self.client.get('/api/chat/')
        self.assertEqual(response.data['count'], 0)


# ═══════════════════════════════════════════════════════════════
# TESTS — WebSocket ChatConsumer
# ═══════════════════════════════════════════════════════════════

class ChatWebSocketTest(TransactionTestCase):
    """
    Tests async du ChatConsumer via WebsocketCommunicator.
    Les connexions passent par config.asgi.application, donc par
    TokenAuthMiddleware (jeton dans la query string).
    """

    def setUp(self):
        self.alice = creer_user('alice_ws')
        self.bob   = creer_user('bob_ws')
        self.conv, _ = Conversation.get_or_create_between(self.alice, self.bob)

    def _communicator(self, user=None, token=None):
        from channels.testing import WebsocketCommunicator
        from config.asgi import application

        if token is None and user is not None:
            token = jeton_pour(user)
        path = '/ws/marche/' if token is None else f'/ws/marche/?token={token}'
        return WebsocketCommunicator(application, path)

    async def _envoyer(self, communicator, event, **data):
        await communicator.send_json_to({'event': event, 'data': data})

    def test_connexion_acceptee(self):
        """Un jeton valide ouvre la connexion."""
        async def _run():
            communicator = self._communicator(self.alice)
            connected, _ = await communicator.connect()
            self.assertTrue(connected)
            await communicator.disconnect()

        async_to_sync(_run)()

    def test_connexion_refusee_sans_jeton(self):
        async def _run():
            communicator = self._communicator()
            connected, code = await communicator.connect()
            self.assertFalse(connected)
            self.assertEqual(code, 4001)

        async_to_sync(_run)()

    def test_connexion_refusee_jeton_invalide(self):
        async def _run():
            communicator = self._communicator(token='pas.un.jeton')
            connected, code = await communicator.connect()
            self.assertFalse(connected)
            self.assertEqual(code, 4001)

        async_to_sync(_run)()

    def test_rejoindre_diffuse_user_online(self):
        async def _run():
            alice = self._communicator(self.alice)
            bob   = self._communicator(self.bob)
            await alice.connect()
            await bob.connect()

            await self._envoyer(alice, 'join_chat', roomId=str(self.conv.pk))
            reponse = await alice.receive_json_from(timeout=3)
            self.assertEqual(reponse, {'event': 'user_online', 'data': {'userId': self.alice.uid_externe}})

            await self._envoyer(bob, 'join_chat', roomId=self.conv.pk)
            for communicator in (alice, bob):
                reponse = await communicator.receive_json_from(timeout=3)
                self.assertEqual(reponse['event'], 'user_online')
                self.assertEqual(reponse['data']['userId'], self.bob.uid_externe)

            await self._envoyer(bob, 'leave_chat', roomId=str(self.conv.pk))
            reponse = await alice.receive_json_from(timeout=3)
            self.assertEqual(reponse, {'event': 'user_offline', 'data': {'userId': self.bob.uid_externe}})

            await alice.disconnect()
            await bob.disconnect()

        async_to_sync(_run)()

    def test_saisie_exclut_l_expediteur(self):
        async def _run():
            alice = self._communicator(self.alice)
            bob   = self._communicator(self.bob)
            await alice.connect()
            await bob.connect()
            salon = str(self.conv.pk)

            await self._envoyer(alice, 'join_chat', roomId=salon)
            await alice.receive_json_from(timeout=3)
            await self._envoyer(bob, 'join_chat', roomId=salon)
            await alice.receive_json_from(timeout=3)
            await bob.receive_json_from(timeout=3)

            await self._envoyer(alice, 'typing_start', roomId=salon)
            reponse = await bob.receive_json_from(timeout=3)
            self.assertEqual(reponse, {
                'event': 'user_typing',
                'data' : {'userId': self.alice.uid_externe, 'chatId': salon},
            })
            self.assertTrue(await alice.receive_nothing(timeout=0.2))

            await self._envoyer(alice, 'typing_stop', roomId=salon)
            reponse = await bob.receive_json_from(timeout=3)
            self.assertEqual(reponse['event'], 'user_stopped_typing')

            await alice.disconnect()
            await bob.disconnect()

        async_to_sync(_run)()

    def test_salon_communaute_jamais_enregistre(self):
        """Les messages du salon "community" n'apparaissent dans aucun historique."""
        from channels.db import database_sync_to_async

        async def _run():
            alice = self._communicator(self.alice)
            await alice.connect()
            await self._envoyer(alice, 'join_chat', roomId='community')
            await alice.receive_json_from(timeout=3)

            for texte in ['Qui vend une lampe ?', 'Moi !']:
                await self._envoyer(alice, 'send_message', roomId='community', text=texte)
                reponse = await alice.receive_json_from(timeout=3)
                self.assertEqual(reponse['event'], 'new_message')
                self.assertEqual(reponse['data']['chatId'], 'community')
                self.assertEqual(reponse['data']['text'], texte)
                self.assertEqual(reponse['data']['images'], [])
                self.assertIn('createdAt', reponse['data'])
                self.assertNotIn('senderId', reponse['data'])

            self.assertEqual(await database_sync_to_async(MessageChat.objects.count)(), 0)
            await alice.disconnect()

        async_to_sync(_run)()

        response = self.client.get(
            f'/api/chat/{self.conv.pk}/messages/',
            HTTP_AUTHORIZATION=get_jwt_header(self.alice),
        )
        self.assertEqual(response.json()['count'], 0)

    def test_salon_communaute_memes_limites(self):
        """Texte trop long, trop d'images ou image mal formée : rien n'est diffusé."""
        async def _run():
            alice = self._communicator(self.alice)
            bob   = self._communicator(self.bob)
            await alice.connect()
            await bob.connect()
            await self._envoyer(bob, 'join_chat', roomId='community')
            await bob.receive_json_from(timeout=3)

            invalides = [
                {'text': 'x' * (MAX_CONTENU + 1)},
                {'images': [f'{i}.jpg' for i in range(MAX_IMAGES + 1)]},
                {'images': [{'url': 'a.jpg'}]},
                {'images': ['']},
                {'text': '   '},
            ]
            for donnees in invalides:
                await self._envoyer(alice, 'send_message', roomId='community', **donnees)
            self.assertTrue(await bob.receive_nothing(timeout=0.2))

            await self._envoyer(alice, 'send_message', roomId='community',
                                text='x' * MAX_CONTENU, images=['a.jpg'])
            reponse = await bob.receive_json_from(timeout=3)
            self.assertEqual(reponse['event'], 'new_message')
            self.assertEqual(len(reponse['data']['text']), MAX_CONTENU)
            self.assertEqual(reponse['data']['images'], ['a.jpg'])

            await alice.disconnect()
            await bob.disconnect()

        async_to_sync(_run)()

    def test_relais_conversation_non_enregistre(self):
        from channels.db import database_sync_to_async

        async def _run():
            alice = self._communicator(self.alice)
            bob   = self._communicator(self.bob)
            await alice.connect()
            await bob.connect()
            salon = str(self.conv.pk)
            await self._envoyer(bob, 'join_chat', roomId=salon)
            await bob.receive_json_from(timeout=3)

            await self._envoyer(alice, 'send_message', roomId=salon, text='Toujours dispo ?')
            reponse = await bob.receive_json_from(timeout=3)
            self.assertEqual(reponse['event'], 'new_message')
            self.assertEqual(reponse['data']['chatId'], salon)
            self.assertEqual(reponse['data']['text'], 'Toujours dispo ?')
            self.assertEqual(reponse['data']['messageType'], 'text')
            self.assertEqual(reponse['data']['senderId'], self.alice.uid_externe)

            # Message invalide (vide) → ignoré
            await self._envoyer(alice, 'send_message', roomId=salon, text='   ')
            self.assertTrue(await bob.receive_nothing(timeout=0.2))

            self.assertEqual(await database_sync_to_async(MessageChat.objects.count)(), 0)
            await alice.disconnect()
            await bob.disconnect()

        async_to_sync(_run)()

    def test_trames_invalides_ignorees(self):
        async def _run():
            alice = self._communicator(self.alice)
            await alice.connect()

            await alice.send_to(text_data='pas du json')
            await alice.send_json_to(['liste'])
            await self._envoyer(alice, 'evenement_inconnu', roomId='community')
            await self._envoyer(alice, 'join_chat', roomId='pas-un-id')
            await self._envoyer(alice, 'join_chat', roomId='0')
            await self._envoyer(alice, 'join_chat')
            self.assertTrue(await alice.receive_nothing(timeout=0.2))

            # La connexion reste utilisable
            await self._envoyer(alice, 'join_chat', roomId='community')
            reponse = await alice.receive_json_from(timeout=3)
            self.assertEqual(reponse['event'], 'user_online')
            await alice.disconnect()

        async_to_sync(_run)()

    def test_canal_prive(self):
        """envoyer_a_utilisateur n'atteint que les connexions de cette identité."""
        from apps.notifications.diffusion import aenvoyer_a_utilisateur

        async def _run():
            alice = self._communicator(self.alice)
            bob   = self._communicator(self.bob)
            await alice.connect()
            await bob.connect()

            await aenvoyer_a_utilisateur(self.bob.uid_externe, 'purchase_confirmed', {'listingId': 1})
            reponse = await bob.receive_json_from(timeout=3)
            self.assertEqual(reponse, {'event': 'purchase_confirmed', 'data': {'listingId': 1}})
            self.assertTrue(await alice.receive_nothing(timeout=0.2))

            await alice.disconnect()
            await bob.disconnect()

        async_to_sync(_run)()
