"""
Campus Market — chat/api_urls.py
Routes API pour le chat (préfixe 'api/chat/' défini dans config/urls.py).
"""
from django.urls import path
from . import api_views

urlpatterns = [
    path('',
         api_views.ConversationListeAPIView.as_view(),
         name='chat-liste'),

    path('creer/',
         api_views.ConversationCreerAPIView.as_view(),
         name='chat-creer'),

    path('<int:pk>/',
         api_views.ConversationDetailAPIView.as_view(),
         name='chat-detail'),

    # ── Messages ─────────────────────────────────────────────
    path('<int:pk>/messages/',
         api_views.MessageListeAPIView.as_view(),
         name='chat-messages'),

    path('<int:pk>/messages/<int:message_id>/',
         api_views.MessageDetailAPIView.as_view(),
         name='chat-message-detail'),

    path('<int:pk>/envoyer/',
         api_views.EnvoyerMessageAPIView.as_view(),
         name='chat-envoyer'),

    path('<int:pk>/marquer_lu/',
         api_views.MarquerLuAPIView.as_view(),
         name='chat-marquer-lu'),

    path('<int:pk>/quitter/',
         api_views.QuitterConversationAPIView.as_view(),
         name='chat-quitter'),
]
