"""
Campus Market — chat/routing.py
Route WebSocket unique : une connexion par client, les salons
(conversations, "community") se rejoignent par événement.

Format : ws://<hôte>/ws/marche/?token=<jeton>
"""
from django.urls import re_path
from . import consumers

websocket_urlpatterns = [
    re_path(r'^ws/marche/$', consumers.ChatConsumer.as_asgi()),
]
