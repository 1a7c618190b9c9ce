"""
Campus Market — asgi.py
Point d'entrée ASGI : Daphne gère ici HTTP et WebSocket simultanément
"""
import os
from django.core.asgi import get_asgi_application

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'config.settings')

# Initialise Django AVANT d'importer les consumers (ils importent des modèles)
django_asgi_app = get_asgi_application()

from channels.routing import ProtocolTypeRouter, URLRouter

from apps.chat.middleware import TokenAuthMiddleware
import apps.chat.routing

application = ProtocolTypeRouter({

    # Requêtes HTTP classiques → Django normal
    'http': django_asgi_app,

    # Requêtes WebSocket → Django Channels
    # TokenAuthMiddleware = résout le jeton du fournisseur d'identité
    # une seule fois, à l'ouverture de la connexion
    'websocket': TokenAuthMiddleware(
        URLRouter(
            # ws://localhost:8000/ws/marche/?token=<jeton>
            apps.chat.routing.websocket_urlpatterns
        )
    ),
})
