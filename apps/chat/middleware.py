"""
Campus Market — chat/middleware.py
Authentification des connexions WebSocket par jeton.

Le client se connecte à ws://<hôte>/ws/marche/?token=<jeton>.
Le jeton est résolu une seule fois, à la poignée de main :
  scope['user']     → CustomUser, ou AnonymousUser si le jeton est refusé
  scope['identite'] → IdentiteExterne, ou None
Le consumer ferme alors la connexion (code 4001) sans rien modifier.
"""
import logging
from urllib.parse import parse_qs

from channels.db import database_sync_to_async
from channels.middleware import BaseMiddleware
from django.contrib.auth.models import AnonymousUser

from apps.users.identity import IdentiteInvalide, resoudre

logger = logging.getLogger(__name__)


@database_sync_to_async
def resoudre_connexion(token):
    try:
        identite, user = resoudre(token)
    except IdentiteInvalide as e:
        logger.info(f"Connexion WebSocket refusée : {e}")
        return AnonymousUser(), None
    return user, identite


def extraire_token(scope):
    query = parse_qs(scope.get('query_string', b'').decode())
    valeurs = query.get('token')
    return valeurs[0] if valeurs else None


class TokenAuthMiddleware(BaseMiddleware):

    async def __call__(self, scope, receive, send):
        scope = dict(scope)
        # Un utilisateur déjà placé dans le scope (tests) est conservé
        if 'user' not in scope:
            scope['user'], scope['identite'] = await resoudre_connexion(extraire_token(scope))
        return await super().__call__(scope, receive, send)
