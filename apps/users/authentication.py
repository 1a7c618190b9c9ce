"""
Campus Market — users/authentication.py
Authentification DRF par jeton du fournisseur d'identité.

Reprend JWTAuthentication (lecture de l'en-tête "Authorization: Bearer",
validation du jeton) mais remplace la recherche de l'utilisateur :
le claim "uid" est résolu via identity.py, ce qui crée le compte
à la première requête.
"""
from rest_framework.exceptions import AuthenticationFailed
from rest_framework_simplejwt.authentication import JWTAuthentication

from .identity import IdentiteInvalide, identite_depuis_claims, utilisateur_pour_identite


class IdentiteExterneAuthentication(JWTAuthentication):

    def get_user(self, validated_token):
        try:
            identite = identite_depuis_claims(validated_token)
            return utilisateur_pour_identite(identite)
        except IdentiteInvalide as e:
            raise AuthenticationFailed(str(e), code='user_not_found')
