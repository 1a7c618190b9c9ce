"""
Campus Market — audit/middleware.py
Trace dans les logs chaque requête qui modifie des données (POST, PUT, PATCH, DELETE).

Seuls la méthode, le chemin, l'identité et le statut sont journalisés :
le corps des requêtes (qui peut contenir un code OTP) ne l'est jamais.
"""
import logging

logger = logging.getLogger(__name__)

METHODES_AUDITEES = {'POST', 'PUT', 'PATCH', 'DELETE'}


class AuditLogMiddleware:

    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        response = self.get_response(request)

        if request.method in METHODES_AUDITEES:
            # DRF recopie l'utilisateur authentifié par jeton sur la requête Django
            user = getattr(request, 'user', None)
            identite = user.uid_externe if user is not None and user.is_authenticated else 'anonyme'
            logger.info(
                f"[AUDIT] {request.method} | "
                f"URL: {request.path} | "
                f"Identité: {identite} | "
                f"Status: {response.status_code}"
            )

        return response
