"""
Connecte les signals au démarrage de Django.
"""
from django.apps import AppConfig


class AnnoncesConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'apps.annonces'
    verbose_name = 'Annonces'

    def ready(self):
        import apps.annonces.signals
