from django.apps import AppConfig


class AchatsConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'apps.achats'
    verbose_name = 'Achats'
