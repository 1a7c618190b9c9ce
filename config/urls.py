"""
Campus Market — urls.py
Point d'entrée de toutes les URLs du projet
"""
from django.contrib import admin
from django.urls import path, include

urlpatterns = [
    path('admin/', admin.site.urls),

    # ── API REST ─────────────────────────────────────────────
    path('api/utilisateurs/', include('apps.users.api_urls')),
    path('api/chat/',         include('apps.chat.api_urls')),
    path('api/annonces/',     include('apps.achats.api_urls')),
]
