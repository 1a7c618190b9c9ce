"""
Campus Market — users/api_urls.py
"""
from django.urls import path
from . import api_views

urlpatterns = [
    path('moi/', api_views.ProfilAPIView.as_view(), name='api_profil'),
]
