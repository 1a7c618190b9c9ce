"""
Campus Market — achats/api_urls.py
Routes API REST du protocole d'achat par OTP.

Inclus dans config/urls.py via :
  path('api/annonces/', include('apps.achats.api_urls'))
"""
from django.urls import path
from . import api_views

urlpatterns = [
    path('<int:pk>/achat/initier/',  api_views.InitierAchatAPIView.as_view(),  name='api_achat_initier'),
    path('<int:pk>/achat/verifier/', api_views.VerifierAchatAPIView.as_view(), name='api_achat_verifier'),
]
