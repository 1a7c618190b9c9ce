from django.contrib import admin
from .models import TentativeAchat


@admin.register(TentativeAchat)
class TentativeAchatAdmin(admin.ModelAdmin):
    list_display    = ['id', 'annonce', 'acheteur', 'vendeur', 'statut', 'essais_echoues', 'date_expiration', 'date_creation']
    list_filter     = ['statut']
    search_fields   = ['annonce__titre', 'acheteur__username', 'vendeur__username']
    raw_id_fields   = ['annonce', 'acheteur', 'vendeur']
    # L'empreinte et le sel ne sont jamais affichés
    exclude         = ['otp_hash', 'otp_sel']
    readonly_fields = ['uid_acheteur', 'statut', 'essais_echoues', 'date_expiration', 'date_creation', 'date_modification']
