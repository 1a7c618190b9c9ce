from django.contrib import admin
from .models import Annonce


@admin.register(Annonce)
class AnnonceAdmin(admin.ModelAdmin):
    list_display    = ['titre', 'vendeur', 'prix', 'categorie', 'est_active', 'est_vendue', 'date_creation']
    list_filter     = ['categorie', 'etat', 'est_active', 'est_vendue']
    search_fields   = ['titre', 'description', 'vendeur__username']
    raw_id_fields   = ['vendeur']
    readonly_fields = ['vues', 'date_modification']
