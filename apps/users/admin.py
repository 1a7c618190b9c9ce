"""
Configure l'affichage et la gestion des utilisateurs
dans l'interface d'administration Django.
"""
from django.contrib import admin
from django.contrib.auth.admin import UserAdmin
from .models import CustomUser


@admin.register(CustomUser)
class CustomUserAdmin(UserAdmin):

    # ── Colonnes affichées dans la liste des utilisateurs ─────
    list_display = [
        'username', 'email', 'get_full_name', 'bloc_residence',
        'is_active', 'is_admin', 'nombre_ventes', 'date_inscription',
    ]

    list_filter   = ['is_active', 'is_admin', 'date_inscription']
    search_fields = ['username', 'email', 'nom_affiche', 'uid_externe']
    ordering      = ['-date_inscription']

    readonly_fields = ['uid_externe', 'date_inscription', 'derniere_activite', 'nombre_ventes']

    fieldsets = (
        ('Identité', {
            'fields': ('uid_externe', 'email', 'username', 'password')
        }),
        ('Profil', {
            'fields': ('nom_affiche', 'bloc_residence', 'nombre_ventes')
        }),
        ('Statuts', {
            'fields': ('is_active', 'is_staff', 'is_admin')
        }),
        ('Permissions', {
            'fields': ('groups', 'user_permissions'),
            'classes': ('collapse',)
        }),
        ('Dates', {
            'fields': ('date_inscription', 'derniere_activite'),
            'classes': ('collapse',)
        }),
    )

    # ── Formulaire de création depuis l'admin ────────────────
    add_fieldsets = (
        (None, {
            'classes': ('wide',),
            'fields': ('email', 'username', 'password1', 'password2'),
        }),
    )
