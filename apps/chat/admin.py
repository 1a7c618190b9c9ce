"""
Interface d'administration pour le chat (lecture et modération).
"""
from django.contrib import admin
from django.utils.html import format_html

from .models import Conversation, MessageChat, Participation


class ParticipationInline(admin.TabularInline):
    model           = Participation
    extra           = 0
    readonly_fields = ['non_lus', 'date_arrivee']
    raw_id_fields   = ['utilisateur']


class MessageChatInline(admin.TabularInline):
    model           = MessageChat
    extra           = 0
    readonly_fields = ['expediteur', 'type_message', 'contenu', 'is_read', 'is_deleted', 'date_envoi']
    can_delete      = False
    ordering        = ['-date_envoi']
    max_num         = 50


@admin.register(Conversation)
class ConversationAdmin(admin.ModelAdmin):
    list_display    = ['id', 'cle_paire', 'annonce', 'nombre_messages', 'est_active', 'dernier_message_date']
    list_filter     = ['est_active', 'date_creation']
    search_fields   = ['cle_paire', 'participants__username', 'annonce__titre']
    readonly_fields = ['cle_paire', 'dernier_message', 'dernier_message_date', 'date_creation']
    inlines         = [ParticipationInline, MessageChatInline]

    def nombre_messages(self, obj):
        return obj.messages.count()
    nombre_messages.short_description = "Nb messages"


@admin.register(MessageChat)
class MessageChatAdmin(admin.ModelAdmin):
    list_display    = ['id', 'expediteur', 'conversation', 'type_message', 'apercu', 'statut_lu', 'date_envoi']
    list_filter     = ['type_message', 'is_read', 'is_deleted', 'date_envoi']
    search_fields   = ['expediteur__username', 'contenu']
    readonly_fields = ['conversation', 'expediteur', 'type_message', 'contenu', 'images', 'date_envoi']
    ordering        = ['-date_envoi']

    def statut_lu(self, obj):
        """Badge coloré : vert si lu, orange si non lu."""
        if obj.is_read:
            return format_html(
                '<span style="background:#16a34a; color:white; padding:2px 8px; '
                'border-radius:4px; font-size:11px;">{}</span>', '✓ Lu'
            )
        return format_html(
            '<span style="background:#d97706; color:white; padding:2px 8px; '
            'border-radius:4px; font-size:11px;">{}</span>', '● Non lu'
        )
    statut_lu.short_description = "Statut"
