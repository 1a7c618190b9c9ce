"""
Campus Market — chat/filters.py

Filtres de l'historique des messages :
  /api/chat/<id>/messages/?type_message=image
  /api/chat/<id>/messages/?depuis=2026-01-01T00:00:00Z
"""
import django_filters
from .models import MessageChat


class MessageChatFilter(django_filters.FilterSet):

    type_message = django_filters.ChoiceFilter(
        choices=MessageChat.TypeMessage.choices,
        label="Type de message"
    )

    # Messages envoyés à partir de cette date (reprise après déconnexion)
    depuis = django_filters.IsoDateTimeFilter(
        field_name='date_envoi',
        lookup_expr='gte',
        label="Envoyés depuis"
    )
    avant = django_filters.IsoDateTimeFilter(
        field_name='date_envoi',
        lookup_expr='lt',
        label="Envoyés avant"
    )

    class Meta:
        model  = MessageChat
        fields = ['type_message', 'depuis', 'avant']
