"""
Campus Market — chat/presence.py
Registre de présence et des salons, propre au processus.

Une entrée par connexion WebSocket ouverte :
  canal (channel_name) → identité (uid) + salons rejoints

Rien n'est persisté : l'entrée naît à la poignée de main réussie et
disparaît à la déconnexion. La diffusion entre processus passe par le
Channel Layer, pas par ce registre.
"""
import re
from dataclasses import dataclass, field

# Salon public, jamais persisté
SALON_COMMUNAUTE = 'community'

# Identifiant de conversation : entier strictement positif
_ID_CONVERSATION = re.compile(r'^[1-9][0-9]{0,17}$')


def salon_valide(salon):
    """
    Normalise un nom de salon reçu du client.

    Returns:
        str  : 'community' ou l'id de conversation sous forme de chaîne
        None : salon mal formé (l'événement sera ignoré)
    """
    if isinstance(salon, bool):
        return None
    if isinstance(salon, int):
        salon = str(salon)
    if not isinstance(salon, str):
        return None
    salon = salon.strip()
    if salon == SALON_COMMUNAUTE or _ID_CONVERSATION.match(salon):
        return salon
    return None


def est_communaute(salon):
    return salon == SALON_COMMUNAUTE


@dataclass
class EntreePresence:
    uid: str
    salons: set = field(default_factory=set)


class RegistrePresence:

    def __init__(self):
        self._connexions = {}

    def enregistrer(self, canal, uid):
        self._connexions[canal] = EntreePresence(uid=uid)

    def oublier(self, canal):
        """Supprime l'entrée et la retourne (None si inconnue)."""
        return self._connexions.pop(canal, None)

    def rejoindre(self, canal, salon):
        """True si la connexion n'était pas déjà dans le salon."""
        entree = self._connexions.get(canal)
        if entree is None or salon in entree.salons:
            return False
        entree.salons.add(salon)
        return True

    def quitter(self, canal, salon):
        entree = self._connexions.get(canal)
        if entree is None or salon not in entree.salons:
            return False
        entree.salons.discard(salon)
        return True


registre = RegistrePresence()
