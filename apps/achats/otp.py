"""
Campus Market — achats/otp.py
Code à usage unique remis par l'acheteur au vendeur.

  code     : 6 chiffres, 100000 à 999999, tiré avec `secrets`
  sel      : 12 octets aléatoires en hexadécimal
  empreinte: SHA-256 hex de "<code>:<sel>"

Seule l'empreinte est stockée. Le code en clair ne quitte le serveur
que par le canal privé de l'acheteur et n'est jamais journalisé.
"""
import hashlib
import hmac
import re
import secrets

CODE_OTP = re.compile(r'[0-9]{6}')


def generer_code():
    return str(100000 + secrets.randbelow(900000))


def generer_sel():
    return secrets.token_hex(12)


def hacher_code(code, sel):
    return hashlib.sha256(f"{code}:{sel}".encode()).hexdigest()


def code_valide(code):
    """Format seulement : exactement six chiffres ASCII."""
    return isinstance(code, str) and CODE_OTP.fullmatch(code) is not None


def comparer_code(code, sel, empreinte):
    """Comparaison à temps constant avec l'empreinte stockée."""
    return hmac.compare_digest(hacher_code(code, sel), empreinte)
