"""
Campus Market — achats/tasks.py
Tâches Celery des achats.

Tâche planifiée par Celery Beat (CELERY_BEAT_SCHEDULE, toutes les 5 minutes) :
  - expirer_tentatives_perimees : passe à "expired" les tentatives
    "pending" dont l'échéance est dépassée

La vérification d'un code ignore déjà les tentatives périmées ;
cette tâche ne fait que ranger les lignes restées "pending".
"""
import logging

from config.celery import app

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════
# TÂCHE — Expiration des tentatives d'achat (toutes les 5 minutes)
# Planifiée via : Celery Beat + django_celery_beat
# ═══════════════════════════════════════════════════════════════

@app.task
def expirer_tentatives_perimees():
    from apps.achats.services import AchatService

    nombre = AchatService.expirer_perimees()
    logger.debug(f"expirer_tentatives_perimees : {nombre} tentative(s)")
    return nombre
