# backend/gardiens/core/utils.py
# Fonctions temporelles basiques (aware UTC, millisecondes epoch pour les clés de stockage).

import datetime as dt


def utcnow():
    """Date/heure UTC (timezone-aware).

    Description:
        Retourne `datetime.now(timezone.utc)` avec timezone UTC attachée. Utilisé
        pour tous les horodatages persistés (soumissions, revues, clés).

    Returns:
        datetime.datetime: Timestamp UTC (aware).
    """
    return dt.datetime.now(dt.timezone.utc)


def epoch_ms(moment: dt.datetime | None = None) -> int:
    """Millisecondes depuis l'epoch pour `moment` (ou maintenant)."""
    moment = moment or utcnow()
    return int(moment.timestamp() * 1000)
