from datetime import datetime, timezone


def utcnow() -> datetime:
    """Horodatage UTC naïf, cohérent avec les colonnes DateTime sans fuseau"""
    return datetime.now(timezone.utc).replace(tzinfo=None)
