from typing import Dict, Any, Callable, List, Optional, Tuple
from functools import wraps

# Registre global des fonctions de normalisation, clé (provider_id, data_type)
NORMALIZERS: Dict[Tuple[str, str], Dict[str, Any]] = {}


def normalizer(
        provider_ids: str | List[str],
        data_type: str,
        mapped_controls: Optional[List[str]] = None
):
    """Décorateur pour enregistrer une fonction de normalisation pour un ou plusieurs providers"""
    if isinstance(provider_ids, str):
        provider_ids = [provider_ids]

    def decorator(func: Callable[[Any], Dict[str, Any]]):
        for provider_id in provider_ids:
            key = (provider_id, data_type)
            if key in NORMALIZERS:
                raise ValueError(f"Normalizer already registered for {provider_id}/{data_type}")

            NORMALIZERS[key] = {
                "function": func,
                "mapped_controls": list(mapped_controls or []),
                "module": func.__module__,
            }

        @wraps(func)
        def wrapper(*args, **kwargs):
            return func(*args, **kwargs)

        return wrapper

    return decorator
