from .consent_settings import ConsentSettings

__all__ = [
    "ConsentSettings",
]
