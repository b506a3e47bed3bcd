# backend/gardiens/core/errors.py
# Exceptions métier : une classe par condition d'échec du pipeline de preuves, du chat et de la modération.

"""
Exceptions de l'application.

Chaque exception porte un `status_code` HTTP et un `code` machine stable, utilisés
par `core.exception_handlers` pour produire l'enveloppe `ErrorResponse`.
"""

from typing import Optional


class GardiensError(Exception):
    """Base de toutes les erreurs métier."""

    status_code: int = 500
    code: str = "INTERNAL_ERROR"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.__class__.__doc__ or self.code
        super().__init__(self.message)


# --- Géolocalisation ---

class GeolocationError(GardiensError):
    """Erreur de géolocalisation."""
    status_code = 400
    code = "GEOLOCATION_ERROR"


class UnsupportedCapability(GeolocationError):
    """La géolocalisation n'est pas supportée par cet appareil."""
    code = "UNSUPPORTED_CAPABILITY"


class PermissionDenied(GeolocationError):
    """Accès à la position refusé."""
    status_code = 403
    code = "PERMISSION_DENIED"


class PositionUnavailable(GeolocationError):
    """Impossible de récupérer la position."""
    code = "POSITION_UNAVAILABLE"


class Timeout(GeolocationError):
    """Délai de récupération de la position dépassé."""
    status_code = 408
    code = "TIMEOUT"


# --- Soumission de preuve ---

class StorageUploadFailed(GardiensError):
    """Erreur upload image."""
    status_code = 502
    code = "STORAGE_UPLOAD_FAILED"


class PersistenceFailed(GardiensError):
    """Erreur enregistrement BDD."""
    status_code = 500
    code = "PERSISTENCE_FAILED"


class InvalidImage(GardiensError):
    """Seules les images sont acceptées."""
    status_code = 400
    code = "INVALID_IMAGE"


class OutOfGeofence(GardiensError):
    """Position hors de la zone de la mission."""
    status_code = 403
    code = "OUT_OF_GEOFENCE"

    def __init__(self, distance_meters: Optional[float], radius_meters: float):
        self.distance_meters = distance_meters
        self.radius_meters = radius_meters
        if distance_meters is None:
            super().__init__("Position requise pour valider cette mission")
        else:
            super().__init__(
                f"Position à {distance_meters:.0f} m de la cible (rayon {radius_meters:.0f} m)"
            )


# --- Services IA ---

class AIServiceError(GardiensError):
    """Erreur de communication avec le modèle."""
    status_code = 500
    code = "AI_ERROR"


class InsufficientCredits(AIServiceError):
    """Crédits insuffisants pour l'IA."""
    status_code = 402
    code = "insufficient_credits"


class RateLimited(AIServiceError):
    """Trop de requêtes, réessayez dans un instant."""
    status_code = 429
    code = "rate_limit"


class CommunicationFailure(AIServiceError):
    """Erreur de communication avec la Voix de la Lumière."""
    code = "communication_failure"


class ParseFailure(AIServiceError):
    """Réponse du modèle illisible."""
    code = "parse_failure"


# --- Modération / administration ---

class UpdateFailed(GardiensError):
    """La mise à jour n'a pas été enregistrée."""
    status_code = 500
    code = "UPDATE_FAILED"


class Conflict(GardiensError):
    """Conflit d'état."""
    status_code = 409
    code = "CONFLICT"


class NotFound(GardiensError):
    """Ressource introuvable."""
    status_code = 404
    code = "NOT_FOUND"


class Forbidden(GardiensError):
    """Action réservée aux administrateurs."""
    status_code = 403
    code = "FORBIDDEN"
