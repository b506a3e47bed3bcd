# backend/gardiens/services/geo.py
# Calcul de distance (haversine, mètres) et contrôle de proximité par rapport à une mission.

from __future__ import annotations

from math import asin, cos, radians, sin, sqrt

from gardiens.models.mission import MissionConfig
from gardiens.models.progress import GeofenceCheck

# Rayon terrestre moyen en mètres
EARTH_RADIUS_M = 6_371_000


def distance_meters(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Distance haversine entre deux points.

    Args:
        lat1: Latitude du premier point.
        lng1: Longitude du premier point.
        lat2: Latitude du second point.
        lng2: Longitude du second point.

    Returns:
        float: Distance en mètres (≥ 0).
    """
    lat1, lng1, lat2, lng2 = map(radians, [lat1, lng1, lat2, lng2])

    dlat = lat2 - lat1
    dlng = lng2 - lng1
    a = sin(dlat / 2) ** 2 + cos(lat1) * cos(lat2) * sin(dlng / 2) ** 2
    # Arrondis flottants : a peut dépasser 1 de quelques ulp aux antipodes
    c = 2 * asin(sqrt(min(1.0, a)))

    return c * EARTH_RADIUS_M


def check_geofence(
    mission: MissionConfig, lat: float, lng: float, default_radius_m: float
) -> GeofenceCheck | None:
    """Contrôle une position par rapport à la cible d'une mission.

    Args:
        mission: Configuration de la mission.
        lat: Latitude de la position.
        lng: Longitude de la position.
        default_radius_m: Rayon utilisé si la mission n'en définit pas.

    Returns:
        GeofenceCheck | None: None si la mission n'a pas de cible géographique.
    """
    if not mission.has_target:
        return None

    radius = mission.radius_meters or default_radius_m
    distance = distance_meters(lat, lng, mission.target_lat, mission.target_lng)
    return GeofenceCheck(
        mission_id=mission.mission_id,
        distance_meters=round(distance, 1),
        radius_meters=radius,
        within_radius=distance <= radius,
    )
