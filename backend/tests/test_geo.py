"""Tests du calcul de distance et du contrôle de proximité."""

import math

import pytest

from gardiens.models.mission import MissionConfig
from gardiens.services.geo import EARTH_RADIUS_M, check_geofence, distance_meters

CHATELET = (48.8566, 2.3522)
TOUR_EIFFEL = (48.8584, 2.2945)


class TestDistanceMeters:
    def test_identical_points(self):
        assert distance_meters(*CHATELET, *CHATELET) == 0

    def test_symmetry(self):
        assert distance_meters(*CHATELET, *TOUR_EIFFEL) == pytest.approx(
            distance_meters(*TOUR_EIFFEL, *CHATELET)
        )

    def test_known_paris_landmarks(self):
        # Hôtel de Ville → Tour Eiffel : ~4,2 km à vol d'oiseau
        assert distance_meters(*CHATELET, *TOUR_EIFFEL) == pytest.approx(4227, rel=0.01)

    def test_antipodal_points(self):
        assert distance_meters(0.0, 0.0, 0.0, 180.0) == pytest.approx(math.pi * EARTH_RADIUS_M)

    def test_monotonic_along_meridian(self):
        distances = [distance_meters(48.0, 2.0, 48.0 + step * 0.5, 2.0) for step in range(1, 10)]
        assert distances == sorted(distances)
        assert len(set(distances)) == len(distances)


class TestCheckGeofence:
    def _mission(self, **kw):
        base = {"mission_id": "tour-eiffel", "day": 2, "title": "Tour Eiffel"}
        base.update(kw)
        return MissionConfig(**base)

    def test_no_target(self):
        assert check_geofence(self._mission(), *TOUR_EIFFEL, default_radius_m=100) is None

    def test_within_radius(self):
        mission = self._mission(target_lat=TOUR_EIFFEL[0], target_lng=TOUR_EIFFEL[1], radius_meters=200)
        check = check_geofence(mission, 48.8590, 2.2950, default_radius_m=100)
        assert check.within_radius is True
        assert check.radius_meters == 200
        assert check.distance_meters < 200

    def test_outside_radius(self):
        mission = self._mission(target_lat=TOUR_EIFFEL[0], target_lng=TOUR_EIFFEL[1], radius_meters=200)
        check = check_geofence(mission, *CHATELET, default_radius_m=100)
        assert check.within_radius is False
        assert check.distance_meters > 4000

    def test_default_radius(self):
        mission = self._mission(target_lat=TOUR_EIFFEL[0], target_lng=TOUR_EIFFEL[1])
        check = check_geofence(mission, *TOUR_EIFFEL, default_radius_m=75)
        assert check.radius_meters == 75
        assert check.within_radius is True
