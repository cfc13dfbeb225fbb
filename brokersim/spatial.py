"""
spatial.py - Geospatial primitives on a spherical earth

Locations are (lat, lon) pairs in degrees. Geofences are either circles
(center plus angular radius in degrees) or lat/lon-aligned rectangles.
Distances are great-circle distances (haversine) on a sphere with the mean
earth radius.

Design philosophy:
- Immutable value objects: geofences are used as dictionary keys
- Exact geometry for the small set of shapes we need, no GIS dependency
- Vectorised distance matrices (numpy) for bulk field assignment
"""

import math
import random as _random
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional, Tuple

import numpy as np

EARTH_RADIUS_KM = 6371.0087714
KM_PER_DEGREE = EARTH_RADIUS_KM * math.pi / 180.0

MIN_LAT, MAX_LAT = -90.0, 90.0
MIN_LON, MAX_LON = -180.0, 180.0


def _central_angle(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle angle between two points, in radians (haversine)."""
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    dphi = phi2 - phi1
    dlambda = math.radians(lon2 - lon1)
    h = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlambda / 2) ** 2
    return 2 * math.asin(min(1.0, math.sqrt(h)))


def _normalize_lon(lon: float) -> float:
    lon = (lon + 180.0) % 360.0 - 180.0
    return lon


def distance_matrix_km(lats_a, lons_a, lats_b, lons_b) -> np.ndarray:
    """
    Pairwise great-circle distances between two point sets.

    Args:
        lats_a, lons_a: Coordinates of the first set (length n), degrees
        lats_b, lons_b: Coordinates of the second set (length m), degrees

    Returns:
        (n, m) array of distances in km
    """
    phi_a = np.radians(np.asarray(lats_a, dtype=float))[:, np.newaxis]
    lam_a = np.radians(np.asarray(lons_a, dtype=float))[:, np.newaxis]
    phi_b = np.radians(np.asarray(lats_b, dtype=float))[np.newaxis, :]
    lam_b = np.radians(np.asarray(lons_b, dtype=float))[np.newaxis, :]

    h = (np.sin((phi_b - phi_a) / 2) ** 2
         + np.cos(phi_a) * np.cos(phi_b) * np.sin((lam_b - lam_a) / 2) ** 2)
    return 2 * np.arcsin(np.minimum(1.0, np.sqrt(h))) * EARTH_RADIUS_KM


@dataclass(frozen=True)
class Location:
    """A point on the earth's surface, in degrees."""
    lat: float
    lon: float

    def __post_init__(self):
        if not (MIN_LAT <= self.lat <= MAX_LAT):
            raise ValueError(f"Latitude must be in [-90, 90], got {self.lat}")
        if not (MIN_LON <= self.lon <= MAX_LON):
            raise ValueError(f"Longitude must be in [-180, 180], got {self.lon}")

    def distance_radians_to(self, other: 'Location') -> float:
        return _central_angle(self.lat, self.lon, other.lat, other.lon)

    def distance_degrees_to(self, other: 'Location') -> float:
        return math.degrees(self.distance_radians_to(other))

    def distance_km_to(self, other: 'Location') -> float:
        return self.distance_radians_to(other) * EARTH_RADIUS_KM

    def location_in_distance(self, distance_km: float, direction_deg: float) -> 'Location':
        """
        Destination point after travelling distance_km along a great circle.

        Args:
            distance_km: Distance to travel
            direction_deg: Initial bearing, 0 = north, 90 = east

        Returns:
            The destination Location
        """
        delta = distance_km / EARTH_RADIUS_KM
        theta = math.radians(direction_deg)
        phi1 = math.radians(self.lat)
        lambda1 = math.radians(self.lon)

        sin_phi2 = (math.sin(phi1) * math.cos(delta)
                    + math.cos(phi1) * math.sin(delta) * math.cos(theta))
        phi2 = math.asin(max(-1.0, min(1.0, sin_phi2)))
        lambda2 = lambda1 + math.atan2(
            math.sin(theta) * math.sin(delta) * math.cos(phi1),
            math.cos(delta) - math.sin(phi1) * sin_phi2,
        )
        return Location(
            max(MIN_LAT, min(MAX_LAT, math.degrees(phi2))),
            _normalize_lon(math.degrees(lambda2)),
        )

    def is_in_geofence(self, geofence: 'Geofence') -> bool:
        return geofence.contains(self)

    @staticmethod
    def random(rng: Optional[_random.Random] = None) -> 'Location':
        """Uniformly random latitude and longitude."""
        rng = rng or _random.Random()
        return Location(rng.uniform(MIN_LAT, MAX_LAT), rng.uniform(MIN_LON, MAX_LON))

    @staticmethod
    def random_in_geofence(geofence: 'Geofence', rng: Optional[_random.Random] = None,
                           max_tries: int = 1000) -> Optional['Location']:
        """
        Random location inside a geofence, by rejection sampling on its bounding box.

        Returns None if no sample landed inside within max_tries.
        """
        rng = rng or _random.Random()
        min_lat, min_lon, max_lat, max_lon = geofence.bounding_box
        for _ in range(max_tries):
            lat = rng.uniform(min_lat, max_lat)
            lon = rng.uniform(min_lon, max_lon)
            if not MIN_LON <= lon <= MAX_LON:
                lon = _normalize_lon(lon)
            candidate = Location(lat, lon)
            if geofence.contains(candidate):
                return candidate
        return None

    def __str__(self):
        return f"({self.lat:.6f}, {self.lon:.6f})"


class Geofence(ABC):
    """A closed region on the sphere."""

    @abstractmethod
    def contains(self, location: Location) -> bool:
        pass

    @abstractmethod
    def intersects(self, other: 'Geofence') -> bool:
        pass

    @property
    @abstractmethod
    def center(self) -> Location:
        pass

    @property
    @abstractmethod
    def bounding_box(self) -> Tuple[float, float, float, float]:
        """
        (min_lat, min_lon, max_lat, max_lon) enclosing the shape.

        Longitudes may run past +-180 for shapes crossing the antimeridian.
        """
        pass

    @staticmethod
    def circle(center: Location, radius_deg: float) -> 'Circle':
        return Circle(center, radius_deg)

    @staticmethod
    def rectangle(south_west: Location, north_east: Location) -> 'Rectangle':
        return Rectangle(south_west.lat, south_west.lon, north_east.lat, north_east.lon)


@dataclass(frozen=True)
class Circle(Geofence):
    """All points within radius_deg (angular distance) of center."""
    center_location: Location
    radius_deg: float

    def __post_init__(self):
        if self.radius_deg < 0:
            raise ValueError(f"Circle radius must be non-negative, got {self.radius_deg}")

    @property
    def center(self) -> Location:
        return self.center_location

    def contains(self, location: Location) -> bool:
        return self.center_location.distance_degrees_to(location) <= self.radius_deg

    def intersects(self, other: Geofence) -> bool:
        if isinstance(other, Circle):
            distance = self.center_location.distance_degrees_to(other.center_location)
            return distance <= self.radius_deg + other.radius_deg
        if isinstance(other, Rectangle):
            return other.intersects(self)
        raise TypeError(f"Unsupported geofence type: {type(other).__name__}")

    @property
    def bounding_box(self) -> Tuple[float, float, float, float]:
        lat = self.center_location.lat
        lon = self.center_location.lon
        min_lat = max(MIN_LAT, lat - self.radius_deg)
        max_lat = min(MAX_LAT, lat + self.radius_deg)
        # Near a pole, or for very wide circles, every meridian is touched
        cos_lat = min(math.cos(math.radians(min_lat)), math.cos(math.radians(max_lat)))
        if min_lat <= MIN_LAT or max_lat >= MAX_LAT or cos_lat <= 0:
            return (min_lat, MIN_LON, max_lat, MAX_LON)
        half_width = self.radius_deg / cos_lat
        if half_width >= 180.0:
            return (min_lat, MIN_LON, max_lat, MAX_LON)
        return (min_lat, lon - half_width, max_lat, lon + half_width)


@dataclass(frozen=True)
class Rectangle(Geofence):
    """Latitude/longitude-aligned rectangle, bounds inclusive."""
    min_lat: float
    min_lon: float
    max_lat: float
    max_lon: float

    def __post_init__(self):
        if self.min_lat > self.max_lat or self.min_lon > self.max_lon:
            raise ValueError(
                f"Rectangle bounds are inverted: "
                f"lat [{self.min_lat}, {self.max_lat}], lon [{self.min_lon}, {self.max_lon}]")

    @property
    def center(self) -> Location:
        return Location((self.min_lat + self.max_lat) / 2, (self.min_lon + self.max_lon) / 2)

    @property
    def bounding_box(self) -> Tuple[float, float, float, float]:
        return (self.min_lat, self.min_lon, self.max_lat, self.max_lon)

    def contains(self, location: Location) -> bool:
        return (self.min_lat <= location.lat <= self.max_lat
                and self.min_lon <= location.lon <= self.max_lon)

    def intersects(self, other: Geofence) -> bool:
        if isinstance(other, Rectangle):
            return (self.min_lat <= other.max_lat and other.min_lat <= self.max_lat
                    and self.min_lon <= other.max_lon and other.min_lon <= self.max_lon)
        if isinstance(other, Circle):
            if self.contains(other.center_location):
                return True
            return self.distance_degrees_to(other.center_location) <= other.radius_deg
        raise TypeError(f"Unsupported geofence type: {type(other).__name__}")

    def distance_degrees_to(self, location: Location) -> float:
        """Smallest angular distance from location to the rectangle's boundary."""
        candidates = self._nearest_boundary_points(location)
        return min(location.distance_degrees_to(c) for c in candidates)

    def _nearest_boundary_points(self, location: Location) -> List[Location]:
        corners = [
            Location(self.min_lat, self.min_lon),
            Location(self.min_lat, self.max_lon),
            Location(self.max_lat, self.min_lon),
            Location(self.max_lat, self.max_lon),
        ]
        points = list(corners)

        # Parallels: the closest point has the smallest longitude difference
        if self.min_lon <= location.lon <= self.max_lon:
            points.append(Location(self.min_lat, location.lon))
            points.append(Location(self.max_lat, location.lon))

        # Meridians: maximise sin(phi)sin(phi') + cos(phi)cos(phi')cos(dlon)
        phi = math.radians(location.lat)
        for edge_lon in (self.min_lon, self.max_lon):
            cos_dlon = math.cos(math.radians(location.lon - edge_lon))
            if cos_dlon <= 0:
                continue
            nearest_lat = math.degrees(math.atan2(math.sin(phi), math.cos(phi) * cos_dlon))
            nearest_lat = max(self.min_lat, min(self.max_lat, nearest_lat))
            points.append(Location(nearest_lat, edge_lon))
        return points
