"""
Core value types shared by the simulators.

GeoPoint (immutable position), TrajectoryPoint (one emitted simulation
sample) and Trajectory (ordered container of samples with distance and
duration helpers).
"""
import math
from dataclasses import dataclass, asdict, replace
from datetime import datetime

__all__ = ['EARTH_RADIUS_KM', 'PHASE_TAGS', 'haversine', 'GeoPoint', 'TrajectoryPoint', 'Trajectory']

EARTH_RADIUS_KM = 6371.0
PHASE_TAGS = ('ascent', 'burst', 'descent', 'landing')

def haversine(lat1, lon1, lat2, lon2):
    """
    Great circle distance in km between two lat/lon pairs.

    Formula: a = sin²(Δlat/2) + cos(lat1) × cos(lat2) × sin²(Δlon/2)
             c = 2 × atan2(√a, √(1-a))
             distance = R × c
    """
    lat1, lon1, lat2, lon2 = map(math.radians, [lat1, lon1, lat2, lon2])
    dlat = lat2 - lat1
    dlon = lon2 - lon1
    a = math.sin(dlat/2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(dlon/2) ** 2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_KM * c

class GeoPoint(tuple):
    """
    Geographic position as immutable tuple (lat, lon, alt).

    Altitude is metres above sea level. Being a tuple it hashes and compares
    by value, so two points built from the same floats are equal.
    """
    __slots__ = ()

    def __new__(cls, latitude, longitude, altitude=0.0):
        return tuple.__new__(cls, (float(latitude), float(longitude), float(altitude)))

    def __getnewargs__(self):
        # copy and pickle rebuild through __new__ with these
        return tuple(self)

    @property
    def latitude(self):
        return self[0]

    @property
    def longitude(self):
        return self[1]

    @property
    def altitude(self):
        return self[2]

    def with_altitude(self, altitude):
        return GeoPoint(self[0], self[1], altitude)

    def distance(self, other):
        """Great circle distance to another point in km (altitude ignored)."""
        return haversine(self[0], self[1], other[0], other[1])

    def to_dict(self):
        return {'latitude': self[0], 'longitude': self[1], 'altitude': self[2]}

    def __repr__(self):
        return f"GeoPoint({self[0]:.6f}, {self[1]:.6f}, {self[2]:.1f})"

@dataclass(frozen=True)
class TrajectoryPoint:
    latitude: float
    longitude: float
    altitude: float
    timestamp: datetime
    velocity: float             # vertical speed, m/s (positive magnitude)
    wind_speed: float
    wind_direction: float
    phase: str
    temperature: float | None = None
    pressure: float | None = None

    @property
    def location(self):
        return GeoPoint(self.latitude, self.longitude, self.altitude)

    def with_weather(self, wind_speed, wind_direction, temperature, pressure):
        return replace(self, wind_speed=wind_speed, wind_direction=wind_direction,
                       temperature=temperature, pressure=pressure)

    def to_dict(self):
        d = asdict(self)
        d['timestamp'] = self.timestamp.isoformat()
        return d

class Trajectory(list):
    """Ordered list of TrajectoryPoint."""

    def duration(self):
        """Returns duration in hours."""
        if len(self) < 2:
            return 0.0
        return (self[-1].timestamp - self[0].timestamp).total_seconds() / 3600

    def length(self):
        """Distance travelled by trajectory in km."""
        return sum(i.location.distance(j.location) for i, j in zip(self[:-1], self[1:]))

    def max_altitude(self):
        return max((p.altitude for p in self), default=0.0)

    def to_list(self):
        return [p.to_dict() for p in self]
