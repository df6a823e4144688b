"""
Horizontal wind drift.

advance() is the one place positions are propagated: every simulator calls
it once per time step. The rest of the module builds on it: altitude
interpolation of wind samples, fixed-altitude drift integration and
multi-layer drift.
"""
import bisect
import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

from .classes import EARTH_RADIUS_KM, GeoPoint, haversine
from .errors import InputContractError, NoWindData

__all__ = [
    'DRIFT_TIME_STEP', 'WindLevel', 'WindProfile', 'WindDriftInput', 'WindDriftPoint',
    'WindDriftResult', 'advance', 'bearing', 'interpolate_wind', 'gaussian_pair',
    'perturb_wind', 'calculate_wind_drift', 'calculate_multi_layer_drift',
    'check_wind', 'check_coordinates', 'wind_at',
]

DRIFT_TIME_STEP = 60  # seconds per step for fixed-altitude drift

def advance(position, wind_speed, wind_direction, duration):
    """
    Move `position` downwind for `duration` seconds.

    Converts wind speed to an angular great-circle distance (R = 6371 km) and
    applies the forward-azimuth formula. Longitude is normalised to
    (-180, 180]. Zero speed or zero duration returns `position` itself.

    Args:
        position: GeoPoint (altitude is carried through unchanged)
        wind_speed: m/s
        wind_direction: degrees, direction the air moves towards
        duration: seconds
    """
    if wind_speed == 0 or duration == 0:
        return position
    angular = (wind_speed / 1000 * duration) / EARTH_RADIUS_KM
    theta = math.radians(wind_direction)
    lat1 = math.radians(position[0])
    lon1 = math.radians(position[1])

    lat2 = math.asin(math.sin(lat1) * math.cos(angular) +
                     math.cos(lat1) * math.sin(angular) * math.cos(theta))
    lon2 = lon1 + math.atan2(math.sin(theta) * math.sin(angular) * math.cos(lat1),
                             math.cos(angular) - math.sin(lat1) * math.sin(lat2))

    lon = math.degrees(lon2)
    lon = (lon + 180) % 360 - 180
    if lon == -180:
        lon = 180.0
    return GeoPoint(math.degrees(lat2), lon, position[2])

def bearing(a, b):
    """Initial bearing in degrees [0, 360) from point a to point b."""
    lat1, lat2 = math.radians(a[0]), math.radians(b[0])
    dlon = math.radians(b[1] - a[1])
    y = math.sin(dlon) * math.cos(lat2)
    x = math.cos(lat1) * math.sin(lat2) - math.sin(lat1) * math.cos(lat2) * math.cos(dlon)
    return (math.degrees(math.atan2(y, x)) + 360) % 360

@dataclass(frozen=True)
class WindLevel:
    altitude: float
    wind_speed: float
    wind_direction: float
    timestamp: datetime | None = None

def _blend(lower, upper, target_altitude):
    ratio = (target_altitude - lower.altitude) / (upper.altitude - lower.altitude)
    speed = lower.wind_speed + ratio * (upper.wind_speed - lower.wind_speed)
    # Shortest angular path across the 0/360 wrap
    diff = upper.wind_direction - lower.wind_direction
    if diff > 180:
        diff -= 360
    if diff < -180:
        diff += 360
    direction = (lower.wind_direction + ratio * diff + 360) % 360
    return speed, direction

def interpolate_wind(target_altitude, levels):
    """
    Wind (speed, direction) at `target_altitude` from altitude samples.

    `levels` may be any sequence of objects with altitude, wind_speed and
    wind_direction attributes. Outside the sampled range the nearest sample
    is returned unchanged.
    """
    if not levels:
        raise NoWindData()
    if len(levels) == 1:
        return levels[0].wind_speed, levels[0].wind_direction
    ordered = sorted(levels, key=lambda lv: lv.altitude)
    return WindProfile(ordered, presorted=True).at(target_altitude)

class WindProfile:
    """
    Pre-sorted wind samples for per-step lookups.

    The simulators query wind every second of flight, so the profile sorts
    once and bisects on each call.
    """
    def __init__(self, levels, presorted=False):
        if not levels:
            raise NoWindData()
        self.levels = list(levels) if presorted else sorted(levels, key=lambda lv: lv.altitude)
        self._altitudes = [lv.altitude for lv in self.levels]

    @classmethod
    def calm(cls):
        return cls([WindLevel(0.0, 0.0, 0.0)])

    def __len__(self):
        return len(self.levels)

    def at(self, altitude):
        levels = self.levels
        idx = bisect.bisect_right(self._altitudes, altitude)
        if idx == 0:
            return levels[0].wind_speed, levels[0].wind_direction
        if idx == len(levels):
            return levels[-1].wind_speed, levels[-1].wind_direction
        lower, upper = levels[idx - 1], levels[idx]
        return _blend(lower, upper, altitude)

    def mean(self):
        """Plain average of speed and direction, as a single-layer fallback."""
        n = len(self.levels)
        return (sum(lv.wind_speed for lv in self.levels) / n,
                sum(lv.wind_direction for lv in self.levels) / n)

def wind_at(profile, wind_speed, wind_direction, altitude):
    """Wind from `profile` when one is supplied, otherwise the constant fallback."""
    if profile is None:
        return wind_speed, wind_direction
    return profile.at(altitude)

def gaussian_pair(rng):
    """Two independent standard normals via the Box–Muller transform."""
    u1 = 1.0 - rng.random()  # (0, 1], keeps log() finite
    u2 = rng.random()
    r = math.sqrt(-2 * math.log(u1))
    return r * math.cos(2 * math.pi * u2), r * math.sin(2 * math.pi * u2)

def perturb_wind(wind_speed, wind_direction, speed_error, direction_error, rng):
    """Gaussian-perturbed wind; speed floored at 0, direction wrapped into [0, 360)."""
    z0, z1 = gaussian_pair(rng)
    speed = max(0.0, wind_speed + z0 * speed_error)
    direction = (wind_direction + z1 * direction_error) % 360
    return speed, direction

def check_coordinates(latitude, longitude, prefix='Start'):
    if not -90 <= latitude <= 90:
        raise InputContractError('latitude', 'INVALID_LATITUDE',
                                 f"{prefix} latitude must be between -90 and 90 degrees")
    if not -180 <= longitude <= 180:
        raise InputContractError('longitude', 'INVALID_LONGITUDE',
                                 f"{prefix} longitude must be between -180 and 180 degrees")

def check_wind(wind_speed, wind_direction):
    if wind_speed < 0:
        raise InputContractError('wind_speed', 'INVALID_WIND_SPEED', "Wind speed cannot be negative")
    if not 0 <= wind_direction <= 360:
        raise InputContractError('wind_direction', 'INVALID_WIND_DIRECTION',
                                 "Wind direction must be between 0 and 360 degrees")

@dataclass
class WindDriftInput:
    start_latitude: float
    start_longitude: float
    wind_speed: float
    wind_direction: float
    duration: float              # seconds
    altitude: float              # m
    wind_speed_at_altitude: float | None = None
    wind_direction_at_altitude: float | None = None
    start_time: datetime | None = None

    def validate(self):
        check_coordinates(self.start_latitude, self.start_longitude)
        check_wind(self.wind_speed, self.wind_direction)
        if self.duration <= 0:
            raise InputContractError('duration', 'INVALID_DURATION', "Duration must be positive")
        if self.altitude < 0:
            raise InputContractError('altitude', 'INVALID_ALTITUDE', "Altitude cannot be negative")

@dataclass(frozen=True)
class WindDriftPoint:
    latitude: float
    longitude: float
    altitude: float
    timestamp: datetime
    wind_speed: float
    wind_direction: float
    distance: float              # km covered in this step

@dataclass
class WindDriftResult:
    end_latitude: float
    end_longitude: float
    total_distance: float        # km
    average_speed: float         # m/s
    trajectory: list = field(default_factory=list)

    @property
    def end(self):
        return GeoPoint(self.end_latitude, self.end_longitude)

def calculate_wind_drift(inp: WindDriftInput) -> WindDriftResult:
    """Drift at a fixed altitude in 60 s steps, summing great-circle step distances."""
    inp.validate()
    start_time = inp.start_time or datetime.now(timezone.utc)
    speed = inp.wind_speed_at_altitude if inp.wind_speed_at_altitude is not None else inp.wind_speed
    direction = inp.wind_direction_at_altitude if inp.wind_direction_at_altitude is not None else inp.wind_direction

    position = GeoPoint(inp.start_latitude, inp.start_longitude, inp.altitude)
    elapsed = 0.0
    total = 0.0
    trajectory = []
    while elapsed < inp.duration:
        step = min(DRIFT_TIME_STEP, inp.duration - elapsed)
        nxt = advance(position, speed, direction, step)
        step_distance = haversine(position[0], position[1], nxt[0], nxt[1])
        total += step_distance
        trajectory.append(WindDriftPoint(
            latitude=nxt[0], longitude=nxt[1], altitude=inp.altitude,
            timestamp=start_time + timedelta(seconds=elapsed),
            wind_speed=speed, wind_direction=direction, distance=step_distance,
        ))
        position = nxt
        elapsed += step

    return WindDriftResult(
        end_latitude=position[0],
        end_longitude=position[1],
        total_distance=total,
        average_speed=total * 1000 / inp.duration,
        trajectory=trajectory,
    )

def calculate_multi_layer_drift(start_latitude, start_longitude, layers, start_time=None):
    """
    Chain fixed-altitude drift through successive wind layers.

    `layers` is a sequence of dicts with altitude, wind_speed, wind_direction
    and duration (seconds); each layer starts where the previous one ended.
    """
    latitude, longitude = start_latitude, start_longitude
    clock = start_time or datetime.now(timezone.utc)
    total_distance = 0.0
    total_duration = 0.0
    trajectory = []
    for layer in layers:
        result = calculate_wind_drift(WindDriftInput(
            start_latitude=latitude,
            start_longitude=longitude,
            wind_speed=layer['wind_speed'],
            wind_direction=layer['wind_direction'],
            duration=layer['duration'],
            altitude=layer['altitude'],
            start_time=clock,
        ))
        latitude, longitude = result.end_latitude, result.end_longitude
        total_distance += result.total_distance
        total_duration += layer['duration']
        clock += timedelta(seconds=layer['duration'])
        trajectory.extend(result.trajectory)

    return WindDriftResult(
        end_latitude=latitude,
        end_longitude=longitude,
        total_distance=total_distance,
        average_speed=(total_distance * 1000 / total_duration) if total_duration > 0 else 0.0,
        trajectory=trajectory,
    )
