"""
Weather data model and providers.

The orchestrator only depends on the WeatherProvider protocol. Two concrete
providers live here: StaticWeatherProvider serves a fixed vertical profile
(from code or a JSON file) replicated across the forecast window, and
standard_atmosphere_profile() builds the calm profile used when no forecast
is available at all.
"""
import json
import logging
from dataclasses import dataclass, asdict
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Protocol

from . import atmosphere
from .winddrift import WindLevel, WindProfile

logger = logging.getLogger(__name__)

__all__ = [
    'RESOLUTION_HOURS', 'WeatherData', 'WeatherProvider', 'StaticWeatherProvider',
    'parse_timestamp', 'convert_weather_data', 'standard_atmosphere_profile',
    'wind_profile_from_weather', 'load_profile',
]

# Forecast step per requested resolution
RESOLUTION_HOURS = {'high': 1, 'medium': 3, 'low': 6}

def parse_timestamp(value):
    """ISO-8601 string (trailing Z allowed) or datetime -> aware UTC datetime."""
    if isinstance(value, datetime):
        dt = value
    else:
        dt = datetime.fromisoformat(str(value).replace('Z', '+00:00'))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)

@dataclass(frozen=True)
class WeatherData:
    timestamp: datetime
    altitude: float        # m
    wind_speed: float      # m/s
    wind_direction: float  # degrees
    temperature: float     # °C
    pressure: float        # hPa
    humidity: float        # %
    uncertainty: float     # 0-1

    def to_dict(self):
        d = asdict(self)
        d['timestamp'] = self.timestamp.isoformat()
        return d

class WeatherProvider(Protocol):
    def select_weather_data(self, location, launch_time, window_minutes, resolution) -> list:
        ...

def convert_weather_data(raw, default_time=None):
    """
    Normalise provider records into WeatherData.

    Missing fields fall back to standard sea-level values: 15 °C,
    1013.25 hPa, 50 % humidity, 0.1 uncertainty.
    """
    if not raw:
        return []
    default_time = default_time or datetime.now(timezone.utc)
    converted = []
    for item in raw:
        if isinstance(item, WeatherData):
            converted.append(item)
            continue
        get = item.get
        converted.append(WeatherData(
            timestamp=parse_timestamp(get('timestamp')) if get('timestamp') else default_time,
            altitude=float(get('altitude') or 0.0),
            wind_speed=float(get('wind_speed') or 0.0),
            wind_direction=float(get('wind_direction') or 0.0),
            temperature=float(get('temperature') if get('temperature') is not None else 15.0),
            pressure=float(get('pressure') or 1013.25),
            humidity=float(get('humidity') if get('humidity') is not None else 50.0),
            uncertainty=float(get('uncertainty') if get('uncertainty') is not None else 0.1),
        ))
    return converted

def standard_atmosphere_profile(timestamp, max_altitude, step=1000.0, wind_speed=0.0,
                                wind_direction=0.0, uncertainty=0.5):
    """Calm (or constant-wind) profile with standard-atmosphere temperature and pressure."""
    levels = []
    altitude = 0.0
    while altitude <= max_altitude + step:
        levels.append(WeatherData(
            timestamp=timestamp,
            altitude=altitude,
            wind_speed=wind_speed,
            wind_direction=wind_direction,
            temperature=atmosphere.temperature(altitude) - 273.15,
            pressure=atmosphere.standard_pressure_hpa(altitude),
            humidity=50.0,
            uncertainty=uncertainty,
        ))
        altitude += step
    return levels

def wind_profile_from_weather(weather, around_time=None):
    """
    Collapse weather samples into one WindProfile.

    For each altitude the sample closest in time to `around_time` wins,
    which gives a single vertical slice through a multi-time forecast.
    """
    if not weather:
        return None
    best = {}
    for sample in weather:
        key = round(sample.altitude, 1)
        if around_time is None:
            best.setdefault(key, sample)
            continue
        offset = abs((sample.timestamp - around_time).total_seconds())
        if key not in best or offset < abs((best[key].timestamp - around_time).total_seconds()):
            best[key] = sample
    return WindProfile([WindLevel(s.altitude, s.wind_speed, s.wind_direction, s.timestamp)
                        for s in best.values()])

def load_profile(path):
    """Read a JSON profile: either a list of level dicts or {"levels": [...]}."""
    with open(Path(path)) as f:
        data = json.load(f)
    levels = data['levels'] if isinstance(data, dict) else data
    if not isinstance(levels, list):
        raise ValueError(f"Weather profile {path} must contain a list of levels")
    return levels

class StaticWeatherProvider:
    """
    Serves one vertical profile at every forecast time in the requested window.

    Useful offline and in tests; `uncertainty` on each level is passed
    through so quality assessment still reflects the profile's confidence.
    """
    def __init__(self, levels):
        self.levels = [lv.to_dict() if isinstance(lv, WeatherData) else dict(lv) for lv in levels]

    @classmethod
    def from_file(cls, path):
        levels = load_profile(path)
        logger.info(f"Loaded {len(levels)} weather levels from {path}")
        return cls(levels)

    def select_weather_data(self, location, launch_time, window_minutes=60, resolution='medium'):
        launch = parse_timestamp(launch_time)
        step = timedelta(hours=RESOLUTION_HOURS.get(resolution, 3))
        start = launch - timedelta(minutes=window_minutes)
        end = launch + timedelta(minutes=window_minutes)
        times = []
        t = start
        while t <= end:
            times.append(t)
            t += step
        if launch not in times:
            times.append(launch)
        records = []
        for t in sorted(times):
            for level in self.levels:
                record = dict(level)
                record['timestamp'] = t
                records.append(record)
        return convert_weather_data(records, default_time=launch)
