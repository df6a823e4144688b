"""
Runtime configuration for the prediction engine.

Values come from environment variables, optionally seeded from a local .env
file (existing environment variables always win). Everything here is read
once at import time by load_settings(); tests construct Settings directly.
"""
import logging
import os
from dataclasses import dataclass
from pathlib import Path

LOG_FORMAT = '%(asctime)s.%(msecs)03d [%(levelname)s] %(message)s'
LOG_DATEFMT = '%Y-%m-%d %H:%M:%S'

def _load_env_file(path='.env'):
    """Load environment variables from .env file if present.
    Does not override existing environment variables and does not raise on failure.
    """
    env_file = Path(path)
    if not env_file.exists():
        return
    try:
        with open(env_file) as f:
            for line in f:
                line = line.strip()
                if line and not line.startswith('#') and '=' in line:
                    key, value = line.split('=', 1)
                    os.environ.setdefault(key.strip(), value.strip())
    except OSError:
        # Non-fatal: rely on existing os.environ
        pass

def _env_float(name, default):
    raw = os.environ.get(name)
    if raw is None or raw == '':
        return default
    try:
        return float(raw)
    except ValueError:
        print(f"WARNING: {name}={raw!r} is not a number, using {default}", flush=True)
        return default

def _env_int(name, default):
    return int(_env_float(name, default))

@dataclass(frozen=True)
class Settings:
    cache_ttl: float = 300.0            # seconds a cached prediction stays valid
    cache_size: int = 200               # max cached predictions before oldest is evicted
    weather_timeout: float = 30.0       # seconds before the weather stage reports WEATHER_TIMEOUT
    monte_carlo_samples: int = 200
    max_workers: int = 8
    weather_profile: str | None = None  # JSON wind/temperature profile for the static provider
    terrain_file: str | None = None     # JSON list of elevation samples for the terrain adjunct
    log_level: str = 'INFO'
    seed: int | None = None

def load_settings() -> Settings:
    """Build Settings from HABPREDICT_* environment variables."""
    _load_env_file()
    seed = os.environ.get('HABPREDICT_SEED')
    return Settings(
        cache_ttl=_env_float('HABPREDICT_CACHE_TTL', 300.0),
        cache_size=_env_int('HABPREDICT_CACHE_SIZE', 200),
        weather_timeout=_env_float('HABPREDICT_WEATHER_TIMEOUT', 30.0),
        monte_carlo_samples=_env_int('HABPREDICT_MONTE_CARLO_SAMPLES', 200),
        max_workers=_env_int('HABPREDICT_MAX_WORKERS', min(32, os.cpu_count() or 4)),
        weather_profile=os.environ.get('HABPREDICT_WEATHER_PROFILE') or None,
        terrain_file=os.environ.get('HABPREDICT_TERRAIN_FILE') or None,
        log_level=os.environ.get('HABPREDICT_LOG_LEVEL', 'INFO').upper(),
        seed=int(seed) if seed else None,
    )

def configure_logging(level='INFO'):
    """Configure root logging with the millisecond timestamp format used across the service."""
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format=LOG_FORMAT,
        datefmt=LOG_DATEFMT,
    )
