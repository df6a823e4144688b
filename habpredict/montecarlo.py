"""
Monte Carlo uncertainty estimation.

Every trial's perturbations are drawn up front, in order, from one seeded
numpy Generator; only then are the trials handed to a thread pool. Results
are collected by trial index, so the aggregate statistics are identical no
matter which worker finishes first.

Entry points:
- run_monte_carlo: fixed-altitude wind drift under perturbed wind/duration/altitude
- run_descent_monte_carlo: full parachute descent under perturbed wind/burst altitude
- landing_zone_uncertainty: 95th-percentile dispersion radius around a landing point
"""
import logging
import math
import time
from concurrent.futures import ThreadPoolExecutor, as_completed, TimeoutError as FuturesTimeout
from dataclasses import dataclass, field, replace

import numpy as np

from .classes import GeoPoint, haversine
from .descent import DescentInput, calculate_descent
from .errors import DeadlineExceeded, InvalidSampleCount
from .winddrift import (WindDriftInput, WindLevel, WindProfile, advance, calculate_wind_drift,
                        gaussian_pair)

logger = logging.getLogger(__name__)

__all__ = [
    'CONFIDENCE_LEVEL', 'WindUncertainty', 'MonteCarloResult', 'DescentMonteCarloResult',
    'LandingZoneResult', 'make_rng', 'run_trials', 'run_monte_carlo',
    'run_descent_monte_carlo', 'landing_zone_uncertainty',
]

CONFIDENCE_LEVEL = 0.95
DEFAULT_WORKERS = 4

@dataclass(frozen=True)
class WindUncertainty:
    speed_error: float = 2.0      # m/s, 1-sigma
    direction_error: float = 10.0 # degrees, 1-sigma
    altitude_error: float = 0.0   # m, uniform half-width
    time_error: float = 0.0       # s, uniform half-width

@dataclass
class MonteCarloResult:
    trajectories: list
    confidence_interval: dict
    statistics: dict

@dataclass
class DescentMonteCarloResult:
    landing_points: list
    nominal_landing: GeoPoint
    mean_landing: GeoPoint
    std_distance: float          # km, spread of landing points around their mean
    landing_radius: float        # m, 95th percentile around the nominal landing point
    confidence_interval: dict
    mean_descent_duration: float

@dataclass
class LandingZoneResult:
    landing_points: list
    nominal_landing: GeoPoint
    landing_radius: float        # m
    wind_error: float            # m/s RMS
    distances: list = field(default_factory=list)

def make_rng(rng=None, seed=None):
    """Return `rng` if given, otherwise a fresh numpy Generator seeded with `seed`."""
    if rng is not None:
        return rng
    return np.random.default_rng(seed)

def _check_samples(num_samples):
    if num_samples is None or num_samples <= 0:
        raise InvalidSampleCount(num_samples)

def run_trials(trial, params, executor=None, max_workers=None, deadline=None):
    """
    Run `trial(p)` for every p in `params` on a thread pool.

    Results come back in the order of `params`. If `deadline` (a
    time.monotonic() value) passes first, outstanding trials are cancelled
    and DeadlineExceeded is raised; completed ones are discarded.
    """
    if deadline is not None and time.monotonic() >= deadline:
        raise DeadlineExceeded(f"Monte Carlo batch deadline passed before {len(params)} trials started")
    own_executor = executor is None
    if own_executor:
        executor = ThreadPoolExecutor(max_workers=max_workers or DEFAULT_WORKERS)
    futures = {executor.submit(trial, p): i for i, p in enumerate(params)}
    results = [None] * len(params)
    timeout = None if deadline is None else max(0.0, deadline - time.monotonic())
    try:
        for future in as_completed(futures, timeout=timeout):
            results[futures[future]] = future.result()
    except FuturesTimeout:
        for future in futures:
            future.cancel()
        done = sum(1 for f in futures if f.done())
        logger.warning(f"Monte Carlo deadline reached: {done}/{len(futures)} trials finished, cancelling rest")
        raise DeadlineExceeded(f"Monte Carlo batch exceeded deadline after {done}/{len(futures)} trials")
    except Exception:
        for future in futures:
            future.cancel()
        raise
    finally:
        if own_executor:
            executor.shutdown(wait=False, cancel_futures=True)
    return results

def _envelope(values, n):
    ordered = np.sort(np.asarray(values, dtype=float))
    idx = int(math.floor(0.025 * n))
    return float(ordered[idx]), float(ordered[n - 1 - idx])

def _uniform(rng, half_width):
    return (rng.random() - 0.5) * 2 * half_width

def run_monte_carlo(inp: WindDriftInput, uncertainty: WindUncertainty, num_samples=1000,
                    rng=None, seed=None, executor=None, max_workers=None, deadline=None):
    """
    Wind-drift Monte Carlo.

    Wind speed and direction get Gaussian errors (Box–Muller), duration and
    altitude get uniform errors. Statistics use population standard
    deviation; the 95% envelope is read off the sorted trial outputs.
    """
    _check_samples(num_samples)
    inp.validate()
    rng = make_rng(rng, seed)

    perturbed = []
    for _ in range(num_samples):
        z0, z1 = gaussian_pair(rng)
        speed = max(0.0, inp.wind_speed + z0 * uncertainty.speed_error)
        direction = (inp.wind_direction + z1 * uncertainty.direction_error) % 360
        speed_alt = direction_alt = None
        if inp.wind_speed_at_altitude is not None:
            za, zb = gaussian_pair(rng)
            speed_alt = max(0.0, inp.wind_speed_at_altitude + za * uncertainty.speed_error)
            base_dir = inp.wind_direction_at_altitude if inp.wind_direction_at_altitude is not None else inp.wind_direction
            direction_alt = (base_dir + zb * uncertainty.direction_error) % 360
        perturbed.append(replace(
            inp,
            wind_speed=speed,
            wind_direction=direction,
            wind_speed_at_altitude=speed_alt,
            wind_direction_at_altitude=direction_alt,
            duration=max(1.0, inp.duration + _uniform(rng, uncertainty.time_error)),
            altitude=max(0.0, inp.altitude + _uniform(rng, uncertainty.altitude_error)),
        ))

    trajectories = run_trials(calculate_wind_drift, perturbed, executor, max_workers, deadline)

    distances = np.array([t.total_distance for t in trajectories])
    latitudes = np.array([t.end_latitude for t in trajectories])
    longitudes = np.array([t.end_longitude for t in trajectories])

    min_distance, max_distance = _envelope(distances, num_samples)
    min_lat, max_lat = _envelope(latitudes, num_samples)
    min_lon, max_lon = _envelope(longitudes, num_samples)

    return MonteCarloResult(
        trajectories=trajectories,
        confidence_interval={
            'min_latitude': min_lat, 'max_latitude': max_lat,
            'min_longitude': min_lon, 'max_longitude': max_lon,
            'min_distance': min_distance, 'max_distance': max_distance,
        },
        statistics={
            'mean_distance': float(distances.mean()),
            'std_dev_distance': float(distances.std()),
            'mean_end_latitude': float(latitudes.mean()),
            'mean_end_longitude': float(longitudes.mean()),
            'confidence_level': CONFIDENCE_LEVEL,
        },
    )

def _shift_profile(profile, speed_offset, direction_offset):
    return WindProfile([
        WindLevel(lv.altitude, max(0.0, lv.wind_speed + speed_offset),
                  (lv.wind_direction + direction_offset) % 360, lv.timestamp)
        for lv in profile.levels
    ], presorted=True)

def run_descent_monte_carlo(inp: DescentInput, uncertainty: WindUncertainty, num_samples=100,
                            rng=None, seed=None, executor=None, max_workers=None, deadline=None):
    """
    Full-descent Monte Carlo.

    Each trial shifts the whole wind field by one Gaussian speed/direction
    error (systematic forecast error) and jitters the burst altitude
    uniformly by `altitude_error`.
    """
    _check_samples(num_samples)
    inp.validate()
    rng = make_rng(rng, seed)

    perturbed = []
    for _ in range(num_samples):
        z0, z1 = gaussian_pair(rng)
        speed_offset = z0 * uncertainty.speed_error
        direction_offset = z1 * uncertainty.direction_error
        burst_altitude = max(inp.landing_altitude + 1.0,
                             inp.burst_altitude + _uniform(rng, uncertainty.altitude_error))
        profile = None
        if inp.wind_profile is not None:
            profile = _shift_profile(inp.wind_profile, speed_offset, direction_offset)
        perturbed.append(replace(
            inp,
            wind_speed=max(0.0, inp.wind_speed + speed_offset),
            wind_direction=(inp.wind_direction + direction_offset) % 360,
            burst_altitude=burst_altitude,
            wind_profile=profile,
        ))

    nominal = calculate_descent(inp).landing_location
    results = run_trials(calculate_descent, perturbed, executor, max_workers, deadline)

    latitudes = np.array([r.landing_latitude for r in results])
    longitudes = np.array([r.landing_longitude for r in results])
    mean_landing = GeoPoint(float(latitudes.mean()), float(longitudes.mean()), nominal.altitude)
    spread = np.array([haversine(mean_landing[0], mean_landing[1], r.landing_latitude, r.landing_longitude)
                       for r in results])
    radii = np.sort([haversine(nominal[0], nominal[1], r.landing_latitude, r.landing_longitude) * 1000
                     for r in results])
    min_lat, max_lat = _envelope(latitudes, num_samples)
    min_lon, max_lon = _envelope(longitudes, num_samples)

    return DescentMonteCarloResult(
        landing_points=[r.landing_location for r in results],
        nominal_landing=nominal,
        mean_landing=mean_landing,
        std_distance=float(np.sqrt(np.mean(spread ** 2))),
        landing_radius=float(radii[min(num_samples - 1, int(math.floor(CONFIDENCE_LEVEL * num_samples)))]),
        confidence_interval={
            'min_latitude': min_lat, 'max_latitude': max_lat,
            'min_longitude': min_lon, 'max_longitude': max_lon,
        },
        mean_descent_duration=float(np.mean([r.descent_duration for r in results])),
    )

def landing_zone_uncertainty(base_latitude, base_longitude, wind_speed, wind_direction,
                             wind_error_rms, num_samples, descent_duration, rng=None, seed=None,
                             deadline=None):
    """
    Dispersion radius (m) containing 95% of perturbed landing points.

    Each sample adds an isotropic Gaussian error vector of `wind_error_rms`
    m/s to the mean wind and drifts from the base point for the whole
    descent. Distances are measured from the unperturbed landing point, so a
    zero error gives a zero radius. Passing `deadline` (a time.monotonic()
    value) raises DeadlineExceeded once it has gone by.
    """
    _check_samples(num_samples)
    rng = make_rng(rng, seed)
    base = GeoPoint(base_latitude, base_longitude)
    nominal = advance(base, wind_speed, wind_direction, descent_duration)

    theta = math.radians(wind_direction)
    east, north = wind_speed * math.sin(theta), wind_speed * math.cos(theta)

    points = []
    for i in range(num_samples):
        if deadline is not None and time.monotonic() >= deadline:
            logger.warning(f"Monte Carlo deadline reached: {i}/{num_samples} landing samples finished")
            raise DeadlineExceeded(f"Landing zone sampling exceeded deadline after {i}/{num_samples} samples")
        if wind_error_rms == 0:
            speed, direction = wind_speed, wind_direction
        else:
            z0, z1 = gaussian_pair(rng)
            u = east + z0 * wind_error_rms
            v = north + z1 * wind_error_rms
            speed = math.hypot(u, v)
            direction = math.degrees(math.atan2(u, v)) % 360
        points.append(advance(base, speed, direction, descent_duration))

    distances = sorted(haversine(nominal[0], nominal[1], p[0], p[1]) * 1000 for p in points)
    radius = distances[min(num_samples - 1, int(math.floor(CONFIDENCE_LEVEL * num_samples)))]
    return LandingZoneResult(
        landing_points=points,
        nominal_landing=nominal,
        landing_radius=radius,
        wind_error=wind_error_rms,
        distances=distances,
    )
