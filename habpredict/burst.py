"""
Burst-site prediction.

Runs the ascent physics while tracking an early-burst risk heuristic. When
the running risk passes 0.7 after the balloon has climbed at least 100 m the
climb is cut short and that point is reported as the burst site.
"""
import logging
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone

from . import atmosphere
from .ascent import (DEFAULT_MAX_FLIGHT_TIME, SAMPLE_EVERY, TIME_STEP, check_balloon,
                     flight_confidence)
from .classes import GeoPoint, Trajectory, TrajectoryPoint
from .errors import InputContractError
from .physics import DEFAULT_ASCENT_DRAG_COEFFICIENT, ascent_net_force, ascent_velocity
from .winddrift import advance, check_coordinates, check_wind, wind_at

logger = logging.getLogger(__name__)

__all__ = [
    'EARLY_BURST_THRESHOLD', 'EARLY_BURST_MIN_CLIMB', 'BurstSiteInput', 'BurstSiteResult',
    'BurstUncertainty', 'early_burst_risk', 'predict_burst_site',
    'predict_burst_site_with_uncertainty', 'estimate_burst_time',
]

EARLY_BURST_THRESHOLD = 0.7
EARLY_BURST_MIN_CLIMB = 100.0  # m above launch before an early burst is considered

def early_burst_risk(altitude, burst_altitude, air_density, balloon_volume, payload_weight):
    """
    Risk in [0, 1] that the envelope fails before the nominal burst altitude.

    Sum of three terms, capped at 1:
    - altitude risk, growing linearly above 80% of burst altitude
    - density risk, from air denser than sea level
    - force risk, when net lift exceeds 80% of a 2g bound
    """
    altitude_ratio = altitude / burst_altitude
    density_ratio = air_density / atmosphere.SEA_LEVEL_DENSITY
    net = ascent_net_force(balloon_volume, payload_weight, air_density)
    force_ratio = min(net / (payload_weight * atmosphere.GRAVITY * 2), 1)

    altitude_risk = max(0.0, (altitude_ratio - 0.8) * 5)
    density_risk = max(0.0, (density_ratio - 1) * 0.5)
    force_risk = max(0.0, (force_ratio - 0.8) * 2)
    return min(1.0, altitude_risk + density_risk + force_risk)

@dataclass
class BurstSiteInput:
    launch_latitude: float
    launch_longitude: float
    launch_altitude: float
    burst_altitude: float
    balloon_volume: float
    payload_weight: float
    ascent_rate: float
    wind_speed: float = 0.0
    wind_direction: float = 0.0
    drag_coefficient: float = DEFAULT_ASCENT_DRAG_COEFFICIENT
    max_flight_time: float = DEFAULT_MAX_FLIGHT_TIME
    wind_profile: object = None
    start_time: datetime | None = None

    def validate(self):
        check_coordinates(self.launch_latitude, self.launch_longitude, prefix='Launch')
        check_balloon(self.launch_altitude, self.burst_altitude, self.balloon_volume,
                      self.payload_weight, self.ascent_rate)
        check_wind(self.wind_speed, self.wind_direction)
        if self.drag_coefficient <= 0:
            raise InputContractError('drag_coefficient', 'INVALID_DRAG_COEFFICIENT',
                                     "Drag coefficient must be positive")
        if self.max_flight_time <= 0:
            raise InputContractError('max_flight_time', 'INVALID_MAX_FLIGHT_TIME',
                                     "Maximum flight time must be positive")

@dataclass
class BurstSiteResult:
    burst_latitude: float
    burst_longitude: float
    burst_altitude: float
    burst_time: float            # seconds from launch, -1 when the flight timed out
    ascent_duration: float
    total_wind_drift: float      # km
    max_velocity: float
    trajectory: Trajectory
    confidence: float
    early_burst_risk: float
    reached_target: bool
    early_burst: bool
    stalled: bool
    timed_out: bool
    warnings: list = field(default_factory=list)

    @property
    def burst_point(self):
        return GeoPoint(self.burst_latitude, self.burst_longitude, self.burst_altitude)

def predict_burst_site(inp: BurstSiteInput) -> BurstSiteResult:
    inp.validate()
    start_time = inp.start_time or datetime.now(timezone.utc)
    position = GeoPoint(inp.launch_latitude, inp.launch_longitude, inp.launch_altitude)
    altitude = inp.launch_altitude
    velocity = 0.0
    elapsed = 0.0
    drift = 0.0
    max_velocity = 0.0
    max_risk = 0.0
    early = stalled = False
    trajectory = Trajectory()

    max_steps = int(inp.max_flight_time / TIME_STEP)
    step = 0
    while altitude < inp.burst_altitude and elapsed < inp.max_flight_time and step < max_steps:
        density = atmosphere.density(altitude)
        net = ascent_net_force(inp.balloon_volume, inp.payload_weight, density)
        velocity = ascent_velocity(net, inp.payload_weight, velocity, TIME_STEP, inp.drag_coefficient)
        max_velocity = max(max_velocity, velocity)
        speed, direction = wind_at(inp.wind_profile, inp.wind_speed, inp.wind_direction, altitude)

        position = advance(position, speed, direction, TIME_STEP)
        altitude = min(altitude + velocity * TIME_STEP, inp.burst_altitude)
        elapsed += TIME_STEP
        step += 1
        drift += speed * TIME_STEP / 1000

        # Risk uses the density the step was integrated with
        max_risk = max(max_risk, early_burst_risk(altitude, inp.burst_altitude, density,
                                                  inp.balloon_volume, inp.payload_weight))
        reached = altitude >= inp.burst_altitude
        early = (not reached and max_risk > EARLY_BURST_THRESHOLD and
                 altitude > inp.launch_altitude + EARLY_BURST_MIN_CLIMB)
        stalled = not reached and not early and velocity == 0 and net <= 0
        done = reached or early or stalled or elapsed >= inp.max_flight_time or step >= max_steps
        if step % SAMPLE_EVERY == 0 or done:
            trajectory.append(TrajectoryPoint(
                latitude=position[0], longitude=position[1], altitude=altitude,
                timestamp=start_time + timedelta(seconds=elapsed),
                velocity=velocity, wind_speed=speed, wind_direction=direction,
                phase='burst' if reached or early or stalled else 'ascent',
            ))
        if early or stalled:
            break

    reached = altitude >= inp.burst_altitude
    timed_out = not (reached or early or stalled)
    burst_time = -1.0 if timed_out else elapsed
    final_risk = 0.1 if max_risk == 0 and not reached else max_risk

    warnings = []
    if early:
        warnings.append(f"Early burst predicted at {altitude:.0f} m (risk {max_risk:.2f})")
    if stalled:
        warnings.append(f"Balloon reached float ceiling at {altitude:.0f} m, below burst altitude "
                        f"{inp.burst_altitude:.0f} m")
    if timed_out:
        warnings.append("Ascent did not reach burst altitude within the maximum flight time")
    logger.debug(f"Burst site: alt={altitude:.0f} t={elapsed:.0f}s drift={drift:.2f}km "
                 f"risk={final_risk:.2f} early={early} stalled={stalled}")

    return BurstSiteResult(
        burst_latitude=position[0],
        burst_longitude=position[1],
        burst_altitude=altitude,
        burst_time=burst_time,
        ascent_duration=elapsed,
        total_wind_drift=drift,
        max_velocity=max_velocity,
        trajectory=trajectory,
        confidence=flight_confidence(altitude, inp.burst_altitude, elapsed,
                                     inp.max_flight_time, timed_out, drift),
        early_burst_risk=final_risk,
        reached_target=reached,
        early_burst=early,
        stalled=stalled,
        timed_out=timed_out,
        warnings=warnings,
    )

@dataclass(frozen=True)
class BurstUncertainty:
    wind_speed_error: float = 2.0        # m/s
    wind_direction_error: float = 10.0   # degrees
    ascent_rate_error: float = 0.5       # m/s
    burst_altitude_error: float = 1000.0 # m

def predict_burst_site_with_uncertainty(inp: BurstSiteInput, uncertainty: BurstUncertainty, rng):
    """One burst-site prediction with inputs jittered uniformly within +/- the given errors."""
    def jitter(error):
        return (rng.random() - 0.5) * 2 * error

    perturbed = replace(
        inp,
        wind_speed=max(0.0, inp.wind_speed + jitter(uncertainty.wind_speed_error)),
        wind_direction=(inp.wind_direction + jitter(uncertainty.wind_direction_error)) % 360,
        ascent_rate=max(0.1, inp.ascent_rate + jitter(uncertainty.ascent_rate_error)),
        burst_altitude=max(inp.launch_altitude + 100,
                           inp.burst_altitude + jitter(uncertainty.burst_altitude_error)),
    )
    return predict_burst_site(perturbed)

def estimate_burst_time(launch_altitude, burst_altitude, ascent_rate):
    """Seconds to burst at a constant ascent rate."""
    if ascent_rate <= 0:
        raise InputContractError('ascent_rate', 'INVALID_ASCENT_RATE', "Ascent rate must be positive")
    return (burst_altitude - launch_altitude) / ascent_rate
