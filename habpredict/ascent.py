"""
Ascent phase simulation.

Fixed 1 s forward-Euler integration of buoyancy against payload weight,
drifting horizontally with the wind every step.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

from . import atmosphere
from .classes import GeoPoint, Trajectory, TrajectoryPoint
from .errors import InputContractError
from .physics import DEFAULT_ASCENT_DRAG_COEFFICIENT, ascent_net_force, ascent_velocity
from .winddrift import advance, check_coordinates, check_wind, wind_at

logger = logging.getLogger(__name__)

__all__ = [
    'TIME_STEP', 'SAMPLE_EVERY', 'DEFAULT_MAX_FLIGHT_TIME', 'AscentInput', 'AscentResult',
    'simulate_ascent', 'flight_confidence', 'check_balloon',
]

TIME_STEP = 1.0                  # seconds
SAMPLE_EVERY = 50                # keep every Nth step in the emitted trajectory
DEFAULT_MAX_FLIGHT_TIME = 86400  # 24 hours

def check_balloon(launch_altitude, burst_altitude, balloon_volume, payload_weight, ascent_rate):
    """Shared input contract for the ascent and burst-site simulators."""
    if launch_altitude < 0:
        raise InputContractError('launch_altitude', 'INVALID_LAUNCH_ALTITUDE',
                                 "Launch altitude cannot be negative")
    if burst_altitude <= 0:
        raise InputContractError('burst_altitude', 'INVALID_BURST_ALTITUDE',
                                 "Burst altitude must be positive")
    if burst_altitude <= launch_altitude:
        raise InputContractError('burst_altitude', 'BURST_BELOW_LAUNCH',
                                 "Burst altitude must be higher than launch altitude")
    if balloon_volume <= 0:
        raise InputContractError('balloon_volume', 'INVALID_BALLOON_VOLUME',
                                 "Balloon volume must be positive")
    if payload_weight <= 0:
        raise InputContractError('payload_weight', 'INVALID_PAYLOAD_WEIGHT',
                                 "Payload weight must be positive")
    if ascent_rate <= 0:
        raise InputContractError('ascent_rate', 'INVALID_ASCENT_RATE',
                                 "Ascent rate must be positive")

def flight_confidence(altitude, target_altitude, elapsed, max_flight_time, timed_out, wind_drift_km):
    """Mean of how close we got to target, how much time margin was left and how far we drifted."""
    altitude_confidence = min(1.0, altitude / target_altitude)
    time_confidence = 0.0 if timed_out else min(1.0, 1 - elapsed / max_flight_time)
    wind_confidence = min(1.0, 1 - wind_drift_km / 1000)
    confidence = (altitude_confidence + time_confidence + wind_confidence) / 3
    return max(0.0, min(1.0, confidence))

@dataclass
class AscentInput:
    launch_latitude: float
    launch_longitude: float
    launch_altitude: float
    burst_altitude: float
    balloon_volume: float        # m³
    payload_weight: float        # kg
    ascent_rate: float           # m/s, nominal; used for validation and estimates
    wind_speed: float = 0.0
    wind_direction: float = 0.0
    drag_coefficient: float = DEFAULT_ASCENT_DRAG_COEFFICIENT
    max_flight_time: float = DEFAULT_MAX_FLIGHT_TIME
    wind_profile: object = None  # WindProfile; overrides wind_speed/direction per step
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
class AscentResult:
    trajectory: Trajectory
    burst_point: TrajectoryPoint
    ascent_duration: float       # seconds
    max_altitude: float          # m
    max_velocity: float          # m/s
    wind_drift: float            # km
    reached_burst: bool
    timed_out: bool
    confidence: float
    warnings: list = field(default_factory=list)

def simulate_ascent(inp: AscentInput) -> AscentResult:
    """
    Climb from launch until burst altitude, float ceiling or time limit.

    Terminates when:
    - altitude reaches burst altitude (reached_burst=True)
    - the balloon is stalled at its float ceiling (zero velocity, no lift)
    - elapsed time reaches max_flight_time, or the step cap is hit
    """
    inp.validate()
    start_time = inp.start_time or datetime.now(timezone.utc)
    position = GeoPoint(inp.launch_latitude, inp.launch_longitude, inp.launch_altitude)
    altitude = inp.launch_altitude
    velocity = 0.0
    elapsed = 0.0
    drift = 0.0
    max_velocity = 0.0
    stalled = False
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

        stalled = velocity == 0 and net <= 0
        done = altitude >= inp.burst_altitude or stalled or elapsed >= inp.max_flight_time or step >= max_steps
        if step % SAMPLE_EVERY == 0 or done:
            trajectory.append(TrajectoryPoint(
                latitude=position[0], longitude=position[1], altitude=altitude,
                timestamp=start_time + timedelta(seconds=elapsed),
                velocity=velocity, wind_speed=speed, wind_direction=direction,
                phase='burst' if altitude >= inp.burst_altitude or stalled else 'ascent',
            ))
        if stalled:
            break

    reached = altitude >= inp.burst_altitude
    timed_out = not reached and not stalled
    warnings = []
    if stalled:
        warnings.append(f"Balloon reached float ceiling at {altitude:.0f} m, below burst altitude "
                        f"{inp.burst_altitude:.0f} m")
        logger.info(f"Ascent stalled at {altitude:.0f} m after {elapsed:.0f}s")
    if timed_out:
        warnings.append("Ascent did not reach burst altitude within the maximum flight time")

    if trajectory:
        burst_point = trajectory[-1]
    else:
        burst_point = TrajectoryPoint(position[0], position[1], altitude, start_time, 0.0,
                                      inp.wind_speed, inp.wind_direction, 'ascent')
    return AscentResult(
        trajectory=trajectory,
        burst_point=burst_point,
        ascent_duration=elapsed,
        max_altitude=altitude,
        max_velocity=max_velocity,
        wind_drift=drift,
        reached_burst=reached,
        timed_out=timed_out,
        confidence=flight_confidence(altitude, inp.burst_altitude, elapsed,
                                     inp.max_flight_time, timed_out, drift),
        warnings=warnings,
    )
