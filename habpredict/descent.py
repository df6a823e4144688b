"""
Parachute descent simulation and landing-site prediction.

Integrates weight against parachute drag in 1 s steps from the burst point
down to the landing altitude, drifting with the wind every step.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from . import atmosphere
from .ascent import DEFAULT_MAX_FLIGHT_TIME, SAMPLE_EVERY, TIME_STEP
from .classes import GeoPoint, Trajectory, TrajectoryPoint, haversine
from .errors import InputContractError
from .physics import descent_net_force, descent_velocity, drag_force, terminal_velocity
from .winddrift import advance, check_coordinates, check_wind, wind_at

logger = logging.getLogger(__name__)

__all__ = [
    'DescentInput', 'DescentResult', 'calculate_descent', 'landing_confidence',
    'estimate_descent_time', 'predict_landing_site',
]

def landing_confidence(descent_duration, max_velocity, wind_drift, terminal_velocity_at_ground):
    confidence = 0.8
    if descent_duration > 3600:
        confidence -= 0.1
    if max_velocity > 20:
        confidence -= 0.1
    if wind_drift > 50:
        confidence -= 0.1
    if 0 < terminal_velocity_at_ground < 15:
        confidence += 0.05
    return max(0.0, min(1.0, confidence))

@dataclass
class DescentInput:
    burst_latitude: float
    burst_longitude: float
    burst_altitude: float
    payload_weight: float        # kg
    parachute_area: float        # m²
    drag_coefficient: float
    wind_speed: float = 0.0
    wind_direction: float = 0.0
    landing_altitude: float = 0.0
    max_flight_time: float = DEFAULT_MAX_FLIGHT_TIME
    wind_profile: object = None
    start_time: datetime | None = None

    def validate(self):
        check_coordinates(self.burst_latitude, self.burst_longitude, prefix='Burst')
        if self.burst_altitude <= 0:
            raise InputContractError('burst_altitude', 'INVALID_BURST_ALTITUDE',
                                     "Burst altitude must be positive")
        if self.payload_weight <= 0:
            raise InputContractError('payload_weight', 'INVALID_PAYLOAD_WEIGHT',
                                     "Payload weight must be positive")
        if self.parachute_area <= 0:
            raise InputContractError('parachute_area', 'INVALID_PARACHUTE_AREA',
                                     "Parachute area must be positive")
        if self.drag_coefficient <= 0:
            raise InputContractError('drag_coefficient', 'INVALID_DRAG_COEFFICIENT',
                                     "Drag coefficient must be positive")
        if self.landing_altitude < 0:
            raise InputContractError('landing_altitude', 'INVALID_LANDING_ALTITUDE',
                                     "Landing altitude cannot be negative")
        if self.burst_altitude <= self.landing_altitude:
            raise InputContractError('burst_altitude', 'BURST_BELOW_LANDING',
                                     "Burst altitude must be higher than landing altitude")
        check_wind(self.wind_speed, self.wind_direction)
        if self.max_flight_time <= 0:
            raise InputContractError('max_flight_time', 'INVALID_MAX_FLIGHT_TIME',
                                     "Maximum flight time must be positive")

@dataclass
class DescentResult:
    trajectory: Trajectory
    landing_point: TrajectoryPoint
    landing_latitude: float
    landing_longitude: float
    descent_duration: float      # seconds
    terminal_velocity: float     # m/s at landing altitude
    wind_drift: float            # km, wind speed integrated over time
    max_velocity: float
    total_flight_distance: float # km, great-circle distance burst to landing
    confidence: float
    landed: bool

    @property
    def landing_location(self):
        return GeoPoint(self.landing_latitude, self.landing_longitude, self.landing_point.altitude)

def calculate_descent(inp: DescentInput) -> DescentResult:
    """
    Descend from rest at the burst point until landing altitude or time limit.

    Emits every 50th step plus the terminal step. The landing point's velocity
    is reported as 0 and terminal velocity is evaluated once at the landing
    altitude.
    """
    inp.validate()
    start_time = inp.start_time or datetime.now(timezone.utc)
    start = GeoPoint(inp.burst_latitude, inp.burst_longitude, inp.burst_altitude)
    position = start
    altitude = inp.burst_altitude
    velocity = 0.0  # from rest after burst
    elapsed = 0.0
    drift = 0.0
    max_velocity = 0.0
    speed, direction = inp.wind_speed, inp.wind_direction
    trajectory = Trajectory()

    max_steps = int(inp.max_flight_time / TIME_STEP)
    step = 0
    while altitude > inp.landing_altitude and elapsed < inp.max_flight_time and step < max_steps:
        density = atmosphere.density(altitude)
        drag = drag_force(velocity, density, inp.parachute_area, inp.drag_coefficient)
        net = descent_net_force(inp.payload_weight, drag)
        velocity = descent_velocity(net, inp.payload_weight, velocity, TIME_STEP)
        max_velocity = max(max_velocity, velocity)
        speed, direction = wind_at(inp.wind_profile, inp.wind_speed, inp.wind_direction, altitude)

        position = advance(position, speed, direction, TIME_STEP)
        altitude -= velocity * TIME_STEP
        elapsed += TIME_STEP
        step += 1
        drift += speed * TIME_STEP / 1000

        landed = altitude <= inp.landing_altitude
        done = landed or elapsed >= inp.max_flight_time or step >= max_steps
        if step % SAMPLE_EVERY == 0 or done:
            trajectory.append(TrajectoryPoint(
                latitude=position[0], longitude=position[1],
                altitude=max(altitude, inp.landing_altitude),
                timestamp=start_time + timedelta(seconds=elapsed),
                velocity=velocity, wind_speed=speed, wind_direction=direction,
                phase='landing' if landed else 'descent',
            ))

    landed = altitude <= inp.landing_altitude
    if not landed:
        logger.warning(f"Descent did not reach landing altitude within {inp.max_flight_time:.0f}s "
                       f"(stopped at {altitude:.0f} m)")

    landing_point = TrajectoryPoint(
        latitude=position[0], longitude=position[1],
        altitude=inp.landing_altitude if landed else altitude,
        timestamp=start_time + timedelta(seconds=elapsed),
        velocity=0.0, wind_speed=speed, wind_direction=direction,
        phase='landing',
    )
    final_terminal = terminal_velocity(inp.payload_weight, atmosphere.density(inp.landing_altitude),
                                       inp.parachute_area, inp.drag_coefficient)
    return DescentResult(
        trajectory=trajectory,
        landing_point=landing_point,
        landing_latitude=position[0],
        landing_longitude=position[1],
        descent_duration=elapsed,
        terminal_velocity=final_terminal,
        wind_drift=drift,
        max_velocity=max_velocity,
        total_flight_distance=haversine(start[0], start[1], position[0], position[1]),
        confidence=landing_confidence(elapsed, max_velocity, drift, final_terminal),
        landed=landed,
    )

def estimate_descent_time(burst_altitude, terminal_velocity_estimate):
    if terminal_velocity_estimate <= 0:
        raise InputContractError('terminal_velocity', 'INVALID_TERMINAL_VELOCITY',
                                 "Terminal velocity must be positive")
    return burst_altitude / terminal_velocity_estimate

def predict_landing_site(burst_latitude, burst_longitude, burst_altitude, payload_weight,
                         parachute_area, drag_coefficient, wind_speed, wind_direction,
                         landing_altitude=0.0, max_flight_time=DEFAULT_MAX_FLIGHT_TIME):
    """Convenience wrapper around calculate_descent for positional callers."""
    return calculate_descent(DescentInput(
        burst_latitude=burst_latitude,
        burst_longitude=burst_longitude,
        burst_altitude=burst_altitude,
        payload_weight=payload_weight,
        parachute_area=parachute_area,
        drag_coefficient=drag_coefficient,
        wind_speed=wind_speed,
        wind_direction=wind_direction,
        landing_altitude=landing_altitude,
        max_flight_time=max_flight_time,
    ))
