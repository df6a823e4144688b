"""
Force balance helpers for ascent and descent.

All forces are in newtons, masses in kg, velocities in m/s. Functions are
pure so they can be called once per simulation step without caching.
"""
import math

from .atmosphere import GRAVITY
from .errors import InvalidPhysicalParameters

__all__ = [
    'DEFAULT_ASCENT_DRAG_COEFFICIENT', 'buoyancy_force', 'ascent_net_force',
    'ascent_velocity', 'terminal_velocity', 'drag_force', 'descent_net_force',
    'descent_velocity',
]

DEFAULT_ASCENT_DRAG_COEFFICIENT = 0.5

def buoyancy_force(balloon_volume, air_density):
    return balloon_volume * air_density * GRAVITY

def ascent_net_force(balloon_volume, payload_weight, air_density):
    """Buoyancy minus payload weight; negative above the float ceiling."""
    return buoyancy_force(balloon_volume, air_density) - payload_weight * GRAVITY

def ascent_velocity(net_force, payload_weight, current_velocity=0.0, time_step=1.0,
                    drag_coefficient=DEFAULT_ASCENT_DRAG_COEFFICIENT):
    """
    Integrate vertical velocity over one ascent step.

    Velocity is attenuated by (1 - 0.1·Cd) each step to stand in for envelope
    drag and is never negative (the envelope does not pull the payload down).
    """
    acceleration = net_force / payload_weight
    drag_factor = 1 - drag_coefficient * 0.1
    return max(0.0, (current_velocity + acceleration * time_step) * drag_factor)

def terminal_velocity(payload_weight, air_density, parachute_area, drag_coefficient):
    """
    Steady descent speed where drag balances weight.

    v = sqrt(2·m·g / (ρ·A·Cd)); a non-positive denominator raises instead of
    producing inf or NaN.
    """
    numerator = 2 * payload_weight * GRAVITY
    denominator = air_density * parachute_area * drag_coefficient
    if denominator <= 0:
        raise InvalidPhysicalParameters("Invalid parameters for terminal velocity calculation")
    return math.sqrt(numerator / denominator)

def drag_force(velocity, air_density, parachute_area, drag_coefficient):
    return 0.5 * air_density * velocity ** 2 * parachute_area * drag_coefficient

def descent_net_force(payload_weight, drag):
    return payload_weight * GRAVITY - drag

def descent_velocity(net_force, payload_weight, current_velocity, time_step=1.0):
    """Next descent speed; floored at 0 since a parachute never produces upward motion."""
    return max(0.0, current_velocity + net_force / payload_weight * time_step)
