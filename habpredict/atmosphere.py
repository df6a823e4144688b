"""
Standard atmosphere approximations.

Exponential decay for density and pressure (scale height 7400 m) and a
linear lapse for temperature. These are the closed forms the simulators use
every time step, so they stay plain float functions.
"""
import math

from .errors import InvalidAltitude, InvalidPhysicalParameters

__all__ = [
    'SEA_LEVEL_DENSITY', 'SEA_LEVEL_PRESSURE', 'SEA_LEVEL_TEMPERATURE', 'SCALE_HEIGHT',
    'LAPSE_RATE', 'GRAVITY', 'density', 'pressure', 'temperature', 'conditions',
    'is_valid_altitude', 'standard_pressure_hpa', 'density_from_weather',
]

SEA_LEVEL_DENSITY = 1.225       # kg/m³
SEA_LEVEL_PRESSURE = 101325.0   # Pa
SEA_LEVEL_TEMPERATURE = 288.15  # K
SCALE_HEIGHT = 7400.0           # m
LAPSE_RATE = -0.0065            # K/m
GRAVITY = 9.81                  # m/s²
GAS_CONSTANT_DRY_AIR = 287.058  # J/(kg·K)
MAX_MODEL_ALTITUDE = 100000.0   # m

def _check(altitude):
    if altitude < 0:
        raise InvalidAltitude(altitude)

def density(altitude: float) -> float:
    """Air density in kg/m³ at `altitude` metres."""
    _check(altitude)
    return SEA_LEVEL_DENSITY * math.exp(-altitude / SCALE_HEIGHT)

def pressure(altitude: float) -> float:
    """Air pressure in Pa at `altitude` metres."""
    _check(altitude)
    return SEA_LEVEL_PRESSURE * math.exp(-altitude / SCALE_HEIGHT)

def temperature(altitude: float) -> float:
    """Air temperature in K at `altitude` metres."""
    _check(altitude)
    return SEA_LEVEL_TEMPERATURE + LAPSE_RATE * altitude

def conditions(altitude: float) -> dict:
    return {
        'altitude': altitude,
        'density': density(altitude),
        'pressure': pressure(altitude),
        'temperature': temperature(altitude),
    }

def is_valid_altitude(altitude: float) -> bool:
    return 0 <= altitude <= MAX_MODEL_ALTITUDE

def standard_pressure_hpa(altitude: float) -> float:
    """
    Barometric-formula pressure in hPa.

    Used to measure how far observed pressure deviates from the standard
    atmosphere; unlike pressure() it follows the troposphere power law.
    """
    base = max(0.0, 1 - 0.0065 * altitude / SEA_LEVEL_TEMPERATURE)
    return 1013.25 * base ** 5.255

def density_from_weather(pressure_hpa: float, temperature_c: float) -> float:
    """Ideal-gas density from an observed pressure (hPa) and temperature (°C)."""
    kelvin = temperature_c + 273.15
    if kelvin <= 0:
        raise InvalidPhysicalParameters("Temperature must be above absolute zero")
    return (pressure_hpa * 100) / (GAS_CONSTANT_DRY_AIR * kelvin)
