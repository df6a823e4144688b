"""
Turns raw phase output into a PredictionResult.

Everything here is a pure function of the combined trajectory, the weather
samples and a couple of flags; nothing is cached or mutated in place.
"""
import math
from dataclasses import dataclass, field

from .atmosphere import standard_pressure_hpa
from .classes import GeoPoint, Trajectory, TrajectoryPoint, haversine
from .prediction import (BurstSite, FlightMetrics, LandingSite, PredictionResult,
                         QualityAssessment, WeatherImpact)

__all__ = [
    'CalculationResult', 'combine_phases', 'process_results', 'enhance_trajectory',
    'burst_site', 'landing_site', 'flight_metrics', 'weather_impact', 'assess_quality',
    'weather_data_quality', 'weather_coverage', 'closest_weather',
]

PROCESSING_TIME_WARNING = 1.0   # seconds
EXPECTED_FORECAST_HOURS = 24
EXPECTED_ALTITUDE_SPAN = 35000.0  # m
METERS_PER_HPA = 8.5

@dataclass
class CalculationResult:
    """Output of the calculation phase, before post-processing."""
    trajectory: Trajectory
    burst_point: GeoPoint
    landing_point: GeoPoint
    confidence: float
    warnings: list = field(default_factory=list)
    dispersion_radius: float | None = None
    terrain: dict | None = None

def combine_phases(launch: TrajectoryPoint, burst, descent, confidences=None):
    """
    Join a burst-site and a descent result into one CalculationResult.

    Overall confidence is the product of the per-phase confidences.
    """
    trajectory = Trajectory([launch])
    trajectory.extend(burst.trajectory)
    trajectory.extend(descent.trajectory)
    if confidences is None:
        confidences = [burst.confidence, descent.confidence]
    confidence = 1.0
    for c in confidences:
        confidence *= c
    return CalculationResult(
        trajectory=trajectory,
        burst_point=burst.burst_point,
        landing_point=descent.landing_location,
        confidence=max(0.0, min(1.0, confidence)),
        warnings=list(burst.warnings),
    )

def _weather_distance(point, weather):
    # 1 km of altitude weighs the same as 1 hour of time
    altitude = abs(point.altitude - weather.altitude) / 1000
    hours = abs((point.timestamp - weather.timestamp).total_seconds()) / 3600
    return math.sqrt(altitude * altitude + hours * hours)

def closest_weather(point, weather):
    if not weather:
        return None
    return min(weather, key=lambda w: _weather_distance(point, w))

def enhance_trajectory(trajectory, weather):
    """Attach temperature and pressure from the nearest weather sample to every point."""
    if not weather:
        return Trajectory(trajectory)
    enhanced = Trajectory()
    for point in trajectory:
        w = closest_weather(point, weather)
        enhanced.append(point.with_weather(point.wind_speed, point.wind_direction,
                                           w.temperature, w.pressure))
    return enhanced

def burst_site(calc: CalculationResult, include_uncertainty):
    uncertainty = 0.0
    altitude = calc.burst_point.altitude
    if include_uncertainty:
        altitude_uncertainty = max(0.1, altitude * 0.00005)
        weather_uncertainty = (1 - calc.confidence) * 2
        uncertainty = math.sqrt(altitude_uncertainty ** 2 + weather_uncertainty ** 2)
        uncertainty = max(0.1, min(10.0, uncertainty))
    return BurstSite(location=calc.burst_point, altitude=altitude,
                     uncertainty=uncertainty, confidence=calc.confidence)

def landing_site(calc: CalculationResult, include_uncertainty):
    uncertainty = 0.0
    if include_uncertainty:
        base_uncertainty = 0.5  # km
        weather_uncertainty = (1 - calc.confidence) * 5
        uncertainty = math.sqrt(base_uncertainty ** 2 + weather_uncertainty ** 2)
        uncertainty = max(0.1, min(20.0, uncertainty))
    return LandingSite(location=calc.landing_point, uncertainty=uncertainty,
                       confidence=calc.confidence,
                       dispersion_radius=calc.dispersion_radius if include_uncertainty else None,
                       terrain=calc.terrain)

def flight_metrics(trajectory):
    if not trajectory:
        return FlightMetrics(0.0, 0.0, 0.0, 0.0)
    speeds = [p.wind_speed for p in trajectory if p.wind_speed is not None]
    return FlightMetrics(
        duration=trajectory.duration() * 60,
        max_altitude=trajectory.max_altitude(),
        total_distance=trajectory.length(),
        average_wind_speed=sum(speeds) / len(speeds) if speeds else 0.0,
    )

def weather_impact(trajectory, weather):
    if not trajectory or not weather:
        return WeatherImpact(0.0, 0.0, 0.0)
    start, end = trajectory[0], trajectory[-1]
    drift = haversine(start.latitude, start.longitude, end.latitude, end.longitude) if len(trajectory) > 1 else 0.0

    deviations = [abs(w.temperature - (15 - w.altitude * 0.0065)) for w in weather]
    temperature_effect = sum(deviations) / len(deviations)

    max_altitude = trajectory.max_altitude()
    pressure_effect = 0.0
    for w in weather:
        if abs(w.altitude - max_altitude) < 1000:
            pressure_effect = abs(w.pressure - standard_pressure_hpa(max_altitude)) * METERS_PER_HPA
            break
    return WeatherImpact(wind_drift=drift, temperature_effect=temperature_effect,
                         pressure_effect=pressure_effect)

def weather_data_quality(weather):
    if not weather:
        return 'poor'
    average_uncertainty = sum(w.uncertainty for w in weather) / len(weather)
    completeness = len(weather) / EXPECTED_FORECAST_HOURS
    if average_uncertainty < 0.1 and completeness > 0.9:
        return 'excellent'
    if average_uncertainty < 0.2 and completeness > 0.8:
        return 'good'
    if average_uncertainty < 0.3 and completeness > 0.6:
        return 'fair'
    return 'poor'

def weather_coverage(weather):
    """Mean of temporal (vs 24 h) and vertical (vs 35 km) coverage, each capped at 1."""
    if not weather:
        return 0.0
    times = [w.timestamp for w in weather]
    span_hours = (max(times) - min(times)).total_seconds() / 3600
    temporal = min(1.0, span_hours / EXPECTED_FORECAST_HOURS)
    altitudes = [w.altitude for w in weather]
    vertical = min(1.0, (max(altitudes) - min(altitudes)) / EXPECTED_ALTITUDE_SPAN)
    return (temporal + vertical) / 2

def assess_quality(calc: CalculationResult, weather, processing_time):
    warnings = list(calc.warnings)
    recommendations = []
    quality = weather_data_quality(weather)
    confidence = calc.confidence

    if quality == 'poor':
        warnings.append('Weather data quality is poor - predictions may be less accurate')
        recommendations.append('Consider delaying launch until better weather data is available')
    elif quality == 'fair':
        warnings.append('Weather data quality is fair - increased uncertainty expected')

    if confidence < 0.7:
        warnings.append('Low prediction confidence due to challenging weather conditions')
        recommendations.append('Consider using higher resolution weather data or multiple predictions')

    if processing_time > PROCESSING_TIME_WARNING:
        warnings.append('Prediction processing took longer than expected')

    if weather_coverage(weather) < 0.8:
        warnings.append('Limited weather data coverage for prediction window')
        recommendations.append('Consider using multiple weather sources or extending prediction window')

    if confidence > 0.9 and quality == 'excellent':
        recommendations.append('Excellent prediction conditions - high confidence in results')
    elif confidence > 0.8 and quality == 'good':
        recommendations.append('Good prediction conditions - results should be reliable')
    else:
        recommendations.append('Monitor weather conditions closely and consider real-time updates')

    return QualityAssessment(weather_data_quality=quality, prediction_confidence=confidence,
                             warnings=warnings, recommendations=recommendations)

def process_results(calc: CalculationResult, weather, include_uncertainty, processing_time=0.0):
    """Assemble the full PredictionResult from a calculation result and its weather."""
    trajectory = enhance_trajectory(calc.trajectory, weather)
    return PredictionResult(
        trajectory=trajectory,
        burst_site=burst_site(calc, include_uncertainty),
        landing_site=landing_site(calc, include_uncertainty),
        flight_metrics=flight_metrics(trajectory),
        weather_impact=weather_impact(trajectory, weather),
        quality_assessment=assess_quality(calc, weather, processing_time),
    )
