"""
Error classification and fallback predictions.

classify() maps an OrchestrationError to a RecoveryStrategy using a fixed
(phase, code) table. execute_fallback() then produces a degraded
PredictionResult: the orchestrator supplies a callback for the "cached" and
"degraded" paths, and anything that fails there drops to the constant-rate
model. If even that fails a minimal result anchored at the launch point is
returned, so a recoverable error never escapes as an exception.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from . import atmosphere
from .classes import GeoPoint, Trajectory, TrajectoryPoint
from .errors import OrchestrationError
from .physics import terminal_velocity
from .prediction import (BurstSite, FlightMetrics, LandingSite, PredictionResult,
                         QualityAssessment, WeatherImpact)
from .results import flight_metrics
from .weather import parse_timestamp
from .winddrift import advance

logger = logging.getLogger(__name__)

__all__ = [
    'RecoveryStrategy', 'FallbackOptions', 'classify', 'handle_prediction_error',
    'fallback_options', 'simple_trajectory', 'create_fallback_result', 'create_minimal_result',
    'apply_recovery', 'execute_fallback', 'user_friendly_message', 'log_error',
]

FALLBACK_STEP = 300  # seconds between points of the constant-rate trajectory
MINIMAL_UNCERTAINTY = 999.0
MINIMAL_CONFIDENCE = 0.1

@dataclass(frozen=True)
class RecoveryStrategy:
    can_recover: bool
    fallback_method: str      # simple | cached | degraded
    confidence_reduction: float

    def to_dict(self):
        return {'can_recover': self.can_recover, 'fallback_method': self.fallback_method,
                'confidence_reduction': self.confidence_reduction}

@dataclass(frozen=True)
class FallbackOptions:
    use_simple_model: bool
    use_cached_weather: bool
    reduce_resolution: bool
    skip_uncertainty: bool

_TERMINAL = RecoveryStrategy(False, 'simple', 1.0)

# (phase, code) -> strategy; a None code is the phase default
_RECOVERY_TABLE = {
    ('validation', 'INVALID_COORDINATES'): _TERMINAL,
    ('validation', 'INVALID_BALLOON_SPECS'): _TERMINAL,
    ('validation', 'INVALID_LAUNCH_TIME'): _TERMINAL,
    ('validation', 'LAUNCH_TIME_TOO_FAR'): RecoveryStrategy(True, 'degraded', 0.2),
    ('validation', 'HRRR_OUTSIDE_CONUS'): RecoveryStrategy(True, 'degraded', 0.2),

    ('weather', 'WEATHER_SERVICE_UNAVAILABLE'): RecoveryStrategy(True, 'cached', 0.3),
    ('weather', 'WEATHER_API_ERROR'): RecoveryStrategy(True, 'cached', 0.3),
    ('weather', 'WEATHER_DATA_POOR_QUALITY'): RecoveryStrategy(True, 'degraded', 0.4),
    ('weather', 'WEATHER_TIMEOUT'): RecoveryStrategy(True, 'simple', 0.5),
    ('weather', None): RecoveryStrategy(True, 'simple', 0.6),

    ('calculation', 'ALGORITHM_CONVERGENCE_FAILED'): RecoveryStrategy(True, 'degraded', 0.3),
    ('calculation', 'PHYSICS_VALIDATION_FAILED'): RecoveryStrategy(True, 'simple', 0.4),
    ('calculation', 'MEMORY_EXHAUSTED'): RecoveryStrategy(True, 'degraded', 0.2),
    ('calculation', None): RecoveryStrategy(True, 'simple', 0.5),

    ('processing', 'RESULTS_PROCESSING_FAILED'): RecoveryStrategy(True, 'simple', 0.3),
    ('processing', 'UNCERTAINTY_CALCULATION_FAILED'): RecoveryStrategy(True, 'degraded', 0.2),
    ('processing', None): RecoveryStrategy(True, 'simple', 0.4),
}

def classify(error):
    """
    Recovery strategy for `error`, or None when the failure is terminal.

    Validation has no default row: only the listed codes are classified and
    everything else (VALIDATION_FAILED included) stops the request.
    """
    key = (error.phase, error.code)
    if key in _RECOVERY_TABLE:
        return _RECOVERY_TABLE[key]
    return _RECOVERY_TABLE.get((error.phase, None))

def handle_prediction_error(error, phase):
    """Normalise anything raised inside `phase` into an OrchestrationError."""
    if isinstance(error, OrchestrationError):
        return error
    return OrchestrationError(
        message=str(error) or error.__class__.__name__,
        code='UNKNOWN_ERROR',
        phase=phase,
        recoverable=False,
    )

def fallback_options(strategy):
    return FallbackOptions(
        use_simple_model=strategy.fallback_method == 'simple',
        use_cached_weather=strategy.fallback_method == 'cached',
        reduce_resolution=strategy.fallback_method == 'degraded',
        skip_uncertainty=strategy.confidence_reduction > 0.5,
    )

def _launch_time(request):
    try:
        return parse_timestamp(request.schedule.launch_time)
    except (TypeError, ValueError):
        return datetime.now(timezone.utc)

def simple_trajectory(request, wind_profile=None):
    """
    Constant-rate flight: climb at the requested ascent rate, fall at the
    sea-level terminal velocity, drift with the mean wind of `wind_profile`
    (no drift without one). Points every 300 s plus burst and landing.
    """
    loc, balloon = request.location, request.balloon
    start = _launch_time(request)
    speed, direction = wind_profile.mean() if wind_profile is not None else (0.0, 0.0)

    ascent_rate = balloon.ascent_rate if balloon.ascent_rate > 0 else 5.0
    burst_altitude = balloon.burst_altitude if balloon.burst_altitude > loc.altitude else loc.altitude + 30000.0
    ascent_time = (burst_altitude - loc.altitude) / ascent_rate
    descent_rate = terminal_velocity(balloon.payload_weight, atmosphere.SEA_LEVEL_DENSITY,
                                     balloon.parachute_area, balloon.drag_coefficient)
    descent_time = burst_altitude / descent_rate

    launch = GeoPoint(loc.latitude, loc.longitude, loc.altitude)
    trajectory = Trajectory()

    def point(t, altitude, velocity, phase):
        p = advance(launch, speed, direction, t)
        return TrajectoryPoint(latitude=p[0], longitude=p[1], altitude=altitude,
                               timestamp=start + timedelta(seconds=t), velocity=velocity,
                               wind_speed=speed, wind_direction=direction, phase=phase)

    t = 0.0
    while t < ascent_time:
        trajectory.append(point(t, loc.altitude + t * ascent_rate, ascent_rate, 'ascent'))
        t += FALLBACK_STEP
    trajectory.append(point(ascent_time, burst_altitude, ascent_rate, 'burst'))

    t = FALLBACK_STEP
    while t < descent_time:
        trajectory.append(point(ascent_time + t, burst_altitude - t * descent_rate, descent_rate, 'descent'))
        t += FALLBACK_STEP
    trajectory.append(point(ascent_time + descent_time, 0.0, 0.0, 'landing'))
    return trajectory

def create_fallback_result(request, options, confidence_reduction, wind_profile=None):
    """PredictionResult from the constant-rate model, with confidences scaled by the penalty."""
    trajectory = simple_trajectory(request, wind_profile)
    burst = next((p for p in trajectory if p.phase == 'burst'), trajectory[-1])
    landing = trajectory[-1]
    r = confidence_reduction

    metrics = flight_metrics(trajectory)
    if wind_profile is None:
        metrics = FlightMetrics(metrics.duration, metrics.max_altitude, metrics.total_distance, 0.0)

    recommendations = ['Consider retrying with different parameters', 'Monitor conditions closely']
    if options.skip_uncertainty:
        recommendations.append('Uncertainty estimates were skipped for this prediction')

    return PredictionResult(
        trajectory=trajectory,
        burst_site=BurstSite(location=burst.location, altitude=burst.altitude,
                             uncertainty=5 + r * 10, confidence=max(0.1, 0.7 * (1 - r))),
        landing_site=LandingSite(location=landing.location.with_altitude(0.0),
                                 uncertainty=10 + r * 20, confidence=max(0.1, 0.6 * (1 - r))),
        flight_metrics=metrics,
        weather_impact=WeatherImpact(0.0, 0.0, 0.0),
        quality_assessment=QualityAssessment(
            weather_data_quality='poor',
            prediction_confidence=max(0.1, 0.8 * (1 - r)),
            warnings=['Fallback prediction used due to system limitations', 'Reduced accuracy expected'],
            recommendations=recommendations,
        ),
        fallback_method='simple',
    )

def create_minimal_result(request, error):
    """Last-resort result: a single point at the launch site, confidence 0.1."""
    loc = getattr(request, 'location', None)
    launch = GeoPoint(loc.latitude, loc.longitude, loc.altitude) if loc is not None else GeoPoint(0.0, 0.0)
    point = TrajectoryPoint(latitude=launch[0], longitude=launch[1], altitude=launch[2],
                            timestamp=datetime.now(timezone.utc), velocity=0.0,
                            wind_speed=0.0, wind_direction=0.0, phase='landing')
    return PredictionResult(
        trajectory=Trajectory([point]),
        burst_site=BurstSite(location=launch, altitude=0.0, uncertainty=MINIMAL_UNCERTAINTY,
                             confidence=MINIMAL_CONFIDENCE),
        landing_site=LandingSite(location=launch, uncertainty=MINIMAL_UNCERTAINTY,
                                 confidence=MINIMAL_CONFIDENCE),
        flight_metrics=FlightMetrics(0.0, 0.0, 0.0, 0.0),
        weather_impact=WeatherImpact(0.0, 0.0, 0.0),
        quality_assessment=QualityAssessment(
            weather_data_quality='poor',
            prediction_confidence=MINIMAL_CONFIDENCE,
            warnings=['Prediction failed - minimal result returned', f"Error: {error.message}"],
            recommendations=['Check input parameters and try again', 'Contact support if problem persists'],
        ),
        fallback_method='minimal',
    )

def apply_recovery(result, strategy, error):
    """Stamp a recovered result: warning appended, confidence scaled by (1 - penalty)."""
    quality = result.quality_assessment
    quality.warnings.append(f"Fallback prediction used due to error: {error.message}")
    quality.prediction_confidence *= (1 - strategy.confidence_reduction)
    if result.fallback_method is None:
        result.fallback_method = strategy.fallback_method
    return result

def execute_fallback(request, error, strategy, compute=None, wind_profile=None):
    """
    Produce a recovered PredictionResult for `error`.

    `compute(method, options)` runs the "cached" or "degraded" path and may
    raise; any failure there drops to the constant-rate model, and a failure
    of that yields create_minimal_result().
    """
    options = fallback_options(strategy)
    if compute is not None and strategy.fallback_method in ('cached', 'degraded'):
        try:
            result = compute(strategy.fallback_method, options)
            if result is not None:
                return apply_recovery(result, strategy, error)
        except Exception as e:
            logger.warning(f"{strategy.fallback_method} fallback failed ({e}), using simple model")

    try:
        result = create_fallback_result(request, options, strategy.confidence_reduction, wind_profile)
        return apply_recovery(result, strategy, error)
    except Exception as e:
        logger.error(f"Simple fallback failed: {e}")
        return create_minimal_result(request, error)

_FRIENDLY_MESSAGES = {
    'INVALID_COORDINATES': 'Please check your launch location coordinates',
    'INVALID_LAUNCH_TIME': 'Please select a valid launch time',
    'WEATHER_SERVICE_UNAVAILABLE': 'Weather service is temporarily unavailable',
    'ALGORITHM_CONVERGENCE_FAILED': 'Unable to calculate trajectory - please try different parameters',
}

def user_friendly_message(error):
    return _FRIENDLY_MESSAGES.get(getattr(error, 'code', None),
                                  'An unexpected error occurred. Please try again.')

def log_error(error, context=None):
    """Structured error log line, one per failed phase."""
    logger.error(f"Prediction error [{error.code}] in {error.phase}: {error.message} "
                 f"(recoverable={error.recoverable}, context={context or {}})")
