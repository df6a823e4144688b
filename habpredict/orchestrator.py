"""
Prediction orchestrator.

Runs one request through validation -> weather -> calculation -> processing
and hands any phase failure to the recovery classifier. Results are cached
per request through PredictionCache.compute_once, so identical concurrent
requests share a single computation.

Each invocation gets its own PredictionContext (status + metrics); the
orchestrator keeps a reference to the most recent one for get_status() /
get_metrics() polling, nothing else is shared between requests apart from
the cache and the last-good weather store.
"""
import logging
import threading
import time
import uuid
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FuturesTimeout
from dataclasses import dataclass, replace
from datetime import timedelta

import psutil

from .ascent import DEFAULT_MAX_FLIGHT_TIME
from .burst import BurstSiteInput, predict_burst_site
from .cache import PredictionCache, cache_key
from .classes import TrajectoryPoint
from .config import Settings
from .descent import DescentInput, calculate_descent
from .errors import (CalculationDetail, DeadlineExceeded, InputContractError, InvalidPhysicalParameters,
                     OrchestrationError, ProcessingDetail, ValidationDetail, WeatherDetail)
from .montecarlo import WindUncertainty, landing_zone_uncertainty, run_descent_monte_carlo
from .prediction import PerformanceMetrics, ProcessingStatus
from .recovery import classify, execute_fallback, handle_prediction_error, log_error
from .results import combine_phases, process_results
from .terrain import TerrainAdjunct
from .validation import RECOVERABLE_CODES, DefaultInputValidator
from .weather import (convert_weather_data, parse_timestamp, standard_atmosphere_profile,
                      wind_profile_from_weather)
from .winddrift import WindProfile

logger = logging.getLogger(__name__)

__all__ = ['Ok', 'Err', 'PredictionContext', 'PredictionOrchestrator', 'get_rss_memory_mb']

WEATHER_WINDOW_MINUTES = 60
MAX_WEATHER_UNCERTAINTY = 0.5
MIN_ALTITUDE_GAIN = 100.0  # m; less than this and the ascent is treated as non-convergent
LAST_WEATHER_SIZE = 100

# Monte Carlo sample multiplier per calculation precision. "precise" runs full
# descent trials, each far more expensive than a landing-zone sample.
PRECISION_SAMPLES = {'fast': 0, 'standard': 1.0, 'precise': 0.25}

@dataclass(frozen=True)
class Ok:
    value: object

@dataclass(frozen=True)
class Err:
    error: OrchestrationError

def get_rss_memory_mb():
    """Current RSS memory usage in MB, or None if the process can't be inspected."""
    try:
        return psutil.Process().memory_info().rss / (1024 * 1024)
    except psutil.Error:
        return None

class PredictionContext:
    """Status and metrics for a single execute() call."""
    def __init__(self, request_id=None):
        self.request_id = request_id or uuid.uuid4().hex[:8]
        self.status = ProcessingStatus(phase='validation', progress=0.0, message='Initializing prediction')
        self.metrics = PerformanceMetrics()
        self.warnings = []

    def update(self, phase, progress, message):
        self.status = ProcessingStatus(phase=phase, progress=progress, message=message)
        logger.debug(f"[{self.request_id}] {phase} {progress:.0%}: {message}")

def _location_key(location):
    return f"{location.latitude:.1f}_{location.longitude:.1f}"

class PredictionOrchestrator:
    """
    Entry point of the engine.

    Collaborators are injected: a weather provider (anything with
    select_weather_data), an input validator, a PredictionCache and an
    optional TerrainAdjunct. With no weather provider the weather phase fails
    with WEATHER_SERVICE_UNAVAILABLE and the recovery path takes over.
    """
    def __init__(self, weather_provider=None, validator=None, cache=None, terrain=None,
                 settings=None, executor=None):
        self.settings = settings or Settings()
        self.weather_provider = weather_provider
        self.validator = validator or DefaultInputValidator()
        self.cache = cache or PredictionCache(ttl=self.settings.cache_ttl, max_size=self.settings.cache_size)
        if terrain is not None and not isinstance(terrain, TerrainAdjunct):
            terrain = TerrainAdjunct(terrain)
        self.terrain = terrain
        self._own_executor = executor is None
        self.executor = executor or ThreadPoolExecutor(max_workers=self.settings.max_workers,
                                                       thread_name_prefix='habpredict')
        self._last_weather = {}
        self._last_weather_lock = threading.Lock()
        self._last_context = PredictionContext(request_id='idle')

    def close(self):
        if self._own_executor:
            self.executor.shutdown(wait=False, cancel_futures=True)

    def get_status(self):
        return replace(self._last_context.status)

    def get_metrics(self):
        return replace(self._last_context.metrics)

    def execute(self, request, deadline=None):
        result, _ = self.execute_with_context(request, deadline)
        return result

    def execute_with_context(self, request, deadline=None):
        """
        Run `request`, returning (PredictionResult, PredictionContext).

        `deadline` is a time.monotonic() value bounding the weather fetch and
        any Monte Carlo batch. Terminal errors raise OrchestrationError.
        """
        ctx = PredictionContext()
        self._last_context = ctx
        start = time.perf_counter()
        loc = request.location
        logger.info(f"[{ctx.request_id}] Prediction request lat={loc.latitude:.4f} lon={loc.longitude:.4f} "
                    f"launch={request.schedule.launch_time}")
        ctx.update('validation', 0.1, 'Checking cache')
        try:
            result, hit = self.cache.compute_once(
                cache_key(request), lambda: self._run(request, ctx, start, deadline))
        except OrchestrationError:
            ctx.metrics.total_time = time.perf_counter() - start
            ctx.metrics.memory_usage = get_rss_memory_mb()
            raise

        if hit:
            ctx.metrics.cache_hit = True
            ctx.update('complete', 1.0, 'Retrieved from cache')
        ctx.metrics.total_time = time.perf_counter() - start
        ctx.metrics.memory_usage = get_rss_memory_mb()
        logger.info(f"[{ctx.request_id}] Prediction done in {ctx.metrics.total_time:.3f}s "
                    f"(cache_hit={hit}, confidence={result.quality_assessment.prediction_confidence:.2f}, "
                    f"fallback={result.fallback_method})")
        return result, ctx

    # Pipeline

    def _run(self, request, ctx, start, deadline):
        """Full pipeline for one cache miss. Returns (result, cacheable)."""
        t0 = time.perf_counter()
        ctx.update('validation', 0.1, 'Validating input parameters')
        outcome = self._validate(request, ctx)
        ctx.metrics.validation_time = time.perf_counter() - t0
        if isinstance(outcome, Err):
            return self._recover(request, ctx, outcome.error, weather=None)

        t0 = time.perf_counter()
        ctx.update('weather', 0.2, 'Preparing weather data')
        outcome = self._fetch_weather(request, deadline)
        ctx.metrics.weather_time = time.perf_counter() - t0
        if isinstance(outcome, Err):
            return self._recover(request, ctx, outcome.error, weather=None)
        weather = outcome.value

        t0 = time.perf_counter()
        ctx.update('calculation', 0.4, 'Executing prediction algorithms')
        outcome = self._calculate(request, weather, deadline)
        ctx.metrics.calculation_time = time.perf_counter() - t0
        if isinstance(outcome, Err):
            return self._recover(request, ctx, outcome.error, weather=weather)
        calc = outcome.value

        t0 = time.perf_counter()
        ctx.update('processing', 0.8, 'Processing results')
        outcome = self._process(request, calc, weather, time.perf_counter() - start)
        ctx.metrics.processing_time = time.perf_counter() - t0
        if isinstance(outcome, Err):
            return self._recover(request, ctx, outcome.error, weather=weather)
        result = outcome.value
        result.quality_assessment.warnings.extend(ctx.warnings)

        ctx.update('complete', 1.0, 'Prediction completed successfully')
        return result, True

    def _validate(self, request, ctx):
        try:
            validation = self.validator.validate(request)
        except Exception as e:
            return Err(OrchestrationError(f"Input validation failed: {e}", 'VALIDATION_FAILED',
                                          'validation', False, ValidationDetail()))
        ctx.warnings.extend(validation.warnings)
        if validation.is_valid:
            return Ok(validation)

        codes = {e.code for e in validation.errors}
        if codes <= RECOVERABLE_CODES:
            code, recoverable = validation.errors[0].code, True
        else:
            code, recoverable = 'VALIDATION_FAILED', False
        message = f"Input validation failed: {', '.join(e.message for e in validation.errors)}"
        return Err(OrchestrationError(message, code, 'validation', recoverable,
                                      ValidationDetail(tuple(validation.errors), tuple(validation.warnings))))

    def _weather_timeout(self, deadline):
        timeout = self.settings.weather_timeout
        if deadline is not None:
            timeout = min(timeout, max(0.0, deadline - time.monotonic()))
        return timeout

    def _fetch_weather(self, request, deadline):
        if self.weather_provider is None:
            return Err(OrchestrationError('No weather provider configured', 'WEATHER_SERVICE_UNAVAILABLE',
                                          'weather', True, WeatherDetail('no provider')))
        launch = parse_timestamp(request.schedule.launch_time)
        timeout = self._weather_timeout(deadline)
        future = self.executor.submit(self.weather_provider.select_weather_data, request.location,
                                      request.schedule.launch_time, WEATHER_WINDOW_MINUTES,
                                      request.options.weather_resolution)
        try:
            raw = future.result(timeout=timeout)
        except FuturesTimeout:
            future.cancel()
            return Err(OrchestrationError(f"Weather data request timed out after {timeout:.1f}s",
                                          'WEATHER_TIMEOUT', 'weather', True,
                                          WeatherDetail('timeout', timeout)))
        except OSError as e:
            return Err(OrchestrationError(f"Weather service unavailable: {e}", 'WEATHER_SERVICE_UNAVAILABLE',
                                          'weather', True, WeatherDetail(str(e))))
        except Exception as e:
            return Err(OrchestrationError(f"Weather provider error: {e}", 'WEATHER_API_ERROR',
                                          'weather', True, WeatherDetail(str(e))))

        try:
            weather = convert_weather_data(raw, default_time=launch)
        except (TypeError, ValueError, KeyError) as e:
            return Err(OrchestrationError(f"Malformed weather data: {e}", 'WEATHER_API_ERROR',
                                          'weather', True, WeatherDetail(str(e))))
        if not weather:
            return Err(OrchestrationError('No weather data available for launch window',
                                          'WEATHER_DATA_POOR_QUALITY', 'weather', True,
                                          WeatherDetail('empty')))
        average_uncertainty = sum(w.uncertainty for w in weather) / len(weather)
        if average_uncertainty > MAX_WEATHER_UNCERTAINTY:
            return Err(OrchestrationError(f"Weather data uncertainty too high ({average_uncertainty:.2f})",
                                          'WEATHER_DATA_POOR_QUALITY', 'weather', True,
                                          WeatherDetail('uncertainty')))

        env = request.environment
        if env is not None and env.temperature_offset:
            weather = [replace(w, temperature=w.temperature + env.temperature_offset) for w in weather]
        self._remember_weather(request.location, weather)
        return Ok(weather)

    def _remember_weather(self, location, weather):
        key = _location_key(location)
        with self._last_weather_lock:
            if key not in self._last_weather and len(self._last_weather) >= LAST_WEATHER_SIZE:
                self._last_weather.pop(next(iter(self._last_weather)))
            self._last_weather[key] = weather

    def _remembered_weather(self, location):
        with self._last_weather_lock:
            return self._last_weather.get(_location_key(location))

    def _calculate(self, request, weather, deadline):
        try:
            return Ok(self.simulate(request, weather, deadline=deadline))
        except OrchestrationError as e:
            return Err(e)
        except (InputContractError, InvalidPhysicalParameters) as e:
            return Err(OrchestrationError(f"Physics validation failed: {e}", 'PHYSICS_VALIDATION_FAILED',
                                          'calculation', True, CalculationDetail(str(e))))
        except MemoryError as e:
            return Err(OrchestrationError('Out of memory during trajectory calculation', 'MEMORY_EXHAUSTED',
                                          'calculation', True, CalculationDetail(str(e))))
        except Exception as e:
            return Err(OrchestrationError(f"Algorithm execution failed: {e}", 'ALGORITHM_EXECUTION_FAILED',
                                          'calculation', True, CalculationDetail(str(e))))

    def simulate(self, request, weather, deadline=None, uncertainty=True, use_terrain=True):
        """
        Burst-site + descent physics for `request` on `weather`.

        Raises OrchestrationError(ALGORITHM_CONVERGENCE_FAILED) when the
        balloon cannot climb at least 100 m; simulator errors propagate.
        """
        loc, balloon = request.location, request.balloon
        launch = parse_timestamp(request.schedule.launch_time)
        profile = wind_profile_from_weather(weather, launch) or WindProfile.calm()
        mean_speed, mean_direction = profile.mean()

        burst = predict_burst_site(BurstSiteInput(
            launch_latitude=loc.latitude,
            launch_longitude=loc.longitude,
            launch_altitude=max(0.0, loc.altitude),
            burst_altitude=balloon.burst_altitude,
            balloon_volume=balloon.initial_volume,
            payload_weight=balloon.payload_weight,
            ascent_rate=balloon.ascent_rate,
            wind_speed=mean_speed,
            wind_direction=mean_direction,
            wind_profile=profile,
            start_time=launch,
        ))
        gained = burst.burst_altitude - max(0.0, loc.altitude)
        if gained < MIN_ALTITUDE_GAIN:
            raise OrchestrationError(f"Balloon only climbed {gained:.0f} m; ascent did not converge",
                                     'ALGORITHM_CONVERGENCE_FAILED', 'calculation', True,
                                     CalculationDetail(f"altitude gain {gained:.1f} m", stage='ascent'))

        descent_input = DescentInput(
            burst_latitude=burst.burst_latitude,
            burst_longitude=burst.burst_longitude,
            burst_altitude=burst.burst_altitude,
            payload_weight=balloon.payload_weight,
            parachute_area=balloon.parachute_area,
            drag_coefficient=balloon.drag_coefficient,
            wind_speed=mean_speed,
            wind_direction=mean_direction,
            max_flight_time=DEFAULT_MAX_FLIGHT_TIME,
            wind_profile=profile,
            start_time=launch + timedelta(seconds=burst.ascent_duration),
        )
        descent = calculate_descent(descent_input)

        terrain_warnings = []
        if use_terrain and self.terrain is not None:
            elevation = self.terrain.landing_elevation(descent.landing_latitude, descent.landing_longitude)
            if elevation and elevation < burst.burst_altitude:
                descent_input = replace(descent_input, landing_altitude=elevation)
                descent = calculate_descent(descent_input)

        launch_wind = profile.at(max(0.0, loc.altitude))
        launch_point = TrajectoryPoint(
            latitude=loc.latitude, longitude=loc.longitude, altitude=max(0.0, loc.altitude),
            timestamp=launch, velocity=0.0, wind_speed=launch_wind[0], wind_direction=launch_wind[1],
            phase='ascent',
        )
        calc = combine_phases(launch_point, burst, descent)
        if not descent.landed:
            calc.warnings.append('Descent did not reach the ground within the maximum flight time')

        if use_terrain and self.terrain is not None:
            assessment = self.terrain.assess(calc.landing_point, calc.confidence)
            if assessment is not None:
                calc.terrain = assessment.analysis.to_dict()
                calc.confidence = assessment.confidence
                terrain_warnings = assessment.warnings
        calc.warnings.extend(terrain_warnings)

        if uncertainty and request.options.include_uncertainty:
            calc.dispersion_radius = self._dispersion(request, descent_input, descent, weather, deadline, calc)
        return calc

    def _dispersion(self, request, descent_input, descent, weather, deadline, calc):
        factor = PRECISION_SAMPLES.get(request.options.calculation_precision, 1.0)
        samples = int(self.settings.monte_carlo_samples * factor)
        if samples <= 0:
            return None
        average_uncertainty = sum(w.uncertainty for w in weather) / len(weather) if weather else 0.1
        wind_error = WindUncertainty().speed_error * (1 + average_uncertainty)
        try:
            if request.options.calculation_precision == 'precise':
                mc = run_descent_monte_carlo(descent_input, WindUncertainty(speed_error=wind_error,
                                                                            altitude_error=500.0),
                                             num_samples=samples, seed=self.settings.seed,
                                             executor=self.executor, deadline=deadline)
                return mc.landing_radius
            mean_speed, mean_direction = descent_input.wind_speed, descent_input.wind_direction
            zone = landing_zone_uncertainty(descent_input.burst_latitude, descent_input.burst_longitude,
                                            mean_speed, mean_direction, wind_error, samples,
                                            descent.descent_duration, seed=self.settings.seed,
                                            deadline=deadline)
            return zone.landing_radius
        except DeadlineExceeded:
            calc.warnings.append('Uncertainty estimation stopped at deadline')
            return None

    def _process(self, request, calc, weather, elapsed):
        try:
            return Ok(process_results(calc, weather, request.options.include_uncertainty, elapsed))
        except Exception as e:
            return Err(OrchestrationError(f"Results processing failed: {e}", 'RESULTS_PROCESSING_FAILED',
                                          'processing', True, ProcessingDetail(str(e))))

    # Recovery

    def _recover(self, request, ctx, error, weather):
        error = handle_prediction_error(error, ctx.status.phase)
        log_error(error, {'request_id': ctx.request_id})
        strategy = classify(error)
        if strategy is None or not strategy.can_recover:
            ctx.update('failed', ctx.status.progress, error.message)
            raise error

        ctx.update('processing', 0.9, 'Attempting recovery')
        profile = wind_profile_from_weather(weather) if weather else None

        def compute(method, options):
            return self._fallback_prediction(request, method, options, weather)

        result = execute_fallback(request, error, strategy, compute=compute, wind_profile=profile)
        result.quality_assessment.warnings.extend(ctx.warnings)
        ctx.update('complete', 1.0, f"Recovered with {result.fallback_method} fallback")
        logger.info(f"[{ctx.request_id}] Recovered from {error.code} using {result.fallback_method}")
        return result, False

    def _fallback_prediction(self, request, method, options, weather):
        """Full physics without Monte Carlo or terrain, on cached or calm weather."""
        launch = parse_timestamp(request.schedule.launch_time)
        warnings = []
        if method == 'cached':
            weather = self._remembered_weather(request.location)
            if not weather:
                raise LookupError('No cached weather for this location')
            warnings.append('Using previously retrieved weather data')
        elif not weather:
            weather = standard_atmosphere_profile(launch, request.balloon.burst_altitude)
            warnings.append('Using standard atmosphere without wind data')

        calc = self.simulate(request, weather, uncertainty=False, use_terrain=False)
        result = process_results(calc, weather, not options.skip_uncertainty)
        result.quality_assessment.warnings.extend(warnings)
        result.fallback_method = method
        return result
