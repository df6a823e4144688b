"""
Request validation.

DefaultInputValidator checks every section of a PredictionRequest and
collects all problems instead of stopping at the first one. Errors are
ValidationIssue records with a stable code; warnings are plain strings that
end up in the result's quality assessment.
"""
import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from .errors import ValidationIssue
from .weather import parse_timestamp

__all__ = [
    'ValidationResult', 'DefaultInputValidator', 'BALLOON_TYPES', 'WEATHER_SOURCES',
    'WIND_MODELS', 'WEATHER_RESOLUTIONS', 'CALCULATION_PRECISIONS', 'RECOVERABLE_CODES',
    'is_in_conus',
]

BALLOON_TYPES = ('Latex Meteorological', 'HDPE', 'Custom')
WEATHER_SOURCES = ('Open-Meteo (Recommended)', 'NOAA GFS', 'Auto-select')
WIND_MODELS = ('GFS (Global)', 'HRRR (CONUS only)', 'Auto')
WEATHER_RESOLUTIONS = ('high', 'medium', 'low')
CALCULATION_PRECISIONS = ('fast', 'standard', 'precise')

# Validation codes the orchestrator may recover from with a degraded run
RECOVERABLE_CODES = frozenset({'LAUNCH_TIME_TOO_FAR', 'HRRR_OUTSIDE_CONUS'})

MAX_LEAD_SECONDS = 7 * 24 * 3600
SHORT_LEAD_SECONDS = 30 * 60

@dataclass
class ValidationResult:
    is_valid: bool = True
    errors: list = field(default_factory=list)
    warnings: list = field(default_factory=list)

    def add_error(self, field_name, message, code):
        self.errors.append(ValidationIssue(field_name, message, code))
        self.is_valid = False

    def merge(self, other):
        self.errors.extend(other.errors)
        self.warnings.extend(other.warnings)
        self.is_valid = not self.errors
        return self

    @property
    def codes(self):
        return [e.code for e in self.errors]

    def to_dict(self):
        return {'is_valid': self.is_valid, 'errors': [e.to_dict() for e in self.errors],
                'warnings': list(self.warnings)}

def _is_number(value):
    return isinstance(value, (int, float)) and not isinstance(value, bool) and not math.isnan(value)

def is_in_conus(latitude, longitude):
    return 24.7 <= latitude <= 49.4 and -125.0 <= longitude <= -66.9

class DefaultInputValidator:
    """
    Validates PredictionRequest objects.

    `clock` returns the current aware datetime; tests pin it to make
    launch-time checks deterministic.
    """
    def __init__(self, clock=None):
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    def validate(self, request):
        result = ValidationResult()
        now = self.clock()
        result.merge(self.validate_location(request.location))
        result.merge(self.validate_schedule(request.schedule, now))
        result.merge(self.validate_balloon(request.balloon))
        if request.environment is not None:
            result.merge(self.validate_environment(request.environment))
        result.merge(self.validate_options(request.options))
        result.merge(self.cross_validate(request, now))
        return result

    def validate_location(self, location):
        result = ValidationResult()
        lat, lon, alt = location.latitude, location.longitude, location.altitude
        if not _is_number(lat):
            result.add_error('location.latitude', 'Latitude must be a valid number', 'INVALID_LATITUDE_TYPE')
        elif not -90 <= lat <= 90:
            result.add_error('location.latitude', 'Latitude must be between -90 and 90 degrees',
                             'LATITUDE_OUT_OF_RANGE')
        if not _is_number(lon):
            result.add_error('location.longitude', 'Longitude must be a valid number', 'INVALID_LONGITUDE_TYPE')
        elif not -180 <= lon <= 180:
            result.add_error('location.longitude', 'Longitude must be between -180 and 180 degrees',
                             'LONGITUDE_OUT_OF_RANGE')
        if alt is not None:
            if not _is_number(alt):
                result.add_error('location.altitude', 'Altitude must be a valid number', 'INVALID_ALTITUDE_TYPE')
            elif not -500 <= alt <= 6000:
                result.add_error('location.altitude', 'Altitude must be between -500 and 6000 meters',
                                 'ALTITUDE_OUT_OF_RANGE')
            elif alt > 3000:
                result.warnings.append('High altitude launch location may affect weather data accuracy')

        if _is_number(lat):
            if abs(lat) < 60 and (alt is None or alt <= 0):
                result.warnings.append('Ocean launch location may have limited weather data coverage')
            if abs(lat) > 70:
                result.warnings.append('Polar launch location may have limited weather model accuracy')
        return result

    def validate_schedule(self, schedule, now):
        result = ValidationResult()
        if not schedule.launch_time or not isinstance(schedule.launch_time, str):
            result.add_error('schedule.launch_time', 'Launch time is required and must be a string',
                             'MISSING_LAUNCH_TIME')
        else:
            try:
                launch = parse_timestamp(schedule.launch_time)
            except ValueError:
                launch = None
                result.add_error('schedule.launch_time', 'Launch time must be a valid ISO 8601 date string',
                                 'INVALID_LAUNCH_TIME_FORMAT')
            if launch is not None:
                lead = (launch - now).total_seconds()
                if lead < 0:
                    result.add_error('schedule.launch_time', 'Launch time cannot be in the past',
                                     'LAUNCH_TIME_IN_PAST')
                if lead > MAX_LEAD_SECONDS:
                    result.add_error('schedule.launch_time', 'Launch time cannot be more than 7 days in the future',
                                     'LAUNCH_TIME_TOO_FAR')
                if lead < SHORT_LEAD_SECONDS:
                    result.warnings.append('Launch time is very soon - weather data may not be current')

        if not schedule.time_zone or not isinstance(schedule.time_zone, str):
            result.add_error('schedule.time_zone', 'Time zone is required and must be a string',
                             'MISSING_TIME_ZONE')
        else:
            try:
                ZoneInfo(schedule.time_zone)
            except (ZoneInfoNotFoundError, ValueError):
                result.add_error('schedule.time_zone', 'Invalid time zone identifier', 'INVALID_TIME_ZONE')

        tolerance = schedule.delay_tolerance
        if tolerance is not None:
            if not _is_number(tolerance):
                result.add_error('schedule.delay_tolerance', 'Delay tolerance must be a valid number',
                                 'INVALID_DELAY_TOLERANCE')
            elif not 0 <= tolerance <= 240:
                result.add_error('schedule.delay_tolerance', 'Delay tolerance must be between 0 and 240 minutes',
                                 'DELAY_TOLERANCE_OUT_OF_RANGE')
        return result

    def validate_balloon(self, balloon):
        result = ValidationResult()
        if balloon.balloon_type not in BALLOON_TYPES:
            result.add_error('balloon.balloon_type', f"Balloon type must be one of: {', '.join(BALLOON_TYPES)}",
                             'INVALID_BALLOON_TYPE')

        # (field, value, low, high, low inclusive, message, type code, range code)
        checks = [
            ('initial_volume', balloon.initial_volume, 0, 1000, False,
             'Initial volume must be between 0 and 1000 cubic meters',
             'INVALID_INITIAL_VOLUME', 'INITIAL_VOLUME_OUT_OF_RANGE'),
            ('burst_altitude', balloon.burst_altitude, 1000, 60000, True,
             'Burst altitude must be between 1000 and 60000 meters',
             'INVALID_BURST_ALTITUDE', 'BURST_ALTITUDE_OUT_OF_RANGE'),
            ('ascent_rate', balloon.ascent_rate, 0, 10, False,
             'Ascent rate must be between 0 and 10 meters per second',
             'INVALID_ASCENT_RATE', 'ASCENT_RATE_OUT_OF_RANGE'),
            ('payload_weight', balloon.payload_weight, 0, 50, False,
             'Payload weight must be between 0 and 50 kilograms',
             'INVALID_PAYLOAD_WEIGHT', 'PAYLOAD_WEIGHT_OUT_OF_RANGE'),
            ('drag_coefficient', balloon.drag_coefficient, 0, 2.0, False,
             'Drag coefficient must be between 0 and 2.0',
             'INVALID_DRAG_COEFFICIENT', 'DRAG_COEFFICIENT_OUT_OF_RANGE'),
            ('parachute_area', balloon.parachute_area, 0, 100, False,
             'Parachute area must be between 0 and 100 square meters',
             'INVALID_PARACHUTE_AREA', 'PARACHUTE_AREA_OUT_OF_RANGE'),
        ]
        for name, value, low, high, inclusive, message, type_code, range_code in checks:
            label = name.replace('_', ' ').capitalize()
            if not _is_number(value):
                result.add_error(f'balloon.{name}', f'{label} must be a valid number', type_code)
            elif value > high or value < low or (value == low and not inclusive):
                result.add_error(f'balloon.{name}', message, range_code)

        if _is_number(balloon.burst_altitude) and _is_number(balloon.ascent_rate) and balloon.ascent_rate > 0:
            ascent_minutes = balloon.burst_altitude / balloon.ascent_rate / 60
            if ascent_minutes < 30:
                result.warnings.append('Very fast ascent rate may result in less accurate predictions')
            if ascent_minutes > 240:
                result.warnings.append('Very slow ascent rate may encounter changing weather conditions')
        return result

    def validate_environment(self, env):
        result = ValidationResult()
        if env.weather_source not in WEATHER_SOURCES:
            result.add_error('environment.weather_source',
                             f"Weather source must be one of: {', '.join(WEATHER_SOURCES)}", 'INVALID_WEATHER_SOURCE')
        if env.wind_model not in WIND_MODELS:
            result.add_error('environment.wind_model',
                             f"Wind model must be one of: {', '.join(WIND_MODELS)}", 'INVALID_WIND_MODEL')
        if not _is_number(env.temperature_offset):
            result.add_error('environment.temperature_offset', 'Temperature offset must be a valid number',
                             'INVALID_TEMPERATURE_OFFSET')
        elif not -10 <= env.temperature_offset <= 10:
            result.add_error('environment.temperature_offset',
                             'Temperature offset must be between -10 and 10 degrees Celsius',
                             'TEMPERATURE_OFFSET_OUT_OF_RANGE')
        if not _is_number(env.humidity_factor):
            result.add_error('environment.humidity_factor', 'Humidity factor must be a valid number',
                             'INVALID_HUMIDITY_FACTOR')
        elif not 0 <= env.humidity_factor <= 100:
            result.add_error('environment.humidity_factor', 'Humidity factor must be between 0 and 100 percent',
                             'HUMIDITY_FACTOR_OUT_OF_RANGE')
        return result

    def validate_options(self, options):
        result = ValidationResult()
        if not isinstance(options.include_uncertainty, bool):
            result.add_error('options.include_uncertainty', 'Include uncertainty must be a boolean value',
                             'INVALID_INCLUDE_UNCERTAINTY')
        if options.weather_resolution not in WEATHER_RESOLUTIONS:
            result.add_error('options.weather_resolution',
                             f"Weather resolution must be one of: {', '.join(WEATHER_RESOLUTIONS)}",
                             'INVALID_WEATHER_RESOLUTION')
        if options.calculation_precision not in CALCULATION_PRECISIONS:
            result.add_error('options.calculation_precision',
                             f"Calculation precision must be one of: {', '.join(CALCULATION_PRECISIONS)}",
                             'INVALID_CALCULATION_PRECISION')
        if options.weather_resolution == 'high' and options.calculation_precision == 'precise':
            result.warnings.append('High resolution weather data with precise calculations may take longer to process')
        return result

    def cross_validate(self, request, now):
        result = ValidationResult()
        env, loc, balloon = request.environment, request.location, request.balloon
        if env is not None and env.wind_model == 'HRRR (CONUS only)':
            if _is_number(loc.latitude) and _is_number(loc.longitude) and not is_in_conus(loc.latitude, loc.longitude):
                result.add_error('environment.wind_model',
                                 'HRRR wind model is only available for CONUS (Continental United States)',
                                 'HRRR_OUTSIDE_CONUS')

        if _is_number(balloon.initial_volume) and _is_number(balloon.payload_weight) and balloon.payload_weight > 0:
            if balloon.initial_volume / balloon.payload_weight < 0.5:
                result.warnings.append('Low balloon volume to payload weight ratio may result in poor ascent performance')

        try:
            hours = (parse_timestamp(request.schedule.launch_time) - now).total_seconds() / 3600
        except (TypeError, ValueError):
            hours = None
        if hours is not None and hours < 6 and request.options.weather_resolution == 'low':
            result.warnings.append('Low weather resolution may not be optimal for near-term launches')
        return result
