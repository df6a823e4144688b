"""
Public request and result types of the prediction engine.

PredictionRequest is what callers hand to the orchestrator; PredictionResult
is the serialisable artifact it returns (to_dict() is the wire format used by
the HTTP API).
"""
from dataclasses import dataclass, field

from .classes import GeoPoint, Trajectory

__all__ = [
    'Location', 'LaunchSchedule', 'BalloonConfiguration', 'EnvironmentalParameters',
    'PredictionOptions', 'PredictionRequest', 'BurstSite', 'LandingSite', 'FlightMetrics',
    'WeatherImpact', 'QualityAssessment', 'PredictionResult', 'ProcessingStatus',
    'PerformanceMetrics',
]

@dataclass(frozen=True)
class Location:
    latitude: float
    longitude: float
    altitude: float = 0.0

    def to_point(self):
        return GeoPoint(self.latitude, self.longitude, self.altitude)

@dataclass(frozen=True)
class LaunchSchedule:
    launch_time: str               # ISO 8601
    time_zone: str = 'UTC'
    delay_tolerance: float = 0.0   # minutes

@dataclass(frozen=True)
class BalloonConfiguration:
    balloon_type: str
    initial_volume: float          # m³
    burst_altitude: float          # m
    ascent_rate: float             # m/s
    payload_weight: float          # kg
    drag_coefficient: float        # parachute Cd during descent
    parachute_area: float = 1.0    # m²

@dataclass(frozen=True)
class EnvironmentalParameters:
    weather_source: str = 'Auto-select'
    wind_model: str = 'Auto'
    temperature_offset: float = 0.0
    humidity_factor: float = 50.0

@dataclass(frozen=True)
class PredictionOptions:
    include_uncertainty: bool = True
    weather_resolution: str = 'medium'       # high | medium | low
    calculation_precision: str = 'standard'  # fast | standard | precise

@dataclass(frozen=True)
class PredictionRequest:
    location: Location
    schedule: LaunchSchedule
    balloon: BalloonConfiguration
    environment: EnvironmentalParameters | None = None
    options: PredictionOptions = PredictionOptions()

    def cache_fields(self):
        """Fields that identify a prediction, rounded to reduce misses from float noise."""
        loc, b, o = self.location, self.balloon, self.options
        env = self.environment
        env_part = (f"{env.weather_source}_{env.wind_model}_{env.temperature_offset:.1f}_{env.humidity_factor:.0f}"
                    if env else "none")
        return (f"{loc.latitude:.4f}_{loc.longitude:.4f}_{loc.altitude:.1f}_{self.schedule.launch_time}_"
                f"{b.balloon_type}_{b.initial_volume:.3f}_{b.burst_altitude:.1f}_{b.ascent_rate:.2f}_"
                f"{b.payload_weight:.3f}_{b.drag_coefficient:.3f}_{b.parachute_area:.3f}_"
                f"{env_part}_{o.include_uncertainty}_{o.weather_resolution}_{o.calculation_precision}")

    @classmethod
    def from_dict(cls, data):
        """
        Build a request from the JSON body accepted by POST /predict.

        Raises KeyError/TypeError/ValueError on missing or mistyped fields;
        range checks are left to the validator.
        """
        loc = data['location']
        sched = data['schedule']
        balloon = data['balloon']
        env = data.get('environment')
        opts = data.get('options') or {}
        return cls(
            location=Location(float(loc['latitude']), float(loc['longitude']), float(loc.get('altitude', 0.0))),
            schedule=LaunchSchedule(
                launch_time=str(sched['launch_time']),
                time_zone=str(sched.get('time_zone', 'UTC')),
                delay_tolerance=float(sched.get('delay_tolerance', 0.0)),
            ),
            balloon=BalloonConfiguration(
                balloon_type=str(balloon.get('balloon_type', 'Latex Meteorological')),
                initial_volume=float(balloon['initial_volume']),
                burst_altitude=float(balloon['burst_altitude']),
                ascent_rate=float(balloon['ascent_rate']),
                payload_weight=float(balloon['payload_weight']),
                drag_coefficient=float(balloon['drag_coefficient']),
                parachute_area=float(balloon.get('parachute_area', 1.0)),
            ),
            environment=EnvironmentalParameters(
                weather_source=str(env.get('weather_source', 'Auto-select')),
                wind_model=str(env.get('wind_model', 'Auto')),
                temperature_offset=float(env.get('temperature_offset', 0.0)),
                humidity_factor=float(env.get('humidity_factor', 50.0)),
            ) if env else None,
            options=PredictionOptions(
                include_uncertainty=bool(opts.get('include_uncertainty', True)),
                weather_resolution=str(opts.get('weather_resolution', 'medium')),
                calculation_precision=str(opts.get('calculation_precision', 'standard')),
            ),
        )

@dataclass
class BurstSite:
    location: GeoPoint
    altitude: float
    uncertainty: float      # km radius
    confidence: float

    def to_dict(self):
        return {'location': self.location.to_dict(), 'altitude': self.altitude,
                'uncertainty': self.uncertainty, 'confidence': self.confidence}

@dataclass
class LandingSite:
    location: GeoPoint
    uncertainty: float                  # km radius
    confidence: float
    dispersion_radius: float | None = None  # m, Monte Carlo 95th percentile
    terrain: dict | None = None

    def to_dict(self):
        return {'location': self.location.to_dict(), 'uncertainty': self.uncertainty,
                'confidence': self.confidence, 'dispersion_radius': self.dispersion_radius,
                'terrain': self.terrain}

@dataclass
class FlightMetrics:
    duration: float           # minutes
    max_altitude: float       # m
    total_distance: float     # km
    average_wind_speed: float # m/s

    def to_dict(self):
        return {'duration': self.duration, 'max_altitude': self.max_altitude,
                'total_distance': self.total_distance, 'average_wind_speed': self.average_wind_speed}

@dataclass
class WeatherImpact:
    wind_drift: float         # km
    temperature_effect: float # °C mean deviation from standard lapse
    pressure_effect: float    # m of burst-altitude variance

    def to_dict(self):
        return {'wind_drift': self.wind_drift, 'temperature_effect': self.temperature_effect,
                'pressure_effect': self.pressure_effect}

@dataclass
class QualityAssessment:
    weather_data_quality: str
    prediction_confidence: float
    warnings: list = field(default_factory=list)
    recommendations: list = field(default_factory=list)

    def to_dict(self):
        return {'weather_data_quality': self.weather_data_quality,
                'prediction_confidence': self.prediction_confidence,
                'warnings': list(self.warnings), 'recommendations': list(self.recommendations)}

@dataclass
class PredictionResult:
    trajectory: Trajectory
    burst_site: BurstSite
    landing_site: LandingSite
    flight_metrics: FlightMetrics
    weather_impact: WeatherImpact
    quality_assessment: QualityAssessment
    fallback_method: str | None = None

    def to_dict(self):
        return {
            'trajectory': [p.to_dict() for p in self.trajectory],
            'burst_site': self.burst_site.to_dict(),
            'landing_site': self.landing_site.to_dict(),
            'flight_metrics': self.flight_metrics.to_dict(),
            'weather_impact': self.weather_impact.to_dict(),
            'quality_assessment': self.quality_assessment.to_dict(),
            'fallback_method': self.fallback_method,
        }

@dataclass
class ProcessingStatus:
    phase: str = 'validation'
    progress: float = 0.0
    message: str = 'Idle'

    def to_dict(self):
        return {'phase': self.phase, 'progress': self.progress, 'message': self.message}

@dataclass
class PerformanceMetrics:
    total_time: float = 0.0        # seconds
    validation_time: float = 0.0
    weather_time: float = 0.0
    calculation_time: float = 0.0
    processing_time: float = 0.0
    cache_hit: bool = False
    memory_usage: float | None = None  # RSS in MB

    def to_dict(self):
        return {
            'total_time': self.total_time, 'validation_time': self.validation_time,
            'weather_time': self.weather_time, 'calculation_time': self.calculation_time,
            'processing_time': self.processing_time, 'cache_hit': self.cache_hit,
            'memory_usage': self.memory_usage,
        }
