"""
Terrain adjunct: landing-site difficulty from elevation samples.

A TerrainService returns elevation samples around a point. analyze_landing_site()
turns those samples into a 1-10 difficulty rating with risk factors and
recommendations, and TerrainAdjunct wraps the whole thing for the
orchestrator. Any failure of the service leaves the prediction unadjusted.
"""
import json
import logging
import math
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol

import numpy as np

from .classes import GeoPoint
from .winddrift import bearing

logger = logging.getLogger(__name__)

__all__ = [
    'TerrainSample', 'TerrainService', 'StaticTerrainService', 'SlopeCalculation', 'Obstacle',
    'LandingSiteAnalysis', 'TerrainAssessment', 'TerrainAdjunct', 'distance_m', 'slope_between',
    'categorize_steepness', 'terrain_roughness', 'detect_obstacles', 'difficulty_rating',
    'analyze_landing_site', 'terrain_confidence_adjustment', 'DIFFICULTY_DESCRIPTIONS',
]

EARTH_RADIUS_M = 6371000.0

SLOPE_THRESHOLDS = (
    (5, 'flat'),
    (15, 'gentle'),
    (25, 'moderate'),
    (45, 'steep'),
    (70, 'very-steep'),
)

DIFFICULTY_WEIGHTS = {'slope': 0.4, 'roughness': 0.3, 'accessibility': 0.2, 'obstacles': 0.1}

DIFFICULTY_DESCRIPTIONS = {
    1: 'Very Easy - Ideal landing conditions',
    2: 'Easy - Excellent landing site',
    3: 'Easy - Good landing conditions',
    4: 'Moderate - Generally suitable',
    5: 'Moderate - Some challenges present',
    6: 'Challenging - Requires careful approach',
    7: 'Difficult - Significant obstacles present',
    8: 'Very Difficult - High risk landing',
    9: 'Extremely Difficult - Emergency only',
    10: 'Unsuitable - Avoid if possible',
}

OBSTACLE_THRESHOLD = 10.0       # m above local baseline
OBSTACLE_BASELINE_RADIUS = 100.0
OBSTACLE_SEARCH_RADIUS = 500.0
MAX_LANDING_DIFFICULTY = 7

@dataclass(frozen=True)
class TerrainSample:
    latitude: float
    longitude: float
    elevation: float
    slope: float | None = None

class TerrainService(Protocol):
    def sample(self, latitude, longitude, radius_m) -> list:
        ...

class StaticTerrainService:
    """Serves a fixed set of samples, filtered to the requested radius."""
    def __init__(self, samples):
        self.samples = list(samples)

    @classmethod
    def from_file(cls, path):
        """Load samples from a JSON list of {latitude, longitude, elevation, slope?} objects."""
        with open(Path(path)) as f:
            data = json.load(f)
        if not isinstance(data, list):
            raise ValueError(f"Terrain file {path} must contain a list of samples")
        samples = [TerrainSample(float(d['latitude']), float(d['longitude']), float(d['elevation']),
                                 float(d['slope']) if d.get('slope') is not None else None)
                   for d in data]
        logger.info(f"Loaded {len(samples)} terrain samples from {path}")
        return cls(samples)

    def sample(self, latitude, longitude, radius_m):
        return [s for s in self.samples
                if distance_m(latitude, longitude, s.latitude, s.longitude) <= radius_m]

def distance_m(lat1, lon1, lat2, lon2):
    """Haversine distance in meters."""
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    dphi = math.radians(lat2 - lat1)
    dlmb = math.radians(lon2 - lon1)
    a = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlmb / 2) ** 2
    return EARTH_RADIUS_M * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

@dataclass(frozen=True)
class SlopeCalculation:
    slope_angle: float      # degrees, absolute
    slope_direction: float  # bearing from first to second point
    gradient: float         # rise over run, signed
    steepness: str

def categorize_steepness(slope_angle):
    for limit, name in SLOPE_THRESHOLDS:
        if slope_angle < limit:
            return name
    return 'cliff'

def slope_between(a, b):
    d = distance_m(a.latitude, a.longitude, b.latitude, b.longitude)
    if d == 0:
        return SlopeCalculation(0.0, 0.0, 0.0, 'flat')
    gradient = (b.elevation - a.elevation) / d
    angle = abs(math.degrees(math.atan(gradient)))
    return SlopeCalculation(
        slope_angle=angle,
        slope_direction=bearing(GeoPoint(a.latitude, a.longitude), GeoPoint(b.latitude, b.longitude)),
        gradient=gradient,
        steepness=categorize_steepness(angle),
    )

def terrain_roughness(samples):
    """Population std of elevations normalised by 50 m, capped at 1."""
    if len(samples) < 2:
        return 0.0
    std = float(np.std([s.elevation for s in samples]))
    return min(std / 50, 1.0)

@dataclass(frozen=True)
class Obstacle:
    kind: str               # hill | mountain
    height: float           # m above local baseline
    position: TerrainSample
    radius: float = 50.0
    clearance_required: float = 0.0

    def to_dict(self):
        return {'kind': self.kind, 'height': self.height, 'latitude': self.position.latitude,
                'longitude': self.position.longitude, 'elevation': self.position.elevation,
                'radius': self.radius, 'clearance_required': self.clearance_required}

def detect_obstacles(samples, threshold=OBSTACLE_THRESHOLD):
    """Samples standing at least `threshold` m above the mean of their 100 m neighbourhood."""
    obstacles = []
    for s in samples:
        neighbours = [p.elevation for p in samples
                      if 0 < distance_m(s.latitude, s.longitude, p.latitude, p.longitude) <= OBSTACLE_BASELINE_RADIUS]
        if not neighbours:
            continue
        height = s.elevation - sum(neighbours) / len(neighbours)
        if height >= threshold:
            obstacles.append(Obstacle(kind='mountain' if height > 100 else 'hill', height=height,
                                      position=s, clearance_required=height + 20))
    return obstacles

def difficulty_rating(slope, roughness, accessibility, obstacle_count):
    w = DIFFICULTY_WEIGHTS
    score = (min(slope / 45, 1.0) * w['slope'] +
             roughness * w['roughness'] +
             (1 - accessibility) * w['accessibility'] +
             min(obstacle_count / 5, 1.0) * w['obstacles'])
    rating = max(1, min(10, round(1 + score * 9)))
    return rating, DIFFICULTY_DESCRIPTIONS.get(rating, 'Unknown difficulty')

def _accessibility(average_slope, roughness):
    return (max(0.0, 1 - average_slope / 30) + max(0.0, 1 - roughness)) / 2

def _risk_factors(slope, roughness, accessibility, obstacles):
    risks = []
    if slope > 25:
        risks.append('Steep terrain - landing approach may be difficult')
    if roughness > 0.7:
        risks.append('Rough terrain - potential for payload damage')
    if accessibility < 0.3:
        risks.append('Poor accessibility - recovery may be challenging')
    if len(obstacles) > 2:
        risks.append('Multiple terrain obstacles - increased collision risk')
    if any(o.height > 50 for o in obstacles):
        risks.append('Tall terrain features - may affect descent trajectory')
    return risks

def _recommendations(slope, obstacles, rating):
    if rating <= 3:
        recs = ['Excellent landing site - no special precautions needed']
    elif rating <= 6:
        recs = ['Monitor weather conditions closely', 'Ensure recovery team has appropriate equipment']
    else:
        recs = ['Consider alternative landing sites if possible', 'Use experienced recovery team',
                'Monitor descent carefully for trajectory adjustments']
    if slope > 20:
        recs.append('Account for slope in recovery vehicle planning')
    if obstacles:
        recs.append('Brief recovery team on terrain obstacles')
    return recs

@dataclass
class LandingSiteAnalysis:
    position: TerrainSample
    difficulty_rating: int
    difficulty_description: str
    suitability_score: float
    accessibility_score: float
    average_slope: float
    max_slope: float
    roughness: float
    obstacles: list = field(default_factory=list)
    risk_factors: list = field(default_factory=list)
    recommendations: list = field(default_factory=list)

    def to_dict(self):
        return {
            'elevation': self.position.elevation,
            'difficulty_rating': self.difficulty_rating,
            'difficulty_description': self.difficulty_description,
            'suitability_score': self.suitability_score,
            'accessibility_score': self.accessibility_score,
            'average_slope': self.average_slope,
            'max_slope': self.max_slope,
            'roughness': self.roughness,
            'obstacles': [o.to_dict() for o in self.obstacles],
            'risk_factors': list(self.risk_factors),
            'recommendations': list(self.recommendations),
        }

def analyze_landing_site(position: TerrainSample, surrounding):
    """Difficulty, suitability, risk factors and recommendations for one landing point."""
    if not surrounding:
        raise ValueError("At least one surrounding terrain sample is required")
    slopes = [slope_between(position, s).slope_angle for s in surrounding]
    average_slope = sum(slopes) / len(slopes)
    roughness = terrain_roughness(surrounding)
    accessibility = _accessibility(average_slope, roughness)

    nearby = [o for o in detect_obstacles(surrounding)
              if distance_m(position.latitude, position.longitude,
                            o.position.latitude, o.position.longitude) <= OBSTACLE_SEARCH_RADIUS]
    rating, description = difficulty_rating(average_slope, roughness, accessibility, len(nearby))
    return LandingSiteAnalysis(
        position=position,
        difficulty_rating=rating,
        difficulty_description=description,
        suitability_score=max(0.0, (11 - rating) / 10),
        accessibility_score=accessibility,
        average_slope=average_slope,
        max_slope=max(slopes),
        roughness=roughness,
        obstacles=nearby,
        risk_factors=_risk_factors(average_slope, roughness, accessibility, nearby),
        recommendations=_recommendations(average_slope, nearby, rating),
    )

def terrain_confidence_adjustment(base_confidence, samples):
    """Scale confidence down for rugged terrain (large relief, steep average slope)."""
    if not samples:
        return base_confidence
    elevations = [s.elevation for s in samples]
    variation = max(elevations) - min(elevations)
    average_slope = sum(s.slope or 0.0 for s in samples) / len(samples)
    factor = 1.0
    if variation > 1000:
        factor *= 0.8
    if average_slope > 15:
        factor *= 0.9
    if variation > 2000:
        factor *= 0.7
    if average_slope > 30:
        factor *= 0.8
    return base_confidence * factor

def _nearest(samples, latitude, longitude):
    return min(samples, key=lambda s: distance_m(latitude, longitude, s.latitude, s.longitude))

@dataclass
class TerrainAssessment:
    analysis: LandingSiteAnalysis
    landing_elevation: float
    confidence: float
    warnings: list = field(default_factory=list)

class TerrainAdjunct:
    """
    Landing-site terrain assessment on top of a TerrainService.

    Every public method degrades gracefully: if the service raises or
    returns nothing, callers get None (or their input back) and the
    prediction stays unadjusted.
    """
    def __init__(self, service, radius=1000.0, max_difficulty=MAX_LANDING_DIFFICULTY):
        self.service = service
        self.radius = radius
        self.max_difficulty = max_difficulty

    def _samples(self, latitude, longitude):
        try:
            samples = self.service.sample(latitude, longitude, self.radius)
        except Exception as e:
            logger.warning(f"Terrain service failed at ({latitude:.4f}, {longitude:.4f}): {e}")
            return []
        return list(samples or [])

    def landing_elevation(self, latitude, longitude):
        """Ground elevation at the point, or None when the service has no data."""
        samples = self._samples(latitude, longitude)
        if not samples:
            return None
        return max(0.0, _nearest(samples, latitude, longitude).elevation)

    def assess(self, landing_point, base_confidence):
        samples = self._samples(landing_point[0], landing_point[1])
        if not samples:
            return None
        nearest = _nearest(samples, landing_point[0], landing_point[1])
        position = TerrainSample(landing_point[0], landing_point[1], nearest.elevation, nearest.slope)
        surrounding = [s for s in samples if s is not nearest] or samples
        analysis = analyze_landing_site(position, surrounding)

        warnings = [f"Terrain: {risk}" for risk in analysis.risk_factors]
        if analysis.difficulty_rating > self.max_difficulty:
            warnings.append(f"Landing site terrain rated {analysis.difficulty_rating}/10: "
                            f"{analysis.difficulty_description}")
        return TerrainAssessment(
            analysis=analysis,
            landing_elevation=max(0.0, nearest.elevation),
            confidence=terrain_confidence_adjustment(base_confidence, samples),
            warnings=warnings,
        )

    def filter_landing_sites(self, points):
        """Keep points whose terrain rates at most `max_difficulty`; unknown terrain is kept."""
        kept = []
        for p in points:
            samples = self._samples(p[0], p[1])
            if not samples:
                kept.append(p)
                continue
            nearest = _nearest(samples, p[0], p[1])
            position = TerrainSample(p[0], p[1], nearest.elevation, nearest.slope)
            surrounding = [s for s in samples if s is not nearest] or samples
            if analyze_landing_site(position, surrounding).difficulty_rating <= self.max_difficulty:
                kept.append(p)
        return kept
