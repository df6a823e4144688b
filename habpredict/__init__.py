"""
HABPREDICT
=====

High-altitude balloon trajectory prediction engine.

Modules
-------------------
atmosphere      Standard atmosphere (density, pressure, temperature)
winddrift       Great-circle position updates and wind interpolation
ascent          Ascent simulator
burst           Burst-site prediction with early-burst risk
descent         Parachute descent and landing-site prediction
montecarlo      Monte Carlo dispersion estimates
results         Turns phase output into a PredictionResult
recovery        Error classification and fallback predictions
validation      Request validation
terrain         Landing-site terrain difficulty
cache           TTL prediction cache with single-flight computation
orchestrator    PredictionOrchestrator, the engine's entry point
"""

from .classes import *
from .errors import *
from .prediction import *
from .weather import *
from .orchestrator import *
