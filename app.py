"""
Flask WSGI application serving the HABPREDICT REST API.

Provides endpoints for:
- Trajectory prediction (POST /predict)
- Status and metrics of the most recent prediction (/predict/status, /predict/metrics)
- Cache and process status (/cache-status)
- Liveness (/health)

One PredictionOrchestrator is created per worker process at import time.
Weather comes from the JSON profile named by HABPREDICT_WEATHER_PROFILE; with
none configured every prediction runs through the recovery path.
"""
from flask import Flask, jsonify, request, make_response
from flask_cors import CORS
from flask_compress import Compress
import logging
import os
import time

from habpredict.config import load_settings, configure_logging
from habpredict.errors import OrchestrationError
from habpredict.orchestrator import PredictionOrchestrator, get_rss_memory_mb
from habpredict.prediction import PredictionRequest
from habpredict.recovery import user_friendly_message
from habpredict.terrain import StaticTerrainService
from habpredict.weather import StaticWeatherProvider

app = Flask(__name__)
CORS(app)
Compress(app)

# Suppress polling endpoint access logs (status is polled while a prediction runs)
class StatusLogFilter(logging.Filter):
    def filter(self, record):
        message = record.getMessage()
        return '/predict/status' not in message and '/health' not in message

logging.getLogger('werkzeug').addFilter(StatusLogFilter())
logging.getLogger('gunicorn.access').addFilter(StatusLogFilter())

settings = load_settings()
configure_logging(settings.log_level)

def _build_orchestrator(settings):
    weather = None
    if settings.weather_profile:
        try:
            weather = StaticWeatherProvider.from_file(settings.weather_profile)
        except (OSError, ValueError) as e:
            print(f"WARNING: Could not load weather profile {settings.weather_profile}: {e}", flush=True)
    else:
        print("WARNING: HABPREDICT_WEATHER_PROFILE not set - predictions will use fallback models", flush=True)
    terrain = None
    if settings.terrain_file:
        try:
            terrain = StaticTerrainService.from_file(settings.terrain_file)
        except (OSError, ValueError) as e:
            print(f"WARNING: Could not load terrain samples {settings.terrain_file}: {e}", flush=True)
    return PredictionOrchestrator(weather_provider=weather, terrain=terrain, settings=settings)

orchestrator = _build_orchestrator(settings)

def get_arg(args, key, type_func=float, default=None, required=True):
    """Parse and validate request argument with type conversion and NaN/Inf checks."""
    val = args.get(key, default)
    if required and val is None:
        raise ValueError(f"Missing required parameter: {key}")
    if val is None:
        return None
    try:
        result = type_func(val)
        # Reject NaN/Inf: comparisons with inf always return False, so this catches all non-finite values
        if isinstance(result, (int, float)) and not (float('-inf') < result < float('inf')):
            raise ValueError(f"Parameter {key} is not a finite number")
        return result
    except (ValueError, TypeError) as e:
        raise ValueError(f"Invalid parameter {key}: {e}")

@app.route('/health')
def health():
    return jsonify({"status": "ok"})

@app.route('/predict', methods=['POST'])
def predict():
    worker_pid = os.getpid()
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return make_response(jsonify({"error": "Request body must be a JSON object"}), 400)
    try:
        prediction_request = PredictionRequest.from_dict(data)
        timeout = get_arg(request.args, 'timeout', required=False)
    except KeyError as e:
        return make_response(jsonify({"error": f"Missing required field: {e.args[0]}"}), 400)
    except (TypeError, ValueError) as e:
        return make_response(jsonify({"error": str(e)}), 400)
    if timeout is not None and timeout <= 0:
        return make_response(jsonify({"error": "Timeout must be positive"}), 400)

    loc = prediction_request.location
    print(f"INFO: [WORKER {worker_pid}] Predict: lat={loc.latitude}, lon={loc.longitude}, "
          f"launch={prediction_request.schedule.launch_time}, "
          f"burst={prediction_request.balloon.burst_altitude}", flush=True)
    deadline = time.monotonic() + timeout if timeout is not None else None
    try:
        result, ctx = orchestrator.execute_with_context(prediction_request, deadline=deadline)
    except OrchestrationError as e:
        body = e.to_dict()
        body['error'] = user_friendly_message(e)
        return make_response(jsonify(body), 400 if e.phase == 'validation' else 500)
    except Exception as e:
        print(f"ERROR: predict failed: {e}", flush=True)
        return make_response(jsonify({"error": "Prediction failed"}), 500)

    body = result.to_dict()
    body['metrics'] = ctx.metrics.to_dict()
    return jsonify(body)

@app.route('/predict/status')
def status():
    """Status of the most recent prediction on this worker."""
    return jsonify(orchestrator.get_status().to_dict())

@app.route('/predict/metrics')
def metrics():
    return jsonify(orchestrator.get_metrics().to_dict())

@app.route('/cache-status')
def cache_status():
    """Cache and memory status for ONE worker process."""
    return jsonify({
        'cache': orchestrator.cache.stats(),
        'memory_mb': get_rss_memory_mb(),
        'worker_pid': os.getpid(),
    })
