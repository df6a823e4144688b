"""
Gunicorn configuration for HABPREDICT deployment.

ARCHITECTURE: Multi-process + multi-threaded
- 4 worker processes (isolated memory, crash isolation)
- 4 threads per worker; predictions are CPU-bound so extra threads mostly
  help concurrent status/metrics polling
- Each worker has its own orchestrator and prediction cache (not shared across processes)
"""
import os
import logging

# Network binding
bind = f"0.0.0.0:{os.getenv('PORT', '8000')}"
backlog = 512

# Worker configuration
workers = int(os.getenv('HABPREDICT_WORKERS', '4'))
worker_class = 'gthread'
threads = 4

# Worker lifecycle
max_requests = 800  # Restart worker after handling this many requests (prevents memory leaks)
max_requests_jitter = 80

# Timeouts
timeout = 120  # Precise Monte Carlo runs are the slowest path
keepalive = 30

# Application loading
preload_app = False  # Each worker builds its own orchestrator and thread pool after fork

# Logging
accesslog = '-'
errorlog = '-'
loglevel = 'warning'
access_log_format = '%(h)s %(l)s %(u)s %(t)s "%(r)s" %(s)s %(b)s "%(f)s" "%(a)s" %(D)s'

proc_name = 'habpredict'

def post_fork(server, worker):
    """
    Set up access log filtering for each worker.

    Suppresses /predict/status and /health (polled frequently, creates log spam).
    """
    class StatusLogFilter(logging.Filter):
        def filter(self, record):
            message = record.getMessage()
            return '/predict/status' not in message and '/health' not in message

    logging.getLogger('gunicorn.access').addFilter(StatusLogFilter())
    print(f"[WORKER {worker.pid}] Started", flush=True)
