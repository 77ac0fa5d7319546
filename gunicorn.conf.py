"""Gunicorn configuration for the trigger engine."""

import os

# Server socket
bind = f"0.0.0.0:{os.getenv('PORT', 8080)}"
backlog = 2048

# Worker processes
# One worker: each worker runs its own scan scheduler
workers = 1
threads = int(os.getenv("THREADS", "4"))
worker_class = "gthread"
timeout = 30
keepalive = 2

# Logging
accesslog = "-"
errorlog = "-"
loglevel = os.getenv("LOG_LEVEL", "info").lower()
access_log_format = (
    '%(h)s %(l)s %(u)s %(t)s "%(r)s" %(s)s %(b)s "%(f)s" "%(a)s" %(D)s'
)

# Server mechanics
daemon = False
pidfile = None
wsgi_app = "trigger_engine.wsgi:app"

# Server hooks
# The scheduler thread must start in the worker, not the master
preload_app = False
forwarded_allow_ips = "*"

# Process naming
proc_name = "trigger-engine"

# Environment
raw_env = [
    "PYTHONUNBUFFERED=1",
]


def worker_exit(server, worker):
    """Stop the scheduler and close connections when the worker exits."""
    from trigger_engine import shutdown_extensions
    from trigger_engine.wsgi import app

    shutdown_extensions(app)
