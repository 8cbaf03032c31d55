"""Gunicorn configuration for the deep research service.

Run with ``gunicorn -c gunicorn_conf.py deep_research.server:app``.
Works locally and on Cloud Run, which provides a PORT environment variable.
"""

import multiprocessing
import os

from deep_research.logging import configure_structlog

# Bind configuration
# PORT is set by Cloud Run; 8080 otherwise
port = os.environ.get("PORT", "8080")
bind = f"0.0.0.0:{port}"

# Worker configuration
# Research runs are I/O bound and spend their time waiting on models and search
# Default: at most 2 async workers per instance
workers = int(os.environ.get("GUNICORN_WORKERS", min(2, multiprocessing.cpu_count())))
worker_class = "uvicorn.workers.UvicornWorker"

# Timeout configuration
# A streamed run may last up to server.MAX_DURATION (600s) plus shutdown
timeout = int(os.environ.get("GUNICORN_TIMEOUT", "630"))
graceful_timeout = int(os.environ.get("GUNICORN_GRACEFUL_TIMEOUT", "30"))
keepalive = int(os.environ.get("GUNICORN_KEEPALIVE", "5"))

# Logging configuration
# structlog writes JSON lines; gunicorn's own logs go to the same streams
loglevel = os.environ.get("GUNICORN_LOG_LEVEL", "info")
accesslog = "-"  # stdout
errorlog = "-"  # stderr

# Performance tuning
preload_app = True

# Pending connection queue
backlog = 2048

# Recycle workers after this many requests
max_requests = int(os.environ.get("GUNICORN_MAX_REQUESTS", "1000"))
max_requests_jitter = int(os.environ.get("GUNICORN_MAX_REQUESTS_JITTER", "50"))


def post_worker_init(worker) -> None:
    """Configure structlog in each worker after fork."""
    configure_structlog()
