"""Gunicorn configuration for ChessPrep analysis service."""

import os

# Server socket
bind = f"{os.getenv('CHESSPREP_HOST', '0.0.0.0')}:{os.getenv('CHESSPREP_PORT', '8002')}"
backlog = 64

# Worker processes
workers = 1  # Single worker: the engine session and move tree live in-process
worker_class = "uvicorn.workers.UvicornWorker"
timeout = int(float(os.getenv("CHESSPREP_ONE_SHOT_TIMEOUT", "120"))) + 30
graceful_timeout = 30

# Logging
accesslog = "-"
errorlog = "-"
loglevel = "debug" if os.getenv("CHESSPREP_DEBUG", "").lower() in ("1", "true") else "info"

# Process naming
proc_name = "chessprep-analysis"
wsgi_app = "chessprep.main:app"
