# backend/gunicorn_conf.py

# Gunicorn config file. Sessions live in process memory, so a conversation
# must always reach the same worker: keep a single worker per instance.
#   gunicorn -c gunicorn_conf.py shopbot.main:app

import os

# Basic configuration
bind = f"0.0.0.0:{os.getenv('PORT', '8000')}"
workers = 1
worker_class = "uvicorn.workers.UvicornWorker"

# Settings for running behind a reverse proxy like Nginx
forwarded_allow_ips = "*"

# --- Logging ---
# Send access and error logs to stdout and stderr
accesslog = "-"
errorlog = "-"
loglevel = os.getenv("LOG_LEVEL", "info").lower()
