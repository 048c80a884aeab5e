"""
Gunicorn configuration for the Unexplained Archive API.

In-flight action guards, the vote board and the image-generation quota live
in process memory, so the default is a single worker. Raise WEB_CONCURRENCY
only behind sticky sessions.
"""
import os

# Server socket
bind = os.environ.get("BIND", "0.0.0.0:8000")
backlog = 2048

# Worker processes
workers = int(os.environ.get("WEB_CONCURRENCY", "1"))
worker_class = "uvicorn.workers.UvicornWorker"
worker_connections = 1000
timeout = int(os.environ.get("HTTP_TIMEOUT_SECONDS", "30")) + 30
keepalive = 5
graceful_timeout = 30

# Logging
accesslog = "-"
errorlog = "-"
loglevel = os.environ.get("LOG_LEVEL", "info").lower()
access_log_format = '%(h)s %(l)s %(u)s %(t)s "%(r)s" %(s)s %(b)s "%(f)s" "%(a)s" %(D)s'

# Process naming
proc_name = "unexplained-archive"

# Server mechanics
daemon = False
pidfile = "/tmp/unexplained-archive.pid"

# Security (evidence uploads are multipart bodies, not long header lines)
limit_request_line = 4094
limit_request_fields = 100
limit_request_field_size = 8190


def when_ready(server):
    server.log.info(f"Unexplained Archive API ready on {bind} with {workers} worker(s)")


def worker_int(worker):
    worker.log.info(f"Worker {worker.pid} interrupted; in-flight actions are dropped")
