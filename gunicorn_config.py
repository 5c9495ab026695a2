"""
Gunicorn Configuration File
Production WSGI server configuration for the Timetable Scheduler API

Run with: gunicorn -c gunicorn_config.py app:app
"""
import multiprocessing
import os

# Server Socket
bind = os.getenv('GUNICORN_BIND', '0.0.0.0:5000')
backlog = 2048

# Worker Processes
# Generation is short and CPU-bound; the rest of the API waits on MongoDB
workers = int(os.getenv('GUNICORN_WORKERS', (multiprocessing.cpu_count() * 2) + 1))
worker_class = os.getenv('GUNICORN_WORKER_CLASS', 'gthread')
threads = int(os.getenv('GUNICORN_THREADS', 4))

# Worker Lifecycle
max_requests = 1000
max_requests_jitter = 50
timeout = int(os.getenv('GUNICORN_TIMEOUT', 120))
graceful_timeout = 30
keepalive = 5

proc_name = 'timetable_scheduler'

# Logging
accesslog = os.getenv('GUNICORN_ACCESS_LOG', '-')
errorlog = os.getenv('GUNICORN_ERROR_LOG', '-')
loglevel = os.getenv('GUNICORN_LOG_LEVEL', 'info')
access_log_format = '%(h)s %(t)s "%(r)s" %(s)s %(b)s %(D)s'

# Uploads for bulk import go through the request body
limit_request_line = 4096
limit_request_fields = 100
limit_request_field_size = 8190


def on_starting(server):
    print(f"Starting Gunicorn with {workers} workers and {threads} threads per worker")


def when_ready(server):
    print(f"Gunicorn is ready. Listening on: {bind}")


def post_fork(server, worker):
    print(f"Worker spawned (pid: {worker.pid})")


def worker_abort(worker):
    print(f"Worker received SIGABRT signal (pid: {worker.pid})")


def on_exit(server):
    print("Shutting down Gunicorn")
