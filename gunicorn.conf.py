import multiprocessing
import os

# Link checks are short DB round trips; threads cover the waiting
wsgi_app = "access_gate:create_app()"
workers = int(os.environ.get("WEB_CONCURRENCY", (multiprocessing.cpu_count() * 2) + 1))
threads = int(os.environ.get("GUNICORN_THREADS", "4"))
worker_class = "gthread"
preload_app = False  # each worker opens its own DB pool
bind = os.environ.get("BIND", ":8000")
# Heroku/Render style proxy headers
forwarded_allow_ips = "*"
timeout = 30
keepalive = 75
# Access logging to stdout, app loggers share the error stream
accesslog = "-"
errorlog = "-"
loglevel = os.environ.get("LOG_LEVEL", "info").lower()
