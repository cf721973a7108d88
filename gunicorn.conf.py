import os

from app.config import _env_bool, _env_int

wsgi_app = "app:create_app()"

bind = f"0.0.0.0:{_env_int('PORT', 8000)}"

# Handlers mostly wait on MongoDB and the Contentstack CDN.
worker_class = os.getenv("GUNICORN_WORKER_CLASS", "gthread").strip() or "gthread"
workers = max(1, _env_int("WEB_CONCURRENCY", 2))
threads = max(1, _env_int("PYTHON_THREADS", 4))

# Off by default: MongoClient is not fork-safe, each worker builds its own.
preload_app = _env_bool("GUNICORN_PRELOAD_APP", False)

# Cold CMS reads can take a few seconds.
timeout = max(10, _env_int("GUNICORN_TIMEOUT", 60))
graceful_timeout = max(5, _env_int("GUNICORN_GRACEFUL_TIMEOUT", 30))
keepalive = max(1, _env_int("GUNICORN_KEEPALIVE", 30))

accesslog = "-"
errorlog = "-"
loglevel = os.getenv("GUNICORN_LOG_LEVEL", "info").strip().lower()

# The CMS read cache is per worker; recycling also bounds its memory.
max_requests = max(0, _env_int("GUNICORN_MAX_REQUESTS", 1000))
max_requests_jitter = max(0, _env_int("GUNICORN_MAX_REQUESTS_JITTER", 50))


def post_fork(server, worker):
    server.log.info("Worker spawned pid=%s (mongo client and CMS cache are per worker)", worker.pid)
