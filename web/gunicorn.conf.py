import os

wsgi_app = "config.wsgi:application"
bind = os.getenv("ORDERS_BIND", "0.0.0.0:8000")

# One request per thread; outbound catalog/payment calls block only their own thread
worker_class = "gthread"
workers = int(os.getenv("ORDERS_WORKERS", str(min(max(2, (os.cpu_count() or 1) * 2), 8))))
threads = int(os.getenv("ORDERS_THREADS", "4"))

# Must stay above HTTP_TIMEOUT_SECS for both downstream calls of a create
timeout = int(os.getenv("ORDERS_WORKER_TIMEOUT", "30"))
graceful_timeout = int(os.getenv("ORDERS_GRACEFUL_TIMEOUT", "20"))
keepalive = int(os.getenv("ORDERS_KEEPALIVE", "5"))

preload_app = True
max_requests = int(os.getenv("ORDERS_MAX_REQUESTS", "2000"))
max_requests_jitter = int(os.getenv("ORDERS_MAX_REQUESTS_JITTER", "200"))

accesslog = "-"
errorlog = "-"
loglevel = os.getenv("LOG_LEVEL", "info").lower()
