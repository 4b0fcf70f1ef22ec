import multiprocessing
import os

# Gunicorn production configuration
# Workers: (2x CPU count) + 1 unless overridden
workers = int(os.environ.get('GUNICORN_WORKERS', multiprocessing.cpu_count() * 2 + 1))
threads = int(os.environ.get('GUNICORN_THREADS', 2))
worker_class = 'gthread'
bind = os.environ.get('GUNICORN_BIND', f"0.0.0.0:{os.environ.get('PORT', '8000')}")

# Resilience
timeout = int(os.environ.get('GUNICORN_TIMEOUT', 60))
max_requests = 1000
max_requests_jitter = 100
keepalive = 5

# Logging
accesslog = '-'       # stdout
errorlog = '-'        # stderr
loglevel = os.environ.get('GUNICORN_LOGLEVEL', 'info')
capture_output = True
