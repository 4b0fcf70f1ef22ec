"""
pharmacy/utils/logging.py
─────────────────────────
Configures structured logging: rotating file plus stdout.
"""
import os
import logging
from logging.handlers import RotatingFileHandler
from flask import has_request_context, request, session


class RequestFormatter(logging.Formatter):
    """
    Formatter that injects request info (URL, IP, acting user id)
    into each record when a request context is available.
    """
    def format(self, record):
        if has_request_context():
            record.url = request.url
            record.remote_addr = request.remote_addr
            record.user_id = session.get('user_id')
        else:
            record.url = None
            record.remote_addr = None
            record.user_id = None
        return super().format(record)


def _add_file_handler(app):
    try:
        log_dir = os.path.join(app.root_path, '..', 'logs')
        os.makedirs(log_dir, exist_ok=True)

        file_handler = RotatingFileHandler(
            os.path.join(log_dir, 'app.log'),
            maxBytes=5 * 1024 * 1024,
            backupCount=5
        )
    except OSError:
        return  # read-only filesystem: stdout only

    file_handler.setFormatter(RequestFormatter(
        '%(asctime)s | %(levelname)s | %(name)s | %(remote_addr)s | '
        'user=%(user_id)s | %(url)s | %(message)s'
    ))
    file_handler.setLevel(logging.INFO)
    app.logger.addHandler(file_handler)


def setup_logging(app):
    """
    Configure rotating file logging: logs/app.log
    Max size: 5MB
    Backup count: 5 files
    Format: timestamp | level | module | ip | user | url | message

    The stdout handler is always attached (container / PaaS log collectors).
    Set LOG_TO_FILE = False to skip the file handler.
    """
    # Factories may run many times per process (tests); start clean
    for handler in list(app.logger.handlers):
        app.logger.removeHandler(handler)
        handler.close()

    if app.config.get('LOG_TO_FILE', True):
        _add_file_handler(app)

    stream_handler = logging.StreamHandler()
    stream_handler.setFormatter(logging.Formatter(
        '%(asctime)s | %(levelname)s | %(message)s'
    ))
    stream_handler.setLevel(logging.INFO)
    app.logger.addHandler(stream_handler)

    app.logger.setLevel(logging.INFO)
    app.logger.info("Pharmacy service startup")
