"""
WSGI config for the hisbackend project.

It exposes the WSGI callable as a module-level variable named ``application``.
Logging is configured before Django so that early import-time loggers
already go through structlog.
"""
import os

from django.core.wsgi import get_wsgi_application  # type: ignore

from hisbackend.structlog_config import configure_logging

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'hisbackend.settings')
configure_logging()

application = get_wsgi_application()
