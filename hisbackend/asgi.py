"""
ASGI config for the hisbackend project.

Only plain HTTP is served; there are no WebSocket routes.
"""
import os

from django.core.asgi import get_asgi_application  # type: ignore

from hisbackend.structlog_config import configure_logging

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "hisbackend.settings")
configure_logging()

application = get_asgi_application()
