"""
ASGI config for the careline project.

The queue board is refreshed by client polling, so only the HTTP
protocol is served here.
"""
import os

from django.core.asgi import get_asgi_application

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "careline.settings")

application = get_asgi_application()
