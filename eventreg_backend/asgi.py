"""
ASGI entry point for the event registration backend.

The default settings module is the development configuration.  Static
files are served by the ASGI handler only in DEBUG mode.
"""

import os

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "eventreg_backend.settings.dev")

from django.conf import settings
from django.core.asgi import get_asgi_application
from django.contrib.staticfiles.handlers import ASGIStaticFilesHandler

application = get_asgi_application()

if settings.DEBUG:
    application = ASGIStaticFilesHandler(application)
