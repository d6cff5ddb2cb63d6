"""
WSGI config for the marketplace chat backend.

Serves the REST API only. WebSocket connections need the ASGI entry point
in config.asgi.

For more information on this file, see:
https://docs.djangoproject.com/en/5.2/howto/deployment/wsgi/
"""

import os

from django.core.wsgi import get_wsgi_application

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

application = get_wsgi_application()
