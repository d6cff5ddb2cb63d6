"""
ASGI config for the marketplace chat backend.

This file exposes the ASGI callable as a module-level variable named
`application`. It routes two protocols:

- HTTP requests via Django (REST API, admin, health check)
- WebSocket connections via Django Channels (the realtime chat gateway)

WebSocket connections pass through:
    1. AllowedHostsOriginValidator - ensures origin matches ALLOWED_HOSTS
    2. JWTAuthMiddleware - resolves the access token into scope["user"]
    3. URLRouter - routes ws/chat/ to ChatConsumer

For more information on this file, see:
https://docs.djangoproject.com/en/5.2/howto/deployment/asgi/
"""

import os

from django.core.asgi import get_asgi_application

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

# Initialize Django before importing any models or consumers
django_asgi_app = get_asgi_application()

from channels.routing import ProtocolTypeRouter, URLRouter  # noqa: E402
from channels.security.websocket import AllowedHostsOriginValidator  # noqa: E402

from chat.middleware import JWTAuthMiddleware  # noqa: E402
from chat.routing import websocket_urlpatterns  # noqa: E402

application = ProtocolTypeRouter(
    {
        "http": django_asgi_app,
        "websocket": AllowedHostsOriginValidator(
            JWTAuthMiddleware(URLRouter(websocket_urlpatterns))
        ),
    }
)
