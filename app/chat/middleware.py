"""
WebSocket authentication middleware.

Provides JWT authentication for WebSocket connections.

Related files:
    - routing.py: WebSocket URL patterns
    - consumers.py: WebSocket handlers
    - config/asgi.py: ASGI configuration
    - authentication/services.py: TokenService

Token Passing Methods (in order of precedence):
    1. Query string: ws://host/ws/chat/?token=<jwt_token>
    2. Subprotocol: Sec-WebSocket-Protocol: jwt, <jwt_token>
    3. Header: Authorization: Bearer <jwt_token>

Verification is bounded by settings.CHAT_AUTH_TIMEOUT_SECONDS. The
middleware never rejects a connection itself: on failure the scope gets
AnonymousUser plus scope["auth_error"] (an error code) and the consumer
reports it to the client before closing.

Usage in config/asgi.py:
    from chat.middleware import JWTAuthMiddleware

    application = ProtocolTypeRouter({
        "websocket": JWTAuthMiddleware(
            URLRouter(websocket_urlpatterns)
        ),
    })
"""

from __future__ import annotations

import asyncio
import logging
from urllib.parse import parse_qs

from channels.db import database_sync_to_async
from channels.middleware import BaseMiddleware
from django.conf import settings
from django.contrib.auth.models import AnonymousUser

from authentication.services import TokenService
from chat.constants import GATEWAY_CONFIG
from core.exceptions import AuthenticationError

logger = logging.getLogger(__name__)


class JWTAuthMiddleware(BaseMiddleware):
    """
    JWT authentication middleware for WebSocket connections.

    Extracts the JWT token from the handshake, validates it and attaches
    the user to the scope.

    Scope keys set:
        user: User or AnonymousUser
        auth_error: Error code when authentication failed
        auth_subprotocol: "jwt" when the token came as a subprotocol; the
            consumer must accept with it or browsers drop the connection
    """

    async def __call__(self, scope, receive, send):
        scope = dict(scope)
        token, via_subprotocol = self._get_token(scope)
        if via_subprotocol:
            scope["auth_subprotocol"] = GATEWAY_CONFIG.TOKEN_SUBPROTOCOL

        try:
            scope["user"] = await asyncio.wait_for(
                database_sync_to_async(TokenService.authenticate)(token),
                timeout=settings.CHAT_AUTH_TIMEOUT_SECONDS,
            )
        except AuthenticationError as exc:
            logger.warning(f"WebSocket authentication failed: {exc.error_code}")
            scope["user"] = AnonymousUser()
            scope["auth_error"] = exc.error_code
        except asyncio.TimeoutError:
            logger.warning("WebSocket authentication timed out")
            scope["user"] = AnonymousUser()
            scope["auth_error"] = "AUTH_TIMEOUT"

        return await super().__call__(scope, receive, send)

    def _get_token(self, scope) -> tuple[str | None, bool]:
        token = self._get_token_from_query(scope)
        if token:
            return token, False
        token = self._get_token_from_subprotocol(scope)
        if token:
            return token, True
        return self._get_token_from_header(scope), False

    def _get_token_from_query(self, scope) -> str | None:
        query_string = scope.get("query_string", b"").decode()
        token_list = parse_qs(query_string).get("token", [])
        return token_list[0] if token_list else None

    def _get_token_from_subprotocol(self, scope) -> str | None:
        """Expects: Sec-WebSocket-Protocol: jwt, <token>"""
        subprotocols = scope.get("subprotocols", [])
        if len(subprotocols) >= 2 and subprotocols[0] == GATEWAY_CONFIG.TOKEN_SUBPROTOCOL:
            return subprotocols[1]
        return None

    def _get_token_from_header(self, scope) -> str | None:
        for name, value in scope.get("headers", []):
            if name.lower() == b"authorization":
                scheme, _, credentials = value.decode().partition(" ")
                if scheme.lower() == "bearer" and credentials:
                    return credentials.strip()
        return None
