"""
WebSocket URL routing for the chat application.

URL Patterns:
    ws/chat/ - Single connection per client; conversations are joined
               with join_chat events rather than per-conversation sockets

Authentication:
    JWT token is passed as ?token=<jwt_access_token> (or a jwt subprotocol,
    or an Authorization header). JWTAuthMiddleware validates it and attaches
    the user to the consumer's scope.
"""

from django.urls import path

from chat import consumers

websocket_urlpatterns = [
    path("ws/chat/", consumers.ChatConsumer.as_asgi()),
]
