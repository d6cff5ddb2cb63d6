"""
URL configuration for chat API.

URL Structure:
    Conversations:
        /conversations/                    GET, POST
        /conversations/direct/             POST
        /conversations/{id}/               GET
        /conversations/{id}/read/          POST
        /conversations/{id}/block/         POST
        /conversations/{id}/deactivate/    POST

    Messages:
        /conversations/{id}/messages/      GET, POST
        /conversations/{id}/messages/{pk}/ GET, DELETE

    Search:
        /search/?q=                        GET

    Presence:
        /presence/                         GET
        /presence/{user_id}/               GET

All URLs are prefixed with /api/v1/chat/ in the main URL configuration.
"""

from django.urls import include, path
from rest_framework.routers import DefaultRouter

from chat.views import (
    ConversationViewSet,
    MessageViewSet,
    PresenceView,
    SearchView,
    UserPresenceView,
)

# Main router for conversations
router = DefaultRouter()
router.register(r"conversations", ConversationViewSet, basename="conversation")

app_name = "chat"

urlpatterns = [
    path("", include(router.urls)),
    path("search/", SearchView.as_view(), name="search"),
    # Presence endpoints
    path("presence/", PresenceView.as_view(), name="presence"),
    path("presence/<uuid:user_id>/", UserPresenceView.as_view(), name="presence-user"),
    # Nested routes for messages
    path(
        "conversations/<uuid:conversation_pk>/messages/",
        MessageViewSet.as_view({"get": "list", "post": "create"}),
        name="conversation-message-list",
    ),
    path(
        "conversations/<uuid:conversation_pk>/messages/<uuid:pk>/",
        MessageViewSet.as_view({"get": "retrieve", "delete": "destroy"}),
        name="conversation-message-detail",
    ),
]
