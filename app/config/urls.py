"""
URL configuration for the marketplace chat backend.

URL Structure:
    /                              - ReDoc API documentation
    /admin/                        - Django admin interface
    /health/                       - Health check endpoint (for load balancers, Docker)
    /schema/                       - OpenAPI schema (YAML)
    /api/v1/auth/                  - Authentication endpoints
        token/                     - Obtain access/refresh token pair
        token/refresh/             - Refresh an access token
    /api/v1/chat/                  - Chat endpoints
        conversations/             - Conversation list/create
        conversations/direct/      - Get-or-create direct conversation
        conversations/{id}/        - Conversation detail with messages
        conversations/{id}/read/   - Mark conversation as read
        conversations/{id}/block/  - Toggle block
        conversations/{id}/deactivate/ - Deactivate conversation
        conversations/{id}/messages/ - Send message
        conversations/{id}/messages/{pk}/ - Message detail/delete
        search/                    - Search users, conversations and messages
        presence/                  - Online user count
        presence/{user_id}/        - Online status of one user

WebSocket routes live in chat.routing and are served by config.asgi.
"""

from django.contrib import admin
from django.urls import include, path
from drf_spectacular.views import SpectacularAPIView, SpectacularRedocView

from core.views import health_check

# =============================================================================
# API v1 Routes
# =============================================================================
api_v1_patterns = [
    path("auth/", include("authentication.urls")),
    path("chat/", include("chat.urls")),
]

urlpatterns = [
    # Documentation
    path("", SpectacularRedocView.as_view(url_name="schema"), name="redoc"),
    path("schema/", SpectacularAPIView.as_view(), name="schema"),
    # Admin
    path("admin/", admin.site.urls),
    # Health check (Docker, Kubernetes, load balancers)
    path("health/", health_check, name="health_check"),
    # API v1
    path("api/v1/", include(api_v1_patterns)),
]

admin.site.site_header = "Marketplace Chat Admin"
admin.site.site_title = "Marketplace Chat"
admin.site.index_title = "Conversations and users"
