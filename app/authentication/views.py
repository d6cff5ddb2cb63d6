"""
Authentication views.

Token issuing and refreshing come straight from SimpleJWT (see urls.py);
this module only adds the current-user endpoint chat clients call after
logging in to learn their own id and display name.

Related files:
    - serializers.py: CurrentUserSerializer
    - urls.py: URL routing
"""

from drf_spectacular.utils import extend_schema
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from authentication.serializers import CurrentUserSerializer


class CurrentUserView(APIView):
    """
    Return the authenticated user.

    URL: /api/v1/auth/me/
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        summary="Get current user",
        tags=["Auth"],
        responses={200: CurrentUserSerializer},
    )
    def get(self, request):
        return Response(CurrentUserSerializer(request.user).data)
