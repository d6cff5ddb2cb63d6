"""
Serializers for authentication models.

Related files:
    - models.py: User
    - chat/serializers.py: Embeds UserSummarySerializer for senders and
      participants
"""

from rest_framework import serializers

from authentication.models import User


class UserSummarySerializer(serializers.ModelSerializer):
    """
    Expanded user representation (id + display fields).

    Mirrors authentication.types.UserSummary so REST and realtime payloads
    describe users the same way.
    """

    name = serializers.CharField(source="display_name", read_only=True)
    avatar = serializers.CharField(source="avatar_url", read_only=True)

    class Meta:
        model = User
        fields = ["id", "name", "avatar", "is_active"]
        read_only_fields = fields


class CurrentUserSerializer(UserSummarySerializer):
    """Summary plus private fields visible to the user themselves."""

    class Meta(UserSummarySerializer.Meta):
        fields = ["id", "email", "name", "avatar", "is_active", "last_seen", "date_joined"]
        read_only_fields = fields
