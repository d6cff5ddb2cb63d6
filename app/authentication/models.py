"""
Identity model for marketplace users.

The chat core treats identity as an external collaborator: it only needs
a stable id, display fields (name, avatar) and whether the account is
active. This module keeps exactly that on a slim custom user model.

Models:
    User: Email-identified account with display name, avatar and last-seen
"""

from django.contrib.auth.models import AbstractBaseUser, PermissionsMixin
from django.db import models

from authentication.managers import UserManager
from core.model_mixins import UUIDPrimaryKeyMixin


class User(UUIDPrimaryKeyMixin, AbstractBaseUser, PermissionsMixin):
    """
    Custom User model using email as the login identifier.

    Fields:
        id: UUID primary key (also the JWT user_id claim)
        email: Login identifier, unique
        name: Display name shown to other participants
        avatar_url: Optional avatar image URL (storage is external)
        is_active: Deactivated users cannot start new conversations
        is_staff: Whether the user can access Django admin
        last_seen: Set when the user's last realtime connection closes
        date_joined: When the user account was created

    Usage:
        user = User.objects.create_user(
            email="buyer@example.com",
            password="securepassword",
            name="Ada Buyer",
        )
    """

    email = models.EmailField(
        unique=True,
        max_length=254,
        help_text="User's email address (login identifier)",
    )
    name = models.CharField(
        max_length=150,
        blank=True,
        default="",
        help_text="Display name shown in conversations",
    )
    avatar_url = models.URLField(
        max_length=500,
        blank=True,
        default="",
        help_text="Avatar image URL",
    )
    is_active = models.BooleanField(
        default=True,
        help_text="Whether this user account is active. Deselect instead of deleting.",
    )
    is_staff = models.BooleanField(
        default=False,
        help_text="Whether the user can access the admin site.",
    )
    last_seen = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the user's last realtime connection closed",
    )
    date_joined = models.DateTimeField(
        auto_now_add=True,
        help_text="When the user account was created",
    )
    updated_at = models.DateTimeField(
        auto_now=True,
        help_text="When the user record was last modified",
    )

    USERNAME_FIELD = "email"
    REQUIRED_FIELDS = []

    objects = UserManager()

    class Meta:
        verbose_name = "user"
        verbose_name_plural = "users"
        ordering = ["-date_joined"]

    def __str__(self):
        return self.email

    @property
    def display_name(self) -> str:
        """Name if set, otherwise the local part of the email."""
        return self.name or self.email.split("@")[0]

    def get_full_name(self):
        return self.display_name

    def get_short_name(self):
        return self.display_name
