"""
Tests for core/services.py.

This module tests:
- parse_uuid coercion and error codes
- atomic() savepoint behavior
- Per-service logger naming
"""

import uuid

import pytest
from django.db import IntegrityError

from authentication.models import User
from authentication.tests.factories import UserFactory
from core.exceptions import ValidationError
from core.services import BaseService


class ExampleService(BaseService):
    pass


class TestParseUuid:
    def test_passes_uuid_through(self):
        value = uuid.uuid4()

        assert BaseService.parse_uuid(value) is value

    def test_parses_string(self):
        value = uuid.uuid4()

        assert BaseService.parse_uuid(str(value)) == value

    @pytest.mark.parametrize("value", ["", "abc", None, 42])
    def test_invalid_values(self, value):
        with pytest.raises(ValidationError) as exc_info:
            BaseService.parse_uuid(value, "conversation_id")

        assert exc_info.value.error_code == "INVALID_CONVERSATION_ID"


class TestAtomic:
    @pytest.mark.django_db
    def test_failed_block_rolls_back_to_savepoint(self):
        user = UserFactory()

        with pytest.raises(IntegrityError):
            with ExampleService.atomic():
                User.objects.filter(id=user.id).update(name="Renamed")
                UserFactory(email=user.email)

        user.refresh_from_db()
        assert user.name != "Renamed"
        assert User.objects.count() == 1


def test_logger_is_named_after_service():
    assert ExampleService.get_logger().name == f"{__name__}.ExampleService"
