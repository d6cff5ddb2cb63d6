"""
Tests for SoftDeleteMixin in core/model_mixins.py, exercised through
chat.Message.
"""

import pytest

from chat.tests.factories import MessageFactory


@pytest.mark.django_db
class TestSoftDelete:
    def test_sets_flag_and_timestamp(self):
        message = MessageFactory()

        message.soft_delete()
        message.refresh_from_db()

        assert message.is_deleted
        assert message.deleted_at is not None

    def test_restore_clears_flag(self):
        message = MessageFactory()
        message.soft_delete()

        message.restore()
        message.refresh_from_db()

        assert not message.is_deleted
        assert message.deleted_at is None

    def test_restore_is_noop_when_not_deleted(self):
        message = MessageFactory()
        updated_at = message.updated_at

        message.restore()

        assert message.updated_at == updated_at
