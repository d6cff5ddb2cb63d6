"""
Factory Boy factories for chat models.

Provides realistic test data generation for:
- Conversation: Support conversations by default, direct via DirectConversationFactory
- Participant: User participation in conversations
- Message: Text messages with consecutive sequence numbers

Factories write rows directly and skip the derived-state bookkeeping done by
chat.services; use the services when a test depends on unread counters or
the last message cache.

Usage:
    from chat.tests.factories import DirectConversationFactory, MessageFactory

    conversation = DirectConversationFactory(users=[buyer, seller])
    message = MessageFactory(conversation=conversation, sender=buyer)
"""

import factory

from authentication.models import User
from authentication.tests.factories import UserFactory
from chat.models import Conversation, ConversationKind, Message, MessageType, Participant


class ConversationFactory(factory.django.DjangoModelFactory):
    """
    Base factory for Conversation model.

    Examples:
        conversation = ConversationFactory()
        conversation = ConversationFactory(is_active=False)
    """

    class Meta:
        model = Conversation
        skip_postgeneration_save = True

    kind = ConversationKind.SUPPORT
    participant_key = ""
    is_active = True


class DirectConversationFactory(ConversationFactory):
    """
    Direct conversation with both participants.

    Pass users=[a, b] to choose the pair; two new users are created otherwise.
    """

    kind = ConversationKind.DIRECT

    class Params:
        users = factory.LazyFunction(lambda: [UserFactory(), UserFactory()])

    participant_key = factory.LazyAttribute(
        lambda o: Conversation.build_participant_key(*(user.id for user in o.users))
    )

    @factory.post_generation
    def with_participants(obj, create, extracted, **kwargs):
        if not create:
            return
        for user in User.objects.filter(id__in=obj.participant_key.split(":")):
            ParticipantFactory(conversation=obj, user=user)


class ParticipantFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = Participant

    conversation = factory.SubFactory(ConversationFactory)
    user = factory.SubFactory(UserFactory)
    unread_count = 0


class MessageFactory(factory.django.DjangoModelFactory):
    """
    Factory for Message model.

    Sequence numbers continue from the conversation's highest sequence.
    """

    class Meta:
        model = Message

    conversation = factory.SubFactory(ConversationFactory)
    sender = factory.SubFactory(UserFactory)
    message_type = MessageType.TEXT
    content = factory.Faker("sentence")
    attachments = factory.LazyFunction(list)

    @factory.lazy_attribute
    def sequence(self):
        last = (
            Message.objects.filter(conversation=self.conversation)
            .order_by("-sequence")
            .values_list("sequence", flat=True)
            .first()
        )
        return (last or 0) + 1
