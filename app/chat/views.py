"""
ViewSets for chat API.

This module provides REST API endpoints for the chat system:
- ConversationViewSet: Conversation listing, creation and actions
- MessageViewSet: Message operations (nested under conversation)
- SearchView: Search users, conversations and messages
- PresenceView / UserPresenceView: Online state

URL Structure:
    /api/v1/chat/conversations/                               GET, POST
    /api/v1/chat/conversations/direct/                        POST
    /api/v1/chat/conversations/{id}/                          GET
    /api/v1/chat/conversations/{id}/read/                     POST
    /api/v1/chat/conversations/{id}/block/                    POST
    /api/v1/chat/conversations/{id}/deactivate/               POST
    /api/v1/chat/conversations/{id}/messages/                 GET, POST
    /api/v1/chat/conversations/{id}/messages/{message_id}/    GET, DELETE
    /api/v1/chat/search/?q=                                   GET
    /api/v1/chat/presence/                                    GET
    /api/v1/chat/presence/{user_id}/                          GET

Design Decisions:
    - Views only parse input and render output; all rules live in services
    - Service exceptions propagate to core.exceptions.api_exception_handler
    - Successful writes publish realtime events through chat.realtime so
      connected clients see REST activity too
"""

from __future__ import annotations

from drf_spectacular.types import OpenApiTypes
from drf_spectacular.utils import OpenApiParameter, OpenApiResponse, extend_schema
from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from chat import realtime
from chat.constants import PAGINATION_CONFIG
from chat.presence import get_presence_tracker
from chat.serializers import (
    ConversationCreateSerializer,
    ConversationSerializer,
    DirectConversationCreateSerializer,
    MessageCreateSerializer,
    MessageSerializer,
    PageQuerySerializer,
    PresenceSerializer,
    ReadResultSerializer,
    SearchQuerySerializer,
)
from chat.services import (
    ConversationService,
    MessageService,
    ReadReceiptService,
    SearchService,
)
from core.services import BaseService

PAGE_PARAMETERS = [
    OpenApiParameter("page", OpenApiTypes.INT, description="Page number, starting at 1"),
    OpenApiParameter("limit", OpenApiTypes.INT, description="Items per page"),
]


def _page_params(request, default_limit: int) -> tuple[int, int]:
    serializer = PageQuerySerializer(data=request.query_params)
    serializer.is_valid(raise_exception=True)
    data = serializer.validated_data
    return data["page"], data.get("limit") or data.get("page_size") or default_limit


def _publish_message(message) -> dict:
    """Serialize a freshly appended message and fan it out."""
    data = dict(MessageSerializer(message).data)
    participant_ids = [
        str(user_id)
        for user_id in message.conversation.participants.values_list("user_id", flat=True)
    ]
    realtime.publish_from_sync(realtime.publish_new_message, data, participant_ids)
    return data


class ConversationViewSet(viewsets.ViewSet):
    """
    ViewSet for conversation operations.

    list:
        Active conversations of the current user, most recent first, with
        the user's unread count and the last message.

    create:
        Create an order-related or support conversation.

    direct:
        Get or create the direct conversation with another user.
        201 when created, 200 when it already existed.

    retrieve:
        Conversation with a page of messages. Marks it read for the caller.

    read / block / deactivate:
        Mark read, toggle block, retire the conversation.
    """

    permission_classes = [IsAuthenticated]

    def _serialize(self, conversation):
        conversation = ConversationService.get(conversation.id)
        return ConversationSerializer(conversation, context={"user": self.request.user}).data

    @extend_schema(
        operation_id="list_conversations",
        summary="List conversations",
        tags=["Chat - Conversations"],
        parameters=PAGE_PARAMETERS,
        responses={200: ConversationSerializer(many=True)},
    )
    def list(self, request):
        page, page_size = _page_params(request, PAGINATION_CONFIG.CONVERSATIONS_PAGE_SIZE)
        result = ConversationService.list_for_user(request.user.id, page, page_size)
        return Response(
            {
                "results": ConversationSerializer(
                    result.items, many=True, context={"user": request.user}
                ).data,
                "page": result.page,
                "page_size": result.page_size,
                "total": result.total,
                "has_next": result.has_next,
            }
        )

    @extend_schema(
        operation_id="create_conversation",
        summary="Create order-related or support conversation",
        tags=["Chat - Conversations"],
        request=ConversationCreateSerializer,
        responses={201: ConversationSerializer},
    )
    def create(self, request):
        serializer = ConversationCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        conversation = ConversationService.create_contextual(
            creator_id=request.user.id,
            participant_ids=data["participant_ids"],
            kind=data["kind"],
            related_order=data["related_order"],
            related_product=data["related_product"],
        )
        return Response(self._serialize(conversation), status=status.HTTP_201_CREATED)

    @extend_schema(
        operation_id="get_or_create_direct_conversation",
        summary="Get or create direct conversation",
        tags=["Chat - Conversations"],
        request=DirectConversationCreateSerializer,
        responses={200: ConversationSerializer, 201: ConversationSerializer},
    )
    @action(detail=False, methods=["post"])
    def direct(self, request):
        serializer = DirectConversationCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        conversation, created = ConversationService.get_or_create_direct(
            request.user.id, serializer.validated_data["user_id"]
        )
        return Response(
            self._serialize(conversation),
            status=status.HTTP_201_CREATED if created else status.HTTP_200_OK,
        )

    @extend_schema(
        operation_id="get_conversation",
        summary="Get conversation with messages",
        tags=["Chat - Conversations"],
        parameters=PAGE_PARAMETERS,
    )
    def retrieve(self, request, pk=None):
        page, limit = _page_params(request, PAGINATION_CONFIG.MESSAGES_PAGE_SIZE)

        read = ReadReceiptService.mark_read(pk, request.user.id)
        if read.marked_count:
            realtime.publish_from_sync(
                realtime.publish_read_receipt,
                read.conversation_id,
                read.user_id,
                read.read_at.isoformat(),
                read.marked_count,
            )

        conversation = ConversationService.get_for_participant(pk, request.user.id)
        messages = MessageService.list_messages(conversation.id, request.user.id, page, limit)
        return Response(
            {
                "conversation": self._serialize(conversation),
                "messages": {
                    "results": MessageSerializer(messages.items, many=True).data,
                    "page": messages.page,
                    "limit": messages.limit,
                    "total": messages.total,
                    "has_older": messages.has_older,
                },
            }
        )

    @extend_schema(
        operation_id="mark_conversation_read",
        summary="Mark conversation as read",
        tags=["Chat - Conversations"],
        request=None,
        responses={200: ReadResultSerializer},
    )
    @action(detail=True, methods=["post"])
    def read(self, request, pk=None):
        result = ReadReceiptService.mark_read(pk, request.user.id)
        realtime.publish_from_sync(
            realtime.publish_read_receipt,
            result.conversation_id,
            result.user_id,
            result.read_at.isoformat(),
            result.marked_count,
        )
        return Response(ReadResultSerializer(result).data)

    @extend_schema(
        operation_id="toggle_conversation_block",
        summary="Block or unblock conversation",
        tags=["Chat - Conversations"],
        request=None,
        responses={200: ConversationSerializer},
    )
    @action(detail=True, methods=["post"])
    def block(self, request, pk=None):
        conversation = ConversationService.toggle_block(pk, request.user.id)
        return Response(self._serialize(conversation))

    @extend_schema(
        operation_id="deactivate_conversation",
        summary="Deactivate conversation",
        tags=["Chat - Conversations"],
        request=None,
        responses={200: ConversationSerializer},
    )
    @action(detail=True, methods=["post"])
    def deactivate(self, request, pk=None):
        conversation = ConversationService.deactivate(pk, request.user.id)
        return Response(self._serialize(conversation))


class MessageViewSet(viewsets.ViewSet):
    """
    Messages of one conversation.

    URL kwargs:
        conversation_pk: Parent conversation
        pk: Message id (retrieve, destroy)
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="list_messages",
        summary="List messages",
        tags=["Chat - Messages"],
        parameters=PAGE_PARAMETERS,
        responses={200: MessageSerializer(many=True)},
    )
    def list(self, request, conversation_pk=None):
        page, limit = _page_params(request, PAGINATION_CONFIG.MESSAGES_PAGE_SIZE)
        result = MessageService.list_messages(conversation_pk, request.user.id, page, limit)
        return Response(
            {
                "results": MessageSerializer(result.items, many=True).data,
                "page": result.page,
                "limit": result.limit,
                "total": result.total,
                "has_older": result.has_older,
            }
        )

    @extend_schema(
        operation_id="send_message",
        summary="Send message",
        description=(
            "Identical content from the same sender within a few seconds is "
            "collapsed into the earlier message and returned with is_duplicate=true."
        ),
        tags=["Chat - Messages"],
        request=MessageCreateSerializer,
        responses={
            201: OpenApiResponse(description="Message created"),
            200: OpenApiResponse(description="Duplicate of a recent message"),
        },
    )
    def create(self, request, conversation_pk=None):
        serializer = MessageCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        result = MessageService.append_message(
            conversation_id=conversation_pk,
            sender_id=request.user.id,
            content=data["content"],
            message_type=data["message_type"],
            attachments=[dict(item) for item in data.get("attachments", [])] or None,
            reply_to_id=data.get("reply_to"),
        )
        if result.created:
            message_data = _publish_message(result.message)
        else:
            message_data = MessageSerializer(result.message).data
        return Response(
            {"message": message_data, "is_duplicate": result.is_duplicate},
            status=status.HTTP_201_CREATED if result.created else status.HTTP_200_OK,
        )

    @extend_schema(
        operation_id="get_message",
        summary="Get message (including deleted)",
        tags=["Chat - Messages"],
        responses={200: MessageSerializer},
    )
    def retrieve(self, request, conversation_pk=None, pk=None):
        message = MessageService.get_message(conversation_pk, pk, request.user.id)
        return Response(MessageSerializer(message).data)

    @extend_schema(
        operation_id="delete_message",
        summary="Delete own message",
        tags=["Chat - Messages"],
        responses={204: None},
    )
    def destroy(self, request, conversation_pk=None, pk=None):
        MessageService.delete_message(conversation_pk, pk, request.user.id)
        return Response(status=status.HTTP_204_NO_CONTENT)


class SearchView(APIView):
    """Search users by name/email and the caller's messages by content."""

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="chat_search",
        summary="Search users, conversations and messages",
        tags=["Chat - Search"],
        parameters=[OpenApiParameter("q", OpenApiTypes.STR, required=True)],
    )
    def get(self, request):
        serializer = SearchQuerySerializer(data=request.query_params)
        serializer.is_valid(raise_exception=True)

        results = SearchService.search(request.user.id, serializer.validated_data["q"])
        return Response(
            {
                "query": results.query,
                "users": [user.to_dict() for user in results.users],
                "conversations": ConversationSerializer(
                    results.conversations, many=True, context={"user": request.user}
                ).data,
                "messages": MessageSerializer(results.messages, many=True).data,
            }
        )


class PresenceView(APIView):
    """Number of users with at least one open connection."""

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="online_count",
        summary="Online user count",
        tags=["Chat - Presence"],
    )
    def get(self, request):
        return Response({"online_count": get_presence_tracker().online_count()})


class UserPresenceView(APIView):
    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="user_presence",
        summary="Whether a user is online",
        tags=["Chat - Presence"],
        responses={200: PresenceSerializer},
    )
    def get(self, request, user_id=None):
        user_id = BaseService.parse_uuid(user_id, "user_id")
        return Response(
            PresenceSerializer(
                {"user_id": user_id, "is_online": get_presence_tracker().is_online(user_id)}
            ).data
        )
