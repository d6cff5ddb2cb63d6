"""
Django admin configuration for chat models.

Provides admin interfaces for:
- Conversation management (with a deactivate action)
- Participant viewing
- Message moderation
"""

from django.contrib import admin, messages

from chat.models import Conversation, Message, MessageReceipt, Participant


class ParticipantInline(admin.TabularInline):
    """Inline display of participants in conversation admin."""

    model = Participant
    extra = 0
    readonly_fields = ["joined_at", "last_seen_at", "unread_count"]
    raw_id_fields = ["user"]


@admin.register(Conversation)
class ConversationAdmin(admin.ModelAdmin):
    """Admin interface for Conversation model."""

    list_display = [
        "id",
        "kind",
        "related_order",
        "total_messages",
        "is_blocked",
        "is_active",
        "created_at",
        "last_message_at",
    ]
    list_filter = ["kind", "is_active", "is_blocked", "created_at"]
    search_fields = ["id", "participant_key", "related_order", "related_product"]
    readonly_fields = [
        "participant_key",
        "message_sequence",
        "total_messages",
        "last_message_content",
        "last_message_sender",
        "last_message_at",
        "created_at",
        "updated_at",
    ]
    raw_id_fields = ["blocked_by"]
    inlines = [ParticipantInline]
    ordering = ["-created_at"]
    actions = ["deactivate_conversations"]

    @admin.action(description="Deactivate selected conversations")
    def deactivate_conversations(self, request, queryset):
        updated = queryset.filter(is_active=True).update(is_active=False)
        self.message_user(request, f"{updated} conversation(s) deactivated.", messages.SUCCESS)


class MessageReceiptInline(admin.TabularInline):
    model = MessageReceipt
    extra = 0
    readonly_fields = ["user", "read_at"]
    can_delete = False


@admin.register(Message)
class MessageAdmin(admin.ModelAdmin):
    """Admin interface for Message model."""

    list_display = [
        "id",
        "conversation",
        "sequence",
        "sender",
        "message_type",
        "content_preview",
        "is_deleted",
        "created_at",
    ]
    list_filter = ["message_type", "is_deleted", "created_at"]
    search_fields = ["content", "sender__email", "conversation__id"]
    readonly_fields = ["sequence", "created_at", "updated_at", "deleted_at"]
    raw_id_fields = ["conversation", "sender", "reply_to"]
    inlines = [MessageReceiptInline]
    ordering = ["-created_at"]

    @admin.display(description="Content")
    def content_preview(self, obj):
        """Show truncated content preview."""
        if len(obj.content) > 50:
            return f"{obj.content[:50]}..."
        return obj.content
