"""
Chat app for real-time marketplace messaging.

This app handles:
- Conversations (direct, order-related, support)
- Message sending, dedup and history
- Read receipts and unread counters
- Presence and WebSocket real-time updates

Related apps:
    - authentication: User model, token verification, user directory

WebSocket Support:
    Uses Django Channels for real-time communication.
    See consumers.py for WebSocket handlers.
    See routing.py for WebSocket URL patterns.

Usage:
    from chat.services import ConversationService, MessageService

    conversation = ConversationService.find_or_create_direct(buyer.id, seller.id)

    result = MessageService.append_message(
        conversation_id=conversation.id,
        sender_id=buyer.id,
        content="Hello!",
    )
"""
