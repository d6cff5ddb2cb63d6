"""
Presence tracking for connected chat users.

Tracks which users currently hold at least one open WebSocket connection.
A user with several tabs or devices stays online until the last of their
connections closes.

Backends:
    InMemoryPresenceTracker: Process-local, for a single ASGI worker and tests
    RedisPresenceTracker: Shared through the django-redis "default" connection

The backend is chosen by settings.CHAT_PRESENCE_BACKEND ("memory" or
"redis"). Presence is ephemeral and is never written to the database;
only last_seen is persisted when a user goes offline (chat.tasks).

Usage:
    from chat.presence import get_presence_tracker

    tracker = get_presence_tracker()
    tracker.mark_online(user.id, channel_name, UserSummary.from_user(user))
    still_online = tracker.mark_offline(user.id, channel_name)
"""

from __future__ import annotations

import json
import logging
import threading
import uuid
from abc import ABC, abstractmethod

from django.conf import settings

from authentication.types import UserSummary
from chat.constants import PRESENCE_CONFIG

logger = logging.getLogger(__name__)


def _key(user_id: uuid.UUID | str) -> str:
    return str(user_id)


class BasePresenceTracker(ABC):
    """
    Interface shared by presence backends.

    All methods are synchronous; the consumer calls them through
    database_sync_to_async so the Redis backend never blocks the loop.
    """

    # True when state is shared with other processes and must survive one
    # process shutting down
    shared = False

    @abstractmethod
    def mark_online(
        self,
        user_id: uuid.UUID | str,
        connection_ref: str,
        profile: UserSummary | None = None,
    ) -> None:
        """Register one open connection for user_id."""

    @abstractmethod
    def mark_offline(self, user_id: uuid.UUID | str, connection_ref: str | None = None) -> bool:
        """
        Drop one connection (or all of them when connection_ref is None).

        Returns:
            True if the user still has other open connections
        """

    def touch(self, user_id: uuid.UUID | str) -> None:
        """Keep a connected user's presence alive; called on client activity."""

    @abstractmethod
    def is_online(self, user_id: uuid.UUID | str) -> bool: ...

    @abstractmethod
    def online_count(self) -> int: ...

    @abstractmethod
    def online_users(self) -> list[UserSummary]:
        """Profiles of online users, one entry per user."""

    @abstractmethod
    def clear(self) -> None: ...


class InMemoryPresenceTracker(BasePresenceTracker):
    """Presence kept in a dict guarded by a lock."""

    def __init__(self):
        self._lock = threading.Lock()
        self._connections: dict[str, dict[str, UserSummary | None]] = {}

    def mark_online(self, user_id, connection_ref, profile=None):
        with self._lock:
            self._connections.setdefault(_key(user_id), {})[connection_ref] = profile

    def mark_offline(self, user_id, connection_ref=None):
        with self._lock:
            connections = self._connections.get(_key(user_id))
            if connections is None:
                return False
            if connection_ref is None:
                connections.clear()
            else:
                connections.pop(connection_ref, None)
            if not connections:
                del self._connections[_key(user_id)]
                return False
            return True

    def is_online(self, user_id):
        with self._lock:
            return bool(self._connections.get(_key(user_id)))

    def online_count(self):
        with self._lock:
            return len(self._connections)

    def online_users(self):
        with self._lock:
            snapshot = {user_id: dict(conns) for user_id, conns in self._connections.items()}
        users = []
        for user_id, connections in snapshot.items():
            profile = next((p for p in connections.values() if p is not None), None)
            users.append(profile or UserSummary(id=uuid.UUID(user_id), name=""))
        return users

    def clear(self):
        with self._lock:
            self._connections.clear()


# Removes one connection and, if it was the last, the user from the online
# set. Runs atomically so two tabs closing together cannot both miss the
# final removal. Returns the number of connections left.
_MARK_OFFLINE_SCRIPT = """
if ARGV[2] == '' then
    redis.call('DEL', KEYS[1])
else
    redis.call('HDEL', KEYS[1], ARGV[2])
end
local remaining = redis.call('HLEN', KEYS[1])
if remaining == 0 then
    redis.call('SREM', KEYS[2], ARGV[1])
end
return remaining
"""


class RedisPresenceTracker(BasePresenceTracker):
    """
    Presence shared across ASGI workers.

    Layout:
        presence:online          SET of online user ids
        presence:user:<user_id>  HASH connection_ref -> JSON profile

    Keys expire after PRESENCE_CONFIG.CONNECTION_TTL_SECONDS so a crashed
    worker cannot keep a user online forever. Every client event refreshes
    the TTL through touch(), so only a connection idle for longer than the
    TTL drops out of the online set while its socket is still open.
    """

    shared = True

    def __init__(self, client=None):
        if client is None:
            from django_redis import get_redis_connection

            client = get_redis_connection("default")
        self.client = client
        self._mark_offline = self.client.register_script(_MARK_OFFLINE_SCRIPT)

    @staticmethod
    def _user_key(user_id) -> str:
        return f"{PRESENCE_CONFIG.KEY_PREFIX_USER_CONNECTIONS}:{_key(user_id)}"

    def mark_online(self, user_id, connection_ref, profile=None):
        payload = json.dumps(profile.to_dict() if profile else {"id": _key(user_id)})
        pipe = self.client.pipeline()
        pipe.hset(self._user_key(user_id), connection_ref, payload)
        pipe.expire(self._user_key(user_id), PRESENCE_CONFIG.CONNECTION_TTL_SECONDS)
        pipe.sadd(PRESENCE_CONFIG.KEY_ONLINE_USERS, _key(user_id))
        pipe.expire(PRESENCE_CONFIG.KEY_ONLINE_USERS, PRESENCE_CONFIG.CONNECTION_TTL_SECONDS)
        pipe.execute()

    def touch(self, user_id):
        pipe = self.client.pipeline()
        pipe.expire(self._user_key(user_id), PRESENCE_CONFIG.CONNECTION_TTL_SECONDS)
        pipe.sadd(PRESENCE_CONFIG.KEY_ONLINE_USERS, _key(user_id))
        pipe.expire(PRESENCE_CONFIG.KEY_ONLINE_USERS, PRESENCE_CONFIG.CONNECTION_TTL_SECONDS)
        pipe.execute()

    def mark_offline(self, user_id, connection_ref=None):
        remaining = self._mark_offline(
            keys=[self._user_key(user_id), PRESENCE_CONFIG.KEY_ONLINE_USERS],
            args=[_key(user_id), connection_ref or ""],
        )
        return int(remaining) > 0

    def is_online(self, user_id):
        return bool(self.client.sismember(PRESENCE_CONFIG.KEY_ONLINE_USERS, _key(user_id)))

    def online_count(self):
        return int(self.client.scard(PRESENCE_CONFIG.KEY_ONLINE_USERS))

    def online_users(self):
        users = []
        for raw_id in self.client.smembers(PRESENCE_CONFIG.KEY_ONLINE_USERS):
            user_id = raw_id.decode() if isinstance(raw_id, bytes) else raw_id
            profiles = self.client.hvals(self._user_key(user_id))
            if not profiles:
                continue
            try:
                data = json.loads(profiles[0])
                users.append(
                    UserSummary(
                        id=uuid.UUID(user_id),
                        name=data.get("name", ""),
                        avatar=data.get("avatar", ""),
                        is_active=data.get("is_active", True),
                    )
                )
            except (ValueError, TypeError):
                logger.warning(f"Discarding malformed presence entry for {user_id}")
        return users

    def clear(self):
        user_ids = self.client.smembers(PRESENCE_CONFIG.KEY_ONLINE_USERS)
        keys = [
            self._user_key(raw.decode() if isinstance(raw, bytes) else raw) for raw in user_ids
        ]
        self.client.delete(PRESENCE_CONFIG.KEY_ONLINE_USERS, *keys)


_tracker: BasePresenceTracker | None = None
_tracker_lock = threading.Lock()


def get_presence_tracker() -> BasePresenceTracker:
    """Return the process-wide tracker, building it from settings on first use."""
    global _tracker
    with _tracker_lock:
        if _tracker is None:
            backend = getattr(settings, "CHAT_PRESENCE_BACKEND", "memory")
            if backend == "redis":
                _tracker = RedisPresenceTracker()
            elif backend == "memory":
                _tracker = InMemoryPresenceTracker()
            else:
                raise ValueError(f"Unknown CHAT_PRESENCE_BACKEND: {backend!r}")
            logger.info(f"Presence tracking using {type(_tracker).__name__}")
        return _tracker


def set_presence_tracker(tracker: BasePresenceTracker) -> None:
    global _tracker
    with _tracker_lock:
        _tracker = tracker


def reset_presence_tracker() -> None:
    """
    Drop the current tracker; the next get_presence_tracker() rebuilds it.

    A process-local tracker is cleared first. Shared (Redis) state is left
    alone since other processes still rely on it.
    """
    global _tracker
    with _tracker_lock:
        if _tracker is not None and not _tracker.shared:
            _tracker.clear()
        _tracker = None
