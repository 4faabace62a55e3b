"""实时通道的内存存储。

- 通知：按到达顺序最新在前（不按 createdAt 排序，到达顺序是客户端唯一能保证的全序）；
- 消息：按会话追加，只增不改；
- 在线用户：user_status_change 维护的集合。

存储本身不发网络请求；通道断开时整体清空，不跨通道会话保留。
"""

from __future__ import annotations

from typing import List, Optional

from .domain import ConversationMessage, Notification


class NotificationStore:
    def __init__(self) -> None:
        self._items: List[Notification] = []

    @property
    def items(self) -> List[Notification]:
        return list(self._items)

    def __len__(self) -> int:
        return len(self._items)

    @property
    def unread_count(self) -> int:
        return sum(1 for n in self._items if not n.read)

    def add(self, notification: Notification) -> None:
        self._items.insert(0, notification)

    def mark_read(self, notification_id: str) -> bool:
        for n in self._items:
            if n.id == notification_id:
                changed = not n.read
                n.read = True
                return changed
        return False

    def mark_all_read(self) -> int:
        unread = [n for n in self._items if not n.read]
        for n in unread:
            n.read = True
        return len(unread)

    def clear(self) -> None:
        self._items.clear()


class MessageStore:
    def __init__(self) -> None:
        self._items: List[ConversationMessage] = []

    @property
    def items(self) -> List[ConversationMessage]:
        return list(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def append(self, message: ConversationMessage) -> None:
        self._items.append(message)

    def for_conversation(self, conversation_id: Optional[str]) -> List[ConversationMessage]:
        return [m for m in self._items if m.conversation_id == conversation_id]

    def clear(self) -> None:
        self._items.clear()


class PresenceStore:
    def __init__(self) -> None:
        self._online: List[str] = []

    @property
    def online(self) -> List[str]:
        return list(self._online)

    def __len__(self) -> int:
        return len(self._online)

    def is_online(self, user_id: str) -> bool:
        return user_id in self._online

    def update(self, user_id: str, status: str) -> None:
        if status == "online":
            if user_id not in self._online:
                self._online.append(user_id)
        elif user_id in self._online:
            self._online.remove(user_id)

    def clear(self) -> None:
        self._online.clear()


__all__ = ["NotificationStore", "MessageStore", "PresenceStore"]
