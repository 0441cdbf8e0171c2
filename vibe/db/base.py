from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import List, Optional

from ..schemas import Message, ProfileSettings, UserProfile

PAGE_SIZE = 20


@dataclass
class HistoryPage:
    """One page of a user's conversation, newest message first.

    `cursor` is the id of the oldest message on the page; pass it back to
    fetch the next (older) page.
    """

    messages: List[Message] = field(default_factory=list)
    cursor: Optional[str] = None
    has_more: bool = False


class HistoryStore(ABC):
    """Per-user message collection ordered by timestamp."""

    @abstractmethod
    async def add_message(self, user_id: str, message: Message) -> None:
        ...

    @abstractmethod
    async def fetch_page(self, user_id: str, limit: int = PAGE_SIZE, cursor: Optional[str] = None) -> HistoryPage:
        ...

    @abstractmethod
    async def clear(self, user_id: str) -> int:
        """Delete every message for `user_id`; returns how many were removed."""
        ...


class ProfileStore(ABC):
    """One profile document per authenticated identity."""

    @abstractmethod
    async def get_profile(self, user_id: str) -> Optional[UserProfile]:
        ...

    @abstractmethod
    async def save_profile(self, user_id: str, profile: UserProfile) -> None:
        ...

    @abstractmethod
    async def update_settings(self, user_id: str, settings: ProfileSettings, updated_at: str) -> None:
        ...
