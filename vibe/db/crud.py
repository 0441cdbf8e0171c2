from typing import List, Optional

import anyio
from sqlalchemy import and_, or_
from sqlalchemy.orm import Session, sessionmaker

from ..schemas import Message, ProfileSettings, UserProfile
from . import models
from .base import PAGE_SIZE, HistoryPage, HistoryStore, ProfileStore


def create_message(db: Session, user_id: str, message: Message) -> models.ChatMessage:
    row = models.ChatMessage(
        user_id=user_id,
        message_id=message.id,
        type=message.type.value,
        content=message.content,
        timestamp=message.timestamp,
        tts_audio_url=message.tts_audio_url,
        is_error=message.is_error,
    )
    db.add(row)
    db.commit()
    db.refresh(row)
    return row


def list_page(db: Session, user_id: str, limit: int = PAGE_SIZE, cursor: Optional[str] = None) -> List[models.ChatMessage]:
    q = db.query(models.ChatMessage).filter(models.ChatMessage.user_id == user_id)
    if cursor is not None:
        anchor = (
            db.query(models.ChatMessage)
            .filter(models.ChatMessage.user_id == user_id, models.ChatMessage.message_id == cursor)
            .one_or_none()
        )
        if anchor is None:
            return []
        q = q.filter(
            or_(
                models.ChatMessage.timestamp < anchor.timestamp,
                and_(models.ChatMessage.timestamp == anchor.timestamp, models.ChatMessage.id < anchor.id),
            )
        )
    return (
        q.order_by(models.ChatMessage.timestamp.desc(), models.ChatMessage.id.desc())
        .limit(limit)
        .all()
    )


def delete_messages(db: Session, user_id: str) -> int:
    count = db.query(models.ChatMessage).filter(models.ChatMessage.user_id == user_id).delete()
    db.commit()
    return count


def to_message(row: models.ChatMessage) -> Message:
    return Message(
        id=row.message_id,
        type=row.type,
        content=row.content,
        timestamp=row.timestamp,
        tts_audio_url=row.tts_audio_url,
        is_error=row.is_error,
    )


def to_profile(row: models.UserProfileRow) -> UserProfile:
    return UserProfile(
        email=row.email,
        name=row.name,
        profile_picture=row.profile_picture,
        settings=ProfileSettings(personality=row.personality, language=row.language),
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


class SqlStore(HistoryStore, ProfileStore):
    """History and profiles in a SQL database (SQLite by default)."""

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    def _run(self, fn, *args):
        def _call():
            with self.session_factory() as db:
                return fn(db, *args)

        return anyio.to_thread.run_sync(_call)

    async def add_message(self, user_id: str, message: Message) -> None:
        await self._run(create_message, user_id, message)

    async def fetch_page(self, user_id: str, limit: int = PAGE_SIZE, cursor: Optional[str] = None) -> HistoryPage:
        def _fetch(db: Session) -> List[Message]:
            return [to_message(row) for row in list_page(db, user_id, limit, cursor)]

        messages = await self._run(_fetch)
        return HistoryPage(
            messages=messages,
            cursor=messages[-1].id if messages else cursor,
            has_more=len(messages) == limit,
        )

    async def clear(self, user_id: str) -> int:
        return await self._run(delete_messages, user_id)

    async def get_profile(self, user_id: str) -> Optional[UserProfile]:
        def _get(db: Session) -> Optional[UserProfile]:
            row = db.get(models.UserProfileRow, user_id)
            return to_profile(row) if row else None

        return await self._run(_get)

    async def save_profile(self, user_id: str, profile: UserProfile) -> None:
        def _save(db: Session) -> None:
            db.merge(
                models.UserProfileRow(
                    user_id=user_id,
                    email=profile.email,
                    name=profile.name,
                    profile_picture=profile.profile_picture,
                    personality=profile.settings.personality,
                    language=profile.settings.language,
                    created_at=profile.created_at,
                    updated_at=profile.updated_at,
                )
            )
            db.commit()

        await self._run(_save)

    async def update_settings(self, user_id: str, settings: ProfileSettings, updated_at: str) -> None:
        def _update(db: Session) -> None:
            row = db.get(models.UserProfileRow, user_id)
            if row is None:
                row = models.UserProfileRow(user_id=user_id, created_at=updated_at)
                db.add(row)
            row.personality = settings.personality
            row.language = settings.language
            row.updated_at = updated_at
            db.commit()

        await self._run(_update)
