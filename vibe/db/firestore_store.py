import logging
import os
from typing import Optional

import anyio
import firebase_admin
from firebase_admin import credentials, firestore

from ..schemas import Message, ProfileSettings, UserProfile
from .base import PAGE_SIZE, HistoryPage, HistoryStore, ProfileStore

logger = logging.getLogger(__name__)

USERS = "users"
CHATS = "chats"
BATCH_LIMIT = 500


def firestore_client(project_id: Optional[str] = None, credentials_path: Optional[str] = None):
    """Initialize the default Firebase app once and return a Firestore client."""
    if not firebase_admin._apps:
        options = {"projectId": project_id} if project_id else None
        if credentials_path and os.path.exists(credentials_path):
            firebase_admin.initialize_app(credentials.Certificate(credentials_path), options)
        else:
            # Fallback: Application Default Credentials
            firebase_admin.initialize_app(options=options)
    return firestore.client()


class FirestoreStore(HistoryStore, ProfileStore):
    """users/{uid} profile documents with a users/{uid}/chats sub-collection."""

    def __init__(self, client):
        self.client = client

    def _chats(self, user_id: str):
        return self.client.collection(USERS).document(user_id).collection(CHATS)

    def _user(self, user_id: str):
        return self.client.collection(USERS).document(user_id)

    async def add_message(self, user_id: str, message: Message) -> None:
        ref = self._chats(user_id).document(message.id)
        await anyio.to_thread.run_sync(ref.set, message.to_document())

    async def fetch_page(self, user_id: str, limit: int = PAGE_SIZE, cursor: Optional[str] = None) -> HistoryPage:
        chats = self._chats(user_id)

        def _fetch():
            query = chats.order_by("timestamp", direction=firestore.Query.DESCENDING)
            if cursor is not None:
                anchor = chats.document(cursor).get()
                if not anchor.exists:
                    return []
                query = query.start_after(anchor)
            return list(query.limit(limit).stream())

        docs = await anyio.to_thread.run_sync(_fetch)
        # Stored fields win over the document id, as on the client
        messages = [Message.model_validate({"id": doc.id, **doc.to_dict()}) for doc in docs]
        return HistoryPage(
            messages=messages,
            cursor=docs[-1].id if docs else cursor,
            has_more=len(docs) == limit,
        )

    async def clear(self, user_id: str) -> int:
        chats = self._chats(user_id)

        def _delete() -> int:
            deleted = 0
            batch = self.client.batch()
            pending = 0
            for doc in chats.stream():
                batch.delete(doc.reference)
                pending += 1
                if pending == BATCH_LIMIT:
                    batch.commit()
                    deleted += pending
                    batch, pending = self.client.batch(), 0
            if pending:
                batch.commit()
                deleted += pending
            return deleted

        return await anyio.to_thread.run_sync(_delete)

    async def get_profile(self, user_id: str) -> Optional[UserProfile]:
        snap = await anyio.to_thread.run_sync(self._user(user_id).get)
        if not snap.exists:
            return None
        return UserProfile.model_validate(snap.to_dict() or {})

    async def save_profile(self, user_id: str, profile: UserProfile) -> None:
        await anyio.to_thread.run_sync(self._user(user_id).set, profile.to_document())

    async def update_settings(self, user_id: str, settings: ProfileSettings, updated_at: str) -> None:
        ref = self._user(user_id)

        def _merge():
            ref.set({"settings": settings.model_dump(), "updatedAt": updated_at}, merge=True)

        await anyio.to_thread.run_sync(_merge)
