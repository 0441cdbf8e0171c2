from sqlalchemy import Boolean, Column, Integer, String, Text, UniqueConstraint

from .database import Base


class ChatMessage(Base):
    __tablename__ = "chat_messages"
    __table_args__ = (UniqueConstraint("user_id", "message_id", name="uq_chat_messages_user_message"),)

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String, index=True, nullable=False)
    message_id = Column(String, nullable=False)
    type = Column(String(8), nullable=False)
    content = Column(Text, nullable=False)
    # ISO-8601 UTC strings sort chronologically as text
    timestamp = Column(String(40), index=True, nullable=False)
    tts_audio_url = Column(String, nullable=True)
    is_error = Column(Boolean, default=False, nullable=False)


class UserProfileRow(Base):
    __tablename__ = "user_profiles"

    user_id = Column(String, primary_key=True)
    email = Column(String, nullable=True)
    name = Column(String, nullable=True)
    profile_picture = Column(String, nullable=True)
    personality = Column(String, nullable=False)
    language = Column(String, nullable=False)
    created_at = Column(String(40), nullable=False)
    updated_at = Column(String(40), nullable=False)
