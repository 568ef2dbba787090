from sqlalchemy import Column, String, ForeignKey, Text, DateTime, func
from core.database import Base

class ChatSession(Base):
    __tablename__ = "chat_sessions"

    id = Column(String, primary_key=True)
    user_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String, nullable=False)
    created_at = Column(DateTime, server_default=func.current_timestamp())
    updated_at = Column(DateTime, server_default=func.current_timestamp())


class Message(Base):
    __tablename__ = "messages"

    id = Column(String, primary_key=True)
    session_id = Column(String, ForeignKey("chat_sessions.id", ondelete="CASCADE"), nullable=False, index=True)
    role = Column(String, nullable=False)  # 'user' or 'assistant'
    content = Column(Text, nullable=False)
    image_url = Column(Text, nullable=True)
    # JSON-encoded payloads produced by the analysis pipeline
    extracted_symptoms = Column(Text, nullable=True)
    grounding_sources = Column(Text, nullable=True)
    analysis_results = Column(Text, nullable=True)
    timestamp = Column(DateTime, server_default=func.current_timestamp())
