import json
from typing import Any, Dict, List, Optional
from sqlalchemy.exc import IntegrityError
from core.database import Database
from core.errors import IntegrityFault, NotFoundError, ValidationError
from core.security import isoformat, utcnow
from utils.ids import generate_id
from utils.logger import get_logger

logger = get_logger("backend.services.history")

DEFAULT_SESSION_TITLE = "New Consultation"

JSON_FIELDS = ("extracted_symptoms", "grounding_sources", "analysis_results")

# One conditional write: a resubmitted id replaces the row's mutable fields.
# session_id is deliberately not updated.
UPSERT_MESSAGE_SQL = """
INSERT INTO messages (id, session_id, role, content, image_url, extracted_symptoms, grounding_sources, analysis_results, timestamp)
VALUES (:id, :session_id, :role, :content, :image_url, :extracted_symptoms, :grounding_sources, :analysis_results, :timestamp)
ON CONFLICT (id) DO UPDATE SET
    role = excluded.role,
    content = excluded.content,
    image_url = excluded.image_url,
    extracted_symptoms = excluded.extracted_symptoms,
    grounding_sources = excluded.grounding_sources,
    analysis_results = excluded.analysis_results,
    timestamp = excluded.timestamp
"""


def encode_json(value: Any) -> Optional[str]:
    return json.dumps(value) if value is not None else None


def decode_message(row: Dict[str, Any]) -> Dict[str, Any]:
    """Parse the JSON columns of a stored message back into structured values."""
    message = dict(row)
    for field in JSON_FIELDS:
        raw = message.get(field)
        if raw is None or raw == "":
            message[field] = None
            continue
        try:
            message[field] = json.loads(raw)
        except json.JSONDecodeError as e:
            logger.error("Corrupt JSON in stored message", extra={"message_id": message.get("id"), "field": field})
            raise IntegrityFault(f"Stored message {message.get('id')} has invalid {field}") from e
    return message


class HistoryService:
    """Chat sessions and their messages."""

    def __init__(self, db: Database):
        self.db = db

    async def _messages_for(self, session_id: str) -> List[Dict[str, Any]]:
        rows = await self.db.fetch_all(
            "SELECT * FROM messages WHERE session_id = :session_id ORDER BY timestamp ASC",
            {"session_id": session_id},
        )
        return [decode_message(row) for row in rows]

    async def list_sessions(self, user_id: Optional[str]) -> List[Dict[str, Any]]:
        if not user_id:
            raise ValidationError("Missing userId")

        sessions = await self.db.fetch_all(
            "SELECT * FROM chat_sessions WHERE user_id = :user_id ORDER BY updated_at DESC",
            {"user_id": user_id},
        )
        for session in sessions:
            session["messages"] = await self._messages_for(session["id"])

        logger.info("Sessions retrieved", extra={"user_id": user_id, "count": len(sessions)})
        return sessions

    async def get_session(self, session_id: str) -> Dict[str, Any]:
        session = await self.db.fetch_one(
            "SELECT * FROM chat_sessions WHERE id = :id",
            {"id": session_id},
        )
        if session is None:
            raise NotFoundError("Session not found")

        return {"session": session, "messages": await self._messages_for(session_id)}

    async def create_session(self, user_id: Optional[str], title: Optional[str] = None) -> Dict[str, Any]:
        if not user_id:
            raise ValidationError("Missing userId")

        now = isoformat(utcnow())
        session = {
            "id": generate_id(),
            "user_id": user_id,
            "title": title or DEFAULT_SESSION_TITLE,
            "created_at": now,
            "updated_at": now,
        }
        try:
            await self.db.execute(
                "INSERT INTO chat_sessions (id, user_id, title, created_at, updated_at) "
                "VALUES (:id, :user_id, :title, :created_at, :updated_at)",
                session,
            )
        except IntegrityError as e:
            logger.warning("Session create failed - unknown user", extra={"user_id": user_id})
            raise ValidationError("Unknown userId") from e
        logger.info("Session created", extra={"user_id": user_id, "session_id": session["id"]})
        return {**session, "messages": []}

    async def save_message(
        self,
        session_id: Optional[str],
        role: Optional[str],
        content: Optional[str],
        image_url: Optional[str] = None,
        extracted_symptoms: Any = None,
        grounding_sources: Any = None,
        analysis_results: Any = None,
        message_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Insert the message, or overwrite it if ``message_id`` already exists."""
        if not session_id or not role or not content:
            raise ValidationError("Missing required fields")

        now = isoformat(utcnow())
        message = {
            "id": message_id or generate_id(),
            "session_id": session_id,
            "role": role,
            "content": content,
            "image_url": image_url or None,
            "extracted_symptoms": extracted_symptoms,
            "grounding_sources": grounding_sources,
            "analysis_results": analysis_results,
            "timestamp": now,
        }
        params = dict(message)
        for field in JSON_FIELDS:
            params[field] = encode_json(message[field])

        try:
            await self.db.execute(UPSERT_MESSAGE_SQL, params)
        except IntegrityError as e:
            logger.warning("Message save failed - unknown session", extra={"session_id": session_id})
            raise NotFoundError("Session not found") from e

        # Drives session ordering in list_sessions
        await self.db.execute(
            "UPDATE chat_sessions SET updated_at = :now WHERE id = :id",
            {"now": now, "id": session_id},
        )

        logger.info("Message saved", extra={"session_id": session_id, "message_id": message["id"], "role": role})
        return message

    async def update_session_title(self, session_id: str, title: Optional[str]) -> Dict[str, Any]:
        if not title:
            raise ValidationError("Missing title")

        await self.db.execute(
            "UPDATE chat_sessions SET title = :title, updated_at = :now WHERE id = :id",
            {"title": title, "now": isoformat(utcnow()), "id": session_id},
        )
        return {"success": True}

    async def delete_session(self, session_id: str) -> Dict[str, Any]:
        # Messages go with it (ON DELETE CASCADE)
        deleted = await self.db.execute(
            "DELETE FROM chat_sessions WHERE id = :id",
            {"id": session_id},
        )
        logger.info("Session deleted", extra={"session_id": session_id, "rows": deleted})
        return {"success": True}

    async def clear_user_data(self, user_id: str) -> Dict[str, Any]:
        deleted = await self.db.execute(
            "DELETE FROM chat_sessions WHERE user_id = :user_id",
            {"user_id": user_id},
        )
        logger.info("User history cleared", extra={"user_id": user_id, "sessions": deleted})
        return {"success": True}
