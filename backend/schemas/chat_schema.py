from pydantic import BaseModel
from typing import Any, Optional
from schemas.user_schema import CamelModel

class SessionCreate(CamelModel):
    user_id: Optional[str] = None
    title: Optional[str] = None


class SessionTitleUpdate(CamelModel):
    title: Optional[str] = None


class MessageSave(CamelModel):
    session_id: Optional[str] = None
    role: Optional[str] = None
    content: Optional[str] = None
    image_url: Optional[str] = None
    # Structured payloads from the analysis pipeline, stored as JSON
    extracted_symptoms: Optional[Any] = None
    grounding_sources: Optional[Any] = None
    analysis_results: Optional[Any] = None
    message_id: Optional[str] = None


class MessageOut(BaseModel):
    id: str
    session_id: str
    role: str
    content: str
    image_url: Optional[str] = None
    extracted_symptoms: Optional[Any] = None
    grounding_sources: Optional[Any] = None
    analysis_results: Optional[Any] = None
    timestamp: Any


class MessageResponse(BaseModel):
    message: MessageOut
