from fastapi import APIRouter, Depends, status
from core.database import Database, get_db
from schemas.chat_schema import MessageResponse, MessageSave, SessionCreate, SessionTitleUpdate
from schemas.user_schema import SuccessResponse
from services.history_service import HistoryService

router = APIRouter(prefix="/history", tags=["history"])


def get_history_service(db: Database = Depends(get_db)) -> HistoryService:
    return HistoryService(db)


@router.get("/sessions/{user_id}")
async def list_sessions(user_id: str, history: HistoryService = Depends(get_history_service)):
    return {"sessions": await history.list_sessions(user_id)}


@router.get("/session/{session_id}")
async def get_session(session_id: str, history: HistoryService = Depends(get_history_service)):
    return await history.get_session(session_id)


@router.post("/session", status_code=status.HTTP_201_CREATED)
async def create_session(body: SessionCreate, history: HistoryService = Depends(get_history_service)):
    return {"session": await history.create_session(body.user_id, body.title)}


@router.post("/message", response_model=MessageResponse, status_code=status.HTTP_201_CREATED)
async def save_message(body: MessageSave, history: HistoryService = Depends(get_history_service)):
    message = await history.save_message(
        session_id=body.session_id,
        role=body.role,
        content=body.content,
        image_url=body.image_url,
        extracted_symptoms=body.extracted_symptoms,
        grounding_sources=body.grounding_sources,
        analysis_results=body.analysis_results,
        message_id=body.message_id,
    )
    return {"message": message}


@router.put("/session/{session_id}", response_model=SuccessResponse)
async def update_session_title(session_id: str, body: SessionTitleUpdate, history: HistoryService = Depends(get_history_service)):
    return await history.update_session_title(session_id, body.title)


@router.delete("/session/{session_id}", response_model=SuccessResponse)
async def delete_session(session_id: str, history: HistoryService = Depends(get_history_service)):
    return await history.delete_session(session_id)


@router.delete("/user/{user_id}", response_model=SuccessResponse)
async def clear_user_data(user_id: str, history: HistoryService = Depends(get_history_service)):
    return await history.clear_user_data(user_id)
