import time
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, Query, Request, UploadFile

from ..config import Settings
from ..db.base import PAGE_SIZE, HistoryStore
from ..errors import classify_upstream
from ..gateway import ConversationGateway
from ..schemas import (
    DEFAULT_LANGUAGE,
    DEFAULT_PERSONALITY,
    HealthResponse,
    ServiceFlags,
    TextTurnRequest,
    TextTurnResponse,
    VoiceTurnResponse,
    utc_now_iso,
)
from ..services.registry import Services

router = APIRouter()
conversation = APIRouter(prefix="/conversation", tags=["conversation"])


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_services(request: Request) -> Services:
    return request.app.state.services


def get_gateway(request: Request) -> ConversationGateway:
    return request.app.state.gateway


@router.get("/")
def root(settings: Settings = Depends(get_settings)):
    return {
        "message": f"{settings.app_name} is running!",
        "version": settings.app_version,
        "timestamp": utc_now_iso(),
    }


@router.get("/api/health", response_model=HealthResponse)
def health(
    request: Request,
    settings: Settings = Depends(get_settings),
    services: Services = Depends(get_services),
):
    publisher = services.publisher
    return HealthResponse(
        timestamp=utc_now_iso(),
        service=settings.app_name,
        uptime=round(time.monotonic() - request.app.state.started_at, 3),
        environment=settings.environment,
        services=ServiceFlags(
            google_cloud=bool(settings.google_credentials),
            gemini=services.generator is not None,
            firebase=bool(settings.firebase_project_id),
            cloud_storage=bool(publisher and publisher.configured),
        ),
    )


@conversation.post("/text", response_model=TextTurnResponse)
async def text_turn(req: TextTurnRequest, gateway: ConversationGateway = Depends(get_gateway)):
    return await gateway.text_turn(req.message)


@conversation.post("/voice", response_model=VoiceTurnResponse)
async def voice_turn(
    audio: Optional[UploadFile] = File(None),
    personality: str = Form(DEFAULT_PERSONALITY),
    language: str = Form(DEFAULT_LANGUAGE),
    gateway: ConversationGateway = Depends(get_gateway),
):
    return await gateway.voice_turn(audio)


@conversation.get("/history")
async def history(
    user_id: Optional[str] = None,
    limit: int = Query(PAGE_SIZE, ge=1, le=100),
    before: Optional[str] = None,
    services: Services = Depends(get_services),
):
    """Without `user_id` this stays an empty stub; clients page the store directly."""
    store = services.store
    if not user_id or not isinstance(store, HistoryStore):
        return {"history": []}

    try:
        page = await store.fetch_page(user_id, limit=limit, cursor=before)
    except Exception as e:
        raise classify_upstream(e, "Failed to retrieve chat history", "History retrieval") from e
    return {
        "history": [m.to_document() for m in page.messages],
        "hasMore": page.has_more,
        "cursor": page.cursor,
    }
