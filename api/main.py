from __future__ import annotations

from datetime import UTC, datetime
import logging
from os import getenv
from typing import Literal, Optional
from uuid import UUID

from fastapi import Depends, FastAPI, Header, Query, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session
from starlette.exceptions import HTTPException as StarletteHTTPException

from assist import improve, list_usage_records, load_assist_config, usage_today
from db.models import AssistUsageRecord, Comment, Idea, Notification, Profile
from db.session import get_db
from ideas import (
    add_comment,
    create_idea,
    dashboard,
    decide_idea,
    delete_idea,
    ensure_profile,
    get_idea,
    list_ideas,
    list_ideas_for_review,
    submit_idea,
    update_idea,
)
from ideas.errors import AppError
from ideas.guard import require_admin
from ideas.identity import Identity, load_auth_config, resolve_identity
from llm import get_mediator
from notifications.events import parse_meta
from notifications.inbox import list_notifications, mark_notifications

from .schemas import (
    CommentCreateRequest,
    DecisionRequest,
    IdeaCreateRequest,
    IdeaHelperRequest,
    IdeaUpdateRequest,
    InboxUpdateRequest,
)

logging.basicConfig(
    level=getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


def _cors_origins() -> list[str]:
    raw = getenv("CORS_ORIGINS", "http://localhost:3000,http://127.0.0.1:3000")
    return [origin.strip() for origin in raw.split(",") if origin.strip()]


app = FastAPI(title="Ideazoop API", version="0.1.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

_HTTP_LABELS = {
    400: "Bad Request",
    401: "Unauthorized",
    403: "Forbidden",
    404: "Not Found",
    405: "Method Not Allowed",
    429: "Rate Limit Exceeded",
}


def _error_response(status: int, error: str, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status,
        content={"error": error, "message": message, "status": status},
    )


@app.exception_handler(AppError)
async def _app_error_handler(_request: Request, exc: AppError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def _validation_error_handler(_request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    if errors:
        first = errors[0]
        location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        message = f"{location}: {first.get('msg')}" if location else str(first.get("msg"))
    else:
        message = "Invalid request"
    return _error_response(400, "Validation Error", message)


@app.exception_handler(StarletteHTTPException)
async def _http_error_handler(_request: Request, exc: StarletteHTTPException) -> JSONResponse:
    label = _HTTP_LABELS.get(exc.status_code, "Error")
    return _error_response(exc.status_code, label, str(exc.detail))


@app.exception_handler(Exception)
async def _unexpected_error_handler(_request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error: %s", exc)
    return _error_response(500, "Internal Server Error", "An unexpected error occurred")


def _paginate(limit: int, offset: int) -> tuple[int, int]:
    limit = max(1, min(limit, 100))
    offset = max(0, offset)
    return limit, offset


def current_identity(
    authorization: str | None = Header(default=None),
    session: Session = Depends(get_db),
) -> Identity:
    return resolve_identity(session, authorization, load_auth_config())


def assist_mediator():
    return get_mediator()


def _serialize_profile(profile: Profile | None) -> dict | None:
    if profile is None:
        return None
    return {
        "id": profile.id,
        "role": profile.role,
        "full_name": profile.full_name,
        "avatar_url": profile.avatar_url,
        "created_at": profile.created_at,
        "updated_at": profile.updated_at,
    }


def _serialize_comment(comment: Comment) -> dict:
    author = comment.author
    return {
        "id": comment.id,
        "idea_id": comment.idea_id,
        "author_id": comment.author_id,
        "body": comment.body,
        "created_at": comment.created_at,
        "author": {"id": author.id, "full_name": author.full_name, "role": author.role}
        if author
        else None,
    }


def _serialize_idea(idea: Idea, *, with_comments: bool = False) -> dict:
    payload = {
        "id": idea.id,
        "owner_id": idea.owner_id,
        "title": idea.title,
        "description": idea.description,
        "tags": list(idea.tags or []),
        "status": idea.status,
        "created_at": idea.created_at,
        "updated_at": idea.updated_at,
        "owner": {"id": idea.owner.id, "full_name": idea.owner.full_name} if idea.owner else None,
    }
    if with_comments:
        payload["comments"] = [_serialize_comment(comment) for comment in idea.comments]
    return payload


def _serialize_notification(notification: Notification) -> dict:
    idea = notification.idea
    return {
        "id": notification.id,
        "user_id": notification.user_id,
        "idea_id": notification.idea_id,
        "type": notification.type,
        "meta": parse_meta(notification.type, notification.meta).model_dump(mode="json"),
        "read": notification.read,
        "created_at": notification.created_at,
        "idea": {"id": idea.id, "title": idea.title, "status": idea.status} if idea else None,
    }


def _serialize_usage_record(record: AssistUsageRecord) -> dict:
    return {
        "id": record.id,
        "user_id": record.user_id,
        "prompt": record.prompt,
        "response": record.response,
        "failed": record.failed,
        "created_at": record.created_at,
    }


@app.get("/health")
def health() -> dict:
    return {"status": "ok"}


@app.post("/profile")
def create_profile(
    identity: Identity = Depends(current_identity),
    session: Session = Depends(get_db),
) -> dict:
    profile, created = ensure_profile(session, identity)
    return jsonable_encoder({"data": _serialize_profile(profile), "created": created})


@app.get("/me")
def me(
    identity: Identity = Depends(current_identity),
    session: Session = Depends(get_db),
) -> dict:
    profile = session.get(Profile, identity.user_id)
    return jsonable_encoder(
        {
            "data": {
                "id": identity.user_id,
                "role": identity.role.value if identity.role else None,
                "profile": _serialize_profile(profile),
            }
        }
    )


@app.post("/ideas", status_code=201)
def create_idea_endpoint(
    request: IdeaCreateRequest,
    identity: Identity = Depends(current_identity),
    session: Session = Depends(get_db),
) -> dict:
    idea = create_idea(
        session,
        identity,
        title=request.title,
        description=request.description,
        tags=request.tags,
    )
    return jsonable_encoder({"data": _serialize_idea(idea)})


@app.get("/ideas")
def list_ideas_endpoint(
    status: Optional[str] = Query(None),
    search: Optional[str] = Query(None),
    limit: int = Query(10, ge=1, le=100),
    offset: int = Query(0, ge=0),
    identity: Identity = Depends(current_identity),
    session: Session = Depends(get_db),
) -> dict:
    limit, offset = _paginate(limit, offset)
    rows, total = list_ideas(
        session,
        identity,
        status=status,
        search=search,
        limit=limit,
        offset=offset,
    )
    return jsonable_encoder(
        {
            "data": [_serialize_idea(idea) for idea in rows],
            "pagination": {"total": total, "limit": limit, "offset": offset},
        }
    )


@app.get("/ideas/{idea_id}")
def get_idea_endpoint(
    idea_id: UUID,
    identity: Identity = Depends(current_identity),
    session: Session = Depends(get_db),
) -> dict:
    idea = get_idea(session, identity, idea_id)
    return jsonable_encoder({"data": _serialize_idea(idea, with_comments=True)})


@app.put("/ideas/{idea_id}")
def update_idea_endpoint(
    idea_id: UUID,
    request: IdeaUpdateRequest,
    identity: Identity = Depends(current_identity),
    session: Session = Depends(get_db),
) -> dict:
    idea = update_idea(
        session,
        identity,
        idea_id,
        title=request.title,
        description=request.description,
        tags=request.tags,
    )
    return jsonable_encoder({"data": _serialize_idea(idea)})


@app.delete("/ideas/{idea_id}")
def delete_idea_endpoint(
    idea_id: UUID,
    identity: Identity = Depends(current_identity),
    session: Session = Depends(get_db),
) -> dict:
    delete_idea(session, identity, idea_id)
    return {"success": True}


@app.post("/ideas/{idea_id}/submit")
def submit_idea_endpoint(
    idea_id: UUID,
    identity: Identity = Depends(current_identity),
    session: Session = Depends(get_db),
) -> dict:
    idea = submit_idea(session, identity, idea_id)
    return jsonable_encoder(
        {"data": _serialize_idea(idea), "message": "Idea submitted for review successfully"}
    )


@app.post("/ideas/{idea_id}/comment", status_code=201)
def comment_endpoint(
    idea_id: UUID,
    request: CommentCreateRequest,
    identity: Identity = Depends(current_identity),
    session: Session = Depends(get_db),
) -> dict:
    comment = add_comment(session, identity, idea_id, body=request.body)
    return jsonable_encoder({"data": _serialize_comment(comment)})


@app.get("/admin/ideas")
def admin_list_ideas(
    status: Optional[str] = Query(None),
    search: Optional[str] = Query(None),
    sort: Literal["created_at", "updated_at", "title"] = Query("updated_at"),
    order: Literal["asc", "desc"] = Query("desc"),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    identity: Identity = Depends(current_identity),
    session: Session = Depends(get_db),
) -> dict:
    limit, offset = _paginate(limit, offset)
    page = list_ideas_for_review(
        session,
        identity,
        status=status,
        search=search,
        sort=sort,
        order=order,
        limit=limit,
        offset=offset,
    )
    data = []
    for idea, comment_count in page.rows:
        item = _serialize_idea(idea)
        item["comment_count"] = comment_count
        data.append(item)
    return jsonable_encoder(
        {
            "data": data,
            "pagination": {"total": page.total, "limit": limit, "offset": offset},
            "counts": page.counts,
        }
    )


@app.post("/admin/ideas/{idea_id}/decision")
def decide_endpoint(
    idea_id: UUID,
    request: DecisionRequest,
    identity: Identity = Depends(current_identity),
    session: Session = Depends(get_db),
) -> dict:
    decision = decide_idea(
        session,
        identity,
        idea_id,
        action=request.action,
        comment=request.comment,
    )
    return jsonable_encoder(
        {
            "data": _serialize_idea(decision.idea),
            "message": decision.message,
            "action": decision.action,
        }
    )


@app.get("/inbox")
def inbox(
    read: Literal["true", "false", "all"] = Query("all"),
    sort: Literal["created_at", "read"] = Query("created_at"),
    order: Literal["asc", "desc"] = Query("desc"),
    limit: int = Query(20, ge=1, le=50),
    offset: int = Query(0, ge=0),
    identity: Identity = Depends(current_identity),
    session: Session = Depends(get_db),
) -> dict:
    page = list_notifications(
        session,
        identity,
        read=None if read == "all" else read == "true",
        sort=sort,
        order=order,
        limit=limit,
        offset=offset,
    )
    return jsonable_encoder(
        {
            "data": [_serialize_notification(row) for row in page.items],
            "pagination": {"total": page.total, "limit": page.limit, "offset": page.offset},
            "unread": page.unread,
        }
    )


@app.patch("/inbox")
def mark_inbox(
    request: InboxUpdateRequest,
    identity: Identity = Depends(current_identity),
    session: Session = Depends(get_db),
) -> dict:
    rows = mark_notifications(session, identity, request.ids, read=request.read)
    state = "read" if request.read else "unread"
    return jsonable_encoder(
        {
            "data": [_serialize_notification(row) for row in rows],
            "message": f"{len(rows)} notification(s) marked as {state}",
        }
    )


@app.post("/ai/idea-helper")
def idea_helper(
    request: IdeaHelperRequest,
    identity: Identity = Depends(current_identity),
    session: Session = Depends(get_db),
    mediator=Depends(assist_mediator),
) -> dict:
    result = improve(
        session,
        identity,
        title=request.title,
        description=request.description,
        config=load_assist_config(),
        mediator=mediator,
    )
    return {
        "data": {"improvedCopy": result.improved_text, "tags": result.tags},
        "usage": {"daily": result.usage.to_dict()},
    }


@app.get("/ai/usage")
def ai_usage(
    identity: Identity = Depends(current_identity),
    session: Session = Depends(get_db),
) -> dict:
    return {"data": {"daily": usage_today(session, identity).to_dict()}}


@app.get("/admin/ai/usage-logs")
def admin_usage_logs(
    user_id: Optional[UUID] = Query(None),
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    identity: Identity = Depends(current_identity),
    session: Session = Depends(get_db),
) -> dict:
    require_admin(identity)
    limit, offset = _paginate(limit, offset)
    rows, total = list_usage_records(session, identity, user_id=user_id, limit=limit, offset=offset)
    return jsonable_encoder(
        {
            "data": [_serialize_usage_record(row) for row in rows],
            "pagination": {"total": total, "limit": limit, "offset": offset},
        }
    )


@app.get("/admin/llm/metrics")
def llm_metrics(identity: Identity = Depends(current_identity)) -> dict:
    require_admin(identity)
    return jsonable_encoder(get_mediator().get_metrics_snapshot())


@app.get("/dashboard")
def dashboard_endpoint(
    identity: Identity = Depends(current_identity),
    session: Session = Depends(get_db),
) -> dict:
    return jsonable_encoder(
        {
            "data": dashboard(session, identity),
            "timestamp": datetime.now(UTC),
            "role": identity.role.value if identity.role else None,
        }
    )
