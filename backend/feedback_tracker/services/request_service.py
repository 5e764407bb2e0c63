import logging
import math
import uuid
from dataclasses import dataclass
from typing import Optional

from fastapi import HTTPException
from sqlalchemy import asc, case, desc, func, or_, select
from sqlalchemy.orm import Session, selectinload

from feedback_tracker.core.config import get_settings
from feedback_tracker.models.tracker import (
    CustomerRequest,
    RequestComment,
    RequestCustomerLink,
    RequestTagLink,
    User,
)
from feedback_tracker.schemas.requests import (
    PRIORITY_ORDER,
    CommentCreate,
    RequestCreate,
    RequestPriority,
    RequestStatus,
)
from feedback_tracker.services.history_service import customer_links, relation_links, tag_links
from feedback_tracker.services.sequence import REQUEST_SEQUENCE, next_sequence_value

logger = logging.getLogger(__name__)

SIMILAR_LIMIT = 5

_PRIORITY_RANK = case(
    {priority.value: rank for priority, rank in PRIORITY_ORDER.items()},
    value=CustomerRequest.priority,
    else_=len(PRIORITY_ORDER),
)

SORT_COLUMNS = {
    "created_at": CustomerRequest.created_at,
    "updated_at": CustomerRequest.updated_at,
    "title": CustomerRequest.title,
    "status": CustomerRequest.status,
    "priority": _PRIORITY_RANK,
    "request_id": CustomerRequest.sequence_number,
}
SORT_ALIASES = {
    "createdAt": "created_at",
    "updatedAt": "updated_at",
    "requestId": "request_id",
}


@dataclass
class RequestPage:
    items: list[CustomerRequest]
    page: int
    pages: int
    total: int


def _like_pattern(term: str) -> str:
    escaped = term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def contains_text(column, term: str):
    return column.ilike(_like_pattern(term), escape="\\")


def _with_relations(stmt):
    return stmt.options(
        selectinload(CustomerRequest.customer_links),
        selectinload(CustomerRequest.tag_links),
        selectinload(CustomerRequest.related_links),
        selectinload(CustomerRequest.comments),
        selectinload(CustomerRequest.history),
    )


def get_request_or_404(db: Session, request_id: str, *, eager: bool = False) -> CustomerRequest:
    try:
        key = uuid.UUID(str(request_id))
    except ValueError:
        raise HTTPException(404, "Request not found") from None
    if eager:
        request = db.execute(_with_relations(select(CustomerRequest).where(CustomerRequest.id == key))).scalar_one_or_none()
    else:
        request = db.get(CustomerRequest, key)
    if request is None:
        raise HTTPException(404, "Request not found")
    return request


def _default_reporter(db: Session, actor_id: str) -> str:
    try:
        user = db.get(User, uuid.UUID(actor_id))
    except ValueError:
        return ""
    return user.name if user else ""


def create_request(db: Session, payload: RequestCreate, *, actor_id: str) -> CustomerRequest:
    settings = get_settings()
    number = next_sequence_value(db, REQUEST_SEQUENCE)
    reporter = payload.reporter if payload.reporter is not None else _default_reporter(db, actor_id)

    request = CustomerRequest(
        sequence_number=number,
        request_id=settings.format_request_id(number),
        title=payload.title,
        content=payload.content,
        reporter=reporter,
        status=(payload.status or RequestStatus.NEW).value,
        priority=(payload.priority or RequestPriority.MEDIUM).value,
        parent_request_id=payload.parent_request,
        custom_fields=payload.custom_fields or {},
        created_by=actor_id,
        updated_by=actor_id,
    )
    request.customer_links = customer_links(payload.customers)
    request.tag_links = tag_links(payload.tags)
    request.related_links = relation_links(payload.related_requests)
    db.add(request)
    db.flush()
    logger.info("Request %s created by %s", request.request_id, actor_id)
    return request


def list_requests(
    db: Session,
    *,
    status: Optional[RequestStatus] = None,
    priority: Optional[RequestPriority] = None,
    customer: Optional[uuid.UUID] = None,
    tag: Optional[uuid.UUID] = None,
    search: Optional[str] = None,
    sort: str = "created_at",
    order: str = "desc",
    page: int = 1,
    limit: int = 10,
) -> RequestPage:
    sort_key = SORT_ALIASES.get(sort, sort)
    if sort_key not in SORT_COLUMNS:
        raise HTTPException(400, f"Unsupported sort field: {sort}")
    if order not in {"asc", "desc"}:
        raise HTTPException(400, "order must be 'asc' or 'desc'")

    conditions = []
    if status:
        conditions.append(CustomerRequest.status == status.value)
    if priority:
        conditions.append(CustomerRequest.priority == priority.value)
    if customer:
        conditions.append(
            CustomerRequest.id.in_(select(RequestCustomerLink.request_id).where(RequestCustomerLink.customer_id == customer))
        )
    if tag:
        conditions.append(CustomerRequest.id.in_(select(RequestTagLink.request_id).where(RequestTagLink.tag_id == tag)))
    term = (search or "").strip()
    if term:
        conditions.append(
            or_(
                contains_text(CustomerRequest.title, term),
                contains_text(CustomerRequest.content, term),
                contains_text(CustomerRequest.reporter, term),
            )
        )

    total = db.execute(select(func.count()).select_from(CustomerRequest).where(*conditions)).scalar() or 0

    direction = desc if order == "desc" else asc
    stmt = (
        select(CustomerRequest)
        .where(*conditions)
        .options(
            selectinload(CustomerRequest.customer_links),
            selectinload(CustomerRequest.tag_links),
            selectinload(CustomerRequest.comments),
        )
        .order_by(direction(SORT_COLUMNS[sort_key]), direction(CustomerRequest.sequence_number))
        .offset((page - 1) * limit)
        .limit(limit)
    )
    items = list(db.execute(stmt).scalars().all())
    return RequestPage(items=items, page=page, pages=math.ceil(total / limit) if total else 0, total=int(total))


def find_similar_requests(db: Session, *, title: Optional[str], content: Optional[str]) -> list[CustomerRequest]:
    """Substring match: ``title`` against titles, ``content`` against titles and bodies."""
    title = (title or "").strip()
    content = (content or "").strip()
    if not title and not content:
        raise HTTPException(400, "title or content is required")

    conditions = []
    if title:
        conditions.append(contains_text(CustomerRequest.title, title))
    if content:
        conditions.append(or_(contains_text(CustomerRequest.title, content), contains_text(CustomerRequest.content, content)))

    stmt = (
        select(CustomerRequest)
        .where(*conditions)
        .order_by(desc(CustomerRequest.sequence_number))
        .limit(SIMILAR_LIMIT)
    )
    return list(db.execute(stmt).scalars().all())


def add_comment(request: CustomerRequest, payload: CommentCreate, *, actor_id: str) -> RequestComment:
    comment = RequestComment(
        position=len(request.comments),
        content=payload.content,
        author_id=actor_id,
        attachments=list(payload.attachments),
    )
    request.comments.append(comment)
    request.updated_by = actor_id
    return comment
