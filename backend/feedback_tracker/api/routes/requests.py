import logging
import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from feedback_tracker.core.auth import CurrentUser, get_current_user
from feedback_tracker.core.dependencies import get_db
from feedback_tracker.schemas.reference import MessageOut
from feedback_tracker.schemas.requests import (
    CommentCreate,
    RequestCreate,
    RequestDetailOut,
    RequestListResponse,
    RequestPriority,
    RequestStatsOut,
    RequestStatus,
    RequestUpdate,
    SimilarRequestOut,
    SimilarRequestQuery,
)
from feedback_tracker.services.history_service import apply_request_update
from feedback_tracker.services.request_service import (
    add_comment,
    create_request,
    find_similar_requests,
    get_request_or_404,
    list_requests,
)
from feedback_tracker.services.request_stats import build_request_stats
from feedback_tracker.services.request_views import build_request_detail, build_request_summaries, build_similar

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/requests", response_model=RequestListResponse)
def list_requests_endpoint(
    status: Optional[RequestStatus] = Query(None),
    priority: Optional[RequestPriority] = Query(None),
    customer: Optional[uuid.UUID] = Query(None),
    tag: Optional[uuid.UUID] = Query(None),
    search: Optional[str] = Query(None, max_length=200),
    sort: str = Query("created_at"),
    order: str = Query("desc"),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    _: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    result = list_requests(
        db,
        status=status,
        priority=priority,
        customer=customer,
        tag=tag,
        search=search,
        sort=sort,
        order=order,
        page=page,
        limit=limit,
    )
    return RequestListResponse(
        requests=build_request_summaries(db, result.items),
        page=result.page,
        pages=result.pages,
        total=result.total,
    )


@router.post("/requests/similar", response_model=list[SimilarRequestOut])
def similar_requests(
    payload: SimilarRequestQuery,
    _: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return build_similar(find_similar_requests(db, title=payload.title, content=payload.content))


@router.get("/requests/stats", response_model=RequestStatsOut)
def request_stats(
    _: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return build_request_stats(db)


@router.post("/requests", response_model=RequestDetailOut, status_code=201)
def create_request_endpoint(
    payload: RequestCreate,
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    request = create_request(db, payload, actor_id=current_user.id)
    db.commit()
    return build_request_detail(db, get_request_or_404(db, str(request.id), eager=True))


@router.get("/requests/{request_id}", response_model=RequestDetailOut)
def get_request(
    request_id: str,
    _: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return build_request_detail(db, get_request_or_404(db, request_id, eager=True))


@router.put("/requests/{request_id}", response_model=RequestDetailOut)
def update_request(
    request_id: str,
    payload: RequestUpdate,
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    request = get_request_or_404(db, request_id, eager=True)
    apply_request_update(request, payload, actor_id=current_user.id)
    db.commit()
    return build_request_detail(db, get_request_or_404(db, request_id, eager=True))


@router.delete("/requests/{request_id}", response_model=MessageOut)
def delete_request(
    request_id: str,
    _: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    # Loaded children are removed by the ORM even where the database does not cascade.
    request = get_request_or_404(db, request_id, eager=True)
    display_id = request.request_id
    db.delete(request)
    db.commit()
    logger.info("Request %s deleted", display_id)
    return MessageOut(message="Request removed")


@router.post("/requests/{request_id}/comments", response_model=RequestDetailOut, status_code=201)
def add_comment_endpoint(
    request_id: str,
    payload: CommentCreate,
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    request = get_request_or_404(db, request_id, eager=True)
    add_comment(request, payload, actor_id=current_user.id)
    db.commit()
    return build_request_detail(db, get_request_or_404(db, request_id, eager=True))
