"""Response builders for requests: resolve stored ids into display fields.

References are not enforced by the database, so any id may point at a row
that no longer exists. Population skips such ids instead of failing.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from typing import Any, Iterable, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from feedback_tracker.models.tracker import Customer, CustomerRequest, RequestHistory, Tag, User
from feedback_tracker.schemas.requests import (
    CommentOut,
    CustomerRef,
    RequestDetailOut,
    RequestPriority,
    RequestRef,
    RequestStatus,
    RequestSummaryOut,
    SimilarRequestOut,
    TagRef,
    UserRef,
)


@dataclass
class _Lookups:
    """One batch of referenced rows per response, keyed by id."""

    customers: dict[uuid.UUID, Customer] = field(default_factory=dict)
    tags: dict[uuid.UUID, Tag] = field(default_factory=dict)
    users: dict[uuid.UUID, User] = field(default_factory=dict)
    requests: dict[uuid.UUID, tuple[str, str]] = field(default_factory=dict)


def _as_uuid(value: Any) -> Optional[uuid.UUID]:
    if value is None or isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except ValueError:
        return None


def _uuids(values: Iterable[Any]) -> set[uuid.UUID]:
    return {key for key in (_as_uuid(value) for value in values) if key is not None}


def _prefetch(db: Session, requests: list[CustomerRequest], *, detail: bool) -> _Lookups:
    customer_ids: set[uuid.UUID] = set()
    tag_ids: set[uuid.UUID] = set()
    user_ids: set[uuid.UUID] = set()
    request_ids: set[uuid.UUID] = set()

    for request in requests:
        customer_ids |= _uuids(request.customer_ids)
        tag_ids |= _uuids(request.tag_ids)
        user_ids |= _uuids([request.created_by, request.updated_by])
        if detail:
            request_ids |= _uuids([request.parent_request_id, *request.related_request_ids])
            user_ids |= _uuids(comment.author_id for comment in request.comments)
            user_ids |= _uuids(entry.changed_by for entry in request.history)

    lookups = _Lookups()
    if customer_ids:
        rows = db.execute(select(Customer).where(Customer.id.in_(customer_ids))).scalars().all()
        lookups.customers = {row.id: row for row in rows}
    if tag_ids:
        rows = db.execute(select(Tag).where(Tag.id.in_(tag_ids))).scalars().all()
        lookups.tags = {row.id: row for row in rows}
    if user_ids:
        rows = db.execute(select(User).where(User.id.in_(user_ids))).scalars().all()
        lookups.users = {row.id: row for row in rows}
    if request_ids:
        rows = db.execute(
            select(CustomerRequest.id, CustomerRequest.request_id, CustomerRequest.title).where(
                CustomerRequest.id.in_(request_ids)
            )
        ).all()
        lookups.requests = {row.id: (row.request_id, row.title) for row in rows}
    return lookups


def _user_ref(lookups: _Lookups, user_id: Any) -> Optional[UserRef]:
    if user_id is None:
        return None
    user = lookups.users.get(_as_uuid(user_id))
    return UserRef(id=str(user_id), name=user.name if user else None)


def _customer_refs(lookups: _Lookups, ids: Iterable[uuid.UUID], *, with_email: bool) -> list[CustomerRef]:
    refs = []
    for cid in ids:
        customer = lookups.customers.get(_as_uuid(cid))
        if customer is None:
            continue
        refs.append(
            CustomerRef(
                id=str(customer.id),
                name=customer.name,
                company=customer.company,
                email=customer.email if with_email else None,
            )
        )
    return refs


def _tag_refs(lookups: _Lookups, ids: Iterable[uuid.UUID]) -> list[TagRef]:
    refs = []
    for tid in ids:
        tag = lookups.tags.get(_as_uuid(tid))
        if tag is None:
            continue
        refs.append(TagRef(id=str(tag.id), name=tag.name, color=tag.color, category=tag.category))
    return refs


def _request_ref(lookups: _Lookups, request_id: Any) -> Optional[RequestRef]:
    key = _as_uuid(request_id)
    if key is None or key not in lookups.requests:
        return None
    display_id, title = lookups.requests[key]
    return RequestRef(id=str(key), request_id=display_id, title=title)


def _history_item(lookups: _Lookups, entry: RequestHistory) -> dict[str, Any]:
    return {
        "id": str(entry.id),
        "field": entry.field,
        "old_value": entry.old_value,
        "new_value": entry.new_value,
        "changed_by": _user_ref(lookups, entry.changed_by),
        "changed_at": entry.changed_at,
    }


def _summary_fields(request: CustomerRequest, lookups: _Lookups, *, with_email: bool) -> dict[str, Any]:
    return {
        "id": str(request.id),
        "request_id": request.request_id,
        "title": request.title,
        "content": request.content,
        "reporter": request.reporter or "",
        "status": RequestStatus(request.status),
        "priority": RequestPriority(request.priority),
        "customers": _customer_refs(lookups, request.customer_ids, with_email=with_email),
        "tags": _tag_refs(lookups, request.tag_ids),
        "comment_count": len(request.comments),
        "created_by": _user_ref(lookups, request.created_by),
        "updated_by": _user_ref(lookups, request.updated_by),
        "created_at": request.created_at,
        "updated_at": request.updated_at,
    }


def build_request_summaries(db: Session, requests: list[CustomerRequest]) -> list[RequestSummaryOut]:
    lookups = _prefetch(db, requests, detail=False)
    return [RequestSummaryOut(**_summary_fields(request, lookups, with_email=False)) for request in requests]


def build_request_detail(db: Session, request: CustomerRequest) -> RequestDetailOut:
    lookups = _prefetch(db, [request], detail=True)
    related = [_request_ref(lookups, rid) for rid in request.related_request_ids]
    comments = [
        CommentOut(
            id=str(comment.id),
            content=comment.content,
            author=_user_ref(lookups, comment.author_id),
            attachments=list(comment.attachments or []),
            created_at=comment.created_at,
        )
        for comment in request.comments
    ]
    return RequestDetailOut(
        **_summary_fields(request, lookups, with_email=True),
        parent_request=_request_ref(lookups, request.parent_request_id),
        related_requests=[ref for ref in related if ref is not None],
        custom_fields=dict(request.custom_fields or {}),
        comments=comments,
        history=[_history_item(lookups, entry) for entry in request.history],
    )


def build_similar(requests: list[CustomerRequest]) -> list[SimilarRequestOut]:
    return [
        SimilarRequestOut(
            id=str(request.id),
            request_id=request.request_id,
            title=request.title,
            content=request.content,
            status=RequestStatus(request.status),
        )
        for request in requests
    ]
