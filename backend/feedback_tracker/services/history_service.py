"""Partial updates of requests with an append-only change history.

Scalar fields (title, content, reporter, status, priority) produce a history
entry only when the submitted value differs from the stored one. Reference
fields (customers, tags, parent_request, related_requests, custom_fields)
produce an entry whenever the key is present in the payload, even when the new
value equals the old one. That asymmetry mirrors the behaviour product relies
on today and is pending confirmation; see DESIGN.md.
"""

import logging
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Iterable, Optional

from feedback_tracker.models.tracker import (
    CustomerRequest,
    RequestCustomerLink,
    RequestHistory,
    RequestRelationLink,
    RequestTagLink,
)
from feedback_tracker.schemas.requests import SCALAR_FIELDS, RequestUpdate

logger = logging.getLogger(__name__)


def unique_ids(values: Optional[Iterable[uuid.UUID]]) -> list[uuid.UUID]:
    """Order-preserving de-duplication; reference lists behave as sets."""
    seen: set[uuid.UUID] = set()
    result = []
    for value in values or []:
        if value in seen:
            continue
        seen.add(value)
        result.append(value)
    return result


def _id_strings(values: Iterable[uuid.UUID]) -> list[str]:
    return [str(value) for value in values]


def _plain(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    return value


def customer_links(ids: Iterable[uuid.UUID]) -> list[RequestCustomerLink]:
    return [RequestCustomerLink(customer_id=cid, position=i) for i, cid in enumerate(unique_ids(ids))]


def tag_links(ids: Iterable[uuid.UUID]) -> list[RequestTagLink]:
    return [RequestTagLink(tag_id=tid, position=i) for i, tid in enumerate(unique_ids(ids))]


def relation_links(ids: Iterable[uuid.UUID]) -> list[RequestRelationLink]:
    return [RequestRelationLink(related_request_id=rid, position=i) for i, rid in enumerate(unique_ids(ids))]


class _HistoryBuffer:
    def __init__(self, actor_id: str, changed_at: datetime) -> None:
        self.actor_id = actor_id
        self.changed_at = changed_at
        self.entries: list[RequestHistory] = []

    def record(self, field: str, old_value: Any, new_value: Any) -> None:
        self.entries.append(
            RequestHistory(
                field=field,
                old_value=old_value,
                new_value=new_value,
                changed_by=self.actor_id,
                changed_at=self.changed_at,
            )
        )


def apply_request_update(
    request: CustomerRequest,
    changes: RequestUpdate,
    *,
    actor_id: str,
    now: Optional[datetime] = None,
) -> list[RequestHistory]:
    """Apply ``changes`` to ``request`` and append one history entry per recorded field.

    Nothing is committed here. The caller commits once, so field values and
    history rows land in the same transaction.
    """
    provided = changes.model_fields_set
    changed_at = now or datetime.now(timezone.utc)
    buffer = _HistoryBuffer(actor_id, changed_at)

    for name in SCALAR_FIELDS:
        if name not in provided:
            continue
        new_value = _plain(getattr(changes, name))
        old_value = getattr(request, name)
        if new_value == old_value:
            continue
        buffer.record(name, old_value, new_value)
        setattr(request, name, new_value)

    if "customers" in provided:
        new_ids = unique_ids(changes.customers)
        buffer.record("customers", _id_strings(request.customer_ids), _id_strings(new_ids))
        request.customer_links = customer_links(new_ids)

    if "tags" in provided:
        new_ids = unique_ids(changes.tags)
        buffer.record("tags", _id_strings(request.tag_ids), _id_strings(new_ids))
        request.tag_links = tag_links(new_ids)

    if "parent_request" in provided:
        old_parent = str(request.parent_request_id) if request.parent_request_id else None
        new_parent = str(changes.parent_request) if changes.parent_request else None
        buffer.record("parent_request", old_parent, new_parent)
        request.parent_request_id = changes.parent_request

    if "related_requests" in provided:
        new_ids = unique_ids(changes.related_requests)
        buffer.record("related_requests", _id_strings(request.related_request_ids), _id_strings(new_ids))
        request.related_links = relation_links(new_ids)

    if "custom_fields" in provided:
        buffer.record("custom_fields", request.custom_fields, changes.custom_fields)
        request.custom_fields = changes.custom_fields

    start = len(request.history)
    for offset, entry in enumerate(buffer.entries):
        entry.position = start + offset
        request.history.append(entry)

    request.updated_by = actor_id
    request.updated_at = changed_at

    if buffer.entries:
        logger.info(
            "Request %s updated by %s: %s",
            request.request_id,
            actor_id,
            ",".join(entry.field for entry in buffer.entries),
        )
    return buffer.entries
