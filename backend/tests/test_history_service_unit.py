import uuid
from datetime import datetime, timezone

import pytest
from pydantic import ValidationError
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from feedback_tracker.models.tracker import Base, CustomerRequest, RequestHistory
from feedback_tracker.schemas.requests import RequestUpdate
from feedback_tracker.services.history_service import apply_request_update, customer_links, unique_ids

ACTOR = str(uuid.uuid4())


def _request(**overrides) -> CustomerRequest:
    fields = {
        "sequence_number": 1,
        "request_id": "REQ-00001",
        "title": "Export",
        "content": "CSV export",
        "reporter": "Hanako",
        "status": "new",
        "priority": "medium",
        "custom_fields": {},
    }
    fields.update(overrides)
    request = CustomerRequest(**fields)
    request.customer_links = []
    request.tag_links = []
    request.related_links = []
    request.history = []
    request.comments = []
    return request


def test_unchanged_scalars_are_not_recorded():
    request = _request()
    entries = apply_request_update(
        request,
        RequestUpdate(title="Export", content="CSV export", status="new"),
        actor_id=ACTOR,
    )
    assert entries == []
    assert request.history == []
    assert str(request.updated_by) == ACTOR


def test_absent_fields_are_untouched():
    request = _request(reporter="Hanako")
    apply_request_update(request, RequestUpdate(priority="high"), actor_id=ACTOR)
    assert request.reporter == "Hanako"
    assert request.priority == "high"
    assert [entry.field for entry in request.history] == ["priority"]


def test_reference_fields_recorded_when_present():
    cid = uuid.uuid4()
    request = _request()
    request.customer_links = customer_links([cid])

    entries = apply_request_update(request, RequestUpdate(customers=[cid], custom_fields={}), actor_id=ACTOR)

    assert [entry.field for entry in entries] == ["customers", "custom_fields"]
    assert entries[0].old_value == [str(cid)]
    assert entries[0].new_value == [str(cid)]


def test_null_reference_fields_are_recorded_and_cleared():
    parent = uuid.uuid4()
    request = _request(parent_request_id=parent)

    entries = apply_request_update(request, RequestUpdate(parent_request=None, tags=None), actor_id=ACTOR)

    assert [(e.field, e.old_value, e.new_value) for e in entries] == [
        ("tags", [], []),
        ("parent_request", str(parent), None),
    ]
    assert request.parent_request_id is None


def test_entries_share_actor_and_timestamp_in_fixed_order():
    now = datetime(2026, 10, 17, 9, 0, tzinfo=timezone.utc)
    related = uuid.uuid4()
    request = _request()

    entries = apply_request_update(
        request,
        RequestUpdate(
            related_requests=[related, related],
            status="done",
            reporter="Jiro",
            title="Export v2",
        ),
        actor_id=ACTOR,
        now=now,
    )

    assert [e.field for e in entries] == ["title", "reporter", "status", "related_requests"]
    assert {e.changed_at for e in entries} == {now}
    assert {e.changed_by for e in entries} == {ACTOR}
    assert [e.position for e in entries] == [0, 1, 2, 3]
    assert entries[3].new_value == [str(related)]
    assert request.related_request_ids == [related]
    assert request.updated_at == now


def test_positions_continue_after_existing_history():
    request = _request()
    apply_request_update(request, RequestUpdate(status="planned"), actor_id=ACTOR)
    apply_request_update(request, RequestUpdate(status="done"), actor_id=ACTOR)
    assert [(e.position, e.old_value, e.new_value) for e in request.history] == [
        (0, "new", "planned"),
        (1, "planned", "done"),
    ]


def test_explicit_null_scalar_is_invalid():
    with pytest.raises(ValidationError):
        RequestUpdate(status=None)


def test_unique_ids_keeps_first_occurrence():
    a, b = uuid.uuid4(), uuid.uuid4()
    assert unique_ids([b, a, b, a]) == [b, a]
    assert unique_ids(None) == []


def test_history_rows_are_immutable():
    engine = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    Base.metadata.create_all(engine)
    Session = sessionmaker(bind=engine)
    db = Session()
    try:
        request = _request()
        db.add(request)
        apply_request_update(request, RequestUpdate(status="done"), actor_id=ACTOR)
        db.commit()

        entry = db.query(RequestHistory).one()
        entry.new_value = "rejected"
        with pytest.raises(ValueError):
            db.commit()
    finally:
        db.close()
        engine.dispose()
