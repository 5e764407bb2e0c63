from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from feedback_tracker.core.config import Settings
from feedback_tracker.models.tracker import Base, Counter
from feedback_tracker.services.sequence import REQUEST_SEQUENCE, next_sequence_value


def _session():
    engine = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    Base.metadata.create_all(engine)
    return engine, sessionmaker(bind=engine)()


def test_counter_is_seeded_on_first_use_and_increments():
    engine, db = _session()
    try:
        values = [next_sequence_value(db, REQUEST_SEQUENCE) for _ in range(3)]
        db.commit()
        assert values == [1, 2, 3]
        assert db.get(Counter, REQUEST_SEQUENCE).value == 3
    finally:
        db.close()
        engine.dispose()


def test_counter_continues_from_seeded_row():
    engine, db = _session()
    try:
        db.add(Counter(name=REQUEST_SEQUENCE, value=41))
        db.commit()
        assert next_sequence_value(db) == 42
    finally:
        db.close()
        engine.dispose()


def test_rolled_back_increment_is_not_persisted():
    engine, db = _session()
    try:
        db.add(Counter(name="other", value=5))
        db.commit()
        assert next_sequence_value(db, "other") == 6
        db.rollback()
        assert next_sequence_value(db, "other") == 6
    finally:
        db.close()
        engine.dispose()


def test_request_id_format():
    settings = Settings(jwt_secret="x")
    assert settings.format_request_id(1) == "REQ-00001"
    assert settings.format_request_id(123456) == "REQ-123456"
    custom = Settings(jwt_secret="x", request_id_prefix="FB", request_id_width=3)
    assert custom.format_request_id(7) == "FB-007"
