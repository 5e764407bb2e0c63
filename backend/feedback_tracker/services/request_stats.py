import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import HTTPException
from sqlalchemy import desc, extract, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from feedback_tracker.models.tracker import Customer, CustomerRequest, RequestCustomerLink, RequestTagLink, Tag
from feedback_tracker.schemas.requests import (
    PRIORITY_ORDER,
    CustomerCount,
    MonthlyCount,
    PriorityCount,
    RequestPriority,
    RequestStatsOut,
    RequestStatus,
    StatusCount,
    TagCount,
)

logger = logging.getLogger(__name__)

TOP_LIMIT = 10


def _dialect_name(db: Session) -> str:
    dialect = getattr(getattr(db, "bind", None), "dialect", None)
    return (getattr(dialect, "name", "") or "").lower()


def _as_db_dt(db: Session, dt: datetime) -> datetime:
    """Normalize datetime to match DB storage semantics (SQLite stores naive)."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    dt_utc = dt.astimezone(timezone.utc)
    if _dialect_name(db) == "sqlite":
        return dt_utc.replace(tzinfo=None)
    return dt_utc


def _one_year_before(now: datetime) -> datetime:
    start = now.replace(hour=0, minute=0, second=0, microsecond=0)
    try:
        return start.replace(year=start.year - 1)
    except ValueError:
        # Feb 29 -> Feb 28
        return start.replace(year=start.year - 1, day=28)


def _month_start(now: datetime) -> datetime:
    return now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)


def _status_stats(db: Session) -> list[StatusCount]:
    count = func.count(CustomerRequest.id)
    rows = db.execute(
        select(CustomerRequest.status, count)
        .group_by(CustomerRequest.status)
        .order_by(desc(count), CustomerRequest.status)
    ).all()
    return [StatusCount(status=RequestStatus(status), count=int(total)) for status, total in rows]


def _priority_stats(db: Session) -> list[PriorityCount]:
    rows = db.execute(
        select(CustomerRequest.priority, func.count(CustomerRequest.id)).group_by(CustomerRequest.priority)
    ).all()
    items = [PriorityCount(priority=RequestPriority(priority), count=int(total)) for priority, total in rows]
    items.sort(key=lambda item: (PRIORITY_ORDER[item.priority], -item.count))
    return items


def _tag_stats(db: Session) -> list[TagCount]:
    count = func.count(RequestTagLink.id)
    rows = db.execute(
        select(Tag.id, Tag.name, Tag.color, Tag.category, count)
        .select_from(RequestTagLink)
        .join(Tag, Tag.id == RequestTagLink.tag_id)
        .group_by(Tag.id, Tag.name, Tag.color, Tag.category)
        .order_by(desc(count), Tag.name)
        .limit(TOP_LIMIT)
    ).all()
    return [
        TagCount(id=str(row.id), name=row.name, color=row.color, category=row.category, count=int(row[4]))
        for row in rows
    ]


def _customer_stats(db: Session) -> list[CustomerCount]:
    count = func.count(RequestCustomerLink.id)
    rows = db.execute(
        select(Customer.id, Customer.name, Customer.company, count)
        .select_from(RequestCustomerLink)
        .join(Customer, Customer.id == RequestCustomerLink.customer_id)
        .group_by(Customer.id, Customer.name, Customer.company)
        .order_by(desc(count), Customer.name)
        .limit(TOP_LIMIT)
    ).all()
    return [CustomerCount(id=str(row.id), name=row.name, company=row.company, count=int(row[3])) for row in rows]


def _utc_created_at(dialect_name: str):
    # PostgreSQL extracts timestamptz fields in the session time zone.
    if dialect_name == "postgresql":
        return func.timezone("UTC", CustomerRequest.created_at)
    return CustomerRequest.created_at


def _monthly_stats(db: Session, since: datetime) -> list[MonthlyCount]:
    created_at = _utc_created_at(_dialect_name(db))
    year = extract("year", created_at)
    month = extract("month", created_at)
    rows = db.execute(
        select(year.label("year"), month.label("month"), func.count(CustomerRequest.id))
        .where(CustomerRequest.created_at >= since)
        .group_by(year, month)
        .order_by(year, month)
    ).all()
    return [MonthlyCount(year=int(y), month=int(m), count=int(total)) for y, m, total in rows]


def build_request_stats(db: Session, now: Optional[datetime] = None) -> RequestStatsOut:
    """Aggregate dashboard numbers over all requests.

    Tags and customers that no longer exist are left out of the top lists.
    Any database failure surfaces as a single 500.
    """
    now = now or datetime.now(timezone.utc)
    try:
        total = db.execute(select(func.count(CustomerRequest.id))).scalar() or 0
        new_this_month = (
            db.execute(
                select(func.count(CustomerRequest.id)).where(
                    CustomerRequest.created_at >= _as_db_dt(db, _month_start(now))
                )
            ).scalar()
            or 0
        )
        return RequestStatsOut(
            status_stats=_status_stats(db),
            priority_stats=_priority_stats(db),
            tag_stats=_tag_stats(db),
            monthly_stats=_monthly_stats(db, _as_db_dt(db, _one_year_before(now))),
            customer_stats=_customer_stats(db),
            total_requests=int(total),
            new_requests_this_month=int(new_this_month),
        )
    except SQLAlchemyError:
        logger.exception("Failed to compute request statistics")
        raise HTTPException(500, "Failed to compute request statistics") from None
