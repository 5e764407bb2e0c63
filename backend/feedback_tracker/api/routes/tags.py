import logging
import uuid

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import desc, func, select
from sqlalchemy.orm import Session

from feedback_tracker.core.auth import CurrentUser, get_current_user
from feedback_tracker.core.dependencies import commit_or_conflict, get_db
from feedback_tracker.models.tracker import Tag
from feedback_tracker.schemas.reference import (
    DEFAULT_TAG_COLOR,
    MessageOut,
    TagCategory,
    TagCategoryCount,
    TagCreate,
    TagOut,
    TagUpdate,
)

logger = logging.getLogger(__name__)

router = APIRouter()

DUPLICATE_NAME = "Tag with this name already exists"


def _tag_to_out(tag: Tag) -> TagOut:
    return TagOut(
        id=str(tag.id),
        name=tag.name,
        color=tag.color,
        category=tag.category,
        created_at=tag.created_at,
        updated_at=tag.updated_at,
    )


def _get_tag_or_404(db: Session, tag_id: str) -> Tag:
    try:
        key = uuid.UUID(tag_id)
    except ValueError:
        raise HTTPException(404, "Tag not found") from None
    tag = db.get(Tag, key)
    if tag is None:
        raise HTTPException(404, "Tag not found")
    return tag


def _name_taken(db: Session, name: str) -> bool:
    return db.execute(select(Tag.id).where(Tag.name == name)).first() is not None


@router.get("/tags", response_model=list[TagOut])
def list_tags(
    _: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    tags = db.execute(select(Tag).order_by(Tag.name)).scalars().all()
    return [_tag_to_out(tag) for tag in tags]


@router.get("/tags/stats", response_model=list[TagCategoryCount])
def tag_category_stats(
    _: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    count = func.count(Tag.id)
    rows = db.execute(select(Tag.category, count).group_by(Tag.category).order_by(desc(count), Tag.category)).all()
    return [TagCategoryCount(category=category, count=int(total)) for category, total in rows]


@router.get("/tags/category/{category}", response_model=list[TagOut])
def list_tags_by_category(
    category: str,
    _: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    # Unknown categories simply match nothing.
    tags = db.execute(select(Tag).where(Tag.category == category).order_by(Tag.name)).scalars().all()
    return [_tag_to_out(tag) for tag in tags]


@router.post("/tags", response_model=TagOut, status_code=201)
def create_tag(
    payload: TagCreate,
    _: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    if _name_taken(db, payload.name):
        raise HTTPException(400, DUPLICATE_NAME)

    tag = Tag(
        name=payload.name,
        color=payload.color or DEFAULT_TAG_COLOR,
        category=(payload.category or TagCategory.OTHER).value,
    )
    db.add(tag)
    commit_or_conflict(db, DUPLICATE_NAME)
    db.refresh(tag)
    logger.info("Tag %s created", tag.id)
    return _tag_to_out(tag)


@router.get("/tags/{tag_id}", response_model=TagOut)
def get_tag(
    tag_id: str,
    _: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return _tag_to_out(_get_tag_or_404(db, tag_id))


@router.put("/tags/{tag_id}", response_model=TagOut)
def update_tag(
    tag_id: str,
    payload: TagUpdate,
    _: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    tag = _get_tag_or_404(db, tag_id)

    if payload.name and payload.name != tag.name:
        if _name_taken(db, payload.name):
            raise HTTPException(400, DUPLICATE_NAME)
        tag.name = payload.name
    if payload.color:
        tag.color = payload.color
    if payload.category:
        tag.category = payload.category.value

    commit_or_conflict(db, DUPLICATE_NAME)
    db.refresh(tag)
    return _tag_to_out(tag)


@router.delete("/tags/{tag_id}", response_model=MessageOut)
def delete_tag(
    tag_id: str,
    _: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    tag = _get_tag_or_404(db, tag_id)
    db.delete(tag)
    db.commit()
    logger.info("Tag %s deleted", tag_id)
    return MessageOut(message="Tag removed")
