from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union
from uuid import UUID

from pydantic import BaseModel, Field, model_validator

from feedback_tracker.schemas.reference import TagCategory


class RequestStatus(str, Enum):
    NEW = "new"
    UNDER_REVIEW = "under_review"
    ON_HOLD = "on_hold"
    REJECTED = "rejected"
    PLANNED = "planned"
    DONE = "done"


class RequestPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


PRIORITY_ORDER = {
    RequestPriority.LOW: 0,
    RequestPriority.MEDIUM: 1,
    RequestPriority.HIGH: 2,
    RequestPriority.URGENT: 3,
}

SCALAR_FIELDS = ("title", "content", "reporter", "status", "priority")
REFERENCE_FIELDS = ("customers", "tags", "parent_request", "related_requests", "custom_fields")


class RequestCreate(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    content: str = Field(min_length=1)
    reporter: Optional[str] = Field(default=None, max_length=200)
    status: Optional[RequestStatus] = None
    priority: Optional[RequestPriority] = None
    customers: List[UUID] = Field(default_factory=list)
    tags: List[UUID] = Field(default_factory=list)
    parent_request: Optional[UUID] = None
    related_requests: List[UUID] = Field(default_factory=list)
    custom_fields: Optional[Dict[str, Any]] = None


class RequestUpdate(BaseModel):
    """Partial update.

    Which keys were sent matters: scalar fields are compared with the stored
    value, reference fields are recorded whenever they are present. Use
    ``model_fields_set`` to tell an absent key from an explicit ``null``.
    """

    title: Optional[str] = Field(default=None, min_length=1, max_length=255)
    content: Optional[str] = Field(default=None, min_length=1)
    reporter: Optional[str] = Field(default=None, max_length=200)
    status: Optional[RequestStatus] = None
    priority: Optional[RequestPriority] = None
    customers: Optional[List[UUID]] = None
    tags: Optional[List[UUID]] = None
    parent_request: Optional[UUID] = None
    related_requests: Optional[List[UUID]] = None
    custom_fields: Optional[Dict[str, Any]] = None

    @model_validator(mode="after")
    def reject_null_scalars(self):
        for name in SCALAR_FIELDS:
            if name in self.model_fields_set and getattr(self, name) is None:
                raise ValueError(f"{name} cannot be null")
        return self


class CommentCreate(BaseModel):
    content: str = Field(min_length=1)
    attachments: List[str] = Field(default_factory=list)


class SimilarRequestQuery(BaseModel):
    title: Optional[str] = None
    content: Optional[str] = None


class UserRef(BaseModel):
    id: str
    name: Optional[str] = None


class CustomerRef(BaseModel):
    id: str
    name: str
    company: str
    email: Optional[str] = None


class TagRef(BaseModel):
    id: str
    name: str
    color: str
    category: TagCategory


class RequestRef(BaseModel):
    id: str
    request_id: str
    title: str


class CommentOut(BaseModel):
    id: str
    content: str
    author: UserRef
    attachments: List[str]
    created_at: Optional[datetime] = None


class _HistoryEntryBase(BaseModel):
    id: str
    changed_by: UserRef
    changed_at: Optional[datetime] = None


class TitleChange(_HistoryEntryBase):
    field: Literal["title"]
    old_value: Optional[str] = None
    new_value: str


class ContentChange(_HistoryEntryBase):
    field: Literal["content"]
    old_value: Optional[str] = None
    new_value: str


class ReporterChange(_HistoryEntryBase):
    field: Literal["reporter"]
    old_value: Optional[str] = None
    new_value: str


class StatusChange(_HistoryEntryBase):
    field: Literal["status"]
    old_value: Optional[RequestStatus] = None
    new_value: RequestStatus


class PriorityChange(_HistoryEntryBase):
    field: Literal["priority"]
    old_value: Optional[RequestPriority] = None
    new_value: RequestPriority


class CustomersChange(_HistoryEntryBase):
    field: Literal["customers"]
    old_value: List[str] = Field(default_factory=list)
    new_value: List[str] = Field(default_factory=list)


class TagsChange(_HistoryEntryBase):
    field: Literal["tags"]
    old_value: List[str] = Field(default_factory=list)
    new_value: List[str] = Field(default_factory=list)


class ParentRequestChange(_HistoryEntryBase):
    field: Literal["parent_request"]
    old_value: Optional[str] = None
    new_value: Optional[str] = None


class RelatedRequestsChange(_HistoryEntryBase):
    field: Literal["related_requests"]
    old_value: List[str] = Field(default_factory=list)
    new_value: List[str] = Field(default_factory=list)


class CustomFieldsChange(_HistoryEntryBase):
    field: Literal["custom_fields"]
    old_value: Optional[Dict[str, Any]] = None
    new_value: Optional[Dict[str, Any]] = None


HistoryEntryOut = Annotated[
    Union[
        TitleChange,
        ContentChange,
        ReporterChange,
        StatusChange,
        PriorityChange,
        CustomersChange,
        TagsChange,
        ParentRequestChange,
        RelatedRequestsChange,
        CustomFieldsChange,
    ],
    Field(discriminator="field"),
]


class RequestSummaryOut(BaseModel):
    id: str
    request_id: str
    title: str
    content: str
    reporter: str
    status: RequestStatus
    priority: RequestPriority
    customers: List[CustomerRef]
    tags: List[TagRef]
    comment_count: int = 0
    created_by: Optional[UserRef] = None
    updated_by: Optional[UserRef] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class RequestDetailOut(RequestSummaryOut):
    parent_request: Optional[RequestRef] = None
    related_requests: List[RequestRef] = Field(default_factory=list)
    custom_fields: Dict[str, Any] = Field(default_factory=dict)
    comments: List[CommentOut] = Field(default_factory=list)
    history: List[HistoryEntryOut] = Field(default_factory=list)


class RequestListResponse(BaseModel):
    requests: List[RequestSummaryOut]
    page: int
    pages: int
    total: int


class SimilarRequestOut(BaseModel):
    id: str
    request_id: str
    title: str
    content: str
    status: RequestStatus


class StatusCount(BaseModel):
    status: RequestStatus
    count: int


class PriorityCount(BaseModel):
    priority: RequestPriority
    count: int


class TagCount(BaseModel):
    id: str
    name: str
    color: str
    category: TagCategory
    count: int


class CustomerCount(BaseModel):
    id: str
    name: str
    company: str
    count: int


class MonthlyCount(BaseModel):
    year: int
    month: int
    count: int


class RequestStatsOut(BaseModel):
    status_stats: List[StatusCount]
    priority_stats: List[PriorityCount]
    tag_stats: List[TagCount]
    monthly_stats: List[MonthlyCount]
    customer_stats: List[CustomerCount]
    total_requests: int
    new_requests_this_month: int


class UploadOut(BaseModel):
    filename: str
    path: str
