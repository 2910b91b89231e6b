from datetime import datetime
from typing import Any, List, Literal, Optional

from pydantic import AliasChoices, BaseModel as PlainBaseModel, Field, field_validator

from notifier.db.models import Notification
from notifier.schemas.camel_base_model import CamelCaseBaseModel as BaseModel

TargetValue = Literal["all", "users"]
StatusValue = Literal["draft", "scheduled", "sent", "failed"]
# "failed" is only ever written by a dispatch, never by the admin client
WritableStatusValue = Literal["draft", "scheduled", "sent"]

RECIPIENT_ID_ALIASES = AliasChoices("recipientIds", "recipient_ids", "userIds")


def _require_text(value: Optional[str]) -> Optional[str]:
    if value is None:
        return value
    stripped = value.strip()
    if not stripped:
        raise ValueError("must not be blank")
    return stripped


class CreateNotificationRequest(BaseModel):
    """Request schema for composing a notification"""

    title: str = Field(..., min_length=1, max_length=255, description="Push heading")
    message: str = Field(..., min_length=1, description="Push body")
    target: TargetValue = Field(default="all", description="Audience mode")
    recipient_ids: List[Any] = Field(
        default_factory=list,
        validation_alias=RECIPIENT_ID_ALIASES,
        description="User IDs when target is 'users'",
    )
    scheduled_for: Optional[datetime] = Field(
        default=None, description="When the scheduler should send it"
    )
    status: Optional[WritableStatusValue] = Field(
        default=None, description="Requested status; 'sent' sends immediately"
    )

    @field_validator("title", "message")
    @classmethod
    def strip_text(cls, value: Optional[str]) -> Optional[str]:
        return _require_text(value)


class UpdateNotificationRequest(BaseModel):
    """Partial update; only the fields present in the body are applied"""

    title: Optional[str] = Field(default=None, min_length=1, max_length=255)
    message: Optional[str] = Field(default=None, min_length=1)
    target: Optional[TargetValue] = None
    recipient_ids: Optional[List[Any]] = Field(
        default=None, validation_alias=RECIPIENT_ID_ALIASES
    )
    scheduled_for: Optional[datetime] = None
    status: Optional[WritableStatusValue] = None

    @field_validator("title", "message")
    @classmethod
    def strip_text(cls, value: Optional[str]) -> Optional[str]:
        return _require_text(value)


class NotificationResponse(BaseModel):
    """Response schema for a notification record"""

    id: str = Field(..., description="Notification ID")
    title: str
    message: str
    target: TargetValue
    recipient_ids: List[Any]
    scheduled_for: Optional[datetime] = None
    sent_at: Optional[datetime] = None
    status: StatusValue
    provider_notification_id: Optional[str] = None
    last_error: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_model(cls, notification: Notification) -> "NotificationResponse":
        return cls(
            id=notification.id,
            title=notification.title,
            message=notification.message,
            target=notification.target.value,
            recipient_ids=list(notification.recipient_ids or []),
            scheduled_for=notification.scheduled_for,
            sent_at=notification.sent_at,
            status=notification.status.value,
            provider_notification_id=notification.provider_notification_id,
            last_error=notification.last_error,
            created_at=notification.created_at,
            updated_at=notification.updated_at,
        )


class NotificationListQueryParams(PlainBaseModel):
    """Query parameters for notification list filtering and paging"""

    status: Optional[StatusValue] = Field(None, description="Filter by status")
    target: Optional[TargetValue] = Field(None, description="Filter by target")
    search: Optional[str] = Field(
        None, description="Case-insensitive match on title or message"
    )
    page: int = Field(1, ge=1, description="Page number")
    limit: int = Field(20, ge=1, le=100, description="Items per page")
