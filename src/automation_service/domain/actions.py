"""Trigger action configurations as a tagged union keyed on ``action_type``."""
from __future__ import annotations

from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from automation_service.core.exceptions import ConfigurationError
from automation_service.domain.enums import ActionType


class _ActionBase(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    def to_config(self) -> dict[str, Any]:
        """Stored ``action_config`` (everything but the tag)."""
        return self.model_dump(mode="json", exclude={"action_type"})


class SendEmailAction(_ActionBase):
    action_type: Literal["send_email"] = "send_email"
    # "client" -> context client_email, "admin" -> settings.admin_email, else literal address
    to: str
    template: str | None = None
    subject: str = ""
    body: str = ""


class CreateTaskAction(_ActionBase):
    action_type: Literal["create_task"] = "create_task"
    title: str = Field(min_length=1)
    description: str | None = None
    assignee: str | None = None
    due_days: int | None = Field(default=None, ge=0)


class UpdateStatusAction(_ActionBase):
    action_type: Literal["update_status"] = "update_status"
    entity: str
    status: str
    field: str = Field(default="status", pattern=r"^[a-z_][a-z0-9_]*$")


class WebhookAction(_ActionBase):
    """One-shot, unsigned call. Failures are recorded on the trigger log, never retried."""

    action_type: Literal["webhook"] = "webhook"
    url: str = Field(pattern=r"^https?://")
    method: Literal["GET", "POST", "PUT", "PATCH", "DELETE"] = "POST"
    headers: dict[str, str] = Field(default_factory=dict)


class NotifyAction(_ActionBase):
    action_type: Literal["notify"] = "notify"
    channel: str = "default"
    message: str


Action = Annotated[
    Union[SendEmailAction, CreateTaskAction, UpdateStatusAction, WebhookAction, NotifyAction],
    Field(discriminator="action_type"),
]

_action_adapter: TypeAdapter[Action] = TypeAdapter(Action)


def parse_action(action_type: ActionType | str, config: dict[str, Any] | None) -> Action:
    """Validate an ``(action_type, action_config)`` pair into a typed action."""
    payload = dict(config or {})
    payload.pop("action_type", None)
    payload["action_type"] = action_type.value if isinstance(action_type, ActionType) else action_type
    try:
        return _action_adapter.validate_python(payload)
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid action_config for {payload['action_type']}: {exc}") from exc
