"""Domain enums for events, triggers and webhook deliveries."""
from __future__ import annotations

from enum import Enum


class EventType(str, Enum):
    """Closed set of domain events, grouped by entity prefix."""

    INVOICE_CREATED = "invoice.created"
    INVOICE_SENT = "invoice.sent"
    INVOICE_PAID = "invoice.paid"
    INVOICE_OVERDUE = "invoice.overdue"
    INVOICE_CANCELLED = "invoice.cancelled"

    CONTRACT_CREATED = "contract.created"
    CONTRACT_SENT = "contract.sent"
    CONTRACT_SIGNED = "contract.signed"
    CONTRACT_EXPIRED = "contract.expired"

    PROJECT_CREATED = "project.created"
    PROJECT_STARTED = "project.started"
    PROJECT_COMPLETED = "project.completed"
    PROJECT_STATUS_CHANGED = "project.status_changed"
    PROJECT_MILESTONE_COMPLETED = "project.milestone_completed"

    CLIENT_CREATED = "client.created"
    CLIENT_ACTIVATED = "client.activated"
    CLIENT_DEACTIVATED = "client.deactivated"

    MESSAGE_CREATED = "message.created"
    MESSAGE_READ = "message.read"

    FILE_UPLOADED = "file.uploaded"
    FILE_DOWNLOADED = "file.downloaded"

    PROPOSAL_CREATED = "proposal.created"
    PROPOSAL_SENT = "proposal.sent"
    PROPOSAL_ACCEPTED = "proposal.accepted"
    PROPOSAL_REJECTED = "proposal.rejected"

    LEAD_CREATED = "lead.created"
    LEAD_CONVERTED = "lead.converted"
    LEAD_STAGE_CHANGED = "lead.stage_changed"

    DELIVERABLE_SUBMITTED = "deliverable.submitted"
    DELIVERABLE_APPROVED = "deliverable.approved"
    DELIVERABLE_REJECTED = "deliverable.rejected"

    TASK_CREATED = "task.created"
    TASK_COMPLETED = "task.completed"
    TASK_OVERDUE = "task.overdue"

    @property
    def entity_type(self) -> str:
        return self.value.split(".", 1)[0]


class ActionType(str, Enum):
    """Kinds of work a trigger can run."""

    SEND_EMAIL = "send_email"
    CREATE_TASK = "create_task"
    UPDATE_STATUS = "update_status"
    WEBHOOK = "webhook"
    NOTIFY = "notify"


ACTION_DESCRIPTIONS: dict[ActionType, str] = {
    ActionType.SEND_EMAIL: "Send an email using a template",
    ActionType.CREATE_TASK: "Create a task for the project",
    ActionType.UPDATE_STATUS: "Update entity status",
    ActionType.WEBHOOK: "Call an external webhook URL (unsigned, no retry)",
    ActionType.NOTIFY: "Send in-app notification",
}


class ConditionOperator(str, Enum):
    """Comparison applied by a single trigger condition."""

    EQ = "eq"
    GT = "gt"
    LT = "lt"
    CONTAINS = "contains"


class ExecutionResult(str, Enum):
    """Outcome of evaluating one trigger for one event."""

    SUCCESS = "success"
    FAILED = "failed"
    SKIPPED = "skipped"


class DeliveryStatus(str, Enum):
    """Webhook delivery lifecycle states."""

    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"
    RETRYING = "retrying"


class HttpMethod(str, Enum):
    POST = "POST"
    PUT = "PUT"
    PATCH = "PATCH"
