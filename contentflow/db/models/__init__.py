"""SQLModel table definitions.

Model Categories:
- Content: ContentItem (the record store) and its Create/Read schemas
- Workflow: WorkflowInstance, WorkflowEventRecord, StatusProjection
- Notifications: ContentNotification outbox
"""

from contentflow.db.models.base import UUIDModel, TimestampMixin, utc_now

from contentflow.db.models.content import (
    ContentStatus,
    ContentItem, ContentCreate, ContentRead,
)

from contentflow.db.models.workflow import (
    WorkflowInstance,
    WorkflowEventRecord,
    StatusProjection,
)

from contentflow.db.models.notification import (
    NotificationType,
    ContentNotification,
)

__all__ = [
    "UUIDModel",
    "TimestampMixin",
    "utc_now",
    "ContentStatus",
    "ContentItem",
    "ContentCreate",
    "ContentRead",
    "WorkflowInstance",
    "WorkflowEventRecord",
    "StatusProjection",
    "NotificationType",
    "ContentNotification",
]
