"""Content record service: create, edit and query content items.

Creating an item also starts its approval instance. The workflow id is
assigned in the same transaction that inserts the record, so the
correlation never has to be repaired after a crash: ensure_started()
simply starts the instance again and treats ALREADY_RUNNING as done.
"""

from typing import Any, Optional, Union

from contentflow.config import WorkflowConfig, build_workflow_config, load_workflow_config
from contentflow.content.repository import ContentRepository, WorkflowInstanceRepository
from contentflow.db import SessionFactory
from contentflow.db.models import (
    ContentCreate,
    ContentItem,
    ContentRead,
    ContentStatus,
    WorkflowInstance,
)
from contentflow.engine import WorkflowRuntime
from contentflow.exceptions import (
    ContentLockedError,
    ContentNotFoundError,
    UnknownInstanceError,
    WorkflowAlreadyRunningError,
)
from contentflow.logging import get_logger
from contentflow.models import ApprovalState, ContentStatusView

logger = get_logger(__name__)

WORKFLOW_ID_PREFIX = "content-approval"

ConfigInput = Union[WorkflowConfig, dict[str, Any], None]


def workflow_id_for(content_id: int) -> str:
    return f"{WORKFLOW_ID_PREFIX}-{content_id}"


class ContentService:
    """Service for content records and their approval instances.

    Instances start with the given config, or with workflows/approval.yaml
    when none is given.
    """

    def __init__(
        self,
        runtime: WorkflowRuntime,
        session_factory: Optional[SessionFactory] = None,
        config: ConfigInput = None,
    ):
        self.runtime = runtime
        self.session_factory = session_factory or runtime.session_factory
        self.config = config if config is not None else load_workflow_config()

    # =========================================================================
    # Commands
    # =========================================================================

    def create_content(self, data: ContentCreate, config: ConfigInput = None) -> ContentRead:
        """Insert a draft and start its approval instance.

        Raises:
            ConfigurationError: Before the record is inserted.
        """
        workflow_config = build_workflow_config(config if config is not None else self.config)

        with self.session_factory() as session:
            repo = ContentRepository(session)
            item = repo.add(
                ContentItem(
                    title=data.title,
                    author_id=data.author_id,
                    content=data.content,
                    tags=list(data.tags),
                )
            )
            item.workflow_id = workflow_id_for(item.id)
            session.add(item)
            session.commit()
            session.refresh(item)
            created = ContentRead.model_validate(item)

        logger.info(
            "content_created",
            content_id=created.id,
            workflow_id=created.workflow_id,
            author_id=created.author_id,
        )
        self._start(created.workflow_id, created.id, created.author_id, workflow_config)
        return created

    def ensure_started(self, content_id: int, config: ConfigInput = None) -> str:
        """Start the instance for an existing record if it has none. Returns its workflow id."""
        workflow_config = build_workflow_config(config if config is not None else self.config)

        with self.session_factory() as session:
            item = ContentRepository(session).get(content_id)
            if item is None:
                raise ContentNotFoundError(content_id)
            if item.workflow_id is None:
                item.workflow_id = workflow_id_for(item.id)
                session.add(item)
                session.commit()
            workflow_id, author_id = item.workflow_id, item.author_id

        self._start(workflow_id, content_id, author_id, workflow_config)
        return workflow_id

    def update_content(
        self,
        content_id: int,
        title: Optional[str] = None,
        content: Optional[str] = None,
        tags: Optional[list[str]] = None,
    ) -> ContentRead:
        """Edit a draft.

        Editable only while the owning instance is in DRAFT with no projection
        pending; the stored status can lag the instance.
        """
        with self.session_factory() as session:
            item = ContentRepository(session).get(content_id)
            if item is None:
                raise ContentNotFoundError(content_id)
            workflow_id = item.workflow_id

        if workflow_id is None:
            return self._edit(content_id, None, title, content, tags)
        with self.runtime.instance_lock(workflow_id):
            return self._edit(content_id, workflow_id, title, content, tags)

    # =========================================================================
    # Queries
    # =========================================================================

    def get_content(self, content_id: int) -> ContentRead:
        with self.session_factory() as session:
            item = ContentRepository(session).get(content_id)
            if item is None:
                raise ContentNotFoundError(content_id)
            return ContentRead.model_validate(item)

    def get_status(self, content_id: int) -> ContentStatusView:
        """Record status plus the owning instance's view, if it has one."""
        item = self.get_content(content_id)
        workflow = None
        if item.workflow_id:
            try:
                workflow = self.runtime.describe(item.workflow_id)
            except UnknownInstanceError:
                workflow = None
        return ContentStatusView(
            content_id=item.id,
            status=item.status,
            workflow_id=item.workflow_id,
            workflow=workflow,
        )

    def list_by_status(self, status: ContentStatus, limit: int = 100) -> list[ContentRead]:
        with self.session_factory() as session:
            items = ContentRepository(session).list_by_status(status, limit=limit)
            return [ContentRead.model_validate(item) for item in items]

    def list_by_author(self, author_id: str, limit: int = 100) -> list[ContentRead]:
        with self.session_factory() as session:
            items = ContentRepository(session).list_by_author(author_id, limit=limit)
            return [ContentRead.model_validate(item) for item in items]

    # =========================================================================
    # Internals
    # =========================================================================

    def _edit(
        self,
        content_id: int,
        workflow_id: Optional[str],
        title: Optional[str],
        content: Optional[str],
        tags: Optional[list[str]],
    ) -> ContentRead:
        with self.session_factory() as session:
            instance = None
            if workflow_id is not None:
                instance = WorkflowInstanceRepository(session).get_by_workflow_id(
                    workflow_id, for_update=True
                )
            item = ContentRepository(session).get(content_id)
            if item is None:
                raise ContentNotFoundError(content_id)
            self._check_editable(item, instance)

            if title is not None:
                item.title = title
            if content is not None:
                item.content = content
            if tags is not None:
                item.tags = list(tags)
            session.add(item)
            session.commit()
            session.refresh(item)
            return ContentRead.model_validate(item)

    def _check_editable(
        self, item: ContentItem, instance: Optional[WorkflowInstance]
    ) -> None:
        if instance is None:
            # Not started yet (ensure_started repairs this)
            state, pending = item.status.value, False
        else:
            state, pending = instance.state, instance.pending_projection is not None
        if state == ApprovalState.DRAFT.value and not pending:
            return
        raise ContentLockedError(
            f"Content {item.id} is {state} and cannot be edited",
            details={
                "content_id": item.id,
                "status": item.status.value,
                "state": state,
                "projection_pending": pending,
            },
        )

    def _start(
        self,
        workflow_id: str,
        content_id: int,
        author_id: str,
        config: WorkflowConfig,
    ) -> None:
        try:
            self.runtime.start_instance(workflow_id, content_id, author_id, config)
        except WorkflowAlreadyRunningError:
            logger.info("workflow_already_running", workflow_id=workflow_id)
