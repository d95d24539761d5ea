"""Tests for the content service (record store + instance start)."""

import pytest
from sqlmodel import select

from contentflow.config import WorkflowConfig, load_workflow_config
from contentflow.content.repository import ContentRepository, WorkflowInstanceRepository
from contentflow.content.service import ContentService, workflow_id_for
from contentflow.db.models import ContentItem, ContentStatus, WorkflowInstance
from contentflow.exceptions import (
    ConfigurationError,
    ContentLockedError,
    ContentNotFoundError,
    ProjectionWriteError,
)
from contentflow.models import ApprovalState, SubmitForReview


class TestCreate:
    def test_create_assigns_workflow_id_and_starts(self, service, runtime, draft_data):
        item = service.create_content(draft_data())

        assert item.id is not None
        assert item.workflow_id == workflow_id_for(item.id)
        assert item.status == ContentStatus.DRAFT
        assert item.tags == ["docs"]
        assert runtime.describe(item.workflow_id).state == ApprovalState.DRAFT

    def test_invalid_config_creates_nothing(self, service, sessions, draft_data):
        with pytest.raises(ConfigurationError) as exc:
            service.create_content(draft_data(), config={"review_timeout_seconds": -5})
        assert exc.value.error_code == "INVALID_CONFIGURATION"

        with sessions() as session:
            assert session.exec(select(ContentItem)).all() == []
            assert session.exec(select(WorkflowInstance)).all() == []

    def test_default_config_comes_from_bundled_yaml(self, runtime, sessions, draft_data):
        service = ContentService(runtime, session_factory=sessions)

        item = service.create_content(draft_data())

        with sessions() as session:
            instance = WorkflowInstanceRepository(session).get_by_workflow_id(item.workflow_id)
        assert instance.config["max_revision_count"] == 5
        assert WorkflowConfig.model_validate(instance.config) == load_workflow_config()

    def test_ensure_started_is_idempotent(self, service, sessions, draft_data):
        item = service.create_content(draft_data())

        assert service.ensure_started(item.id) == item.workflow_id
        assert service.ensure_started(item.id) == item.workflow_id

        with sessions() as session:
            assert len(session.exec(select(WorkflowInstance)).all()) == 1

    def test_ensure_started_for_record_without_instance(self, service, runtime, sessions):
        with sessions() as session:
            item = ContentRepository(session).add(
                ContentItem(title="Imported article", author_id="bob", content="text")
            )
            session.commit()
            content_id = item.id

        workflow_id = service.ensure_started(content_id)

        assert workflow_id == workflow_id_for(content_id)
        assert runtime.describe(workflow_id).content_id == content_id

    def test_ensure_started_missing_content(self, service):
        with pytest.raises(ContentNotFoundError):
            service.ensure_started(404)


class TestUpdate:
    def test_draft_can_be_edited(self, service, draft_data):
        item = service.create_content(draft_data())

        updated = service.update_content(item.id, title="A sharper title", tags=["docs", "ops"])

        assert updated.title == "A sharper title"
        assert updated.tags == ["docs", "ops"]
        assert updated.content == item.content

    def test_item_under_review_is_locked(self, service, gateway, draft_data):
        item = service.create_content(draft_data())
        gateway.submit_for_review(item.id)

        with pytest.raises(ContentLockedError) as exc:
            service.update_content(item.id, title="Sneaky edit")
        assert exc.value.details["status"] == "UNDER_REVIEW"

    def test_edit_locked_while_review_transition_is_parked(
        self, service, runtime, projector, draft_data
    ):
        item = service.create_content(draft_data())
        projector.failures = 10
        with pytest.raises(ProjectionWriteError):
            runtime.signal(item.workflow_id, SubmitForReview())
        assert service.get_content(item.id).status == ContentStatus.DRAFT

        with pytest.raises(ContentLockedError) as exc:
            service.update_content(item.id, content="spam " * 20)
        assert exc.value.details["state"] == "UNDER_REVIEW"
        assert exc.value.details["projection_pending"] is True
        assert service.get_content(item.id).content == item.content

    def test_edit_allowed_again_after_changes_requested(self, service, gateway, draft_data):
        item = service.create_content(draft_data())
        gateway.submit_for_review(item.id)
        gateway.request_changes(item.id, reviewer_id="rita", comment="tighten intro")

        updated = service.update_content(item.id, title="A tighter title")

        assert updated.title == "A tighter title"

    def test_update_missing_content(self, service):
        with pytest.raises(ContentNotFoundError):
            service.update_content(404, title="x")


class TestQueries:
    def test_get_status_includes_workflow_view(self, service, gateway, draft_data):
        item = service.create_content(draft_data())
        gateway.submit_for_review(item.id)

        view = service.get_status(item.id)

        assert view.status == ContentStatus.UNDER_REVIEW
        assert view.workflow.state == ApprovalState.UNDER_REVIEW
        assert view.workflow.review_deadline is not None
        assert view.workflow.quality_score is not None
        assert view.is_complete is False

    def test_get_content_missing(self, service):
        with pytest.raises(ContentNotFoundError) as exc:
            service.get_content(404)
        assert exc.value.to_dict()["code"] == "CONTENT_NOT_FOUND"

    def test_queues_by_status_and_author(self, service, gateway, draft_data):
        first = service.create_content(draft_data(author_id="alice"))
        second = service.create_content(draft_data(author_id="bob"))
        gateway.submit_for_review(second.id)

        under_review = service.list_by_status(ContentStatus.UNDER_REVIEW)
        drafts = service.list_by_status(ContentStatus.DRAFT)

        assert [item.id for item in under_review] == [second.id]
        assert [item.id for item in drafts] == [first.id]
        assert [item.id for item in service.list_by_author("alice")] == [first.id]
