import pytest
from approvals.models import ApprovalComment
from approvals.serializers import ApprovalCommentSerializer, RequestSubmissionSerializer
from approvals.services import ApprovalWorkflowService, NotificationService
from tests.conftest import RequestTypeFactory

pytestmark = pytest.mark.django_db


@pytest.fixture
def submission(org):
    request_type = RequestTypeFactory(name="Equipment Request")
    return ApprovalWorkflowService.submit(request_type, org["staff"], {"item": "Projector"})


def test_submission_serializer_nests_actions(org, submission):
    data = RequestSubmissionSerializer(submission).data

    assert data["reference_code"] == submission.reference_code
    assert data["request_type_name"] == "Equipment Request"
    assert data["requester"]["employee_code"] == "STAFF-001"
    assert data["requester_name"] == "Ana Reyes"
    assert data["answers"] == {"item": "Projector"}
    [action] = data["approval_actions"]
    assert action["approver_name"] == "Carla Santos"
    assert action["status"] == "pending"


def test_comment_serializer_defaults_to_system(submission):
    comment = ApprovalComment.create_system_comment(submission, "Routing updated")

    data = ApprovalCommentSerializer(comment).data

    assert data["user_name"] == "System"
    assert data["comment_type"] == "system"
    assert data["is_internal"] is True


def test_notification_payload_includes_action(submission):
    action = submission.approval_actions.get()

    payload = NotificationService.submission_payload(submission, action, is_overdue=False)

    assert payload["submission_id"] == submission.id
    assert payload["requester_name"] == "Ana Reyes"
    assert payload["action_id"] == action.id
    assert payload["step_index"] == 0
    assert payload["is_overdue"] is False
