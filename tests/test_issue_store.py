import pytest

from civicsync.core.errors import AuthorizationError, NotFoundError, ValidationError
from civicsync.models.issue import Issue, IssueStatus
from civicsync.models.notification import Notification, NotificationType
from civicsync.models.upvote import IssueUpvote
from civicsync.services import issue_store, notifications, storage


def test_create_issue_starts_pending(db, reporter, new_issue_data):
    images = [{"url": "http://testserver/uploads/issues/a.jpg", "public_id": "issues/a.jpg"}]
    issue = issue_store.create_issue(db, new_issue_data(), images, reporter_id=reporter.id)

    assert issue.id is not None
    assert issue.status is IssueStatus.pending
    assert issue.upvote_count == 0
    assert issue.status_history == []
    assert [i.public_id for i in issue.images] == ["issues/a.jpg"]
    assert issue.created_by_id == reporter.id


def test_create_issue_rejects_invalid_data(db, reporter, new_issue_data):
    with pytest.raises(ValidationError) as exc:
        issue_store.create_issue(db, new_issue_data(title="Hole"), [], reporter_id=reporter.id)
    assert [e.field for e in exc.value.errors] == ["title"]
    assert db.query(Issue).count() == 0


def test_get_missing_issue(db):
    with pytest.raises(NotFoundError):
        issue_store.get_issue(db, 999)


def test_status_change_appends_one_history_entry(db, reporter, staff, make_issue):
    issue = make_issue()
    outcome = issue_store.update_issue(
        db, issue.id, staff.id, staff.role, {"status": "in_progress", "status_note": "Crew scheduled"}
    )

    assert outcome.status_changed is True
    assert outcome.previous_status is IssueStatus.pending
    history = outcome.issue.status_history
    assert len(history) == 1
    assert history[0].status == "in_progress"
    assert history[0].changed_by_id == staff.id
    assert history[0].note == "Crew scheduled"
    assert outcome.issue.resolved_at is None


def test_same_status_does_not_append_history(db, staff, make_issue):
    issue = make_issue()
    outcome = issue_store.update_issue(db, issue.id, staff.id, staff.role, {"status": "pending"})
    assert outcome.status_changed is False
    assert outcome.issue.status_history == []


def test_resolving_stamps_resolved_at(db, staff, make_issue):
    issue = make_issue()
    outcome = issue_store.update_issue(db, issue.id, staff.id, staff.role, {"status": "resolved"})
    assert outcome.issue.status is IssueStatus.resolved
    assert outcome.issue.resolved_at is not None


def test_reporter_can_edit_own_issue(db, reporter, make_issue):
    issue = make_issue()
    outcome = issue_store.update_issue(db, issue.id, reporter.id, reporter.role, {"title": "Pothole on Elm St"})
    assert outcome.issue.title == "Pothole on Elm St"


def test_stranger_cannot_edit(db, citizen, make_issue):
    issue = make_issue()
    with pytest.raises(AuthorizationError):
        issue_store.update_issue(db, issue.id, citizen.id, citizen.role, {"title": "Not my issue at all"})


def test_only_staff_can_assign(db, reporter, staff, make_issue):
    issue = make_issue()
    with pytest.raises(AuthorizationError):
        issue_store.update_issue(db, issue.id, reporter.id, reporter.role, {"assigned_to": staff.id})

    outcome = issue_store.update_issue(db, issue.id, staff.id, staff.role, {"assigned_to": staff.id})
    assert outcome.assignee_changed is True
    assert outcome.issue.assigned_to_id == staff.id


def test_assigning_unknown_user_is_a_field_error(db, staff, make_issue):
    issue = make_issue()
    with pytest.raises(ValidationError) as exc:
        issue_store.update_issue(db, issue.id, staff.id, staff.role, {"assigned_to": 4242})
    assert [e.field for e in exc.value.errors] == ["assignedTo"]


def test_update_location_moves_issue(db, reporter, make_issue):
    issue = make_issue()
    patch = {"location": {"address": "1 Elm St", "coordinates": [-89.6, 39.8]}}
    outcome = issue_store.update_issue(db, issue.id, reporter.id, reporter.role, patch)
    assert (outcome.issue.lng, outcome.issue.lat) == (-89.6, 39.8)
    assert outcome.issue.address == "1 Elm St"


def test_upvote_toggle_is_an_involution(db, reporter, citizen, make_issue):
    issue = make_issue()

    assert issue_store.toggle_upvote(db, issue.id, citizen.id) == (1, True)
    assert issue_store.toggle_upvote(db, issue.id, reporter.id) == (2, True)
    assert issue_store.toggle_upvote(db, issue.id, citizen.id) == (1, False)

    remaining = db.query(IssueUpvote).filter(IssueUpvote.issue_id == issue.id).all()
    assert [u.user_id for u in remaining] == [reporter.id]


def test_upvote_missing_issue(db, citizen):
    with pytest.raises(NotFoundError):
        issue_store.toggle_upvote(db, 999, citizen.id)


def test_add_comment_returns_all_comments(db, reporter, citizen, make_issue):
    issue = make_issue()
    issue_store.add_comment(db, issue.id, reporter.id, "Reported to the council too")
    comments = issue_store.add_comment(db, issue.id, citizen.id, "Same problem here")

    assert [c.text for c in comments] == ["Reported to the council too", "Same problem here"]
    assert comments[1].user.name == "Carl Citizen"
    assert comments[1].user.email is None


def test_add_empty_comment_fails(db, citizen, make_issue):
    issue = make_issue()
    with pytest.raises(ValidationError):
        issue_store.add_comment(db, issue.id, citizen.id, "  ")


def test_non_owner_cannot_delete(db, citizen, staff, make_issue):
    issue = make_issue()
    for user in (citizen, staff):
        with pytest.raises(AuthorizationError):
            issue_store.delete_issue(db, issue.id, user.id, user.role)
    db.expire_all()
    assert issue_store.get_issue(db, issue.id).title == "Pothole on Main St"


def test_delete_removes_images_and_notifications(db, reporter, admin, monkeypatch, new_issue_data):
    deleted = []
    monkeypatch.setattr(storage, "delete", lambda public_id: deleted.append(public_id) or {"result": "ok"})
    images = [{"url": "u1", "public_id": "issues/1.jpg"}, {"url": "u2", "public_id": "issues/2.jpg"}]
    issue = issue_store.create_issue(db, new_issue_data(), images, reporter_id=reporter.id)
    notifications.create_notification(
        db, reporter.id, NotificationType.issue_updated, "t", "m", issue_id=issue.id
    )

    issue_store.delete_issue(db, issue.id, admin.id, admin.role)

    assert deleted == ["issues/1.jpg", "issues/2.jpg"]
    assert db.query(Issue).count() == 0
    assert db.query(Notification).count() == 0


def test_delete_survives_storage_failure(db, reporter, monkeypatch, new_issue_data):
    def boom(public_id):
        raise RuntimeError("storage down")

    monkeypatch.setattr(storage, "delete", boom)
    issue = issue_store.create_issue(db, new_issue_data(), [{"url": "u", "public_id": "p"}], reporter_id=reporter.id)
    issue_store.delete_issue(db, issue.id, reporter.id, reporter.role)
    assert db.query(Issue).count() == 0


def test_serialized_issue_uses_public_shape(db, reporter, citizen, make_issue):
    issue = make_issue()
    issue_store.toggle_upvote(db, issue.id, citizen.id)
    out = issue_store.serialize_issue(db, issue_store.get_issue(db, issue.id)).model_dump(by_alias=True)

    assert out["location"]["coordinates"] == {"type": "Point", "coordinates": [-89.6501, 39.7817]}
    assert out["location"]["zipCode"] == "62701"
    assert out["upvoteCount"] == 1
    assert out["upvotes"] == [citizen.id]
    assert out["reportedBy"]["email"] == "rita@example.com"
    assert out["distance"] is None
