from civicsync.models.issue import Issue
from civicsync.models.notification import Notification, NotificationType
from civicsync.routers import issues as issues_router
from civicsync.services import notify_email, storage

PNG = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64


def _form(**overrides):
    form = {
        "title": "Pothole on Main St",
        "description": "Deep pothole near the bus stop on Main St.",
        "category": "Road & Transportation",
        "priority": "high",
        "address": "12 Main St",
        "city": "Springfield",
        "zipCode": "62701",
        "longitude": "-89.6501",
        "latitude": "39.7817",
    }
    form.update(overrides)
    return form


def test_health(client):
    assert client.get("/health").json() == {"ok": True}


def test_create_issue_with_image(client, reporter, auth, monkeypatch):
    sent = []
    monkeypatch.setattr(notify_email, "send_issue_created", lambda *args: sent.append(args) or True)

    resp = client.post(
        "/api/issues",
        data=_form(),
        files=[("images", ("hole.png", PNG, "image/png"))],
        headers=auth(reporter),
    )

    assert resp.status_code == 201
    body = resp.json()
    assert body["success"] is True
    issue = body["data"]
    assert issue["status"] == "pending"
    assert issue["upvoteCount"] == 0
    assert issue["location"]["coordinates"]["coordinates"] == [-89.6501, 39.7817]
    assert issue["reportedBy"]["id"] == reporter.id
    assert len(issue["images"]) == 1
    assert issue["images"][0]["url"].startswith("http://testserver/uploads/issues/")
    # confirmation goes out from the background task
    assert sent and sent[0][0] == "rita@example.com"


def test_create_requires_authentication(client):
    resp = client.post("/api/issues", data=_form())
    assert resp.status_code == 401
    assert resp.json()["success"] is False


def test_create_rejects_invalid_fields(client, reporter, auth, db):
    resp = client.post("/api/issues", data=_form(title="Hole", latitude="95"), headers=auth(reporter))

    assert resp.status_code == 400
    body = resp.json()
    assert body["success"] is False
    assert {e["field"] for e in body["errors"]} == {"title", "location.coordinates"}
    assert db.query(Issue).count() == 0


def test_create_rejects_unsupported_file_type(client, reporter, auth):
    resp = client.post(
        "/api/issues",
        data=_form(),
        files=[("images", ("notes.txt", b"hello", "text/plain"))],
        headers=auth(reporter),
    )
    assert resp.status_code == 400
    assert resp.json()["errors"][0]["field"] == "images"


def test_create_cleans_up_images_on_validation_failure(client, reporter, auth, monkeypatch):
    discarded = []
    monkeypatch.setattr(storage, "discard", lambda ids: discarded.extend(ids))

    resp = client.post(
        "/api/issues",
        data=_form(category="Unicorns"),
        files=[("images", ("hole.png", PNG, "image/png"))],
        headers=auth(reporter),
    )

    assert resp.status_code == 400
    assert len(discarded) == 1


def test_list_envelope_and_pagination(client, make_issue):
    for n in range(25):
        make_issue(title=f"Issue number {n:02d}")

    body = client.get("/api/issues", params={"page": 2, "limit": 10}).json()

    assert body["success"] is True
    assert body["count"] == 10
    assert body["totalPages"] == 3
    assert body["currentPage"] == 2
    assert body["total"] == 25


def test_list_rejects_page_zero(client):
    resp = client.get("/api/issues", params={"page": 0})
    assert resp.status_code == 400
    assert resp.json()["errors"][0]["field"] == "page"


def test_get_issue_and_missing_issue(client, make_issue):
    issue = make_issue()
    assert client.get(f"/api/issues/{issue.id}").json()["data"]["title"] == "Pothole on Main St"

    missing = client.get("/api/issues/9999")
    assert missing.status_code == 404
    assert missing.json() == {"success": False, "message": "Issue not found"}


def test_stats_endpoint(client, db, staff, make_issue):
    from civicsync.services import issue_store

    ids = [make_issue().id for _ in range(5)]
    for issue_id in ids[:2]:
        issue_store.update_issue(db, issue_id, staff.id, staff.role, {"status": "resolved"})

    data = client.get("/api/issues/stats").json()["data"]
    assert data["overview"] == {"totalIssues": 5, "pending": 3, "inProgress": 0, "resolved": 2, "rejected": 0}
    assert data["byCategory"] == [{"category": "Road & Transportation", "count": 5}]


def test_nearby_endpoint(client, make_issue):
    near = make_issue(title="Close by issue", lng=-89.64, lat=39.7817)
    make_issue(title="Far away issue", lng=-89.0, lat=39.7817)

    body = client.get("/api/issues/nearby/-89.6501/39.7817", params={"maxDistance": 5000}).json()

    assert body["count"] == 1
    assert body["data"][0]["id"] == near.id
    assert 0 < body["data"][0]["distance"] <= 5000


def test_status_update_records_history_and_notifies_reporter(client, db, reporter, staff, auth, make_issue, monkeypatch):
    emails = []
    monkeypatch.setattr(notify_email, "send_status_update", lambda *args: emails.append(args) or True)
    issue = make_issue()

    resp = client.put(
        f"/api/issues/{issue.id}",
        json={"status": "in_progress", "statusNote": "Crew scheduled"},
        headers=auth(staff),
    )

    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["status"] == "in_progress"
    assert len(data["statusHistory"]) == 1
    assert data["statusHistory"][0]["changedBy"]["id"] == staff.id
    assert data["statusHistory"][0]["note"] == "Crew scheduled"

    assert emails and emails[0][0] == "rita@example.com"
    note = db.query(Notification).one()
    assert note.recipient_id == reporter.id
    assert note.type is NotificationType.issue_updated


def test_update_location_through_api(client, reporter, auth, make_issue):
    issue = make_issue()
    resp = client.put(
        f"/api/issues/{issue.id}",
        json={"location": {"address": "1 Elm St", "coordinates": {"type": "Point", "coordinates": [-89.6, 39.8]}}},
        headers=auth(reporter),
    )
    assert resp.status_code == 200
    assert resp.json()["data"]["location"]["coordinates"]["coordinates"] == [-89.6, 39.8]


def test_assignment_notifies_assignee(client, db, staff, admin, auth, make_issue):
    issue = make_issue()
    resp = client.put(f"/api/issues/{issue.id}", json={"assignedTo": staff.id}, headers=auth(admin))

    assert resp.status_code == 200
    assert resp.json()["data"]["assignedTo"]["id"] == staff.id
    note = db.query(Notification).one()
    assert note.recipient_id == staff.id
    assert note.type is NotificationType.issue_assigned


def test_stranger_update_is_forbidden(client, citizen, auth, make_issue):
    issue = make_issue()
    resp = client.put(f"/api/issues/{issue.id}", json={"title": "Hijacked issue title"}, headers=auth(citizen))
    assert resp.status_code == 403


def test_non_owner_delete_is_forbidden_and_leaves_issue(client, citizen, auth, make_issue):
    issue = make_issue()
    before = client.get(f"/api/issues/{issue.id}").json()["data"]

    resp = client.delete(f"/api/issues/{issue.id}", headers=auth(citizen))

    assert resp.status_code == 403
    assert client.get(f"/api/issues/{issue.id}").json()["data"] == before


def test_owner_delete(client, reporter, auth, make_issue):
    issue = make_issue()
    resp = client.delete(f"/api/issues/{issue.id}", headers=auth(reporter))
    assert resp.status_code == 200
    assert client.get(f"/api/issues/{issue.id}").status_code == 404


def test_upvote_toggle(client, citizen, auth, make_issue):
    issue = make_issue()
    first = client.post(f"/api/issues/{issue.id}/upvote", headers=auth(citizen)).json()["data"]
    second = client.post(f"/api/issues/{issue.id}/upvote", headers=auth(citizen)).json()["data"]

    assert first == {"upvoteCount": 1, "userUpvoted": True}
    assert second == {"upvoteCount": 0, "userUpvoted": False}


def test_upvote_milestone_notifies_reporter(db, reporter, make_issue):
    issue = make_issue()
    issues_router._send_upvote_milestone_safe(issue.id, 10)
    issues_router._send_upvote_milestone_safe(issue.id, 11)

    notes = db.query(Notification).all()
    assert len(notes) == 1
    assert notes[0].type is NotificationType.upvote_milestone


def test_comment_notifies_reporter(client, db, reporter, citizen, auth, make_issue):
    issue = make_issue()
    resp = client.post(f"/api/issues/{issue.id}/comments", json={"text": "Same here"}, headers=auth(citizen))

    assert resp.status_code == 201
    comments = resp.json()["data"]
    assert comments[-1]["text"] == "Same here"
    assert comments[-1]["user"]["name"] == "Carl Citizen"
    note = db.query(Notification).one()
    assert note.type is NotificationType.comment_added
    assert note.recipient_id == reporter.id


def test_own_comment_does_not_notify(client, db, reporter, auth, make_issue):
    issue = make_issue()
    client.post(f"/api/issues/{issue.id}/comments", json={"text": "Adding a photo soon"}, headers=auth(reporter))
    assert db.query(Notification).count() == 0


def test_expired_token_is_rejected(client, reporter, make_issue):
    from civicsync.core.security import make_token

    issue = make_issue()
    token = make_token(reporter.id, reporter.role.value, ttl=-10)
    resp = client.post(f"/api/issues/{issue.id}/upvote", headers={"Authorization": f"Bearer {token}"})
    assert resp.status_code == 401
    assert resp.json()["message"] == "Token expired"


def test_status_reaction_reports_the_status_its_update_set(db, reporter, staff, make_issue, monkeypatch):
    emails = []
    monkeypatch.setattr(notify_email, "send_status_update", lambda *args: emails.append(args) or True)
    issue = make_issue()
    from civicsync.services import issue_store

    issue_store.update_issue(db, issue.id, staff.id, staff.role, {"status": "in_progress"})
    issue_store.update_issue(db, issue.id, staff.id, staff.role, {"status": "resolved"})

    # the first update's task runs only after the second update committed
    issues_router._send_update_notifications_safe(issue.id, staff.id, "in_progress", False)

    assert emails[0][-1] == "in_progress"
    note = db.query(Notification).one()
    assert note.type is NotificationType.issue_updated
    assert note.title == "Issue in progress"


def test_nearby_rejects_nan_distance(client):
    resp = client.get("/api/issues/nearby/10/50", params={"maxDistance": "nan"})
    assert resp.status_code == 400
    assert resp.json()["errors"][0]["field"] == "maxDistance"
