from datetime import datetime, timedelta

from chapterdesk.extensions import db
from chapterdesk.models import AuditEntry, Bid, Chapter, PaymentRecord


def _login(client, email, password="pass12345"):
    return client.post("/login", json={"email": email, "password": password})


def _logout(client):
    return client.get("/logout")


def _as(client, email):
    _logout(client)
    resp = _login(client, email)
    assert resp.status_code == 200, resp.get_json()


def _seed_users(app, make_user):
    with app.app_context():
        return {
            "student": make_user("student@example.com", "Student User").id,
            "writer": make_user("writer@example.com", "Writer One", role="writer").id,
            "writer2": make_user("writer2@example.com", "Writer Two", role="writer").id,
            "outsider": make_user("outsider@example.com", "Outsider").id,
            "admin": make_user("admin@example.com", "Admin User", role="admin").id,
        }


def test_student_post_writers_bid_student_accept_deliver_revise_flow(app, client, make_user, outbox):
    ids = _seed_users(app, make_user)

    _as(client, "student@example.com")
    resp = client.post(
        "/chapters",
        json={
            "title": "Chapter 3: Methodology",
            "level": "phd",
            "work_type": "coursework",
            "urgency": "urgent",
            "target_word_count": 2500,
            "deadline": (datetime.utcnow() + timedelta(days=14)).strftime("%Y-%m-%d %H:%M:%S"),
        },
    )
    assert resp.status_code == 201
    chapter = resp.get_json()["chapter"]
    chapter_id = chapter["id"]
    assert chapter["status"] == "pending_bids"
    assert chapter["estimated_cost"] == "7800.00"

    _as(client, "writer@example.com")
    bid_a = client.post(f"/chapters/{chapter_id}/bids", json={"amount": "7500", "estimated_days": 6})
    assert bid_a.status_code == 201
    bid_a_id = bid_a.get_json()["bid"]["id"]
    duplicate = client.post(f"/chapters/{chapter_id}/bids", json={"amount": "7400"})
    assert duplicate.status_code == 409
    assert duplicate.get_json()["error"] == "DuplicateBid"

    _as(client, "writer2@example.com")
    bid_b_id = client.post(f"/chapters/{chapter_id}/bids", json={"amount": "7000"}).get_json()["bid"]["id"]
    forbidden = client.post(f"/chapters/{chapter_id}/bids/{bid_b_id}", json={"action": "accept"})
    assert forbidden.status_code == 403

    _as(client, "student@example.com")
    shortlist = client.post(f"/chapters/{chapter_id}/bids/{bid_a_id}", json={"action": "shortlist"})
    assert shortlist.status_code == 400
    assert shortlist.get_json()["error"] == "InvalidInput"
    accepted = client.post(f"/chapters/{chapter_id}/bids/{bid_a_id}", json={"action": "accept"})
    assert accepted.status_code == 200
    body = accepted.get_json()
    assert body["chapter"]["status"] == "in_progress"
    assert body["chapter"]["writer_id"] == ids["writer"]
    late = client.post(f"/chapters/{chapter_id}/bids/{bid_b_id}", json={"action": "accept"})
    assert late.status_code == 409
    assert late.get_json()["error"] == "InvalidState"

    payment = client.post(f"/chapters/{chapter_id}/payments", json={"payment_method": "mpesa"})
    assert payment.status_code == 201
    payment_id = payment.get_json()["payment"]["id"]
    assert payment.get_json()["payment"]["platform_fee"] == "390.00"

    _as(client, "writer@example.com")
    client.post(f"/chapters/{chapter_id}/content", json={"content": "The study adopts a mixed methods design."})
    unpaid = client.post(f"/chapters/{chapter_id}/deliver")
    assert unpaid.status_code == 402
    assert unpaid.get_json()["error"] == "PaymentRequired"

    _as(client, "admin@example.com")
    paid = client.post(f"/payments/{payment_id}/mark-paid", json={"transaction_reference": "QK81"})
    assert paid.get_json()["payment"]["status"] == "completed"

    _as(client, "writer@example.com")
    delivered = client.post(f"/chapters/{chapter_id}/deliver")
    assert delivered.status_code == 200
    assert delivered.get_json()["chapter"]["status"] == "completed"

    _as(client, "student@example.com")
    no_notes = client.post(f"/chapters/{chapter_id}/revision/request", json={"notes": ""})
    assert no_notes.status_code == 400
    assert no_notes.get_json()["error"] == "MissingNotes"
    revision = client.post(f"/chapters/{chapter_id}/revision/request", json={"notes": "Justify the sample size"})
    assert revision.get_json()["chapter"]["status"] == "revision"

    _as(client, "writer@example.com")
    bad_refs = client.post(
        f"/chapters/{chapter_id}/revision/submit",
        json={"notes": "Added power analysis", "file_refs": [{"path": "ch3.xlsx"}, 7]},
    )
    assert bad_refs.status_code == 400
    assert bad_refs.get_json()["error"] == "InvalidInput"
    submitted = client.post(
        f"/chapters/{chapter_id}/revision/submit",
        json={"notes": "Added power analysis", "file_refs": ["uploads/ch3-power.xlsx"]},
    )
    assert submitted.status_code == 200
    assert submitted.get_json()["chapter"]["status"] == "completed"

    _as(client, "student@example.com")
    finalized = client.post(f"/chapters/{chapter_id}/finalize")
    assert finalized.get_json()["chapter"]["finalized_at"] is not None
    _logout(client)

    with app.app_context():
        chapter = db.session.get(Chapter, chapter_id)
        assert chapter.revision_count == 1
        statuses = {b.id: b.status for b in Bid.query.filter_by(chapter_id=chapter_id)}
        assert statuses == {bid_a_id: "accepted", bid_b_id: "rejected"}
        assert PaymentRecord.query.filter_by(chapter_id=chapter_id).count() == 1
        actions = [a.action for a in AuditEntry.query.filter_by(chapter_id=chapter_id).order_by(AuditEntry.id)]
        assert actions[0] == "create"
        assert "accept_bid" in actions and "submit_revision" in actions

    recipients = {m.recipients[0] for m in outbox}
    assert {"writer@example.com", "student@example.com"} <= recipients


def test_chapter_access_control_and_admin_actions(app, client, make_user):
    ids = _seed_users(app, make_user)

    assert client.post("/chapters", json={"title": "Anonymous"}).status_code == 401

    _as(client, "student@example.com")
    chapter_id = client.post("/chapters", json={"title": "Chapter 1"}).get_json()["chapter"]["id"]
    stale_version = 1

    _as(client, "outsider@example.com")
    assert client.get(f"/chapters/{chapter_id}").status_code == 403
    assert client.post(f"/chapters/{chapter_id}/assign", json={"writer_id": ids["writer"]}).status_code == 403

    _as(client, "writer2@example.com")
    assert client.get(f"/chapters/{chapter_id}").status_code == 200
    assert client.post(f"/chapters/{chapter_id}/deliver").status_code == 403

    _as(client, "admin@example.com")
    assigned = client.post(
        f"/chapters/{chapter_id}/assign",
        json={"writer_id": ids["writer"], "version": stale_version},
    )
    assert assigned.status_code == 200
    stale = client.post(
        f"/chapters/{chapter_id}/status",
        json={"status": "cancelled", "reason": "Duplicate", "version": stale_version},
    )
    assert stale.status_code == 409
    assert stale.get_json()["error"] == "ConcurrentModification"

    view = client.get(f"/chapters/{chapter_id}").get_json()["chapter"]
    assert view["status"] == "in_progress"
    assert view["allowed_transitions"] == ["cancelled", "completed", "disputed"]

    missing = client.post("/chapters/999/open")
    assert missing.status_code == 404
    assert missing.get_json()["error"] == "ChapterNotFound"

    bad_status = client.post(f"/chapters/{chapter_id}/status", json={"status": "archived"})
    assert bad_status.status_code == 400
    assert bad_status.get_json()["error"] == "InvalidInput"


def test_price_estimate_is_public(client):
    resp = client.post("/pricing/estimate", json={"level": "phd", "urgency": "urgent", "pages": 10})
    assert resp.status_code == 200
    estimate = resp.get_json()["estimate"]
    assert estimate["amount"] == "7800.00"
    assert estimate["writer_share"] == "7020.00"

    bad = client.post("/pricing/estimate", json={"level": "phd", "pages": 0})
    assert bad.status_code == 422
    assert bad.get_json()["error"] == "InvalidConfiguration"
