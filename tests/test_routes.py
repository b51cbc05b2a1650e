'''
A test suite for testing `confreview/service/routes.py`

Verifies that status codes are responding to requests as intended.
'''

import pytest

from confreview.models import ConferenceMember, MemberRole, ReviewStatus


def as_user(user_id):
    return {"X-User-Id": user_id}


@pytest.fixture
def routes_context(app_factory):
    '''setup context for routes tests'''
    conference = app_factory.conference()
    chair = app_factory.user("chair")
    author = app_factory.user("author")
    app_factory.user("admin", is_admin=True)
    app_factory.member(conference, chair, MemberRole.CHAIR)
    app_factory.member(conference, author, MemberRole.AUTHOR)
    for i in range(1, 4):
        app_factory.member(conference, app_factory.user("r{}".format(i)), MemberRole.REVIEWER)

    app_factory.paper(conference, "p1", authors=[author])
    app_factory.paper(conference, "p2")
    return app_factory


def test_health(test_client):
    response = test_client.get("/health")
    assert response.status_code == 200
    assert response.json == {"status": "ok"}


def test_missing_identity(test_client, routes_context):
    response = test_client.get("/bids/my")
    assert response.status_code == 401
    assert response.json["name"] == "AuthenticationError"


def test_bids(test_client, routes_context):
    response = test_client.post("/bids", json={"paperId": "p1", "bid": "YES"}, headers=as_user("r1"))
    assert response.status_code == 201
    assert response.json["bid"] == "YES"

    response = test_client.post("/bids", json={"paperId": "p1", "bid": "MAYBE"}, headers=as_user("r1"))
    assert response.status_code == 200
    assert response.json["bid"] == "MAYBE"

    response = test_client.post("/bids", json={"paperId": "p1", "bid": "SURE"}, headers=as_user("r1"))
    assert response.status_code == 400
    assert response.json["name"] == "ValidationError"

    response = test_client.post("/bids", json={"bid": "YES"}, headers=as_user("r1"))
    assert response.status_code == 400

    response = test_client.get("/bids/my", headers=as_user("r1"))
    assert [b["bid"] for b in response.json] == ["MAYBE"]

    response = test_client.get("/bids/conferences/conf/papers", headers=as_user("r1"))
    assert response.status_code == 200
    assert {p["id"]: p["currentBid"] for p in response.json} == {"p1": "MAYBE", "p2": None}

    assert test_client.get("/bids/conferences/conf/matrix", headers=as_user("r1")).status_code == 403
    response = test_client.get("/bids/conferences/conf/matrix", headers=as_user("chair"))
    assert response.json["summary"]["papersWithBids"] == 1


def test_conflicts(test_client, routes_context):
    response = test_client.post("/conflicts/mark", json={"paperId": "p2"}, headers=as_user("r2"))
    assert response.status_code == 201

    response = test_client.post("/conflicts/mark", json={"paperId": "p2"}, headers=as_user("r2"))
    assert response.status_code == 409
    assert response.json["message"] == "Conflict already declared"

    response = test_client.get("/conflicts?paperId=p2", headers=as_user("chair"))
    assert [c["userId"] for c in response.json] == ["r2"]
    assert test_client.get("/conflicts?paperId=p2", headers=as_user("r2")).status_code == 403
    assert test_client.get("/conflicts", headers=as_user("chair")).status_code == 400

    response = test_client.post("/conflicts/unmark", json={"paperId": "p2"}, headers=as_user("r2"))
    assert response.status_code == 200
    response = test_client.post("/conflicts/unmark", json={"paperId": "p2"}, headers=as_user("r2"))
    assert response.status_code == 404


def test_auto_assign(test_client, routes_context):
    response = test_client.post(
        "/assignments/auto",
        json={"conferenceId": "conf", "targetReviewersPerPaper": 2},
        headers=as_user("chair"),
    )
    assert response.status_code == 200
    assert response.json["totalAssigned"] == 4
    assert response.json["skipped"] == []
    assert "4 assignments created" in response.json["message"]
    for outcome in response.json["assigned"]:
        assert "author" not in outcome["assignedReviewers"]

    response = test_client.get("/assignments/conferences/conf/stats", headers=as_user("chair"))
    assert response.json["summary"]["totalAssignments"] == 4


def test_auto_assign_errors(test_client, routes_context):
    def auto_assign(body, user="chair"):
        return test_client.post("/assignments/auto", json=body, headers=as_user(user))

    assert auto_assign({"conferenceId": "conf"}, user="r1").status_code == 403
    assert auto_assign({"conferenceId": "missing"}).status_code == 404
    assert auto_assign({"conferenceId": "conf", "targetReviewersPerPaper": 0}).status_code == 400
    assert auto_assign({}).status_code == 400


def test_manual_assignment(test_client, routes_context):
    response = test_client.post(
        "/assignments",
        json={"paperId": "p1", "reviewerId": "r1", "dueDate": "2030-01-01T00:00:00Z"},
        headers=as_user("chair"),
    )
    assert response.status_code == 201
    assert response.json["status"] == "NOT_STARTED"
    assert response.json["dueDate"] == "2030-01-01T00:00:00"

    response = test_client.post(
        "/assignments", json={"paperId": "p1", "reviewerId": "r1"}, headers=as_user("chair")
    )
    assert response.status_code == 409

    # "author" holds no reviewer role in the conference
    response = test_client.post(
        "/assignments", json={"paperId": "p1", "reviewerId": "author"}, headers=as_user("admin")
    )
    assert response.status_code == 400

    response = test_client.post(
        "/assignments",
        json={"paperId": "p2", "reviewerId": "r1", "dueDate": "next week"},
        headers=as_user("chair"),
    )
    assert response.status_code == 400

    response = test_client.get("/assignments/papers/p1", headers=as_user("chair"))
    assert [a["reviewerId"] for a in response.json] == ["r1"]

    response = test_client.get("/assignments/my", headers=as_user("r1"))
    assert response.json[0]["paper"]["title"] == "Paper p1"


def test_review_flow(test_client, routes_context):
    response = test_client.post(
        "/assignments", json={"paperId": "p1", "reviewerId": "r1"}, headers=as_user("chair")
    )
    assignment_id = response.json["id"]

    response = test_client.post(
        "/reviews/{}/draft".format(assignment_id), json={"score": 7}, headers=as_user("r1")
    )
    assert response.status_code == 200
    assert response.json["score"] == 7

    response = test_client.post(
        "/reviews/{}/draft".format(assignment_id), json={"score": 12}, headers=as_user("r1")
    )
    assert response.status_code == 400

    response = test_client.post(
        "/reviews/{}/submit".format(assignment_id),
        json={"confidence": 4, "commentsToChair": "borderline"},
        headers=as_user("r1"),
    )
    assert response.status_code == 201
    assert (response.json["score"], response.json["confidence"]) == (7, 4)
    assert response.json["submittedAt"] is not None

    response = test_client.post(
        "/reviews/{}/submit".format(assignment_id), json={}, headers=as_user("r1")
    )
    assert response.status_code == 409

    response = test_client.patch(
        "/assignments/{}/status".format(assignment_id), json={"status": "DRAFT"}, headers=as_user("r1")
    )
    assert response.status_code == 403

    response = test_client.get("/reviews/{}".format(assignment_id), headers=as_user("author"))
    assert response.status_code == 403

    response = test_client.get("/reviews/papers/p1/reviews", headers=as_user("chair"))
    assert response.json[0]["reviewerId"] == "r1"
    assert response.json[0]["review"]["commentsToChair"] == "borderline"

    response = test_client.get("/reviews/papers/p1/reviews", headers=as_user("r2"))
    assert response.json[0]["reviewerId"] == "anonymous-1"
    assert response.json[0]["review"]["commentsToChair"] is None

    response = test_client.get("/reviews/papers/p1/reviews", headers=as_user("author"))
    assert response.status_code == 403

    response = test_client.delete("/assignments/{}".format(assignment_id), headers=as_user("chair"))
    assert response.status_code == 409

    response = test_client.patch(
        "/assignments/{}/status".format(assignment_id), json={"status": "DRAFT"}, headers=as_user("admin")
    )
    assert response.status_code == 200
    assert response.json["status"] == ReviewStatus.DRAFT.value

    response = test_client.delete("/assignments/{}".format(assignment_id), headers=as_user("chair"))
    assert response.status_code == 200
    assert test_client.get("/reviews/{}".format(assignment_id), headers=as_user("r1")).status_code == 404


def test_members(test_client, routes_context):
    session = routes_context.session
    chair_member = session.query(ConferenceMember).filter_by(user_id="chair").one().id
    reviewer_member = session.query(ConferenceMember).filter_by(user_id="r3").one().id

    response = test_client.get("/conferences/conf/members", headers=as_user("r1"))
    assert response.status_code == 200
    assert len(response.json) == 5
    assert test_client.get("/conferences/conf/members", headers=as_user("admin")).status_code == 200

    response = test_client.delete(
        "/conferences/conf/members/{}".format(chair_member), headers=as_user("chair")
    )
    assert response.status_code == 403
    assert response.json["name"] == "LastChairError"

    response = test_client.patch(
        "/conferences/conf/members/{}".format(reviewer_member), json={"role": "CHAIR"}, headers=as_user("r1")
    )
    assert response.status_code == 403

    response = test_client.patch(
        "/conferences/conf/members/{}".format(reviewer_member), json={"role": "CHAIR"}, headers=as_user("chair")
    )
    assert response.status_code == 200
    assert response.json["role"] == "CHAIR"

    response = test_client.delete(
        "/conferences/conf/members/{}".format(chair_member), headers=as_user("r3")
    )
    assert response.status_code == 200
