'''
Tests for the review lifecycle: partial drafts, submission, deadlines, the
terminal SUBMITTED state and what each kind of reader gets to see.
'''

import datetime
from unittest import mock

import pytest

from confreview.exceptions import (
    ConflictError,
    DeadlinePassedError,
    ForbiddenError,
    NotFoundError,
    ValidationError,
)
from confreview.models import Review, ReviewAssignment, ReviewStatus
from confreview.notifications import REVIEW_SUBMITTED
from confreview.reviews import ReviewLifecycle, ReviewPayload, anonymize_reviews

NOW = datetime.datetime(2024, 6, 1, 9, 0, 0)


@pytest.fixture
def review_context(factory, conference_context):
    conference = conference_context["conference"]
    r1, r2, r3, r4 = conference_context["reviewers"]
    paper = factory.paper(conference, "p1", authors=[conference_context["author"], r1])
    conference_context["paper"] = paper
    conference_context["r2_assignment"] = factory.assignment(paper, r2)
    conference_context["r3_assignment"] = factory.assignment(paper, r3)
    return conference_context


def lifecycle(session, **kwargs):
    kwargs.setdefault("clock", lambda: NOW)
    return ReviewLifecycle(session, **kwargs)


def test_draft_then_submit(session, review_context):
    assignment_id = review_context["r2_assignment"].id
    manager = lifecycle(session)

    manager.save_draft(assignment_id, "r2", {"score": 7})
    manager.save_draft(assignment_id, "r2", {"confidence": 4})

    review = session.query(Review).filter_by(assignment_id=assignment_id).one()
    assert (review.score, review.confidence) == (7, 4)
    assert review.submitted_at is None
    assert session.get(ReviewAssignment, assignment_id).status == ReviewStatus.DRAFT

    submitted = manager.submit_review(assignment_id, "r2", {})

    assert (submitted.score, submitted.confidence) == (7, 4)
    assert submitted.submitted_at == NOW
    assert session.get(ReviewAssignment, assignment_id).status == ReviewStatus.SUBMITTED
    assert session.query(Review).count() == 1


def test_submit_without_draft(session, review_context):
    assignment_id = review_context["r2_assignment"].id

    review = lifecycle(session).submit_review(
        assignment_id, "r2", {"score": 3, "confidence": 5, "commentsToAuthor": "Thanks"}
    )

    assert review.comments_to_author == "Thanks"
    assert review.to_dict()["submittedAt"] == NOW.isoformat()


def test_payload_validation(session, review_context):
    assignment_id = review_context["r2_assignment"].id
    manager = lifecycle(session)

    for payload in ({"score": 11}, {"score": 0}, {"confidence": 6}, {"score": "7"}, {"score": True},
                    {"summary": 12}):
        with pytest.raises(ValidationError):
            manager.save_draft(assignment_id, "r2", payload)

    assert session.query(Review).count() == 0
    assert session.get(ReviewAssignment, assignment_id).status == ReviewStatus.NOT_STARTED


def test_review_payload_keys():
    payload = ReviewPayload.from_dict({"score": 5, "commentsToChair": "private", "weaknesses": None})

    assert payload.provided() == {"score": 5, "comments_to_chair": "private"}
    assert ReviewPayload.from_dict({"comments_to_author": "hi"}).comments_to_author == "hi"

    with pytest.raises(ValidationError):
        ReviewPayload.from_dict(["score", 5])


def test_authorization(session, review_context):
    assignment_id = review_context["r2_assignment"].id
    manager = lifecycle(session)

    with pytest.raises(NotFoundError):
        manager.save_draft("missing", "r2", {})

    for actor in ("outsider", "r3", "author", "r1"):
        with pytest.raises(ForbiddenError):
            manager.save_draft(assignment_id, actor, {"score": 5})

    # chairs may edit drafts but submission belongs to the reviewer
    manager.save_draft(assignment_id, "chair", {"summary": "Chair note"})
    with pytest.raises(ForbiddenError):
        manager.submit_review(assignment_id, "chair", {})


def test_author_chair_is_refused(session, factory, review_context):
    conference = review_context["conference"]
    paper = factory.paper(conference, "p2", authors=[review_context["chair"]])
    assignment = factory.assignment(paper, review_context["reviewers"][1])

    with pytest.raises(ForbiddenError):
        lifecycle(session).get_review(assignment.id, "chair")


def test_deadline_boundary(session, factory, review_context):
    paper = review_context["paper"]
    overdue = factory.assignment(paper, review_context["reviewers"][3], due_date=NOW - datetime.timedelta(seconds=1))
    payload = {"score": 6, "confidence": 3}
    manager = lifecycle(session)

    with pytest.raises(DeadlinePassedError):
        manager.submit_review(overdue.id, "r4", payload)
    assert session.get(ReviewAssignment, overdue.id).status == ReviewStatus.NOT_STARTED

    review = manager.submit_review(overdue.id, "admin", payload)
    assert review.score == 6
    assert session.get(ReviewAssignment, overdue.id).status == ReviewStatus.SUBMITTED


def test_deadline_is_inclusive(session, factory, review_context):
    due_now = factory.assignment(review_context["paper"], review_context["reviewers"][3], due_date=NOW)

    review = lifecycle(session).submit_review(due_now.id, "r4", {"score": 2})

    assert review.submitted_at == NOW


def test_double_submit_rejected(session, review_context):
    assignment_id = review_context["r2_assignment"].id
    manager = lifecycle(session)
    manager.submit_review(assignment_id, "r2", {"score": 9})

    with pytest.raises(ConflictError):
        manager.submit_review(assignment_id, "r2", {"score": 1})

    assert session.query(Review).one().score == 9


def test_submitted_is_terminal(session, review_context):
    assignment_id = review_context["r2_assignment"].id
    manager = lifecycle(session)
    manager.submit_review(assignment_id, "r2", {"score": 9})

    with pytest.raises(ConflictError):
        manager.save_draft(assignment_id, "r2", {"score": 1})

    for actor in ("r2", "chair"):
        for status in ("DRAFT", "NOT_STARTED"):
            with pytest.raises(ForbiddenError):
                manager.update_status(assignment_id, actor, status)

    assert session.get(ReviewAssignment, assignment_id).status == ReviewStatus.SUBMITTED
    review = session.query(Review).one()
    assert review.score == 9
    assert review.submitted_at == NOW


def test_admin_can_amend_and_reopen(session, review_context):
    assignment_id = review_context["r2_assignment"].id
    manager = lifecycle(session)
    manager.submit_review(assignment_id, "r2", {"score": 9})

    review = manager.save_draft(assignment_id, "admin", {"summary": "Fixed a typo"})
    assert review.summary == "Fixed a typo"
    assert session.get(ReviewAssignment, assignment_id).status == ReviewStatus.SUBMITTED

    assignment = manager.update_status(assignment_id, "admin", "DRAFT")
    assert assignment.status == ReviewStatus.DRAFT
    assert session.query(Review).one().submitted_at is None


def test_update_status(session, review_context):
    assignment_id = review_context["r2_assignment"].id
    manager = lifecycle(session)

    assert manager.update_status(assignment_id, "r2", "DRAFT").status == ReviewStatus.DRAFT
    assert manager.update_status(assignment_id, "chair", "NOT_STARTED").status == ReviewStatus.NOT_STARTED

    with pytest.raises(ValidationError):
        manager.update_status(assignment_id, "r2", "DONE")


def test_update_status_to_submitted_respects_deadline(session, factory, review_context):
    overdue = factory.assignment(
        review_context["paper"], review_context["reviewers"][3], due_date=NOW - datetime.timedelta(days=3)
    )
    manager = lifecycle(session)
    manager.save_draft(overdue.id, "r4", {"score": 4})

    for actor in ("r4", "chair"):
        with pytest.raises(DeadlinePassedError):
            manager.update_status(overdue.id, actor, "SUBMITTED")

    assert session.get(ReviewAssignment, overdue.id).status == ReviewStatus.DRAFT
    assert session.query(Review).filter_by(assignment_id=overdue.id).one().submitted_at is None

    assignment = manager.update_status(overdue.id, "admin", "SUBMITTED")
    assert assignment.status == ReviewStatus.SUBMITTED
    assert session.query(Review).filter_by(assignment_id=overdue.id).one().submitted_at == NOW


def test_update_status_to_submitted_stamps_review(session, review_context):
    assignment_id = review_context["r2_assignment"].id
    manager = lifecycle(session)
    manager.save_draft(assignment_id, "r2", {"score": 8})

    assignment = manager.update_status(assignment_id, "r2", "SUBMITTED")

    assert assignment.status == ReviewStatus.SUBMITTED
    assert assignment.review.submitted_at == NOW

    # a repeated write keeps the first timestamp
    later = lifecycle(session, clock=lambda: NOW + datetime.timedelta(hours=1))
    later.update_status(assignment_id, "admin", "SUBMITTED")
    assert session.query(Review).one().submitted_at == NOW


def test_submit_notifies_chairs(session, review_context):
    notifier = mock.Mock()
    assignment_id = review_context["r2_assignment"].id

    lifecycle(session, notifier=notifier).submit_review(assignment_id, "r2", {"score": 4})

    notifier.dispatch.assert_called_once()
    event, recipients, payload = notifier.dispatch.call_args.args
    assert event == REVIEW_SUBMITTED
    assert recipients == ["chair@example.com"]
    assert payload["assignmentId"] == assignment_id


def test_get_review(session, review_context):
    assignment_id = review_context["r2_assignment"].id
    manager = lifecycle(session)

    assert manager.get_review(assignment_id, "r2")["review"] is None

    manager.save_draft(assignment_id, "r2", {"score": 5})
    result = manager.get_review(assignment_id, "chair")
    assert result["review"]["score"] == 5
    assert result["paper"]["id"] == "p1"
    assert result["status"] == "DRAFT"


@pytest.fixture
def submitted_reviews(session, review_context):
    manager = lifecycle(session)
    for key, reviewer_id in (("r2_assignment", "r2"), ("r3_assignment", "r3")):
        manager.submit_review(
            review_context[key].id,
            reviewer_id,
            {"score": 6, "commentsToChair": "For the chair only", "commentsToAuthor": "Nice"},
        )
    return review_context


def test_reviews_for_paper_chair_view(session, submitted_reviews):
    entries = lifecycle(session).reviews_for_paper("p1", "chair")

    assert sorted(e["reviewerId"] for e in entries) == ["r2", "r3"]
    assert all(e["reviewer"]["email"].endswith("@example.com") for e in entries)
    assert all(e["review"]["commentsToChair"] == "For the chair only" for e in entries)

    assert len(lifecycle(session).reviews_for_paper("p1", "admin")) == 2


def test_reviews_for_paper_anonymized(session, submitted_reviews):
    entries = lifecycle(session).reviews_for_paper("p1", "r4")

    assert [e["reviewerId"] for e in entries] == ["anonymous-1", "anonymous-2"]
    assert [e["reviewer"]["name"] for e in entries] == ["Reviewer 1", "Reviewer 2"]
    for entry in entries:
        assert entry["reviewer"]["email"] is None
        assert entry["review"]["commentsToChair"] is None
        assert entry["review"]["commentsToAuthor"] == "Nice"
        assert "r2" not in str(entry["reviewer"]) and "r3" not in str(entry["reviewer"])


def test_reviews_for_paper_author(session, factory, submitted_reviews):
    manager = lifecycle(session)

    with pytest.raises(ForbiddenError):
        manager.reviews_for_paper("p1", "author")

    factory.decision(submitted_reviews["paper"])
    entries = manager.reviews_for_paper("p1", "author")
    assert [e["reviewer"]["id"] for e in entries] == ["anonymous-1", "anonymous-2"]

    with pytest.raises(ForbiddenError):
        manager.reviews_for_paper("p1", "outsider")

    with pytest.raises(NotFoundError):
        manager.reviews_for_paper("missing", "chair")


def test_anonymize_reviews_is_pure():
    entries = [
        {
            "reviewerId": "u1",
            "reviewer": {"id": "u1", "name": "Ada Lovelace", "email": "ada@example.com"},
            "review": {"score": 8, "commentsToChair": "secret"},
        },
        {"reviewerId": "u2", "reviewer": {"id": "u2", "name": "Alan Turing", "email": "alan@example.com"},
         "review": None},
    ]

    anonymized = anonymize_reviews(entries)

    assert anonymized[0]["reviewer"] == {"id": "anonymous-1", "name": "Reviewer 1", "email": None}
    assert anonymized[0]["review"] == {"score": 8, "commentsToChair": None}
    assert anonymized[1]["reviewerId"] == "anonymous-2"
    assert anonymized[1]["review"] is None
    assert entries[0]["reviewer"]["email"] == "ada@example.com"
    assert entries[0]["review"]["commentsToChair"] == "secret"
