"""
Review Lifecycle Manager.

Every ReviewAssignment moves NOT_STARTED -> DRAFT -> SUBMITTED. SUBMITTED is
terminal for everyone but system admins. Writes that change the status are
single-row conditional updates (`status != SUBMITTED`) so that a late draft can
never overwrite a submission.
"""
import logging
from dataclasses import dataclass, fields

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import selectinload

from .db import unit_of_work
from .exceptions import (
    ConflictError,
    DeadlinePassedError,
    ForbiddenError,
    NotFoundError,
    ValidationError,
)
from .membership import MembershipStore
from .models import (
    ConferenceMember,
    Decision,
    MemberRole,
    Paper,
    Review,
    ReviewAssignment,
    ReviewStatus,
    User,
    utcnow,
)
from .notifications import REVIEW_SUBMITTED, NullNotifier

SCORE_RANGE = (1, 10)
CONFIDENCE_RANGE = (1, 5)

# request keys accepted for each payload field
PAYLOAD_KEYS = {
    "score": "score",
    "confidence": "confidence",
    "summary": "summary",
    "strengths": "strengths",
    "weaknesses": "weaknesses",
    "comments_to_author": "commentsToAuthor",
    "comments_to_chair": "commentsToChair",
}


def parse_status(value):
    try:
        return ReviewStatus(value)
    except ValueError:
        raise ValidationError(
            "Invalid status. Must be one of: {}".format(", ".join(s.value for s in ReviewStatus))
        )


def _check_range(name, value, bounds):
    if value is None:
        return
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError("{} must be an integer".format(name.capitalize()))
    low, high = bounds
    if value < low or value > high:
        raise ValidationError("{} must be between {} and {}".format(name.capitalize(), low, high))


@dataclass
class ReviewPayload:
    """A partial review; fields left as None keep their stored value."""

    score: int = None
    confidence: int = None
    summary: str = None
    strengths: str = None
    weaknesses: str = None
    comments_to_author: str = None
    comments_to_chair: str = None

    @classmethod
    def from_dict(cls, data):
        data = data or {}
        if not isinstance(data, dict):
            raise ValidationError("Review payload must be an object")
        values = {}
        for attribute, key in PAYLOAD_KEYS.items():
            if key in data:
                values[attribute] = data[key]
            elif attribute in data:
                values[attribute] = data[attribute]
        return cls(**values)

    def validate(self):
        _check_range("score", self.score, SCORE_RANGE)
        _check_range("confidence", self.confidence, CONFIDENCE_RANGE)
        for name in ("summary", "strengths", "weaknesses", "comments_to_author", "comments_to_chair"):
            value = getattr(self, name)
            if value is not None and not isinstance(value, str):
                raise ValidationError("{} must be a string".format(PAYLOAD_KEYS[name]))
        return self

    def provided(self):
        return {f.name: getattr(self, f.name) for f in fields(self) if getattr(self, f.name) is not None}


def anonymize_reviews(entries):
    """
    Hides reviewer identity and chair-only comments.

    Reviewers are renamed by list position ("Reviewer 1", "Reviewer 2", ...).
    The input list is left untouched.
    """
    anonymized = []
    for position, entry in enumerate(entries, start=1):
        pseudonym = "anonymous-{}".format(position)
        review = entry.get("review")
        anonymized.append(
            dict(
                entry,
                reviewerId=pseudonym,
                reviewer={"id": pseudonym, "name": "Reviewer {}".format(position), "email": None},
                review=dict(review, commentsToChair=None) if review is not None else None,
            )
        )
    return anonymized


class ReviewLifecycle:
    def __init__(self, session, notifier=None, clock=utcnow, logger=logging.getLogger(__name__)):
        self.session = session
        self.notifier = notifier if notifier is not None else NullNotifier(logger=logger)
        self.clock = clock
        self.logger = logger
        self.membership = MembershipStore(session, logger=logger)

    def _get_assignment(self, assignment_id):
        assignment = self.session.get(ReviewAssignment, assignment_id)
        if assignment is None:
            raise NotFoundError("Assignment not found")
        return assignment

    def _authorize(self, assignment, actor_id, allow_chair):
        """
        Returns whether the actor is a system admin.

        Authors of the reviewed paper are always refused, whatever their role.
        """
        if actor_id in assignment.paper.author_ids:
            raise ForbiddenError("Authors cannot access reviews of their own papers")

        is_admin = self.membership.is_admin(actor_id)
        if assignment.reviewer_id == actor_id or is_admin:
            return is_admin
        if allow_chair and self.membership.is_chair(assignment.paper.conference_id, actor_id):
            return is_admin
        raise ForbiddenError("Forbidden")

    def _write_review(self, assignment, payload):
        review = assignment.review
        if review is None:
            review = Review(assignment_id=assignment.id)
            assignment.review = review

        for name, value in payload.provided().items():
            setattr(review, name, value)
        review.updated_at = self.clock()
        self.session.flush()
        return review

    def _set_status(self, assignment, status, only_if_open):
        statement = update(ReviewAssignment).where(ReviewAssignment.id == assignment.id)
        if only_if_open:
            statement = statement.where(ReviewAssignment.status != ReviewStatus.SUBMITTED)
        result = self.session.execute(
            statement.values(status=status).execution_options(synchronize_session=False)
        )
        self.session.expire(assignment, ["status"])
        return result.rowcount

    def _set_submitted_at(self, assignment, value, only_if_unset=False):
        statement = update(Review).where(Review.assignment_id == assignment.id)
        if only_if_unset:
            statement = statement.where(Review.submitted_at.is_(None))
        self.session.execute(
            statement.values(submitted_at=value).execution_options(synchronize_session=False)
        )
        if assignment.review is not None:
            self.session.expire(assignment.review, ["submitted_at"])

    def save_draft(self, assignment_id, actor_id, payload):
        assignment = self._get_assignment(assignment_id)
        is_admin = self._authorize(assignment, actor_id, allow_chair=True)
        payload = _as_payload(payload).validate()

        try:
            with unit_of_work(self.session):
                if not self._set_status(assignment, ReviewStatus.DRAFT, only_if_open=True):
                    # admins may amend a submitted review; its status stays SUBMITTED
                    if not is_admin:
                        raise ConflictError("Review has already been submitted")
                review = self._write_review(assignment, payload)
        except IntegrityError:
            raise ConflictError("Review was modified concurrently, please retry")

        self.logger.debug("Draft saved for assignment {} by {}".format(assignment_id, actor_id))
        return review

    def submit_review(self, assignment_id, actor_id, payload):
        assignment = self._get_assignment(assignment_id)
        is_admin = self._authorize(assignment, actor_id, allow_chair=False)
        payload = _as_payload(payload).validate()

        if assignment.status == ReviewStatus.SUBMITTED:
            raise ConflictError("Review has already been submitted")

        now = self.clock()
        if assignment.due_date is not None and now > assignment.due_date and not is_admin:
            raise DeadlinePassedError("Review deadline has passed")

        try:
            with unit_of_work(self.session):
                if not self._set_status(assignment, ReviewStatus.SUBMITTED, only_if_open=True):
                    raise ConflictError("Review has already been submitted")
                review = self._write_review(assignment, payload)
                review.submitted_at = now
        except IntegrityError:
            raise ConflictError("Review was modified concurrently, please retry")

        self.logger.info("Review submitted for assignment {} by {}".format(assignment_id, actor_id))
        self._notify_chairs(assignment)
        return review

    def update_status(self, assignment_id, actor_id, status):
        status = parse_status(status)
        assignment = self._get_assignment(assignment_id)
        is_admin = self._authorize(assignment, actor_id, allow_chair=True)

        now = self.clock()
        if status == ReviewStatus.SUBMITTED and not is_admin:
            if assignment.due_date is not None and now > assignment.due_date:
                raise DeadlinePassedError("Review deadline has passed")

        with unit_of_work(self.session):
            if is_admin:
                changed = self._set_status(assignment, status, only_if_open=False)
            else:
                changed = self._set_status(assignment, status, only_if_open=True)
                if not changed and status != ReviewStatus.SUBMITTED:
                    raise ForbiddenError("Only an admin can reopen a submitted review")

            if status == ReviewStatus.SUBMITTED:
                if changed:
                    self._set_submitted_at(assignment, now, only_if_unset=True)
            elif is_admin:
                self._set_submitted_at(assignment, None)

        self.logger.info(
            "Assignment {} status set to {} by {}".format(assignment_id, status.value, actor_id)
        )
        return assignment

    def get_review(self, assignment_id, actor_id):
        assignment = self._get_assignment(assignment_id)
        self._authorize(assignment, actor_id, allow_chair=True)
        review = assignment.review
        return dict(
            assignment.to_dict(),
            paper={
                "id": assignment.paper.id,
                "title": assignment.paper.title,
                "abstract": assignment.paper.abstract,
                "conferenceId": assignment.paper.conference_id,
            },
            review=review.to_dict() if review is not None else None,
        )

    def reviews_for_paper(self, paper_id, actor_id, is_chair_or_admin=None):
        paper = self.session.get(Paper, paper_id)
        if paper is None:
            raise NotFoundError("Paper not found")

        if is_chair_or_admin is None:
            is_chair_or_admin = self.membership.is_chair_or_admin(paper.conference_id, actor_id)

        if not is_chair_or_admin:
            self.membership.require_member(paper.conference_id, actor_id)
            if actor_id in paper.author_ids:
                decided = self.session.scalar(select(Decision.id).where(Decision.paper_id == paper_id))
                if decided is None:
                    raise ForbiddenError("Authors cannot view reviews before decision is made")

        assignments = self.session.scalars(
            select(ReviewAssignment)
            .where(ReviewAssignment.paper_id == paper_id)
            .options(
                selectinload(ReviewAssignment.reviewer),
                selectinload(ReviewAssignment.review),
            )
            .order_by(ReviewAssignment.created_at, ReviewAssignment.id)
        )
        entries = [
            dict(
                a.to_dict(),
                reviewer=a.reviewer.to_dict(),
                review=a.review.to_dict() if a.review is not None else None,
            )
            for a in assignments
        ]

        if is_chair_or_admin:
            return entries
        return anonymize_reviews(entries)

    def _notify_chairs(self, assignment):
        emails = self.session.scalars(
            select(User.email)
            .join(ConferenceMember, ConferenceMember.user_id == User.id)
            .where(
                ConferenceMember.conference_id == assignment.paper.conference_id,
                ConferenceMember.role == MemberRole.CHAIR,
            )
        ).all()
        self.notifier.dispatch(
            REVIEW_SUBMITTED,
            list(emails),
            {"assignmentId": assignment.id, "paperId": assignment.paper_id},
        )


def _as_payload(payload):
    if isinstance(payload, ReviewPayload):
        return payload
    return ReviewPayload.from_dict(payload)
