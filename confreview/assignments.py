"""Manual assignment of a single reviewer to a paper by a chair."""
import logging

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import selectinload

from .conflicts import EXCLUDED_ASSIGNED, EXCLUSION_MESSAGES, exclusion_reason
from .datasource import ConferenceDatasource
from .db import unit_of_work
from .exceptions import (
    AlreadyExistsError,
    ConflictError,
    ForbiddenError,
    NotFoundError,
    ValidationError,
)
from .membership import MembershipStore
from .models import (
    PAPER_SUBMITTED,
    PAPER_UNDER_REVIEW,
    REVIEWER_ROLES,
    Paper,
    Review,
    ReviewAssignment,
    ReviewStatus,
    User,
)
from .notifications import ASSIGNMENT_CREATED, NullNotifier


class AssignmentService:
    def __init__(self, session, notifier=None, logger=logging.getLogger(__name__)):
        self.session = session
        self.notifier = notifier if notifier is not None else NullNotifier(logger=logger)
        self.logger = logger
        self.membership = MembershipStore(session, logger=logger)

    def get_assignment(self, assignment_id):
        assignment = self.session.get(ReviewAssignment, assignment_id)
        if assignment is None:
            raise NotFoundError("Assignment not found")
        return assignment

    def create_assignment(self, paper_id, reviewer_id, actor_id, due_date=None):
        """
        Assigns one reviewer to one paper, applying the same exclusions the
        auto-assigner uses when it builds its candidate pool.
        """
        paper = ConferenceDatasource(self.session, logger=self.logger).load_paper(paper_id)
        if paper is None:
            raise NotFoundError("Paper not found")

        conference_id = self.session.get(Paper, paper_id).conference_id
        self.membership.require_chair_or_admin(conference_id, actor_id)

        if not self.membership.has_role(conference_id, reviewer_id, *REVIEWER_ROLES):
            raise ValidationError("Reviewer is not a member of this conference")

        reason = exclusion_reason(paper, reviewer_id)
        if reason == EXCLUDED_ASSIGNED:
            raise AlreadyExistsError(EXCLUSION_MESSAGES[reason])
        if reason is not None:
            raise ForbiddenError(EXCLUSION_MESSAGES[reason])

        try:
            with unit_of_work(self.session):
                assignment = ReviewAssignment(
                    paper_id=paper_id,
                    reviewer_id=reviewer_id,
                    status=ReviewStatus.NOT_STARTED,
                    due_date=due_date,
                )
                self.session.add(assignment)
                self.session.flush()
                if paper.assignment_count == 0:
                    self.session.execute(
                        update(Paper)
                        .where(Paper.id == paper_id, Paper.status == PAPER_SUBMITTED)
                        .values(status=PAPER_UNDER_REVIEW)
                        .execution_options(synchronize_session="fetch")
                    )
        except IntegrityError:
            raise AlreadyExistsError(EXCLUSION_MESSAGES[EXCLUDED_ASSIGNED])

        self.logger.info(
            "Assigned reviewer {} to paper {} (by {})".format(reviewer_id, paper_id, actor_id)
        )

        reviewer = self.session.get(User, reviewer_id)
        self.notifier.dispatch(
            ASSIGNMENT_CREATED,
            [reviewer.email if reviewer else None],
            {"paperId": paper_id, "title": paper.title},
        )
        return assignment

    def delete_assignment(self, assignment_id, actor_id):
        assignment = self.get_assignment(assignment_id)
        self.membership.require_chair_or_admin(assignment.paper.conference_id, actor_id)

        with unit_of_work(self.session):
            self.session.execute(
                delete(Review)
                .where(Review.assignment_id == assignment_id)
                .execution_options(synchronize_session=False)
            )
            result = self.session.execute(
                delete(ReviewAssignment)
                .where(
                    ReviewAssignment.id == assignment_id,
                    ReviewAssignment.status != ReviewStatus.SUBMITTED,
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                raise ConflictError("Cannot delete assignment with submitted review")

        # the row is gone, keep the session from handing it out again
        self.session.expunge(assignment)

        self.logger.info("Deleted assignment {} (by {})".format(assignment_id, actor_id))

    def assignments_for_paper(self, paper_id, actor_id):
        paper = self.session.get(Paper, paper_id)
        if paper is None:
            raise NotFoundError("Paper not found")
        self.membership.require_chair_or_admin(paper.conference_id, actor_id)

        assignments = self.session.scalars(
            select(ReviewAssignment)
            .where(ReviewAssignment.paper_id == paper_id)
            .options(selectinload(ReviewAssignment.reviewer))
            .order_by(ReviewAssignment.created_at, ReviewAssignment.id)
        )
        return [dict(a.to_dict(), reviewer=a.reviewer.to_dict()) for a in assignments]

    def my_assignments(self, reviewer_id):
        assignments = self.session.scalars(
            select(ReviewAssignment)
            .where(ReviewAssignment.reviewer_id == reviewer_id)
            .options(
                selectinload(ReviewAssignment.paper),
                selectinload(ReviewAssignment.review),
            )
            .order_by(ReviewAssignment.created_at.desc(), ReviewAssignment.id)
        )
        return [
            dict(
                a.to_dict(),
                paper={
                    "id": a.paper.id,
                    "title": a.paper.title,
                    "abstract": a.paper.abstract,
                    "status": a.paper.status,
                    "conferenceId": a.paper.conference_id,
                },
                review=a.review.to_dict() if a.review else None,
            )
            for a in assignments
        ]
