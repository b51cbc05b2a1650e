"""
Conflict Registry.

Declared conflicts are a separate signal from CONFLICT bids. The exclusion rule at
the bottom of this module consults both, together with authorship and existing
assignments, and is shared by the auto-assigner and manual assignment.
"""
import logging

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError

from .db import unit_of_work
from .exceptions import AlreadyExistsError, NotFoundError
from .membership import MembershipStore
from .models import BidValue, Paper, ReviewerConflict

EXCLUDED_AUTHOR = "author"
EXCLUDED_ASSIGNED = "already_assigned"
EXCLUDED_DECLARED_CONFLICT = "declared_conflict"
EXCLUDED_CONFLICT_BID = "conflict_bid"

EXCLUSION_MESSAGES = {
    EXCLUDED_AUTHOR: "Cannot assign paper to its own author - conflict of interest",
    EXCLUDED_ASSIGNED: "Assignment already exists for this paper and reviewer",
    EXCLUDED_DECLARED_CONFLICT: "Cannot assign paper to reviewer with declared conflict of interest",
    EXCLUDED_CONFLICT_BID: "Cannot assign paper to reviewer who marked conflict in bidding",
}


def exclusion_reason(paper, reviewer_id):
    """
    Returns why `reviewer_id` can never be assigned to `paper` (a PaperSnapshot),
    or None when the pair is eligible.
    """
    if reviewer_id in paper.author_ids:
        return EXCLUDED_AUTHOR
    if reviewer_id in paper.assigned_reviewer_ids:
        return EXCLUDED_ASSIGNED
    if reviewer_id in paper.conflict_user_ids:
        return EXCLUDED_DECLARED_CONFLICT
    if paper.bids.get(reviewer_id) == BidValue.CONFLICT:
        return EXCLUDED_CONFLICT_BID
    return None


class ConflictRegistry:
    def __init__(self, session, logger=logging.getLogger(__name__)):
        self.session = session
        self.logger = logger

    def _get_paper(self, paper_id):
        paper = self.session.get(Paper, paper_id)
        if paper is None:
            raise NotFoundError("Paper not found")
        return paper

    def _find(self, paper_id, reviewer_id):
        return self.session.scalar(
            select(ReviewerConflict).where(
                ReviewerConflict.paper_id == paper_id,
                ReviewerConflict.user_id == reviewer_id,
            )
        )

    def has_conflict(self, paper_id, reviewer_id):
        return self._find(paper_id, reviewer_id) is not None

    def mark_conflict(self, paper_id, reviewer_id):
        """Declares a conflict of interest on behalf of the reviewer themself."""
        self._get_paper(paper_id)

        if self.has_conflict(paper_id, reviewer_id):
            raise AlreadyExistsError("Conflict already declared")

        try:
            with unit_of_work(self.session):
                conflict = ReviewerConflict(paper_id=paper_id, user_id=reviewer_id)
                self.session.add(conflict)
        except IntegrityError:
            raise AlreadyExistsError("Conflict already declared")

        self.logger.info("Reviewer {} declared a conflict on paper {}".format(reviewer_id, paper_id))
        return conflict

    def unmark_conflict(self, paper_id, reviewer_id):
        with unit_of_work(self.session):
            result = self.session.execute(
                delete(ReviewerConflict).where(
                    ReviewerConflict.paper_id == paper_id,
                    ReviewerConflict.user_id == reviewer_id,
                )
            )
            if result.rowcount == 0:
                raise NotFoundError("Conflict not found")

        self.logger.info("Reviewer {} removed a conflict on paper {}".format(reviewer_id, paper_id))

    def conflicts_for_paper(self, paper_id, actor_id):
        paper = self._get_paper(paper_id)
        MembershipStore(self.session, logger=self.logger).require_chair_or_admin(
            paper.conference_id, actor_id
        )

        conflicts = self.session.scalars(
            select(ReviewerConflict)
            .where(ReviewerConflict.paper_id == paper_id)
            .order_by(ReviewerConflict.created_at.desc(), ReviewerConflict.id)
        )
        return [dict(c.to_dict(), user=c.user.to_dict()) for c in conflicts]
