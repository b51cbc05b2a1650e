"""
Loads the state the assignment engine works from.

`ConferenceDatasource` plays the role the config-note interface plays for a match
run: it gathers papers, reviewers, bids, conflicts and current loads into plain
snapshots so that the Encoder never touches the session.
"""
import logging
from collections import defaultdict
from dataclasses import dataclass, field

from sqlalchemy import select
from sqlalchemy.orm import selectinload

from .membership import MembershipStore
from .models import (
    Paper,
    ReviewAssignment,
    ReviewerBid,
    ReviewerConflict,
    User,
)


@dataclass
class PaperSnapshot:
    id: str
    title: str
    status: str
    author_ids: frozenset
    assigned_reviewer_ids: frozenset
    conflict_user_ids: frozenset
    bids: dict = field(default_factory=dict)

    @property
    def assignment_count(self):
        return len(self.assigned_reviewer_ids)


@dataclass
class ConferenceSnapshot:
    conference_id: str
    papers: list
    reviewers: list
    loads: dict
    reviewer_names: dict


class ConferenceDatasource:
    def __init__(self, session, logger=logging.getLogger(__name__)):
        self.session = session
        self.logger = logger
        self.membership = MembershipStore(session, logger=logger)

    def _paper_rows(self, *criteria):
        return self.session.scalars(
            select(Paper)
            .where(*criteria)
            .options(selectinload(Paper.authors))
            .order_by(Paper.created_at, Paper.id)
        ).all()

    def _snapshots(self, papers):
        paper_ids = [p.id for p in papers]
        assigned = defaultdict(set)
        conflicts = defaultdict(set)
        bids = defaultdict(dict)

        if paper_ids:
            for paper_id, reviewer_id in self.session.execute(
                select(ReviewAssignment.paper_id, ReviewAssignment.reviewer_id).where(
                    ReviewAssignment.paper_id.in_(paper_ids)
                )
            ):
                assigned[paper_id].add(reviewer_id)

            for paper_id, user_id in self.session.execute(
                select(ReviewerConflict.paper_id, ReviewerConflict.user_id).where(
                    ReviewerConflict.paper_id.in_(paper_ids)
                )
            ):
                conflicts[paper_id].add(user_id)

            for paper_id, reviewer_id, bid in self.session.execute(
                select(
                    ReviewerBid.paper_id, ReviewerBid.reviewer_id, ReviewerBid.bid
                ).where(ReviewerBid.paper_id.in_(paper_ids))
            ):
                bids[paper_id][reviewer_id] = bid

        return [
            PaperSnapshot(
                id=paper.id,
                title=paper.title,
                status=paper.status,
                author_ids=frozenset(paper.author_ids),
                assigned_reviewer_ids=frozenset(assigned[paper.id]),
                conflict_user_ids=frozenset(conflicts[paper.id]),
                bids=bids[paper.id],
            )
            for paper in papers
        ]

    def load_paper(self, paper_id):
        papers = self._paper_rows(Paper.id == paper_id)
        if not papers:
            return None
        return self._snapshots(papers)[0]

    def load(self, conference_id):
        self.logger.debug("Loading snapshot for conference {}".format(conference_id))
        papers = self._snapshots(self._paper_rows(Paper.conference_id == conference_id))
        reviewers = self.membership.reviewer_pool(conference_id)

        loads = {reviewer_id: 0 for reviewer_id in reviewers}
        for (reviewer_id,) in self.session.execute(
            select(ReviewAssignment.reviewer_id)
            .join(Paper, Paper.id == ReviewAssignment.paper_id)
            .where(Paper.conference_id == conference_id)
        ):
            if reviewer_id in loads:
                loads[reviewer_id] += 1

        reviewer_names = {}
        if reviewers:
            for user in self.session.scalars(select(User).where(User.id.in_(reviewers))):
                reviewer_names[user.id] = user.full_name

        self.logger.debug(
            "Snapshot has {} papers and {} reviewers".format(len(papers), len(reviewers))
        )
        return ConferenceSnapshot(
            conference_id=conference_id,
            papers=papers,
            reviewers=reviewers,
            loads=loads,
            reviewer_names=reviewer_names,
        )
