"""Bidding Subsystem: records how much a reviewer wants to review each paper."""
import logging
from collections import Counter

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import selectinload

from .db import unit_of_work
from .exceptions import ConflictError, ForbiddenError, NotFoundError, ValidationError
from .membership import MembershipStore
from .models import (
    REVIEWER_ROLES,
    BidValue,
    Paper,
    ReviewerBid,
    ReviewerConflict,
    utcnow,
)


def parse_bid(value):
    try:
        return BidValue(value)
    except ValueError:
        raise ValidationError(
            "Invalid bid. Must be one of: {}".format(", ".join(b.value for b in BidValue))
        )


class BiddingService:
    def __init__(self, session, logger=logging.getLogger(__name__)):
        self.session = session
        self.logger = logger
        self.membership = MembershipStore(session, logger=logger)

    def submit_bid(self, paper_id, reviewer_id, bid):
        """
        Creates or replaces the reviewer's bid on a paper.

        Returns a `(bid, created)` pair; `created` is False when an existing bid
        was updated. Submitting the same bid twice leaves a single row.
        """
        bid = parse_bid(bid)

        paper = self.session.get(Paper, paper_id)
        if paper is None:
            raise NotFoundError("Paper not found")

        if not self.membership.has_role(paper.conference_id, reviewer_id, *REVIEWER_ROLES):
            raise ForbiddenError("You must be a reviewer in this conference to bid")

        if reviewer_id in paper.author_ids:
            raise ForbiddenError("Authors cannot bid on their own papers - conflict of interest")

        declared = self.session.scalar(
            select(ReviewerConflict.id).where(
                ReviewerConflict.paper_id == paper_id,
                ReviewerConflict.user_id == reviewer_id,
            )
        )
        if declared is not None:
            raise ConflictError("Cannot bid on paper with declared conflict of interest")

        try:
            with unit_of_work(self.session):
                existing = self.get_bid(paper_id, reviewer_id)
                created = existing is None
                if created:
                    existing = ReviewerBid(paper_id=paper_id, reviewer_id=reviewer_id, bid=bid)
                    self.session.add(existing)
                elif existing.bid != bid:
                    existing.bid = bid
                    existing.updated_at = utcnow()
        except IntegrityError:
            # a concurrent first bid won the insert; apply ours as an update
            with unit_of_work(self.session):
                existing = self.get_bid(paper_id, reviewer_id)
                existing.bid = bid
                existing.updated_at = utcnow()
                created = False

        self.logger.debug(
            "Bid {} by {} on paper {} ({})".format(
                bid.value, reviewer_id, paper_id, "created" if created else "updated"
            )
        )
        return existing, created

    def get_bid(self, paper_id, reviewer_id):
        return self.session.scalar(
            select(ReviewerBid).where(
                ReviewerBid.paper_id == paper_id,
                ReviewerBid.reviewer_id == reviewer_id,
            )
        )

    def my_bids(self, reviewer_id):
        bids = self.session.scalars(
            select(ReviewerBid)
            .where(ReviewerBid.reviewer_id == reviewer_id)
            .order_by(ReviewerBid.created_at.desc(), ReviewerBid.id)
        )
        return [b.to_dict() for b in bids]

    def papers_for_bidding(self, conference_id, reviewer_id):
        """All papers of the conference, each annotated with the caller's own bid."""
        self.membership.get_conference(conference_id)
        if not self.membership.has_role(conference_id, reviewer_id, *REVIEWER_ROLES):
            raise ForbiddenError("You must be a reviewer in this conference to bid")

        papers = self.session.scalars(
            select(Paper)
            .where(Paper.conference_id == conference_id)
            .options(selectinload(Paper.authors))
            .order_by(Paper.title, Paper.id)
        ).all()

        current = dict(
            self.session.execute(
                select(ReviewerBid.paper_id, ReviewerBid.bid)
                .join(Paper, Paper.id == ReviewerBid.paper_id)
                .where(
                    Paper.conference_id == conference_id,
                    ReviewerBid.reviewer_id == reviewer_id,
                )
            ).all()
        )

        return [
            {
                "id": paper.id,
                "title": paper.title,
                "abstract": paper.abstract,
                "trackId": paper.track_id,
                "currentBid": current[paper.id].value if paper.id in current else None,
                "canBid": reviewer_id not in paper.author_ids,
            }
            for paper in papers
        ]

    def bidding_matrix(self, conference_id, actor_id):
        self.membership.get_conference(conference_id)
        self.membership.require_chair_or_admin(conference_id, actor_id)

        papers = self.session.scalars(
            select(Paper).where(Paper.conference_id == conference_id).order_by(Paper.title, Paper.id)
        ).all()
        bids = self.session.scalars(
            select(ReviewerBid)
            .join(Paper, Paper.id == ReviewerBid.paper_id)
            .where(Paper.conference_id == conference_id)
            .order_by(ReviewerBid.reviewer_id)
        ).all()
        reviewers = self.membership.reviewer_pool(conference_id)

        bids_by_paper = {}
        counts = {reviewer_id: Counter() for reviewer_id in reviewers}
        for bid in bids:
            bids_by_paper.setdefault(bid.paper_id, []).append(
                {"reviewerId": bid.reviewer_id, "bid": bid.bid.value}
            )
            counts.setdefault(bid.reviewer_id, Counter())[bid.bid] += 1

        return {
            "matrix": [
                {"paperId": p.id, "title": p.title, "bids": bids_by_paper.get(p.id, [])}
                for p in papers
            ],
            "reviewers": [
                {
                    "reviewerId": reviewer_id,
                    "totalBids": sum(counter.values()),
                    "yesBids": counter[BidValue.YES],
                    "maybeBids": counter[BidValue.MAYBE],
                    "noBids": counter[BidValue.NO],
                    "conflictBids": counter[BidValue.CONFLICT],
                }
                for reviewer_id, counter in counts.items()
            ],
            "summary": {
                "totalPapers": len(papers),
                "totalReviewers": len(reviewers),
                "papersWithBids": len(bids_by_paper),
                "papersWithoutBids": len(papers) - len(bids_by_paper),
            },
        }
