"""Read-only assignment statistics for chairs, always computed from stored rows."""
import logging
from collections import Counter

import numpy as np
from sqlalchemy import select
from sqlalchemy.orm import selectinload

from .membership import MembershipStore
from .models import Paper, ReviewAssignment, ReviewStatus, User


class AssignmentStats:
    def __init__(self, session, logger=logging.getLogger(__name__)):
        self.session = session
        self.logger = logger
        self.membership = MembershipStore(session, logger=logger)

    def for_conference(self, conference_id, actor_id):
        self.membership.get_conference(conference_id)
        self.membership.require_chair_or_admin(conference_id, actor_id)

        papers = self.session.scalars(
            select(Paper).where(Paper.conference_id == conference_id).order_by(Paper.created_at, Paper.id)
        ).all()
        assignments = self.session.scalars(
            select(ReviewAssignment)
            .join(Paper, Paper.id == ReviewAssignment.paper_id)
            .where(Paper.conference_id == conference_id)
            .options(selectinload(ReviewAssignment.reviewer))
            .order_by(ReviewAssignment.created_at, ReviewAssignment.id)
        ).all()

        by_paper = {p.id: [] for p in papers}
        for assignment in assignments:
            by_paper[assignment.paper_id].append(assignment)

        reviewer_ids = self.membership.reviewer_pool(conference_id)
        # reviewers who lost their role still show up with their old assignments
        for assignment in assignments:
            if assignment.reviewer_id not in reviewer_ids:
                reviewer_ids.append(assignment.reviewer_id)
        names = {
            user.id: user.full_name
            for user in self.session.scalars(select(User).where(User.id.in_(reviewer_ids)))
        } if reviewer_ids else {}

        status_counts = {reviewer_id: Counter() for reviewer_id in reviewer_ids}
        for assignment in assignments:
            status_counts[assignment.reviewer_id][assignment.status] += 1

        counts = np.array([len(by_paper[p.id]) for p in papers], dtype=int)

        return {
            "papers": [
                {
                    "paperId": paper.id,
                    "title": paper.title,
                    "status": paper.status,
                    "assignedReviewers": len(by_paper[paper.id]),
                    "assignments": [
                        {
                            "assignmentId": a.id,
                            "reviewerId": a.reviewer_id,
                            "reviewerName": a.reviewer.full_name,
                            "status": a.status.value,
                        }
                        for a in by_paper[paper.id]
                    ],
                }
                for paper in papers
            ],
            "reviewers": [
                _reviewer_row(reviewer_id, names.get(reviewer_id, "Unknown"), status_counts[reviewer_id])
                for reviewer_id in reviewer_ids
            ],
            "summary": {
                "totalPapers": len(papers),
                "papersWithAssignments": int(np.count_nonzero(counts)),
                "papersWithoutAssignments": int(np.sum(counts == 0)),
                "totalAssignments": int(counts.sum()),
                "completedReviews": sum(c[ReviewStatus.SUBMITTED] for c in status_counts.values()),
                "averageReviewersPerPaper": round(float(counts.mean()), 1) if len(counts) else 0.0,
            },
        }


def _reviewer_row(reviewer_id, name, counter):
    total = sum(counter.values())
    completed = counter[ReviewStatus.SUBMITTED]
    return {
        "reviewerId": reviewer_id,
        "name": name,
        "totalAssigned": total,
        "notStarted": counter[ReviewStatus.NOT_STARTED],
        "inProgress": counter[ReviewStatus.DRAFT],
        "completed": completed,
        "completionRate": round(completed / total, 2) if total else 0.0,
    }
