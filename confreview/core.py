"""Contains the auto-assignment coordinator and its run report."""
import logging
import time
from dataclasses import dataclass, field
from enum import Enum

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError

from .datasource import ConferenceDatasource
from .encoder import Encoder
from .exceptions import AlreadyExistsError, ValidationError
from .locks import ConferenceLocks
from .membership import MembershipStore
from .models import (
    PAPER_SUBMITTED,
    PAPER_UNDER_REVIEW,
    Paper,
    ReviewAssignment,
    ReviewStatus,
    User,
)
from .notifications import ASSIGNMENT_CREATED, NullNotifier
from .solvers import GreedySolver

DEFAULT_REVIEWERS_PER_PAPER = 3

REASON_ENOUGH_REVIEWERS = "Already has enough reviewers"
REASON_NO_ELIGIBLE = "No eligible reviewers available"


class PaperOutcomeStatus(Enum):
    ASSIGNED = "assigned"
    PARTIAL = "partial"
    SKIPPED = "skipped"


@dataclass
class PaperOutcome:
    paper_id: str
    title: str
    status: PaperOutcomeStatus
    needed: int
    assigned_reviewers: list = field(default_factory=list)
    reason: str = None

    @property
    def shortfall(self):
        return max(self.needed - len(self.assigned_reviewers), 0)

    def to_dict(self):
        return {
            "paperId": self.paper_id,
            "title": self.title,
            "status": self.status.value,
            "needed": self.needed,
            "assignedReviewers": list(self.assigned_reviewers),
            "shortfall": self.shortfall,
            "reason": self.reason,
        }


@dataclass
class AssignmentReport:
    conference_id: str
    target: int
    outcomes: list
    reviewer_loads: dict
    reviewer_names: dict
    assignment_ids: list = field(default_factory=list)

    @property
    def total_assigned(self):
        return sum(len(o.assigned_reviewers) for o in self.outcomes)

    @property
    def assigned(self):
        return [o for o in self.outcomes if o.assigned_reviewers]

    @property
    def skipped(self):
        return [o for o in self.outcomes if o.status != PaperOutcomeStatus.ASSIGNED]

    def to_dict(self):
        return {
            "conferenceId": self.conference_id,
            "targetReviewersPerPaper": self.target,
            "totalAssigned": self.total_assigned,
            "assigned": [o.to_dict() for o in self.assigned],
            "skipped": [o.to_dict() for o in self.skipped],
            "reviewerLoads": [
                {
                    "reviewerId": reviewer_id,
                    "name": self.reviewer_names.get(reviewer_id, "Unknown"),
                    "assignedPapers": load,
                }
                for reviewer_id, load in self.reviewer_loads.items()
            ],
        }


def parse_target(target, default=DEFAULT_REVIEWERS_PER_PAPER):
    if target is None:
        return default
    if isinstance(target, bool) or not isinstance(target, (int, str)):
        raise ValidationError("targetReviewersPerPaper must be a positive integer")
    try:
        value = int(target)
    except ValueError:
        raise ValidationError("targetReviewersPerPaper must be a positive integer")
    if value < 1:
        raise ValidationError("targetReviewersPerPaper must be a positive integer")
    return value


class AutoAssigner:
    """
    Main class that coordinates a ConferenceDatasource, an Encoder and a Solver
    to top up every paper of a conference to the target number of reviewers.
    """

    def __init__(
        self,
        session,
        locks=None,
        notifier=None,
        default_target=DEFAULT_REVIEWERS_PER_PAPER,
        solver_class=GreedySolver,
        logger=logging.getLogger(__name__),
    ):
        self.session = session
        self.locks = locks if locks is not None else ConferenceLocks(logger=logger)
        self.notifier = notifier if notifier is not None else NullNotifier(logger=logger)
        self.default_target = default_target
        self.solver_class = solver_class
        self.logger = logger
        self.solver = None

    def run(self, conference_id, actor_id, target_reviewers_per_paper=None):
        target = parse_target(target_reviewers_per_paper, default=self.default_target)

        membership = MembershipStore(self.session, logger=self.logger)
        membership.get_conference(conference_id)
        membership.require_chair_or_admin(conference_id, actor_id)

        self.logger.info(
            "Auto-assign requested by {} for conference {} with target {}".format(
                actor_id, conference_id, target
            )
        )

        with self.locks.hold(conference_id):
            # end the pre-lock read transaction so the snapshot sees runs that finished while waiting
            self.session.rollback()
            report = self._run_locked(conference_id, target)

        self._notify(report)
        return report

    def _run_locked(self, conference_id, target):
        snapshot = ConferenceDatasource(self.session, logger=self.logger).load(conference_id)

        encoder = Encoder(snapshot, target, logger=self.logger)
        self.solver = self.solver_class(encoder.demands, encoder.loads, encoder, logger=self.logger)

        start_time = time.time()
        solution = self.solver.solve()
        self.logger.debug("Solver run took {} seconds".format(time.time() - start_time))

        new_reviewers = encoder.decode_assignments(solution)

        outcomes = []
        for paper in snapshot.papers:
            needed = int(encoder.demands[encoder.index_by_paper[paper.id]])
            chosen = new_reviewers[paper.id]
            if needed == 0:
                outcome = PaperOutcome(
                    paper.id, paper.title, PaperOutcomeStatus.SKIPPED, 0,
                    reason=REASON_ENOUGH_REVIEWERS,
                )
            elif not chosen:
                outcome = PaperOutcome(
                    paper.id, paper.title, PaperOutcomeStatus.SKIPPED, needed,
                    reason=REASON_NO_ELIGIBLE,
                )
            elif len(chosen) < needed:
                outcome = PaperOutcome(
                    paper.id, paper.title, PaperOutcomeStatus.PARTIAL, needed, chosen,
                    reason=REASON_NO_ELIGIBLE,
                )
            else:
                outcome = PaperOutcome(
                    paper.id, paper.title, PaperOutcomeStatus.ASSIGNED, needed, chosen
                )
            outcomes.append(outcome)

        first_assigned = [
            paper.id
            for paper in snapshot.papers
            if paper.assignment_count == 0 and new_reviewers[paper.id]
        ]

        assignment_ids = self._persist(outcomes, first_assigned)

        report = AssignmentReport(
            conference_id=conference_id,
            target=target,
            outcomes=outcomes,
            reviewer_loads=encoder.decode_loads(self.solver.loads),
            reviewer_names=snapshot.reviewer_names,
            assignment_ids=assignment_ids,
        )
        self.logger.info(
            "Auto-assign for conference {} created {} assignments, {} papers short".format(
                conference_id, report.total_assigned, len(report.skipped)
            )
        )
        return report

    def _persist(self, outcomes, first_assigned):
        """Writes the whole batch in one transaction; nothing is kept on failure."""
        rows = [
            ReviewAssignment(
                paper_id=outcome.paper_id,
                reviewer_id=reviewer_id,
                status=ReviewStatus.NOT_STARTED,
            )
            for outcome in outcomes
            for reviewer_id in outcome.assigned_reviewers
        ]

        try:
            self.session.add_all(rows)
            self.session.flush()
            if first_assigned:
                self.session.execute(
                    update(Paper)
                    .where(Paper.id.in_(first_assigned), Paper.status == PAPER_SUBMITTED)
                    .values(status=PAPER_UNDER_REVIEW)
                    .execution_options(synchronize_session="fetch")
                )
            self.session.commit()
        except IntegrityError as error_handle:
            self.session.rollback()
            self.logger.error("Auto-assign batch rejected: {}".format(error_handle))
            raise AlreadyExistsError("Assignment already exists for this paper and reviewer")
        except Exception:
            self.session.rollback()
            raise

        return [row.id for row in rows]

    def _notify(self, report):
        if not report.total_assigned:
            return
        reviewer_ids = sorted({r for o in report.assigned for r in o.assigned_reviewers})
        emails = {
            user.id: user.email
            for user in self.session.scalars(select(User).where(User.id.in_(reviewer_ids)))
        }
        for outcome in report.assigned:
            for reviewer_id in outcome.assigned_reviewers:
                self.notifier.dispatch(
                    ASSIGNMENT_CREATED,
                    [emails.get(reviewer_id)],
                    {"paperId": outcome.paper_id, "title": outcome.title},
                )
