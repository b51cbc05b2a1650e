"""
Responsible for:
1) encoding a conference snapshot into matrices the solver can work on.
2) decoding the solver's result back into paper and reviewer ids.
"""

import logging

import numpy as np

from .conflicts import exclusion_reason
from .models import BidValue

BID_SCORES = {
    BidValue.YES: 3,
    BidValue.MAYBE: 2,
    BidValue.NO: 0,
}

# an eligible reviewer who never bid ranks above one who bid NO
NO_BID_SCORE = 1


class EncoderError(Exception):
    """Exception wrapper class for errors related to Encoder"""

    pass


class Encoder:
    """
    Responsible for keeping track of paper and reviewer indexes.

    Arguments:
    - `snapshot`:
        a ConferenceSnapshot; papers keep the order given by the snapshot and
        reviewers keep the reviewer pool order.

    - `target`:
        the number of reviewers every paper should end up with.

    Produces:
    - `score_matrix`: #papers by #reviewers bid scores.
    - `constraint_matrix`: #papers by #reviewers, -1 where the pair is excluded
      (author, already assigned, declared conflict, CONFLICT bid), 0 otherwise.
    - `demands`: per paper, how many new reviewers are needed (never negative).
    - `loads`: per reviewer, current assignment count across the conference.
    """

    def __init__(self, snapshot, target, logger=logging.getLogger(__name__)):
        self.logger = logger

        if target < 1:
            raise EncoderError("Target reviewers per paper must be at least 1.")

        self.papers = [p.id for p in snapshot.papers]
        self.reviewers = list(snapshot.reviewers)
        self.target = target

        self.index_by_user = {r: i for i, r in enumerate(self.reviewers)}
        self.user_by_index = {v: k for k, v in self.index_by_user.items()}
        self.index_by_paper = {p: i for i, p in enumerate(self.papers)}

        self.matrix_shape = (len(self.papers), len(self.reviewers))

        self.logger.debug("Init score and constraint matrices {}".format(self.matrix_shape))
        self.score_matrix = np.full(self.matrix_shape, NO_BID_SCORE, dtype=int)
        self.constraint_matrix = np.zeros(self.matrix_shape, dtype=int)
        self.existing_counts = np.zeros(len(self.papers), dtype=int)

        for paper in snapshot.papers:
            row = self.index_by_paper[paper.id]
            self.existing_counts[row] = paper.assignment_count
            for reviewer_id, bid in paper.bids.items():
                if reviewer_id in self.index_by_user and bid in BID_SCORES:
                    self.score_matrix[row, self.index_by_user[reviewer_id]] = BID_SCORES[bid]
            for reviewer_id, column in self.index_by_user.items():
                if exclusion_reason(paper, reviewer_id) is not None:
                    self.constraint_matrix[row, column] = -1

        self.demands = np.maximum(self.target - self.existing_counts, 0)
        self.loads = np.array(
            [snapshot.loads.get(r, 0) for r in self.reviewers], dtype=int
        )

    def decode_assignments(self, solution):
        """
        Returns a dict keyed on paper id with the list of newly chosen reviewer
        ids, in the order the solver chose them.
        """
        assignments = {}
        for paper_id, row in self.index_by_paper.items():
            assignments[paper_id] = [self.user_by_index[c] for c in solution[row]]
        return assignments

    def decode_loads(self, loads):
        return {self.user_by_index[i]: int(load) for i, load in enumerate(loads)}
