'''
Greedy load-balancing solver.

GreedySolver is initialized with the following arguments:

    "demands":
        a list of integers of length #papers representing the number of
        new reviewers the paper should be assigned.

    "loads":
        a list of integers of length #reviewers representing how many
        papers each reviewer already holds in the conference.

    "encoder":
        an object exposing a #papers by #reviewers `score_matrix` and
        `constraint_matrix`. Each constraint cell can take a value of -1 or 0:

        0: no constraint
       -1: the pair can never be assigned

Papers are visited in row order. For each paper the eligible reviewers are
ranked by score (high first), then by running load (low first), then by
column order, and the top `demand` of them are taken. The running load of
every chosen reviewer is incremented before the next paper is ranked, so the
result depends on paper order and is reproducible for a fixed input.
'''

import logging

import numpy as np

from .core import SolverException


class GreedySolver:
    def __init__(
        self,
        demands,
        loads,
        encoder,
        logger=logging.getLogger(__name__),
    ):
        self.logger = logger
        self.score_matrix = np.asarray(encoder.score_matrix)
        self.constraint_matrix = np.asarray(encoder.constraint_matrix)
        self.demands = np.asarray(demands, dtype=int)
        self.initial_loads = np.asarray(loads, dtype=int)
        self.loads = self.initial_loads.copy()
        self.num_papers, self.num_reviewers = np.shape(self.score_matrix)

        # loads as seen when ranking each paper, one row per paper
        self.load_history = np.zeros((self.num_papers, self.num_reviewers), dtype=int)
        self.solution = None
        self.solved = False

        self._check_inputs()

    def _check_inputs(self):
        if np.shape(self.constraint_matrix) != np.shape(self.score_matrix):
            raise SolverException(
                "Constraint matrix shape {} does not match score matrix shape {}".format(
                    np.shape(self.constraint_matrix), np.shape(self.score_matrix)
                )
            )
        if len(self.demands) != self.num_papers:
            raise SolverException(
                "Expected {} demands, got {}".format(self.num_papers, len(self.demands))
            )
        if len(self.initial_loads) != self.num_reviewers:
            raise SolverException(
                "Expected {} loads, got {}".format(self.num_reviewers, len(self.initial_loads))
            )
        if np.any(self.demands < 0):
            raise SolverException("Demands can not be negative")

    def rank_candidates(self, paper_index):
        '''Eligible reviewer columns for a paper, best candidate first.'''
        eligible = np.flatnonzero(self.constraint_matrix[paper_index] != -1)
        scores = self.score_matrix[paper_index, eligible]
        loads = self.loads[eligible]
        # np.lexsort sorts by the last key first
        order = np.lexsort((eligible, loads, -scores))
        return eligible[order]

    def solve(self):
        '''
        Returns a list with one entry per paper: the reviewer columns chosen for
        it, possibly fewer than its demand when the candidate pool runs out.
        '''
        solution = []
        for paper_index in range(self.num_papers):
            self.load_history[paper_index] = self.loads
            demand = int(self.demands[paper_index])
            if demand == 0:
                solution.append([])
                continue

            chosen = self.rank_candidates(paper_index)[:demand]
            self.loads[chosen] += 1
            solution.append([int(c) for c in chosen])

            if len(chosen) < demand:
                self.logger.debug(
                    "Paper row {} short by {} reviewers".format(paper_index, demand - len(chosen))
                )

        self.solution = solution
        self.solved = True
        return solution

    def assignment_matrix(self):
        '''The solution as a #papers by #reviewers 0/1 matrix.'''
        if not self.solved:
            raise SolverException("Solver has not been run")
        matrix = np.zeros((self.num_papers, self.num_reviewers), dtype=int)
        for paper_index, columns in enumerate(self.solution):
            matrix[paper_index, columns] = 1
        return matrix
