"""A module for paper-reviewer assignment solvers"""

from .core import SolverException
from .greedy_solver import GreedySolver
