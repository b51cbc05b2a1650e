from .core import AutoAssigner, AssignmentReport, DEFAULT_REVIEWERS_PER_PAPER
from .bidding import BiddingService
from .conflicts import ConflictRegistry
from .assignments import AssignmentService
from .reviews import ReviewLifecycle, ReviewPayload, anonymize_reviews
from .stats import AssignmentStats
from .membership import MembershipStore
