"""
Implements the Flask API endpoints.

The caller's identity arrives already verified in the `X-User-Id` header.
"""
from datetime import datetime, timezone

import flask
from flask_cors import CORS
from werkzeug.exceptions import HTTPException

from ..assignments import AssignmentService
from ..bidding import BiddingService
from ..conflicts import ConflictRegistry
from ..core import AutoAssigner
from ..exceptions import AuthenticationError, ReviewEngineError, ValidationError
from ..membership import MembershipStore
from ..reviews import ReviewLifecycle
from ..stats import AssignmentStats

BLUEPRINT = flask.Blueprint("review", __name__)
CORS(BLUEPRINT, supports_credentials=True)

USER_HEADER = "X-User-Id"


def _extension(name):
    return flask.current_app.extensions["confreview"][name]


def get_session():
    if "confreview_session" not in flask.g:
        flask.g.confreview_session = _extension("session_factory")()
    return flask.g.confreview_session


def _logger():
    return flask.current_app.logger


def _actor_id():
    actor_id = flask.request.headers.get(USER_HEADER)
    if not actor_id:
        raise AuthenticationError("No {} in headers".format(USER_HEADER))
    return actor_id


def _body():
    body = flask.request.get_json(silent=True)
    return body if isinstance(body, dict) else {}


def _require(body, key):
    value = body.get(key)
    if value in (None, ""):
        raise ValidationError("{} is required".format(key))
    return value


def _parse_datetime(value):
    if value in (None, ""):
        return None
    if not isinstance(value, str):
        raise ValidationError("dueDate must be an ISO 8601 string")
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        raise ValidationError("dueDate must be an ISO 8601 string")
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


@BLUEPRINT.errorhandler(ReviewEngineError)
def handle_engine_error(error_handle):
    _logger().info("{}: {}".format(error_handle.name, error_handle.message))
    return flask.jsonify(error_handle.to_dict()), error_handle.status_code


# pylint:disable=broad-except
@BLUEPRINT.errorhandler(Exception)
def handle_unexpected_error(error_handle):
    if isinstance(error_handle, HTTPException):
        return error_handle
    _logger().exception("Unexpected error")
    result = {"name": "InternalServerError", "message": "Internal server error: {}".format(error_handle)}
    return flask.jsonify(result), 500


@BLUEPRINT.route("/health")
def health():
    """Test endpoint."""
    return flask.jsonify({"status": "ok"})


# -- Bidding --

@BLUEPRINT.route("/bids", methods=["POST"])
def submit_bid():
    actor_id = _actor_id()
    body = _body()
    service = BiddingService(get_session(), logger=_logger())
    bid, created = service.submit_bid(_require(body, "paperId"), actor_id, _require(body, "bid"))
    return flask.jsonify(bid.to_dict()), 201 if created else 200


@BLUEPRINT.route("/bids/my")
def my_bids():
    actor_id = _actor_id()
    return flask.jsonify(BiddingService(get_session(), logger=_logger()).my_bids(actor_id))


@BLUEPRINT.route("/bids/conferences/<conference_id>/papers")
def papers_for_bidding(conference_id):
    actor_id = _actor_id()
    service = BiddingService(get_session(), logger=_logger())
    return flask.jsonify(service.papers_for_bidding(conference_id, actor_id))


@BLUEPRINT.route("/bids/conferences/<conference_id>/matrix")
def bidding_matrix(conference_id):
    actor_id = _actor_id()
    service = BiddingService(get_session(), logger=_logger())
    return flask.jsonify(service.bidding_matrix(conference_id, actor_id))


# -- Conflicts --

@BLUEPRINT.route("/conflicts/mark", methods=["POST"])
def mark_conflict():
    actor_id = _actor_id()
    registry = ConflictRegistry(get_session(), logger=_logger())
    conflict = registry.mark_conflict(_require(_body(), "paperId"), actor_id)
    return flask.jsonify(conflict.to_dict()), 201


@BLUEPRINT.route("/conflicts/unmark", methods=["POST"])
def unmark_conflict():
    actor_id = _actor_id()
    registry = ConflictRegistry(get_session(), logger=_logger())
    registry.unmark_conflict(_require(_body(), "paperId"), actor_id)
    return flask.jsonify({"success": True, "message": "Conflict removed"})


@BLUEPRINT.route("/conflicts")
def list_conflicts():
    actor_id = _actor_id()
    paper_id = _require(flask.request.args, "paperId")
    registry = ConflictRegistry(get_session(), logger=_logger())
    return flask.jsonify(registry.conflicts_for_paper(paper_id, actor_id))


# -- Assignments --

@BLUEPRINT.route("/assignments/auto", methods=["POST"])
def auto_assign():
    actor_id = _actor_id()
    body = _body()
    conference_id = _require(body, "conferenceId")

    _logger().debug("Auto-assign request received for conference {}".format(conference_id))

    assigner = AutoAssigner(
        get_session(),
        locks=_extension("locks"),
        notifier=_extension("notifier"),
        default_target=flask.current_app.config["DEFAULT_REVIEWERS_PER_PAPER"],
        logger=_logger(),
    )
    report = assigner.run(conference_id, actor_id, body.get("targetReviewersPerPaper"))
    result = report.to_dict()
    result["message"] = "Auto-assignment completed. {} assignments created.".format(report.total_assigned)
    return flask.jsonify(result), 200


@BLUEPRINT.route("/assignments", methods=["POST"])
def create_assignment():
    actor_id = _actor_id()
    body = _body()
    service = AssignmentService(get_session(), notifier=_extension("notifier"), logger=_logger())
    assignment = service.create_assignment(
        _require(body, "paperId"),
        _require(body, "reviewerId"),
        actor_id,
        due_date=_parse_datetime(body.get("dueDate")),
    )
    return flask.jsonify(assignment.to_dict()), 201


@BLUEPRINT.route("/assignments/<assignment_id>", methods=["DELETE"])
def delete_assignment(assignment_id):
    actor_id = _actor_id()
    AssignmentService(get_session(), logger=_logger()).delete_assignment(assignment_id, actor_id)
    return flask.jsonify({"success": True, "message": "Assignment deleted"})


@BLUEPRINT.route("/assignments/<assignment_id>/status", methods=["PATCH"])
def update_assignment_status(assignment_id):
    actor_id = _actor_id()
    lifecycle = ReviewLifecycle(get_session(), logger=_logger())
    assignment = lifecycle.update_status(assignment_id, actor_id, _require(_body(), "status"))
    return flask.jsonify(assignment.to_dict())


@BLUEPRINT.route("/assignments/my")
def my_assignments():
    actor_id = _actor_id()
    return flask.jsonify(AssignmentService(get_session(), logger=_logger()).my_assignments(actor_id))


@BLUEPRINT.route("/assignments/papers/<paper_id>")
def assignments_for_paper(paper_id):
    actor_id = _actor_id()
    service = AssignmentService(get_session(), logger=_logger())
    return flask.jsonify(service.assignments_for_paper(paper_id, actor_id))


@BLUEPRINT.route("/assignments/conferences/<conference_id>/stats")
def conference_stats(conference_id):
    actor_id = _actor_id()
    return flask.jsonify(AssignmentStats(get_session(), logger=_logger()).for_conference(conference_id, actor_id))


# -- Reviews --

def _lifecycle():
    return ReviewLifecycle(get_session(), notifier=_extension("notifier"), logger=_logger())


@BLUEPRINT.route("/reviews/<assignment_id>")
def get_review(assignment_id):
    actor_id = _actor_id()
    return flask.jsonify(_lifecycle().get_review(assignment_id, actor_id))


@BLUEPRINT.route("/reviews/<assignment_id>/draft", methods=["POST"])
def save_draft(assignment_id):
    actor_id = _actor_id()
    review = _lifecycle().save_draft(assignment_id, actor_id, _body())
    return flask.jsonify(review.to_dict())


@BLUEPRINT.route("/reviews/<assignment_id>/submit", methods=["POST"])
def submit_review(assignment_id):
    actor_id = _actor_id()
    review = _lifecycle().submit_review(assignment_id, actor_id, _body())
    return flask.jsonify(review.to_dict()), 201


@BLUEPRINT.route("/reviews/papers/<paper_id>/reviews")
def reviews_for_paper(paper_id):
    actor_id = _actor_id()
    return flask.jsonify(_lifecycle().reviews_for_paper(paper_id, actor_id))


# -- Conference members --

@BLUEPRINT.route("/conferences/<conference_id>/members")
def list_members(conference_id):
    actor_id = _actor_id()
    store = MembershipStore(get_session(), logger=_logger())
    store.require_member(conference_id, actor_id)
    return flask.jsonify(store.list_members(conference_id))


@BLUEPRINT.route("/conferences/<conference_id>/members/<member_id>", methods=["DELETE"])
def remove_member(conference_id, member_id):
    actor_id = _actor_id()
    store = MembershipStore(get_session(), logger=_logger())
    store.require_chair_or_admin(conference_id, actor_id)
    store.remove_member(conference_id, member_id)
    return flask.jsonify({"success": True, "message": "Member removed"})


@BLUEPRINT.route("/conferences/<conference_id>/members/<member_id>", methods=["PATCH"])
def change_member_role(conference_id, member_id):
    actor_id = _actor_id()
    store = MembershipStore(get_session(), logger=_logger())
    store.require_chair_or_admin(conference_id, actor_id)
    member = store.change_role(conference_id, member_id, _require(_body(), "role"))
    return flask.jsonify({"id": member.id, "userId": member.user_id, "role": member.role.value})
