"""Test execution blueprint — run groups, runs and results.

Endpoint groups:
  Run groups   GET/POST /api/v1/releases/<rid>/run-groups
  Runs         GET/POST /api/v1/run-groups/<gid>/runs
               GET      /api/v1/test-runs/<run_id>
               GET      /api/v1/test-runs/<run_id>/progress
               POST     /api/v1/test-runs/<run_id>/{start|complete|reassign}
  Results      POST     /api/v1/test-runs/<run_id>/items/<item_id>/results

Results feed the ALL_TESTS_PASS and NO_CRITICAL_BUGS gate conditions.
"""

from __future__ import annotations

import logging

from flask import Blueprint, jsonify, request

from qagate.services import execution_service
from qagate.utils.errors import E, api_error, register_error_handlers
from qagate.utils.timeutil import parse_iso

logger = logging.getLogger(__name__)

execution_bp = Blueprint("execution", __name__, url_prefix="/api/v1")
register_error_handlers(execution_bp)


def _body() -> dict:
    return request.get_json(silent=True) or {}


# ═════════════════════════════════════════════════════════════════════════
# Run groups
# ═════════════════════════════════════════════════════════════════════════


@execution_bp.route("/releases/<int:release_id>/run-groups", methods=["GET"])
def list_run_groups(release_id):
    return jsonify({"items": execution_service.list_run_groups(release_id)}), 200


@execution_bp.route("/releases/<int:release_id>/run-groups", methods=["POST"])
def create_run_group(release_id):
    """Body: { name, purpose? }"""
    data = _body()
    group = execution_service.create_run_group(release_id, data.get("name"), data.get("purpose"))
    return jsonify(group.to_dict()), 201


# ═════════════════════════════════════════════════════════════════════════
# Runs
# ═════════════════════════════════════════════════════════════════════════


@execution_bp.route("/run-groups/<int:group_id>/runs", methods=["GET"])
def list_runs(group_id):
    return jsonify({"items": execution_service.list_runs(group_id)}), 200


@execution_bp.route("/run-groups/<int:group_id>/runs", methods=["POST"])
def create_test_run(group_id):
    """Body: { assignee_id, source_list_revision_id, build_ref? }"""
    data = _body()
    if not data.get("source_list_revision_id"):
        return api_error(E.VALIDATION_REQUIRED, "source_list_revision_id is required")
    run = execution_service.create_test_run(
        group_id, data.get("assignee_id"), data["source_list_revision_id"],
        build_ref=data.get("build_ref"),
    )
    return jsonify(execution_service.get_run_detail(run.id)), 201


@execution_bp.route("/test-runs/<int:run_id>", methods=["GET"])
def get_run(run_id):
    return jsonify(execution_service.get_run_detail(run_id)), 200


@execution_bp.route("/test-runs/<int:run_id>/progress", methods=["GET"])
def get_run_progress(run_id):
    return jsonify(execution_service.get_run_progress(run_id)), 200


@execution_bp.route("/test-runs/<int:run_id>/start", methods=["POST"])
def start_run(run_id):
    run = execution_service.start_run(run_id)
    return jsonify(run.to_dict()), 200


@execution_bp.route("/test-runs/<int:run_id>/complete", methods=["POST"])
def complete_run(run_id):
    """Body: { force? }"""
    progress = execution_service.complete_run(run_id, force=_body().get("force") is True)
    return jsonify(progress), 200


@execution_bp.route("/test-runs/<int:run_id>/reassign", methods=["POST"])
def reassign_run(run_id):
    """Body: { assignee_id }"""
    run = execution_service.reassign_run(run_id, _body().get("assignee_id"))
    return jsonify(run.to_dict()), 200


# ═════════════════════════════════════════════════════════════════════════
# Results
# ═════════════════════════════════════════════════════════════════════════


@execution_bp.route("/test-runs/<int:run_id>/items/<int:item_id>/results", methods=["POST"])
def record_result(run_id, item_id):
    """Body: { status, executed_by, evidence?, bug_links?, executed_at? (ISO-8601) }"""
    data = _body()
    if not data.get("status"):
        return api_error(E.VALIDATION_REQUIRED, "status is required")
    item = execution_service.get_run_item(run_id, item_id)
    result = execution_service.record_result(
        item.id,
        data["status"],
        data.get("executed_by"),
        evidence=data.get("evidence"),
        bug_links=data.get("bug_links"),
        executed_at=parse_iso(data.get("executed_at"), "executed_at"),
    )
    return jsonify(result.to_dict()), 201
