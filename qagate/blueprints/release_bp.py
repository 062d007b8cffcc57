"""Release lifecycle & gate blueprint.

Endpoint groups:
  Releases        GET/POST /api/v1/projects/<pid>/releases
                  GET      /api/v1/releases/<rid>
                  POST     /api/v1/releases/<rid>/transition
  Baselines       POST     /api/v1/releases/<rid>/baselines
  Gate            POST     /api/v1/releases/<rid>/gate-evaluation
                  GET      /api/v1/releases/<rid>/coverage
                  POST     /api/v1/releases/<rid>/approve
  Waivers         GET/POST /api/v1/releases/<rid>/waivers
                  DELETE   /api/v1/waivers/<wid>

Identity (created_by / approver_id / issuer_id) is supplied by the caller.
Service layer owns all business logic and commits.
"""

from __future__ import annotations

import logging

from flask import Blueprint, jsonify, request

from qagate.services import coverage_service, release_service, waiver_service
from qagate.services.gate_evaluator import conditions_from_payload
from qagate.utils.errors import E, api_error, register_error_handlers
from qagate.utils.timeutil import parse_iso

logger = logging.getLogger(__name__)

release_bp = Blueprint("release", __name__, url_prefix="/api/v1")
register_error_handlers(release_bp)


def _body() -> dict:
    return request.get_json(silent=True) or {}


# ═════════════════════════════════════════════════════════════════════════
# Releases
# ═════════════════════════════════════════════════════════════════════════


@release_bp.route("/projects/<int:project_id>/releases", methods=["GET"])
def list_releases(project_id):
    status = request.args.get("status")
    return jsonify({"items": release_service.list_releases(project_id, status=status)}), 200


@release_bp.route("/projects/<int:project_id>/releases", methods=["POST"])
def create_release(project_id):
    """Body: { name, description?, build_ref? }"""
    data = _body()
    release = release_service.create_release(
        project_id, data.get("name"),
        description=data.get("description"), build_ref=data.get("build_ref"),
    )
    return jsonify(release.to_dict()), 201


@release_bp.route("/releases/<int:release_id>", methods=["GET"])
def get_release(release_id):
    release = release_service.get_release(release_id)
    return jsonify(release.to_dict(include_baselines=True)), 200


@release_bp.route("/releases/<int:release_id>/transition", methods=["POST"])
def transition_release(release_id):
    """Body: { status }"""
    data = _body()
    if not data.get("status"):
        return api_error(E.VALIDATION_REQUIRED, "status is required")
    release = release_service.transition_release(release_id, data["status"])
    return jsonify(release.to_dict()), 200


# ═════════════════════════════════════════════════════════════════════════
# Baselines & gate
# ═════════════════════════════════════════════════════════════════════════


@release_bp.route("/releases/<int:release_id>/baselines", methods=["POST"])
def set_baseline(release_id):
    """Body: { source_list_revision_id, created_by }"""
    data = _body()
    if not data.get("source_list_revision_id"):
        return api_error(E.VALIDATION_REQUIRED, "source_list_revision_id is required")
    baseline = release_service.set_baseline(
        release_id, data["source_list_revision_id"], data.get("created_by"),
    )
    release = release_service.get_release(release_id)
    return jsonify({"baseline": baseline.to_dict(), "release": release.to_dict()}), 201


@release_bp.route("/releases/<int:release_id>/gate-evaluation", methods=["POST"])
def evaluate_gate(release_id):
    """Body: { conditions?: [{type, name?, required?, threshold?}] }"""
    result = release_service.evaluate_gate(release_id, conditions_from_payload(_body().get("conditions")))
    return jsonify(result.to_dict()), 200


@release_bp.route("/releases/<int:release_id>/coverage", methods=["GET"])
def get_coverage(release_id):
    return jsonify(coverage_service.coverage_summary(release_id)), 200


@release_bp.route("/releases/<int:release_id>/approve", methods=["POST"])
def approve_release(release_id):
    """Body: { approver_id, comment? }

    Always checks the default gate conditions.  Returns 422 GATE_BLOCK
    with the violation list when blocked.
    """
    data = _body()
    release, result = release_service.approve_release(
        release_id, data.get("approver_id"),
        comment=data.get("comment"),
    )
    return jsonify({"release": release.to_dict(), "evaluation": result.to_dict()}), 200


# ═════════════════════════════════════════════════════════════════════════
# Waivers
# ═════════════════════════════════════════════════════════════════════════


@release_bp.route("/releases/<int:release_id>/waivers", methods=["GET"])
def list_waivers(release_id):
    return jsonify({"items": waiver_service.list_waivers(release_id)}), 200


@release_bp.route("/releases/<int:release_id>/waivers", methods=["POST"])
def issue_waiver(release_id):
    """Body: { target_type, target_id?, reason, expires_at (ISO-8601), issuer_id }"""
    data = _body()
    waiver = waiver_service.issue_waiver(
        release_id,
        data.get("target_type"),
        data.get("reason"),
        parse_iso(data.get("expires_at"), "expires_at"),
        data.get("issuer_id"),
        target_id=data.get("target_id"),
    )
    return jsonify(waiver.to_dict()), 201


@release_bp.route("/waivers/<int:waiver_id>", methods=["DELETE"])
def delete_waiver(waiver_id):
    waiver_service.delete_waiver(waiver_id)
    return "", 204
