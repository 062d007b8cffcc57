"""Versioned artifact blueprint — test cases, scenarios and lists.

Endpoint groups:
  Create            POST /api/v1/projects/<pid>/{test-cases|test-scenarios|test-scenario-lists}
  Artifact          GET  /api/v1/{collection}/<id>
                    DELETE /api/v1/{collection}/<id>
  Revisions         GET/POST /api/v1/{collection}/<id>/revisions
  Draft edit        PUT  /api/v1/revisions/<kind>/<rev_id>
  Transitions       POST /api/v1/revisions/<kind>/<rev_id>/{submit-for-review|approve|
                                                           reject|return-to-draft|
                                                           deprecate|reopen}

``kind`` is case | scenario | list.
"""

from __future__ import annotations

import logging

from flask import Blueprint, jsonify, request

from qagate.services import artifact_service
from qagate.utils.errors import E, api_error, register_error_handlers

logger = logging.getLogger(__name__)

artifact_bp = Blueprint("artifact", __name__, url_prefix="/api/v1")
register_error_handlers(artifact_bp)

_COLLECTIONS = {
    "test-cases": artifact_service.CASE,
    "test-scenarios": artifact_service.SCENARIO,
    "test-scenario-lists": artifact_service.LIST,
}

_PAYLOAD_KEYS = ("title", "content", "items", "description")


def _body() -> dict:
    return request.get_json(silent=True) or {}


def _payload(data: dict) -> dict:
    return {k: data[k] for k in _PAYLOAD_KEYS if k in data}


def _kind_for(collection: str):
    return _COLLECTIONS.get(collection)


# ── Artifacts ────────────────────────────────────────────────────────────


@artifact_bp.route("/projects/<int:project_id>/<collection>", methods=["POST"])
def create_artifact(project_id, collection):
    """Body: { title, created_by, content? (case), items? (scenario/list), description?, reason? }"""
    kind = _kind_for(collection)
    if kind is None:
        return api_error(E.NOT_FOUND, f"Unknown collection '{collection}'")
    data = _body()
    revision = artifact_service.create_artifact(
        kind, project_id, data.get("created_by"), _payload(data), reason=data.get("reason"),
    )
    return jsonify(revision.to_dict()), 201


@artifact_bp.route("/<collection>/<int:stable_id>", methods=["GET"])
def get_artifact(collection, stable_id):
    kind = _kind_for(collection)
    if kind is None:
        return api_error(E.NOT_FOUND, f"Unknown collection '{collection}'")
    return jsonify(artifact_service.get_artifact(kind, stable_id)), 200


@artifact_bp.route("/<collection>/<int:stable_id>", methods=["DELETE"])
def delete_artifact(collection, stable_id):
    kind = _kind_for(collection)
    if kind is None:
        return api_error(E.NOT_FOUND, f"Unknown collection '{collection}'")
    artifact_service.delete_artifact(kind, stable_id)
    return "", 204


@artifact_bp.route("/<collection>/<int:stable_id>/revisions", methods=["GET"])
def revision_history(collection, stable_id):
    kind = _kind_for(collection)
    if kind is None:
        return api_error(E.NOT_FOUND, f"Unknown collection '{collection}'")
    limit = min(request.args.get("limit", 50, type=int), 200)
    offset = max(request.args.get("offset", 0, type=int), 0)
    return jsonify(artifact_service.get_revision_history(kind, stable_id, limit, offset)), 200


@artifact_bp.route("/<collection>/<int:stable_id>/revisions", methods=["POST"])
def create_revision(collection, stable_id):
    """Body: { created_by, reason?, title?, content?, items?, description? }"""
    kind = _kind_for(collection)
    if kind is None:
        return api_error(E.NOT_FOUND, f"Unknown collection '{collection}'")
    data = _body()
    revision = artifact_service.create_revision(
        kind, stable_id, data.get("created_by"), _payload(data), reason=data.get("reason"),
    )
    return jsonify(revision.to_dict()), 201


# ── Revisions ────────────────────────────────────────────────────────────


@artifact_bp.route("/revisions/<kind>/<int:revision_id>", methods=["GET"])
def get_revision(kind, revision_id):
    revision = artifact_service.get_revision(kind, revision_id)
    d = revision.to_dict()
    d["available_transitions"] = artifact_service.available_transitions(kind, revision_id)
    return jsonify(d), 200


@artifact_bp.route("/revisions/<kind>/<int:revision_id>", methods=["PUT"])
def update_draft(kind, revision_id):
    revision = artifact_service.update_draft(kind, revision_id, _payload(_body()))
    return jsonify(revision.to_dict()), 200


@artifact_bp.route("/revisions/<kind>/<int:revision_id>/submit-for-review", methods=["POST"])
def submit_for_review(kind, revision_id):
    data = _body()
    revision = artifact_service.submit_for_review(kind, revision_id, data.get("submitted_by"))
    return jsonify(revision.to_dict()), 200


@artifact_bp.route("/revisions/<kind>/<int:revision_id>/approve", methods=["POST"])
def approve_revision(kind, revision_id):
    """Body: { approver_id, comment? }"""
    data = _body()
    revision = artifact_service.approve_revision(
        kind, revision_id, data.get("approver_id"), comment=data.get("comment"),
    )
    return jsonify(revision.to_dict()), 200


@artifact_bp.route("/revisions/<kind>/<int:revision_id>/reject", methods=["POST"])
def reject_revision(kind, revision_id):
    """Body: { approver_id, comment }"""
    data = _body()
    revision = artifact_service.reject_revision(
        kind, revision_id, data.get("approver_id"), data.get("comment"),
    )
    return jsonify(revision.to_dict()), 200


@artifact_bp.route("/revisions/<kind>/<int:revision_id>/return-to-draft", methods=["POST"])
def return_to_draft(kind, revision_id):
    revision = artifact_service.return_to_draft(kind, revision_id, _body().get("actor"))
    return jsonify(revision.to_dict()), 200


@artifact_bp.route("/revisions/<kind>/<int:revision_id>/deprecate", methods=["POST"])
def deprecate_revision(kind, revision_id):
    revision = artifact_service.deprecate_revision(kind, revision_id, _body().get("actor"))
    return jsonify(revision.to_dict()), 200


@artifact_bp.route("/revisions/<kind>/<int:revision_id>/reopen", methods=["POST"])
def reopen_revision(kind, revision_id):
    revision = artifact_service.reopen_revision(kind, revision_id, _body().get("actor"))
    return jsonify(revision.to_dict()), 200
