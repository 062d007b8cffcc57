"""Projects, requirements and requirement → test-case mappings."""

from __future__ import annotations

from flask import Blueprint, jsonify, request

from qagate.services import project_service
from qagate.utils.errors import E, api_error, register_error_handlers

project_bp = Blueprint("project", __name__, url_prefix="/api/v1")
register_error_handlers(project_bp)


@project_bp.route("/projects", methods=["POST"])
def create_project():
    data = request.get_json(silent=True) or {}
    project = project_service.create_project(data.get("name"), data.get("description"))
    return jsonify(project.to_dict()), 201


@project_bp.route("/projects/<int:project_id>", methods=["GET"])
def get_project(project_id):
    return jsonify(project_service.get_project(project_id).to_dict()), 200


@project_bp.route("/projects/<int:project_id>/requirements", methods=["GET"])
def list_requirements(project_id):
    return jsonify({"items": project_service.list_requirements(project_id)}), 200


@project_bp.route("/projects/<int:project_id>/requirements", methods=["POST"])
def create_requirement(project_id):
    data = request.get_json(silent=True) or {}
    requirement = project_service.create_requirement(
        project_id, data.get("title"),
        external_id=data.get("external_id"), source=data.get("source"), url=data.get("url"),
    )
    return jsonify(requirement.to_dict()), 201


@project_bp.route("/requirements/<int:requirement_id>/mappings", methods=["POST"])
def map_requirement(requirement_id):
    data = request.get_json(silent=True) or {}
    if not data.get("case_revision_id"):
        return api_error(E.VALIDATION_REQUIRED, "case_revision_id is required")
    mapping = project_service.map_requirement(requirement_id, data["case_revision_id"])
    return jsonify(mapping.to_dict()), 201
