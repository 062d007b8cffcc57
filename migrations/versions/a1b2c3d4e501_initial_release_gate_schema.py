"""Initial release gate schema: projects, artifacts, releases, results, waivers, approvals.

Revision ID: a1b2c3d4e501
Revises:
Create Date: 2026-10-19 09:00:00.000000
"""

import sqlalchemy as sa
from alembic import op

revision = "a1b2c3d4e501"
down_revision = None
branch_labels = None
depends_on = None


def _revision_columns():
    return [
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("rev", sa.Integer, nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="DRAFT"),
        sa.Column("title", sa.String(500), nullable=False),
        sa.Column("reason", sa.Text, nullable=True),
        sa.Column("created_by", sa.String(200), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("approved_by", sa.String(200), nullable=True),
        sa.Column("approved_at", sa.DateTime(timezone=True), nullable=True),
    ]


def _stable_columns():
    return [
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("project_id", sa.Integer,
                  sa.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
    ]


def upgrade():
    # ── Projects & requirements ──────────────────────────────────────────
    op.create_table(
        "projects",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("description", sa.Text, nullable=True, server_default=""),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_table(
        "requirements",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("project_id", sa.Integer,
                  sa.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False),
        sa.Column("external_id", sa.String(100), nullable=True),
        sa.Column("title", sa.String(500), nullable=False),
        sa.Column("source", sa.String(50), nullable=True),
        sa.Column("url", sa.String(500), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_requirements_project_id", "requirements", ["project_id"])

    # ── Versioned artifacts ──────────────────────────────────────────────
    for table in ("test_cases", "test_scenarios", "test_scenario_lists"):
        op.create_table(table, *_stable_columns())
        op.create_index(f"ix_{table}_project_id", table, ["project_id"])
        op.create_index(f"ix_{table}_deleted_at", table, ["deleted_at"])

    op.create_table(
        "test_case_revisions",
        *_revision_columns(),
        sa.Column("case_id", sa.Integer,
                  sa.ForeignKey("test_cases.id", ondelete="CASCADE"), nullable=False),
        sa.Column("content", sa.JSON, nullable=False),
        sa.UniqueConstraint("case_id", "rev", name="uq_test_case_revision_rev"),
    )
    op.create_table(
        "test_scenario_revisions",
        *_revision_columns(),
        sa.Column("scenario_id", sa.Integer,
                  sa.ForeignKey("test_scenarios.id", ondelete="CASCADE"), nullable=False),
        sa.Column("description", sa.Text, nullable=True),
        sa.UniqueConstraint("scenario_id", "rev", name="uq_test_scenario_revision_rev"),
    )
    op.create_table(
        "test_scenario_list_revisions",
        *_revision_columns(),
        sa.Column("list_id", sa.Integer,
                  sa.ForeignKey("test_scenario_lists.id", ondelete="CASCADE"), nullable=False),
        sa.Column("description", sa.Text, nullable=True),
        sa.UniqueConstraint("list_id", "rev", name="uq_test_scenario_list_revision_rev"),
    )
    for table, fk in (
        ("test_case_revisions", "case_id"),
        ("test_scenario_revisions", "scenario_id"),
        ("test_scenario_list_revisions", "list_id"),
    ):
        op.create_index(f"ix_{table}_{fk}", table, [fk])
        op.create_index(f"ix_{table}_status", table, ["status"])

    op.create_table(
        "test_scenario_items",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("scenario_revision_id", sa.Integer,
                  sa.ForeignKey("test_scenario_revisions.id", ondelete="CASCADE"), nullable=False),
        sa.Column("case_revision_id", sa.Integer,
                  sa.ForeignKey("test_case_revisions.id"), nullable=False),
        sa.Column("order", sa.Integer, nullable=False, server_default="0"),
        sa.Column("optional_flag", sa.Boolean, nullable=False, server_default=sa.text("0")),
        sa.Column("note", sa.Text, nullable=True),
    )
    op.create_index("ix_test_scenario_items_scenario_revision_id", "test_scenario_items",
                    ["scenario_revision_id"])
    op.create_index("ix_test_scenario_items_case_revision_id", "test_scenario_items",
                    ["case_revision_id"])

    op.create_table(
        "test_scenario_list_items",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("list_revision_id", sa.Integer,
                  sa.ForeignKey("test_scenario_list_revisions.id", ondelete="CASCADE"), nullable=False),
        sa.Column("scenario_revision_id", sa.Integer,
                  sa.ForeignKey("test_scenario_revisions.id"), nullable=False),
        sa.Column("order", sa.Integer, nullable=False, server_default="0"),
        sa.Column("include_rule", sa.String(20), nullable=False, server_default="FULL"),
        sa.Column("note", sa.Text, nullable=True),
    )
    op.create_index("ix_test_scenario_list_items_list_revision_id", "test_scenario_list_items",
                    ["list_revision_id"])
    op.create_index("ix_test_scenario_list_items_scenario_revision_id", "test_scenario_list_items",
                    ["scenario_revision_id"])

    op.create_table(
        "requirement_mappings",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("requirement_id", sa.Integer,
                  sa.ForeignKey("requirements.id", ondelete="CASCADE"), nullable=False),
        sa.Column("case_revision_id", sa.Integer,
                  sa.ForeignKey("test_case_revisions.id", ondelete="CASCADE"), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint("requirement_id", "case_revision_id", name="uq_req_mapping_target"),
    )
    op.create_index("ix_requirement_mappings_requirement_id", "requirement_mappings", ["requirement_id"])
    op.create_index("ix_requirement_mappings_case_revision_id", "requirement_mappings",
                    ["case_revision_id"])

    # ── Releases ─────────────────────────────────────────────────────────
    op.create_table(
        "releases",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("project_id", sa.Integer,
                  sa.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("status", sa.String(30), nullable=False, server_default="PLANNING"),
        sa.Column("build_ref", sa.String(200), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_releases_project_id", "releases", ["project_id"])
    op.create_index("ix_releases_status", "releases", ["status"])

    op.create_table(
        "release_baselines",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("release_id", sa.Integer,
                  sa.ForeignKey("releases.id", ondelete="CASCADE"), nullable=False),
        sa.Column("source_list_revision_id", sa.Integer,
                  sa.ForeignKey("test_scenario_list_revisions.id"), nullable=False),
        sa.Column("created_by", sa.String(200), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_release_baselines_release_id", "release_baselines", ["release_id"])
    op.create_index("ix_release_baselines_source_list_revision_id", "release_baselines",
                    ["source_list_revision_id"])

    op.create_table(
        "waivers",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("release_id", sa.Integer,
                  sa.ForeignKey("releases.id", ondelete="CASCADE"), nullable=False),
        sa.Column("target_type", sa.String(30), nullable=False),
        sa.Column("target_id", sa.Integer, nullable=True),
        sa.Column("reason", sa.Text, nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("issuer_id", sa.String(200), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_waivers_release_id", "waivers", ["release_id"])
    op.create_index("ix_waivers_expires_at", "waivers", ["expires_at"])
    op.create_index("ix_waivers_lookup", "waivers", ["release_id", "target_type", "target_id"])

    # ── Execution results ────────────────────────────────────────────────
    op.create_table(
        "test_run_groups",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("release_id", sa.Integer,
                  sa.ForeignKey("releases.id", ondelete="CASCADE"), nullable=False),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("purpose", sa.Text, nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="NOT_STARTED"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_test_run_groups_release_id", "test_run_groups", ["release_id"])

    op.create_table(
        "test_runs",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("run_group_id", sa.Integer,
                  sa.ForeignKey("test_run_groups.id", ondelete="CASCADE"), nullable=False),
        sa.Column("assignee_id", sa.String(200), nullable=False),
        sa.Column("source_list_revision_id", sa.Integer,
                  sa.ForeignKey("test_scenario_list_revisions.id"), nullable=False),
        sa.Column("build_ref", sa.String(200), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="ASSIGNED"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_test_runs_run_group_id", "test_runs", ["run_group_id"])

    op.create_table(
        "test_run_items",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("run_id", sa.Integer,
                  sa.ForeignKey("test_runs.id", ondelete="CASCADE"), nullable=False),
        sa.Column("case_revision_id", sa.Integer,
                  sa.ForeignKey("test_case_revisions.id"), nullable=False),
        sa.Column("origin_scenario_revision_id", sa.Integer,
                  sa.ForeignKey("test_scenario_revisions.id"), nullable=True),
        sa.Column("order", sa.Integer, nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_test_run_items_run_id", "test_run_items", ["run_id"])
    op.create_index("ix_test_run_items_case_revision_id", "test_run_items", ["case_revision_id"])

    op.create_table(
        "test_results",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("run_item_id", sa.Integer,
                  sa.ForeignKey("test_run_items.id", ondelete="CASCADE"), nullable=False),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("evidence", sa.JSON, nullable=True),
        sa.Column("bug_links", sa.JSON, nullable=True),
        sa.Column("executed_by", sa.String(200), nullable=False),
        sa.Column("executed_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_test_results_item_time", "test_results", ["run_item_id", "executed_at"])

    # ── Approvals ────────────────────────────────────────────────────────
    op.create_table(
        "approval_records",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("object_type", sa.String(30), nullable=False),
        sa.Column("object_id", sa.Integer, nullable=False),
        sa.Column("step", sa.Integer, nullable=False, server_default="1"),
        sa.Column("decision", sa.String(20), nullable=False),
        sa.Column("approver_id", sa.String(200), nullable=False),
        sa.Column("comment", sa.Text, nullable=True),
        sa.Column("evidence_links", sa.JSON, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.func.now()),
    )
    op.create_index("ix_approval_records_object", "approval_records", ["object_type", "object_id"])


def downgrade():
    for table in (
        "approval_records",
        "test_results",
        "test_run_items",
        "test_runs",
        "test_run_groups",
        "waivers",
        "release_baselines",
        "releases",
        "requirement_mappings",
        "test_scenario_list_items",
        "test_scenario_items",
        "test_scenario_list_revisions",
        "test_scenario_revisions",
        "test_case_revisions",
        "test_scenario_lists",
        "test_scenarios",
        "test_cases",
        "requirements",
        "projects",
    ):
        op.drop_table(table)
