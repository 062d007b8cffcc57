"""
Soft Delete Mixin.

Adds a ``deleted_at`` tombstone column.  Versioned artifacts use it so a
deleted test case keeps its revision history while refusing new revisions.

Usage:
    class TestCase(SoftDeleteMixin, db.Model):
        ...

    case.soft_delete()
    db.session.commit()
"""

from qagate.models import db
from qagate.utils.timeutil import utcnow


class SoftDeleteMixin:
    """Mixin that adds soft delete support to any SQLAlchemy model."""

    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True, default=None, index=True)

    def soft_delete(self, now=None):
        """Mark this record as deleted."""
        self.deleted_at = now or utcnow()

    @property
    def is_deleted(self):
        return self.deleted_at is not None
