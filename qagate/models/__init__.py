"""
QA Release Gate — SQLAlchemy models.

A single ``db`` instance is shared by every model module and bound to the
app in ``create_app``.  Model modules are imported by the factory so that
``db.create_all()`` and Alembic autogenerate see every table.
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
