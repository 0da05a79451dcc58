"""
ChurchDesk data model.

``db`` is the shared Flask-SQLAlchemy handle.  Model modules import it from
here; ``create_app`` imports every model module so Alembic and
``db.create_all()`` see the full metadata.
"""

import uuid

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()


def _uuid():
    return str(uuid.uuid4())
