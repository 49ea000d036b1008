"""
Specflow persistence layer.

All models share the single Flask-SQLAlchemy ``db`` instance defined here:

    from specflow.models import db
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
