"""
Flask CLI entry point.

Usage:
    FLASK_APP=wsgi flask create-spec-project "Checkout revamp" owner-1
    FLASK_APP=wsgi flask validation-rules
"""

from specflow import create_app

app = create_app()
