"""
WSGI entry point, also used by Flask-Migrate / Alembic.

Usage:
    flask --app wsgi db upgrade
    flask --app wsgi seed-app-owner --name "..." --email "..."
    gunicorn wsgi:app
"""

from churchdesk import create_app

app = create_app()
