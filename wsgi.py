"""
WSGI / Flask-Migrate entry point.

Usage:
    flask --app wsgi db upgrade
    flask --app wsgi seed-workflow-templates
    gunicorn wsgi:app
"""

from tpm import create_app

app = create_app()
