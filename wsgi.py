"""
WSGI / Flask CLI entry point.

Usage:
    gunicorn wsgi:app
    flask --app wsgi seed-demo
    flask --app wsgi db upgrade
"""

from app import create_app

app = create_app()
