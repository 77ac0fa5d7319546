"""WSGI entry point for gunicorn."""

from trigger_engine import create_app

app = create_app()
