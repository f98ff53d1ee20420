"""Entry point for `flask --app minicasino_be.wsgi` and WSGI servers."""
from minicasino_be.app import create_app

app, socketio = create_app()
