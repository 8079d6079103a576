"""WSGI entry point for the JWT issuer."""

import os

from issuer_app import create_app

app = create_app(os.getenv("FLASK_ENV", "production"))
