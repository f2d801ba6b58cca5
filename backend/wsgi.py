# backend/wsgi.py
# FLASK_APP entry point for the CLI (flask tables|catalog|stock|orders|invoices ...)
from criollo import create_app

app = create_app()
