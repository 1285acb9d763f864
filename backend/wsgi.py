# backend/wsgi.py
from accu import create_app

app = create_app()
