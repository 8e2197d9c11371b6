# backend/wsgi.py
from paneteria import create_app

app = create_app()
