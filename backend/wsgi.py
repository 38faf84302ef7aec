# backend/wsgi.py
from assetflow import create_app

app = create_app()
