# backend/wsgi.py
from field_orders import create_app

app = create_app()
