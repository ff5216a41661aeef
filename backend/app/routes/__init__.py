# backend/app/routes/__init__.py
# All application routes are in v1/
