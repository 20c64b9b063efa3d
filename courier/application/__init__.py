"""FastAPI admin surface: lifespan hook pair plus health and admin routes."""
