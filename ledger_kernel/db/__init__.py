"""SQLAlchemy declarative base and engine/session management."""
