"""FileBox Database — SQLAlchemy tables and session management."""
