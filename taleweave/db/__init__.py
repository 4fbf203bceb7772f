"""Persistence: SQLAlchemy models, versioned codecs, caches and stores."""
