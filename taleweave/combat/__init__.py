"""Nested tactical combat: models and the event-driven engine."""
