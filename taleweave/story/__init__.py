"""Authored story packages: the static plot graph."""
