"""Middleware and integrations."""
