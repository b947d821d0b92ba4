"""API routers."""

from tournament_admin.api import prizes

__all__ = ["prizes"]
