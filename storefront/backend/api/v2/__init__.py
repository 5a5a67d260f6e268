"""API v2 routers."""
from storefront.backend.api.v2 import users

__all__ = ["users"]
