"""
API Middleware.
"""

from .auth import get_current_user, require_role, require_tenant
from .metrics import MetricsMiddleware
from .rate_limit import RateLimitMiddleware

__all__ = ["get_current_user", "require_role", "require_tenant", "MetricsMiddleware", "RateLimitMiddleware"]
