from .app import create_app, serve
from .entitlement import TierLimits, TokenEntitlement, validate_uploads

__all__ = ["TierLimits", "TokenEntitlement", "create_app", "serve", "validate_uploads"]
