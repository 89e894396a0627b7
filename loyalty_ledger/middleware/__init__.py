"""
Middleware package for the loyalty ledger.
"""
from .auth import require_auth, require_admin, require_self_or_admin, is_staff, current_uid
