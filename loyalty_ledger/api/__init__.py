"""
API blueprints for the loyalty ledger.
"""
from .rewards import rewards_bp
from .admin import admin_bp
