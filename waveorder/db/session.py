# waveorder/db/session.py
"""Expose get_db where routers and tests import it."""
from waveorder.db.database import get_db

__all__ = ["get_db"]
