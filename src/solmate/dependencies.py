"""Shared FastAPI dependencies."""

from solmate.database import get_session as _get_session
from solmate.ledger import get_ledger as _get_ledger

get_db = _get_session
get_ledger = _get_ledger
