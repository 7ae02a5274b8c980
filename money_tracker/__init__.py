"""Money Tracker: FastAPI backend plus the offline-capable client core."""

from . import db
from .schemas import *

__all__ = [
    'db',
]
