"""
BaseSelector -- common constructor for read-only queries.

Selectors are the query side of the kernel.  They take a Session from the
caller (normally a read-only session from ``read_session_scope()``), never
add, delete, flush or commit, take no row locks, and return frozen DTOs or
report records rather than ORM instances.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from ledger_kernel.db.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseSelector(ABC, Generic[ModelType]):
    """
    Abstract base class for all selectors.

    Non-goals:
        - Does NOT define query methods; subclasses do.
        - Does NOT open or close sessions.
    """

    def __init__(self, session: Session):
        self.session = session
