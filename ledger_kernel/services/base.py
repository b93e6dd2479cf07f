"""
BaseService -- common constructor for kernel write services.

Every service receives a SQLAlchemy ``Session`` from its caller and persists
with ``session.flush()``, never ``session.commit()``.  The caller
(LedgerService, or a test) owns commit and rollback, which is what lets a
post update every account balance and the entry status atomically.
"""

from abc import ABC

from sqlalchemy.orm import Session


class BaseService(ABC):
    """
    Abstract base class for kernel services.

    Non-goals:
        - Does NOT manage transaction lifecycle (commit/rollback).
        - Does NOT provide report queries; those live in selectors/.
    """

    def __init__(self, session: Session):
        self.session = session
