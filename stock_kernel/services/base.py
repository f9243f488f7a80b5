"""
BaseService -- abstract base for all kernel services.

Responsibility:
    Provides the common constructor and session-handling contract for every
    write-side service in the kernel.  Services receive a SQLAlchemy
    ``Session`` and use ``session.flush()`` -- never ``session.commit()``.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.

Invariants enforced:
    - Transaction boundaries: services flush within the caller's transaction
      and never commit or rollback themselves.  The orchestration facade (or
      the test harness) owns commit/rollback.
    - Failures of the backing store and of external collaborators leave the
      kernel as UpstreamError; kernel errors pass through untouched.
"""

from abc import ABC
from contextlib import contextmanager
from typing import Generator, Generic, TypeVar

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from stock_kernel.db.base import Base
from stock_kernel.exceptions import StockKernelError, UpstreamError

ModelType = TypeVar("ModelType", bound=Base)

STORE = "store"


@contextmanager
def upstream_errors(source: str, operation: str) -> Generator[None, None, None]:
    """
    Translate foreign exceptions raised inside the block into UpstreamError.

    ``source`` names the failing dependency (``store``, ``order_source``,
    ``inventory_source``, ...).  The original exception is chained.
    """
    try:
        yield
    except StockKernelError:
        raise
    except SQLAlchemyError as exc:
        raise UpstreamError(source, operation, type(exc).__name__) from exc
    except Exception as exc:
        raise UpstreamError(source, operation, str(exc)) from exc


class BaseService(ABC, Generic[ModelType]):
    """
    Abstract base class for all kernel services.

    Contract:
        Accepts a SQLAlchemy ``Session`` from the caller and uses
        ``session.flush()`` to persist changes within the active transaction.

    Non-goals:
        - Does NOT manage transaction lifecycle (commit/rollback).
        - Does NOT provide query-only methods -- those belong in
          ``stock_kernel/selectors/``.
    """

    def __init__(self, session: Session):
        self.session = session

    def _store(self, operation: str):
        """Shorthand for ``upstream_errors(STORE, operation)``."""
        return upstream_errors(STORE, operation)
