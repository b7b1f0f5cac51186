"""
BaseService -- abstract base for all kernel services.

Responsibility:
    Provides the common constructor and transaction-scope contract for
    every service in the kernel layer.  Services receive a SQLAlchemy
    session *factory* and open one short session per operation, so each
    public call is its own transaction and is committed before it returns.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.

Invariants enforced:
    - Transaction boundaries: one operation, one transaction.  Observers
      run only after the transition's transaction has committed, so a
      failing observer can never roll a committed transition back.
    - Infrastructure errors are translated at this boundary:
      ``OperationalError``/``InterfaceError`` -> StoreUnavailableError,
      pool ``TimeoutError`` -> StoreTimeoutError.  Neither is retried.

Failure modes:
    - StoreUnavailableError / StoreTimeoutError as above.
    - Any other exception raised inside the scope rolls the transaction
      back and propagates unchanged.
"""

from abc import ABC
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy.exc import InterfaceError, OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.orm import Session, sessionmaker

from registrar_kernel.domain.clock import Clock, SystemClock
from registrar_kernel.exceptions import StoreTimeoutError, StoreUnavailableError
from registrar_kernel.logging_config import get_logger

logger = get_logger("services.base")


class BaseService(ABC):
    """
    Abstract base class for all kernel services.

    Contract:
        Accepts a ``sessionmaker`` and a Clock.  Every write goes through
        ``_session_scope`` which commits on success and rolls back on error.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        clock: Clock | None = None,
    ):
        """
        Initialize the service.

        Args:
            session_factory: Factory for short-lived sessions.
            clock: Time source for every timestamp the service writes.
        """
        self.session_factory = session_factory
        self.clock = clock or SystemClock()

    @contextmanager
    def _session_scope(self, operation: str) -> Iterator[Session]:
        """Open a session, run one transaction, translate store failures."""
        try:
            with self.session_factory() as session:
                with session.begin():
                    yield session
        except PoolTimeoutError as exc:
            logger.warning(
                "store_timeout",
                extra={"operation": operation, "reason": str(exc)},
            )
            raise StoreTimeoutError(operation, str(exc)) from exc
        except (OperationalError, InterfaceError) as exc:
            logger.warning(
                "store_unavailable",
                extra={"operation": operation, "reason": str(exc.orig or exc)},
            )
            raise StoreUnavailableError(operation, str(exc.orig or exc)) from exc
