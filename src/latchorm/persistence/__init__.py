"""
Persistence layer components: sessions, unit of work, identity map, locking.
"""

from .bulk import BulkGateway
from .flush import FlushCoordinator, FlushResult
from .identity_map import IdentityMap
from .locking import LockManager, LockMode
from .options import SessionConfigurationError, SessionOptions
from .session import Session
from .transaction import TransactionError, TransactionManager
from .unit_of_work import UnitOfWork

__all__ = [
    "BulkGateway",
    "FlushCoordinator",
    "FlushResult",
    "IdentityMap",
    "LockManager",
    "LockMode",
    "Session",
    "SessionConfigurationError",
    "SessionOptions",
    "TransactionError",
    "TransactionManager",
    "UnitOfWork",
]
