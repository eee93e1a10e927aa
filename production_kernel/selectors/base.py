"""
Module: production_kernel.selectors.base
Responsibility: Base class for read-only query selectors over the catalog and
    stock tables.
Architecture position: Kernel > Selectors.  May import from db/, models/ and
    domain/.  MUST NOT import from engines, services, or config.

Invariants enforced:
    - Read-only access: selectors use the caller's Session and never add,
      delete, flush, or commit.
    - Selectors return frozen dataclasses or plain values, not ORM instances.
"""

from abc import ABC

from sqlalchemy.orm import Session


class BaseSelector(ABC):
    """
    Abstract base class for all selectors.

    Contract:
        Selectors accept a Session from the caller, perform read-only queries,
        and return DTOs or computed results.
    """

    def __init__(self, session: Session):
        self.session = session
