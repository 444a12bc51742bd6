"""
Actor context (``fulfillment_kernel.domain.actor``).

The authenticated caller, supplied by the presentation layer on every
call.  The kernel never resolves identity or reads ambient session state;
it only consumes this value.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from uuid import UUID


class Role(str, Enum):
    """The six actor roles of the fulfillment portal."""

    CUSTOMER = "customer"
    SUPPLIER = "supplier"
    WAREHOUSE = "warehouse"
    FACTORY = "factory"
    CARRIER = "carrier"
    ADMIN = "admin"


@dataclass(frozen=True)
class ActorContext:
    """Who is acting, and under which role."""

    actor_id: UUID
    role: Role

    def __post_init__(self) -> None:
        if not isinstance(self.role, Role):
            # Accept the plain string form from the session layer.
            object.__setattr__(self, "role", Role(self.role))
