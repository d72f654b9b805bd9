from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class HierarchyError(Exception):
    """Base error envelope. Every rejected operation leaves the tree intact."""

    code: str
    message: str
    node_id: Optional[str] = None
    path: Optional[str] = None

    def __str__(self) -> str:
        parts: list[str] = []
        if self.path:
            parts.append(self.path)
        if self.node_id:
            parts.append(self.node_id)
        loc = ":".join(parts) if parts else "<hierarchy>"
        return f"{loc}: {self.code}: {self.message}"


@dataclass(frozen=True)
class CapacityExceeded(HierarchyError):
    code: str = "E_CAPACITY_EXCEEDED"
    message: str = "weight exceeds remaining capacity"
    remaining: float = 0.0


@dataclass(frozen=True)
class CapacityViolation(HierarchyError):
    """Read-time diagnostic: siblings already sum above 100."""

    code: str = "E_CAPACITY_VIOLATION"
    message: str = "child weights exceed 100"
    allocated: float = 0.0


@dataclass(frozen=True)
class InvalidWeight(HierarchyError):
    code: str = "E_INVALID_WEIGHT"
    message: str = "weight must be a number in (0, 100]"


@dataclass(frozen=True)
class InvalidGrade(HierarchyError):
    code: str = "E_INVALID_GRADE"
    message: str = "grade must be within [0, 5]"


@dataclass(frozen=True)
class NotFound(HierarchyError):
    code: str = "E_NOT_FOUND"
    message: str = "node does not exist"


@dataclass(frozen=True)
class InvalidParent(HierarchyError):
    code: str = "E_INVALID_PARENT"
    message: str = "node cannot own children"


@dataclass(frozen=True)
class DuplicateId(HierarchyError):
    code: str = "E_DUPLICATE_ID"
    message: str = "node id already exists"


@dataclass(frozen=True)
class InvalidTransition(HierarchyError):
    code: str = "E_INVALID_TRANSITION"
    message: str = "operation not allowed in the current state"


@dataclass(frozen=True)
class NotAuthorized(HierarchyError):
    code: str = "E_NOT_AUTHORIZED"
    message: str = "caller is not allowed to perform this operation"


class HierarchyLoadError(HierarchyError):
    pass


class HierarchyValidationError(HierarchyError):
    pass
