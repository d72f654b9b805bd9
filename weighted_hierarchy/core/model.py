from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Literal, Optional


NodeKind = Literal["milestone", "sub_milestone", "task"]

ROOT_WEIGHT: float = 100.0


class Status(str, Enum):
    NOT_STARTED = "Not Started"
    IN_PROGRESS = "In Progress"
    PENDING_APPROVAL = "Pending Approval"
    PENDING_COMPLETION_APPROVAL = "Pending Completion Approval"
    COMPLETED = "Completed"
    ON_HOLD = "On Hold"
    REJECTED = "Rejected"


class Priority(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


class CompletionStatus(str, Enum):
    PENDING = "pending"
    SUBMITTED = "submitted"
    APPROVED = "approved"
    REJECTED = "rejected"


@dataclass
class Assignee:
    user_id: str
    completion_status: CompletionStatus = CompletionStatus.PENDING
    completion_grade: Optional[float] = None
    completion_notes: Optional[str] = None
    completion_documents: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class LinkedKPI:
    kpi_doc_id: str
    kpi_index: int
    contribution_weight: float
    # Owner of the KPI set this entry points into; None means "shared by all assignees".
    user_id: Optional[str] = None

    @property
    def key(self) -> tuple[str, int]:
        return (self.kpi_doc_id, self.kpi_index)


@dataclass(frozen=True)
class KPIRef:
    kpi_doc_id: str
    kpi_index: int
    title: str
    weight: float
    achievement: float = 0.0


@dataclass
class TaskDetails:
    priority: Priority = Priority.MEDIUM
    due_date: Optional[date] = None
    assignees: list[Assignee] = field(default_factory=list)
    linked_kpis: list[LinkedKPI] = field(default_factory=list)
    notes: str = ""

    def assignee(self, user_id: str) -> Optional[Assignee]:
        for a in self.assignees:
            if a.user_id == user_id:
                return a
        return None

    def links_for(self, user_id: str) -> list[LinkedKPI]:
        return [k for k in self.linked_kpis if k.user_id in (None, user_id)]


@dataclass
class Node:
    """Arena entry. Children are referenced by id; the tree owns every node."""

    id: str
    kind: NodeKind
    title: str
    weight: float
    description: str = ""
    progress: float = 0.0
    status: Status = Status.NOT_STARTED
    due_date: Optional[date] = None
    parent_id: Optional[str] = None
    child_ids: list[str] = field(default_factory=list)
    task: Optional[TaskDetails] = None

    @property
    def is_task(self) -> bool:
        return self.kind == "task"


@dataclass(frozen=True)
class RequestContext:
    """Caller identity, passed explicitly to operations that act on behalf of a user."""

    user_id: str
    role: str = "employee"

    @property
    def is_supervisor(self) -> bool:
        return self.role in {"supervisor", "admin"}


def new_task(
    id: str,
    title: str,
    weight: float,
    *,
    description: str = "",
    priority: Priority = Priority.MEDIUM,
    due_date: Optional[date] = None,
    assignees: Optional[list[Assignee]] = None,
    linked_kpis: Optional[list[LinkedKPI]] = None,
    notes: str = "",
) -> Node:
    return Node(
        id=id,
        kind="task",
        title=title,
        weight=weight,
        description=description,
        due_date=due_date,
        task=TaskDetails(
            priority=priority,
            due_date=due_date,
            assignees=list(assignees or []),
            linked_kpis=list(linked_kpis or []),
            notes=notes,
        ),
    )


def new_sub_milestone(
    id: str,
    title: str,
    weight: float,
    *,
    description: str = "",
    due_date: Optional[date] = None,
) -> Node:
    return Node(
        id=id,
        kind="sub_milestone",
        title=title,
        weight=weight,
        description=description,
        due_date=due_date,
    )
