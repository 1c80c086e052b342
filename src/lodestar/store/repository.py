"""Repository collaborator interface and its errors."""

from datetime import datetime
from typing import Callable, Iterable, Protocol

from lodestar.contracts import (
    Intervention,
    InterventionStatus,
    PerformanceMetricSample,
    RiskAssessment,
    RiskCategory,
    StudentSignalProfile,
    SupportTicket,
)


class RepositoryError(Exception):
    """A durable read or write failed. Fatal for the operation that needed it."""


class DuplicateActiveInterventionError(RepositoryError):
    """An open intervention already exists for this (student, category)."""

    def __init__(self, student_id: str, category: RiskCategory):
        super().__init__(f"Open intervention already exists for {student_id}/{category.value}")
        self.student_id = student_id
        self.category = category


class NotFoundError(RepositoryError):
    """The record an operation depends on does not exist."""


InterventionMutation = Callable[[Intervention], Intervention | None]


class Repository(Protocol):
    """Durable state for the engine.

    Implementations must make create_intervention a conditional create (at
    most one open intervention per student and category) and apply
    update_intervention / update_intervention_level as atomic
    read-modify-write transactions.
    """

    # Profiles
    async def save_profile(self, profile: StudentSignalProfile) -> None: ...

    async def get_profile(self, student_id: str) -> StudentSignalProfile | None: ...

    async def list_student_ids(self) -> list[str]: ...

    # Assessments (append-only)
    async def append_assessment(self, assessment: RiskAssessment) -> None: ...

    async def latest_assessment(self, student_id: str) -> RiskAssessment | None: ...

    async def list_assessments(
        self, student_id: str | None = None, since: datetime | None = None
    ) -> list[RiskAssessment]: ...

    # Interventions
    async def create_intervention(self, intervention: Intervention) -> Intervention: ...

    async def get_intervention(self, intervention_id: str) -> Intervention: ...

    async def find_open_intervention(
        self, student_id: str, category: RiskCategory
    ) -> Intervention | None: ...

    async def list_interventions(
        self,
        student_id: str | None = None,
        statuses: Iterable[InterventionStatus] | None = None,
        since: datetime | None = None,
        limit: int | None = None,
    ) -> list[Intervention]: ...

    async def update_intervention(
        self, intervention_id: str, mutate: InterventionMutation
    ) -> Intervention: ...

    # Tickets
    async def create_ticket(self, ticket: SupportTicket) -> SupportTicket: ...

    async def list_tickets(self, intervention_id: str | None = None) -> list[SupportTicket]: ...

    # Metric samples
    async def record_metric_samples(self, samples: Iterable[PerformanceMetricSample]) -> int: ...

    async def list_metric_samples(self, intervention_id: str) -> list[PerformanceMetricSample]: ...

    # Intervention levels
    async def get_intervention_level(self, student_id: str) -> int | None: ...

    async def update_intervention_level(
        self, student_id: str, compute: Callable[[int | None], int]
    ) -> int: ...
