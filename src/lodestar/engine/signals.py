"""
Signal Aggregator

Assembles the per-student profile the scorer reads. The stored profile is the
baseline; each SignalSource can contribute fresh section data (academic,
attendance, behavioral, social_emotional, financial, performance). A source
that fails or times out is skipped and the stored values stand.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Protocol

from pydantic import ValidationError

from lodestar.contracts import EventKind, RiskCategory, StudentSignalProfile
from lodestar.contracts.signals import PROFILE_SECTIONS
from lodestar.engine.audit import record
from lodestar.store.event_log import EventLogWriter
from lodestar.store.repository import Repository

logger = logging.getLogger(__name__)


class SignalSource(Protocol):
    """A provider of raw student signals, e.g. an SIS or attendance system."""

    name: str

    async def fetch(self, student_id: str) -> dict[str, Any] | None:
        """Return {section: {field: value}} for the student, or None."""
        ...


# Profile fields that inform each category's analysis
CATEGORY_FIELDS: dict[RiskCategory, dict[str, tuple[str, ...]]] = {
    RiskCategory.ACADEMIC: {
        "academic": ("gpa", "failed_courses", "study_habits", "learning_style"),
    },
    RiskCategory.EMOTIONAL: {
        "social_emotional": ("wellbeing_indicators", "social_engagement"),
        "behavioral": ("behavioral_patterns",),
        "financial": ("stress_level",),
    },
    RiskCategory.SKILL_DEVELOPMENT: {
        "academic": ("study_habits", "learning_style"),
        "performance": ("trend", "potential_index"),
    },
    RiskCategory.CAREER_PREPARATION: {
        "academic": ("gpa",),
        "financial": ("employment_status",),
        "performance": ("potential_index",),
    },
    RiskCategory.ATTENDANCE: {
        "attendance": ("total_absences", "consecutive_absences", "absence_patterns"),
    },
    RiskCategory.BEHAVIORAL: {
        "behavioral": ("disciplinary_incidents", "behavioral_patterns", "peer_interactions"),
    },
    RiskCategory.FINANCIAL: {
        "financial": ("stress_level", "scholarship_status", "employment_status"),
    },
    RiskCategory.SOCIAL_EMOTIONAL: {
        "social_emotional": ("social_engagement", "wellbeing_indicators"),
        "behavioral": ("peer_interactions",),
    },
}


class SignalAggregator:
    """Merges stored and fresh signals into one StudentSignalProfile."""

    def __init__(
        self,
        repository: Repository,
        sources: list[SignalSource] | None = None,
        timeout_ms: int = 30000,
        event_log: EventLogWriter | None = None,
    ):
        self.repository = repository
        self.sources = sources or []
        self.timeout_ms = timeout_ms
        self.event_log = event_log

    async def collect(self, student_id: str) -> StudentSignalProfile:
        """Build the current profile for a student and persist it.

        Returns:
            The merged profile (an empty one if nothing is known yet)
        """
        profile = await self.repository.get_profile(student_id)
        if profile is None:
            profile = StudentSignalProfile(student_id=student_id)

        if not self.sources:
            return profile

        results = await asyncio.gather(
            *[self._fetch(source, student_id) for source in self.sources]
        )

        merged_sections: list[str] = []
        for source, data in zip(self.sources, results):
            if not data:
                continue
            if not isinstance(data, dict):
                logger.warning(
                    f"Signal source {source.name} returned {type(data).__name__} "
                    f"for {student_id}, expected a dict"
                )
                continue
            profile, sections = self._merge(profile, data, source.name)
            merged_sections.extend(sections)

        if merged_sections:
            profile = profile.model_copy(update={"updated_at": datetime.now(timezone.utc)})
            await self.repository.save_profile(profile)

        record(
            self.event_log,
            student_id,
            EventKind.SIGNALS_COLLECTED,
            {"sections": sorted(set(merged_sections))},
        )
        return profile

    async def _fetch(self, source: SignalSource, student_id: str) -> dict[str, Any] | None:
        try:
            return await asyncio.wait_for(
                source.fetch(student_id),
                timeout=self.timeout_ms / 1000,
            )
        except asyncio.TimeoutError:
            logger.warning(f"Signal source {source.name} timed out for {student_id}")
        except Exception as e:
            logger.warning(f"Signal source {source.name} failed for {student_id}: {e}")
        return None

    def _merge(
        self,
        profile: StudentSignalProfile,
        data: dict[str, Any],
        source_name: str,
    ) -> tuple[StudentSignalProfile, list[str]]:
        updates: dict[str, Any] = {}

        if data.get("grade_level") is not None:
            updates["grade_level"] = str(data["grade_level"])

        for section, model in PROFILE_SECTIONS.items():
            fresh = data.get(section)
            if not isinstance(fresh, dict):
                continue
            current = getattr(profile, section).model_dump()
            current.update({k: v for k, v in fresh.items() if v is not None})
            try:
                updates[section] = model.model_validate(current)
            except ValidationError as e:
                logger.warning(
                    f"Ignoring invalid {section} data from {source_name} "
                    f"for {profile.student_id}: {e.error_count()} errors"
                )

        sections = [key for key in updates if key in PROFILE_SECTIONS]
        return profile.model_copy(update=updates), sections

    @staticmethod
    def category_context(
        profile: StudentSignalProfile, category: RiskCategory
    ) -> dict[str, Any]:
        """Category-specific context for the insight collaborator.

        Only known values are included.
        """
        context: dict[str, Any] = {}
        for section, fields in CATEGORY_FIELDS.get(category, {}).items():
            values = getattr(profile, section).model_dump(mode="json")
            for name in fields:
                value = values.get(name)
                if value is None or value == []:
                    continue
                context[name] = value
        if profile.grade_level:
            context["grade_level"] = profile.grade_level
        return context
