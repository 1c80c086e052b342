"""Shared fakes and fixtures."""

import asyncio

import pytest

from lodestar.catalog import load_catalog
from lodestar.config import Config
from lodestar.contracts import InsightKind, SupportTicket, TicketPriority
from lodestar.engine import build_engine
from lodestar.escalation import EscalationError
from lodestar.store import EventLogWriter, SQLiteRepository


class FakeInsightClient:
    """Insight client returning canned responses per kind.

    A response may be a dict, an exception to raise, or a callable taking the
    request and returning either.
    """

    def __init__(self, responses=None, delay: float = 0.0):
        self.responses = dict(responses or {})
        self.delay = delay
        self.requests = []

    async def generate(self, request):
        self.requests.append(request)
        if self.delay:
            await asyncio.sleep(self.delay)
        response = self.responses.get(request.kind, {})
        if callable(response):
            response = response(request)
        if isinstance(response, BaseException):
            raise response
        return response

    def requests_of(self, kind: InsightKind):
        return [r for r in self.requests if r.kind == kind]


class FakeEscalationSink:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.tickets = []

    async def create_ticket(self, intervention_id, priority: TicketPriority, description):
        if self.fail:
            raise EscalationError("ticket system down")
        ticket = SupportTicket(
            intervention_id=intervention_id,
            priority=priority,
            description=description,
        )
        self.tickets.append(ticket)
        return ticket


def plan_response(**overrides):
    plan = {
        "strategic_objectives": ["Raise GPA above 2.5"],
        "action_steps": ["Weekly tutoring", "Study plan review"],
        "support_mechanisms": ["Peer tutor"],
        "expected_outcomes": ["Improved grades"],
        "description": "Academic recovery plan",
        "expected_duration_weeks": 10,
    }
    plan.update(overrides)
    return plan


@pytest.fixture
def repository(tmp_path):
    return SQLiteRepository(tmp_path / "lodestar.db")


@pytest.fixture
def event_log(tmp_path):
    return EventLogWriter(tmp_path / "events.db")


@pytest.fixture
def catalog():
    return load_catalog()


@pytest.fixture
def insight():
    return FakeInsightClient()


@pytest.fixture
def escalation():
    return FakeEscalationSink()


@pytest.fixture
def config(tmp_path):
    # An empty config.py keeps a developer's own config out of the tests
    empty = tmp_path / "config.py"
    empty.write_text("")
    return Config(
        config_path=empty,
        INSIGHT_API_KEY="test-key",
        DATA_DIR=str(tmp_path),
        CALL_TIMEOUT_MS=1000,
    )


@pytest.fixture
def engine(config, repository, insight, escalation, event_log, catalog):
    return build_engine(
        config,
        insight=insight,
        repository=repository,
        escalation=escalation,
        event_log=event_log,
        catalog=catalog,
    )
