"""
Pytest configuration and shared fixtures for backend tests.

WHAT: Centralized test configuration with markers and shared test utilities
WHY: Every test gets an isolated database, a clean provider singleton and
     fast, seeded simulators
HOW: Environment set before the app is imported; fixtures build the core
     components with injected fakes
"""

import asyncio
import os
import random
import tempfile
from pathlib import Path

# Settings are read once at import; point storage at a scratch directory first
_TEST_DIR = Path(tempfile.mkdtemp(prefix="setu-tests-"))
os.environ["DATABASE_URL"] = f"sqlite:///{_TEST_DIR / 'test.db'}"
os.environ["LOG_FILE"] = str(_TEST_DIR / "logs" / "app.log")
os.environ["MARKET_API_KEY"] = ""
os.environ["LLM_PROVIDER"] = "lm_studio"

import pytest

from setu.core.database import init_db
from setu.llm.provider_factory import reset_provider, set_provider
from setu.models.dialogue import CollectedSlots
from setu.models.extraction import SlotExtractionResult
from setu.services.audit_sink import InMemoryAuditSink
from setu.services.broadcast_simulator import BroadcastSimulator, SimulatorConfig
from setu.services.dialogue_machine import DialogueStateMachine
from setu.services.listing_validator import validate
from setu.services.pricing_learner import PricingLearner
from setu.services.slot_extractor import merge_update
from setu.services.stage_table import select_next_stage, slot_bits

from tests.fixtures.mock_llm import MockLLMProvider


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "unit: Unit tests (isolated component tests)"
    )
    config.addinivalue_line(
        "markers", "integration: Integration tests (multiple components)"
    )
    config.addinivalue_line(
        "markers", "slow: Tests that take significant time to run"
    )
    config.addinivalue_line(
        "markers", "requires_lm_studio: Tests that require running LM Studio instance"
    )


@pytest.fixture(autouse=True)
def reset_provider_singleton():
    """
    Reset provider singleton before each test.

    WHAT: Clear provider cache between tests
    WHY: Prevent test pollution and ensure clean state
    HOW: Call reset_provider() before and after each test
    """
    reset_provider()
    yield
    reset_provider()


@pytest.fixture(scope="session", autouse=True)
def database():
    """Create tables once in the scratch database."""
    init_db()
    yield _TEST_DIR / "test.db"


async def no_sleep(_seconds: float) -> None:
    """Injected sleep: yields to the loop without waiting."""
    await asyncio.sleep(0)


@pytest.fixture
def mock_provider():
    """Scripted provider installed as the process-wide singleton."""
    provider = MockLLMProvider()
    set_provider(provider)
    return provider


class StubExtractor:
    """
    Extractor double that returns scripted slot dicts.

    Each script entry is a dict of already-normalized slots, optionally with
    "confirmation" and "localized_reply" keys, or an exception to raise.
    """

    def __init__(self, script=None):
        self.script = list(script or [])
        self.calls = []

    async def extract(self, session, utterance):
        self.calls.append((session.stage, utterance))
        entry = self.script.pop(0) if self.script else {}
        if isinstance(entry, Exception):
            raise entry

        entry = dict(entry)
        confirmation = entry.pop("confirmation", None)
        reply = entry.pop("localized_reply", "")
        preview = session.slots.model_copy(update=merge_update(entry))
        return SlotExtractionResult(
            slots=entry,
            confirmation=confirmation,
            suggested_stage=select_next_stage(session.stage, slot_bits(preview), confirmation),
            localized_reply=reply,
        )


@pytest.fixture
def stub_extractor():
    return StubExtractor()


@pytest.fixture
def machine(stub_extractor):
    """Dialogue machine on the stub extractor with the static market spread."""
    return DialogueStateMachine(extractor=stub_extractor, oracle=None)


@pytest.fixture
def audit_sink():
    return InMemoryAuditSink()


@pytest.fixture
def learner():
    return PricingLearner(alpha=0.2, low=0.8, high=1.2, saturation_cap=50)


@pytest.fixture
def make_simulator(learner, audit_sink):
    """
    Factory for fast simulators.

    Usage:
        simulator = make_simulator(seed=7, config=SimulatorConfig(p_timeout=1.0))
    """
    def _make(seed: int = 42, config: SimulatorConfig | None = None, **kwargs):
        kwargs.setdefault("learner", learner)
        kwargs.setdefault("audit_sink", audit_sink)
        return BroadcastSimulator(
            config=config or SimulatorConfig(),
            rng=random.Random(seed),
            sleep=no_sleep,
            **kwargs
        )
    return _make


def onion_listing(price: float | None = 40.0, quantity_kg: float = 100, market_quote: bool = False):
    """Valid onion listing built through the validator."""
    outcome = validate(CollectedSlots(
        commodity="onion",
        quantity_kg=quantity_kg,
        unit="kg",
        price=price,
        market_quote=market_quote,
    ))
    assert outcome.is_valid, outcome.errors
    return outcome.listing


@pytest.fixture
def make_listing():
    return onion_listing


@pytest.fixture
def listing():
    return onion_listing()

