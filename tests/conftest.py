# tests/conftest.py
"""Shared test fixtures.

- tracker: in-memory tracker with the models in tests/helpers/models.py
- session: SQLAlchemy session on in-memory SQLite with the demo schema

Hypothesis Configuration:
- "ci" profile: Fast tests for CI (100 examples) - default
- "nightly" profile: Thorough tests (1000 examples)
- "debug" profile: Minimal tests with verbose output (10 examples)

Set profile via environment variable:
    HYPOTHESIS_PROFILE=nightly pytest tests/property/
"""

import os
from collections.abc import Iterator

import pytest
from hypothesis import Phase, Verbosity, settings
from sqlalchemy.orm import Session

from changegraph.core.config import DatabaseSettings
from changegraph.demo import create_demo_engine
from changegraph.providers.memory import InMemoryChangeTracker
from tests.helpers.models import make_tracker


@pytest.fixture
def tracker() -> InMemoryChangeTracker:
    """Empty in-memory tracker with every test model registered."""
    return make_tracker()


@pytest.fixture
def session() -> Iterator[Session]:
    """Session on a fresh in-memory SQLite database with the demo schema.

    expire_on_commit=False keeps committed values loaded, so old values
    are known when a test changes them after a commit.
    """
    engine = create_demo_engine(DatabaseSettings())
    with Session(engine, expire_on_commit=False) as db_session:
        yield db_session
    engine.dispose()


# =============================================================================
# Hypothesis Configuration
# =============================================================================

# CI profile: Fast tests for continuous integration
settings.register_profile(
    "ci",
    max_examples=100,
    phases=[Phase.explicit, Phase.reuse, Phase.generate, Phase.shrink],
    deadline=None,  # Disable deadline for CI (timing varies)
)

# Nightly profile: Thorough testing for scheduled runs
settings.register_profile(
    "nightly",
    max_examples=1000,
    phases=[Phase.explicit, Phase.reuse, Phase.generate, Phase.shrink],
    deadline=None,
)

# Debug profile: Minimal examples with verbose output for debugging
settings.register_profile(
    "debug",
    max_examples=10,
    verbosity=Verbosity.verbose,
    phases=[Phase.explicit, Phase.reuse, Phase.generate, Phase.shrink],
    deadline=None,
)

# Load profile from environment, default to "ci"
settings.load_profile(os.getenv("HYPOTHESIS_PROFILE", "ci"))
