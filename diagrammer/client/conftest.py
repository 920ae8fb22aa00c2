"""Client test fixtures."""

import pytest

from diagrammer.loop.conftest import result_cache, structural_validator  # noqa: F401


@pytest.fixture
def recorded_sleeps() -> list[float]:
    return []


@pytest.fixture
def fake_sleep(recorded_sleeps):
    """Backoff sleep that records delays instead of waiting."""

    async def sleep(delay: float) -> None:
        recorded_sleeps.append(delay)

    return sleep
