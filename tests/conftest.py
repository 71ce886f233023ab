from datetime import datetime, timedelta, timezone

import pytest

from brs.config import Settings
from brs.repositories.memory import MemoryRepository
from brs.services import ReportService


T0 = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


class FakeClock:
    """Manually advanced UTC clock shared by the service and the repository."""

    def __init__(self, now: datetime = T0) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def settings() -> Settings:
    return Settings(_env_file=None)


@pytest.fixture
def repository(clock) -> MemoryRepository:
    return MemoryRepository(clock=clock)


@pytest.fixture
def service(repository, settings, clock) -> ReportService:
    return ReportService(repository, settings=settings, clock=clock)
