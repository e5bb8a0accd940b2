import os
import sys
from pathlib import Path
from typing import Any, Callable, List

import pytest

# Ensure repository root is on sys.path so the in-tree package imports cleanly.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from prdgate.config import Config, _reset_config_for_tests  # noqa: E402
from prdgate.db.database import SQLiteDatabase  # noqa: E402
from prdgate.llm.gateway import LLMGateway, LLMRequest, LLMResponse, LLMUsage, RetryPolicy  # noqa: E402
from prdgate.services.base import ServiceContext  # noqa: E402


class FakeTransport:
    """
    Scripted transport. Each call consumes the next outcome; the last one repeats.

    An outcome is response text, an exception to raise, or a callable
    taking the LLMRequest.
    """

    def __init__(self, *outcomes: Any) -> None:
        self.outcomes: List[Any] = list(outcomes)
        self.requests: List[LLMRequest] = []

    async def complete(self, request: LLMRequest) -> LLMResponse:
        self.requests.append(request)
        outcome = self.outcomes.pop(0) if len(self.outcomes) > 1 else self.outcomes[0]
        if isinstance(outcome, BaseException):
            raise outcome
        if callable(outcome):
            outcome = outcome(request)
            if isinstance(outcome, LLMResponse):
                return outcome
        return LLMResponse(
            content=outcome,
            usage=LLMUsage(prompt_tokens=10, completion_tokens=20, total_tokens=30),
            model=request.model,
        )

    @property
    def calls(self) -> int:
        return len(self.requests)


@pytest.fixture(autouse=True)
def _isolate_config(monkeypatch: pytest.MonkeyPatch):
    for key in list(os.environ):
        if key.startswith("PRDGATE_"):
            monkeypatch.delenv(key, raising=False)
    _reset_config_for_tests()
    yield
    _reset_config_for_tests()


@pytest.fixture
def config(tmp_path: Path) -> Config:
    return Config(
        db_path=tmp_path / "prdgate.sqlite",
        llm_api_key="test-key",
        llm_backoff_seconds=0.0,
    )


@pytest.fixture
def context(config: Config) -> ServiceContext:
    return ServiceContext(config=config, request_id="req-test")


@pytest.fixture
def db(tmp_path: Path) -> SQLiteDatabase:
    database = SQLiteDatabase(tmp_path / "store.sqlite")
    database.init_schema()
    return database


@pytest.fixture
def make_gateway(config: Config) -> Callable[..., LLMGateway]:
    def factory(*outcomes: Any, backoff_seconds: float = 0.0) -> LLMGateway:
        return LLMGateway(
            config,
            transport=FakeTransport(*outcomes),
            retry_policy=RetryPolicy(backoff_seconds=backoff_seconds),
        )

    return factory
