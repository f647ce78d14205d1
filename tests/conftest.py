from __future__ import annotations

import os
import tempfile
from pathlib import Path

_TEST_DIR = Path(tempfile.mkdtemp(prefix="applystorm-tests-"))
os.environ["APP_ENV"] = "test"
os.environ["DATABASE_URL"] = f"sqlite:///{_TEST_DIR / 'applystorm.db'}"
os.environ["DATA_DIR"] = str(_TEST_DIR)
os.environ["STORE_BACKEND"] = "sql"
os.environ["RESEND_API_KEY"] = ""
os.environ["OPENAI_API_KEY"] = ""
os.environ["LOCAL_LLM_ENABLED"] = "false"
os.environ["SEND_DELAY_MS"] = "0"
os.environ["USER_DELAY_MS"] = "0"
os.environ["ENHANCEMENT_DELAY_MS"] = "0"

import pytest  # noqa: E402

from applystorm.config import Settings, get_settings  # noqa: E402
from applystorm.core.taxonomy import reset_taxonomy  # noqa: E402
from applystorm.db.base import Base  # noqa: E402
from applystorm.db.init import get_store  # noqa: E402
from applystorm.db.session import engine  # noqa: E402
from applystorm.db.store import MemoryDocumentStore  # noqa: E402
from applystorm.errors import DeliveryFailure  # noqa: E402
from applystorm.types import OutboundEmail  # noqa: E402


class RecordingMailer:
    """Collects outbound messages; recipients in `failing` raise DeliveryFailure."""

    def __init__(self, failing: set[str] | None = None):
        self.failing = failing or set()
        self.messages: list[OutboundEmail] = []

    async def send(self, message: OutboundEmail) -> str | None:
        if message.to in self.failing:
            raise DeliveryFailure(f"rejected {message.to}", status_code=422)
        self.messages.append(message)
        return f"msg_{len(self.messages)}"

    def sent_to(self) -> list[str]:
        return [message.to for message in self.messages]


@pytest.fixture(autouse=True)
def reset_state() -> None:
    get_settings.cache_clear()
    get_store.cache_clear()
    reset_taxonomy()
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield
    get_store.cache_clear()
    reset_taxonomy()


@pytest.fixture
def settings() -> Settings:
    return Settings(
        openai_api_key="",
        local_llm_enabled=False,
        send_delay_ms=0,
        user_delay_ms=0,
        enhancement_delay_ms=0,
        detach_summary_email=False,
    )


@pytest.fixture
def store() -> MemoryDocumentStore:
    return MemoryDocumentStore()


@pytest.fixture
def mailer() -> RecordingMailer:
    return RecordingMailer()
