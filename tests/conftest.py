import pytest

from tabpulse.api.services.host import InMemoryTabHost
from tabpulse.api.services.keep_alive import KeepAliveRegistry
from tabpulse.api.services.policy import PolicyStore
from tabpulse.api.services.responses import ResponseHandler
from tabpulse.api.services.scheduler import Scheduler
from tabpulse.api.services.signals import SignalIngestor
from tabpulse.api.services.storage import MemorySessionStorage
from tabpulse.api.services.tab_state import TabStateStore
from tabpulse.model.models import TabInfo
from tabpulse.ui.notifications import NotificationService

MINUTE_MS = 60 * 1000
T0 = 1_700_000_000_000


class FakeClock:
    """テスト用の手動クロック（ミリ秒）"""

    def __init__(self, now: int = T0) -> None:
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> int:
        self.now += ms
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def storage():
    return MemorySessionStorage()


@pytest.fixture
def tab_states(storage):
    return TabStateStore(storage)


@pytest.fixture
def keep_alive(storage):
    return KeepAliveRegistry(storage)


@pytest.fixture
def policy_store(storage):
    return PolicyStore(storage)


@pytest.fixture
def host():
    return InMemoryTabHost()


@pytest.fixture
def alerts():
    return NotificationService()


@pytest.fixture
def scheduler(tab_states, keep_alive, policy_store, host, alerts, clock):
    return Scheduler(tab_states, keep_alive, policy_store, host, alerts, clock)


@pytest.fixture
def responses(scheduler, tab_states, keep_alive, policy_store, host, alerts, clock):
    return ResponseHandler(
        scheduler, tab_states, keep_alive, policy_store, host, alerts, clock
    )


@pytest.fixture
def signals(tab_states, responses, host, alerts, clock):
    return SignalIngestor(tab_states, responses, host, alerts, clock)


@pytest.fixture
def add_tab(host):
    """ホストにタブを登録するヘルパー"""

    def _add(tab_id: int = 1, url: str = "https://example.com/page", **kw) -> TabInfo:
        kw.setdefault("title", f"Tab {tab_id}")
        return host.upsert(TabInfo(id=tab_id, url=url, **kw))

    return _add
