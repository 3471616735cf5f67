"""
Root conftest — isolate service environment variables so that Settings
tests are not affected by a developer's or CI's real configuration, and
provide an in-memory socket.io client for transport tests.
"""
import pytest
from socketio import exceptions as sio_exceptions

_SERVICE_ENV_VARS = [
    "API_URL",
    "COPYPAIST_CONFIG",
    "SERVER__API_URL",
    "SERVER__SOCKET_URL",
    "SESSION__MODEL",
    "SESSION__MAX_ROUNDS",
]


@pytest.fixture(autouse=True)
def _clear_service_env(monkeypatch):
    """Remove service env vars for every test so Settings() only sees what
    the test provides. Also disables .env file loading so local developer
    .env files don't leak into tests."""
    for var in _SERVICE_ENV_VARS:
        monkeypatch.delenv(var, raising=False)

    import copypaist.config.settings as settings_module
    from pydantic_settings import SettingsConfigDict
    patched_config = SettingsConfigDict(
        env_file=None,
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
        case_sensitive=False,
    )
    monkeypatch.setattr(settings_module.Settings, "model_config", patched_config)


class FakeSocketClient:
    """
    Stands in for socketio.AsyncClient.

    Each successful connect() assigns a new socket id (sock-1, sock-2, ...)
    and fires the registered `connect` handler, like the real client does
    once the namespace handshake completes.
    """

    def __init__(self):
        self.handlers = {}
        self.connected = False
        self.connect_calls = 0
        self.refuse = False       # connect() raises ConnectionError
        self.acknowledge = True   # connect() fires the `connect` event
        self._sid = None

    def on(self, event, handler=None):
        self.handlers[event] = handler

    async def connect(self, url, **kwargs):
        self.connect_calls += 1
        if self.refuse:
            raise sio_exceptions.ConnectionError("Connection refused by the server")
        self.connected = True
        self._sid = f"sock-{self.connect_calls}"
        if self.acknowledge:
            self.handlers["connect"]()

    def get_sid(self, namespace=None):
        return self._sid

    async def disconnect(self):
        self.drop("client disconnect")

    def drop(self, reason="transport close"):
        """The server closes the socket."""
        self.connected = False
        self.handlers["disconnect"](reason)

    def deliver(self, event, payload):
        """The server emits `event` with `payload`."""
        self.handlers[event](payload)


@pytest.fixture
def socket_client():
    return FakeSocketClient()
