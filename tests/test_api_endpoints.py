"""Tests for FastAPI REST endpoints using FakeDvl (no hardware).

Tests verify:
- Connection lifecycle (connect, disconnect, reconnect)
- Setup success and step-level failure reporting
- Salinity / sampling rate validation passthrough
- Power level reconfiguration
- Error mapping (SerialIOError/NotConnected -> 503, device failure -> 502)
"""

import pytest
from fastapi.testclient import TestClient

from api import main as api_module
from dvl_lib.controller import DvlController
from dvl_lib.errors import SerialIOError
from dvl_lib.transport import Transport
from fakes.fake_dvl import FAST_TIMING, FakeDvl


@pytest.fixture(autouse=True)
def reset_singletons():
    """Reset the global controller before and after each test."""
    api_module._controller = None
    yield
    api_module._controller = None


@pytest.fixture
def client():
    """FastAPI test client."""
    return TestClient(api_module.app)


@pytest.fixture
def fake_dvl():
    """Create a FakeDvl instance with login prompts pending."""
    return FakeDvl()


@pytest.fixture
def monkeypatch_open(monkeypatch, fake_dvl):
    """Monkeypatch DvlController.open to bind to FakeDvl with fast timing."""
    def mock_open(url: str, **kwargs):
        controller = DvlController(Transport(fake_dvl), timing=FAST_TIMING, **kwargs)
        controller._url = url
        return controller

    monkeypatch.setattr(DvlController, "open", mock_open)


# =============================================================================
# Health Check
# =============================================================================

def test_root_health_check(client):
    """Test GET / returns service info."""
    response = client.get("/")
    assert response.status_code == 200
    assert response.json()["status"] == "online"


def test_health(client):
    """Test GET /health."""
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["service"] == "DVL Control API"


def test_status_disconnected(client):
    """Test GET /status without a controller."""
    response = client.get("/status")
    assert response.status_code == 200
    data = response.json()
    assert data["connected"] is False
    assert data["state"] == "disconnected"
    assert data["mode"] == "unknown"


# =============================================================================
# Lifecycle
# =============================================================================

def test_connect_and_status(client, monkeypatch_open):
    """Test POST /connect creates a controller and /status reflects it."""
    response = client.post("/connect", params={"url": "socket://10.0.0.5:9000"})
    assert response.status_code == 200
    assert response.json() == {"status": "connected", "url": "socket://10.0.0.5:9000"}

    data = client.get("/status").json()
    assert data["connected"] is True
    assert data["state"] == "disconnected"
    assert data["url"] == "socket://10.0.0.5:9000"
    assert data["salinity"] == 35.0
    assert data["sampling_rate"] == 5.0


def test_double_connect_rejected(client, monkeypatch_open):
    """Test connecting twice returns 400."""
    client.post("/connect")
    response = client.post("/connect")
    assert response.status_code == 400


def test_connect_failure_maps_to_503(client, monkeypatch):
    """Test SerialIOError on open maps to 503."""
    def failing_open(url: str, **kwargs):
        raise SerialIOError(f"Failed to open {url}: refused")

    monkeypatch.setattr(DvlController, "open", failing_open)

    response = client.post("/connect")
    assert response.status_code == 503
    assert "refused" in response.json()["detail"]


def test_setup_requires_connection(client):
    """Test device operations without a controller return 503."""
    assert client.post("/setup").status_code == 503
    assert client.post("/salinity", json={"value": 30.0}).status_code == 503
    assert client.post("/power_level", json={"level": "max"}).status_code == 503


def test_disconnect_powers_down(client, monkeypatch_open, fake_dvl):
    """Test POST /disconnect closes the link."""
    fake_dvl.start_logged_in()
    client.post("/connect")

    response = client.post("/disconnect")

    assert response.status_code == 200
    assert "POWERDOWN" in fake_dvl.commands()
    assert not fake_dvl.is_open
    assert api_module._controller is None


# =============================================================================
# Setup and Reconfiguration
# =============================================================================

def test_setup_success(client, monkeypatch_open, fake_dvl):
    """Test POST /setup runs the sequence and leaves the device measuring."""
    client.post("/connect")

    response = client.post("/setup")

    assert response.status_code == 200
    assert response.json()["state"] == "measurement_mode"
    assert fake_dvl.last_command() == "START"
    assert client.get("/status").json()["mode"] == "measurement"


def test_setup_failure_reports_step(client, monkeypatch_open, fake_dvl):
    """Test a failed step is reported as 502 with the step and reply."""
    fake_dvl.error_prefixes = {"SETDVL"}
    client.post("/connect")

    response = client.post("/setup")

    assert response.status_code == 502
    detail = response.json()["detail"]
    assert detail["step"] == "set_dvl"
    assert detail["exchange"]["failure"] == "unexpected_reply"
    assert detail["exchange"]["received"] == "ERROR\\r\\n"
    assert detail["exchange"]["expected"] == "OK\\r\\n"


def test_salinity_validation(client, monkeypatch_open):
    """Test out-of-range salinity is ignored, not rejected."""
    client.post("/connect")

    response = client.post("/salinity", json={"value": 20.0})
    assert response.json() == {"accepted": True, "value": 20.0}

    response = client.post("/salinity", json={"value": 75.0})
    assert response.status_code == 200
    assert response.json() == {"accepted": False, "value": 20.0}


def test_sampling_rate_validation(client, monkeypatch_open):
    """Test out-of-range sampling rate is ignored, not rejected."""
    client.post("/connect")

    assert client.post("/sampling_rate", json={"value": 8.0}).json()["accepted"] is True
    response = client.post("/sampling_rate", json={"value": 0.5})
    assert response.json() == {"accepted": False, "value": 8.0}


def test_power_level(client, monkeypatch_open, fake_dvl):
    """Test POST /power_level sends SETBT then START."""
    fake_dvl.start_logged_in()
    client.post("/connect")

    response = client.post("/power_level", json={"level": "med"})

    assert response.status_code == 200
    assert response.json()["command"] == "SETBT,PL=-10.000000"
    assert fake_dvl.commands()[-2:] == ["SETBT,PL=-10.000000", "START"]


def test_power_level_failure(client, monkeypatch_open, fake_dvl):
    """Test a rejected SETBT maps to 502 while START is still attempted."""
    fake_dvl.start_logged_in()
    fake_dvl.error_prefixes = {"SETBT"}
    client.post("/connect")

    response = client.post("/power_level", json={"level": "min"})

    assert response.status_code == 502
    assert fake_dvl.last_command() == "START"


def test_power_level_invalid(client, monkeypatch_open):
    """Test unknown power level names are rejected by validation."""
    client.post("/connect")
    response = client.post("/power_level", json={"level": "loud"})
    assert response.status_code == 422


def test_reconnect_after_fault(client, monkeypatch_open, fake_dvl, monkeypatch):
    """Test POST /reconnect resets a faulted session."""
    fake_dvl.fail_writes = True
    client.post("/connect")
    assert client.post("/setup").status_code == 502
    assert client.get("/status").json()["state"] == "faulted"

    monkeypatch.setattr(Transport, "open", classmethod(lambda cls, url, baud=115200: Transport(FakeDvl())))

    response = client.post("/reconnect")

    assert response.status_code == 200
    assert response.json()["state"] == "disconnected"


def test_status_takes_device_lock(client, monkeypatch_open, monkeypatch):
    """Test GET /status reads the controller under the same lock as device operations."""
    client.post("/connect")

    class RecordingLock:
        def __init__(self):
            self.entered = 0

        def __enter__(self):
            self.entered += 1
            return self

        def __exit__(self, *exc):
            return False

    lock = RecordingLock()
    monkeypatch.setattr(api_module, "_lock", lock)

    response = client.get("/status")

    assert response.status_code == 200
    assert lock.entered == 1
