import pytest

from trace_relay import __main__ as entrypoint
from trace_relay.config import get_settings


@pytest.fixture
def uvicorn_calls(monkeypatch: pytest.MonkeyPatch) -> list[dict]:
    calls: list[dict] = []

    def fake_run(app, **kwargs) -> None:
        calls.append({"app": app, **kwargs})

    monkeypatch.setattr(entrypoint.uvicorn, "run", fake_run)
    monkeypatch.setattr(entrypoint, "configure_logging", lambda *args, **kwargs: None)
    return calls


def test_main_exits_nonzero_without_license_key(monkeypatch, uvicorn_calls) -> None:
    monkeypatch.delenv("TELEMETRY_LICENSE_KEY")
    get_settings.cache_clear()

    assert entrypoint.main([]) == 1
    # No listener is ever started.
    assert uvicorn_calls == []


def test_main_serves_and_returns_zero_on_shutdown(uvicorn_calls) -> None:
    assert entrypoint.main(["--port", "9123"]) == 0

    (call,) = uvicorn_calls
    assert call["host"] == "0.0.0.0"
    assert call["port"] == 9123
    assert call["app"].state.settings.license_key == "test-license-key"


@pytest.mark.parametrize("exit_code", [1, 3])
def test_main_reports_listen_failure(monkeypatch, uvicorn_calls, exit_code) -> None:
    # uvicorn logs the bind error and exits instead of raising OSError.
    def failing_run(app, **kwargs) -> None:
        raise SystemExit(exit_code)

    monkeypatch.setattr(entrypoint.uvicorn, "run", failing_run)
    assert entrypoint.main([]) == 1


def test_main_graceful_exit_returns_zero(monkeypatch, uvicorn_calls) -> None:
    def exiting_run(app, **kwargs) -> None:
        raise SystemExit(0)

    monkeypatch.setattr(entrypoint.uvicorn, "run", exiting_run)
    assert entrypoint.main([]) == 0


def test_main_honours_explicit_port_zero_and_empty_host(monkeypatch, uvicorn_calls) -> None:
    monkeypatch.setenv("PORT", "8081")
    monkeypatch.setenv("HOST", "127.0.0.1")
    get_settings.cache_clear()

    assert entrypoint.main(["--port", "0", "--host", ""]) == 0

    (call,) = uvicorn_calls
    assert call["port"] == 0
    assert call["host"] == ""


def test_main_falls_back_to_settings(monkeypatch, uvicorn_calls) -> None:
    monkeypatch.setenv("PORT", "8081")
    monkeypatch.setenv("HOST", "127.0.0.1")
    get_settings.cache_clear()

    assert entrypoint.main([]) == 0

    (call,) = uvicorn_calls
    assert call["port"] == 8081
    assert call["host"] == "127.0.0.1"
