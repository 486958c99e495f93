"""Tests for the server startup script."""

from api.config import Settings
from scripts.start import uvicorn_args


class TestUvicornArgs:
    """Host and port come from settings, PORT overrides the port."""

    def test_uses_api_host_and_port(self, monkeypatch):
        monkeypatch.delenv("PORT", raising=False)
        monkeypatch.delenv("API_WORKERS", raising=False)
        args = uvicorn_args(Settings(api_host="127.0.0.1", api_port=9001))

        assert args[:8] == [
            "uvicorn",
            "api.main:app",
            "--host",
            "127.0.0.1",
            "--port",
            "9001",
            "--workers",
            "1",
        ]

    def test_platform_port_wins(self, monkeypatch):
        monkeypatch.setenv("PORT", "5000")
        args = uvicorn_args(Settings(api_port=9001))
        assert args[args.index("--port") + 1] == "5000"
