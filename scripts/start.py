"""Production startup script for the audit coordinator API.

Starts the API server with uvicorn. Runs live in process memory, so the
server is started with a single worker unless API_WORKERS says otherwise.
"""

import os
import signal
import sys

# Add project root to path
sys.path.insert(0, ".")


def uvicorn_args(settings=None) -> list[str]:
    """Build the uvicorn command line from API_HOST / API_PORT settings."""
    from api.config import get_settings

    settings = settings or get_settings()
    # Hosting platforms inject PORT, which wins over API_PORT
    port = os.getenv("PORT", str(settings.api_port))
    workers = os.getenv("API_WORKERS", "1")

    return [
        "uvicorn",
        "api.main:app",
        "--host",
        settings.api_host,
        "--port",
        port,
        "--workers",
        workers,
        "--proxy-headers",
        "--forwarded-allow-ips",
        "*",
    ]


def start_api() -> None:
    """Start the FastAPI application with uvicorn."""
    args = uvicorn_args()
    print(f"Starting API server on {args[3]}:{args[5]} with {args[7]} worker(s)...")

    # Use exec to replace the current process
    os.execvp("uvicorn", args)


def signal_handler(signum: int, _frame: object) -> None:
    """Handle shutdown signals gracefully."""
    print(f"Received signal {signum}, shutting down...")
    sys.exit(0)


def main() -> None:
    """Main entry point."""
    signal.signal(signal.SIGTERM, signal_handler)
    signal.signal(signal.SIGINT, signal_handler)
    start_api()


if __name__ == "__main__":
    main()
