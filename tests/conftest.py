"""Pytest configuration and fixtures for lakefs-client tests.

This file provides:
- make_client: ApiClient wired to an in-process httpx.MockTransport
- RecordingCallback: ApiCallback that records every hook invocation
- PortReservation: Race-free port allocation for test servers
- MockServer: Subprocess management for the mock lakeFS server
"""

from __future__ import annotations

import socket
import subprocess
import sys
import threading
import time
from pathlib import Path
from typing import Any, Callable, Generator

import httpx
import pytest

from lakefs_client.auth import CredentialStore
from lakefs_client.calls import ApiCallback
from lakefs_client.errors import ApiError
from lakefs_client.executor import ApiClient
from lakefs_client.models import ApiResponse, ClientConfig

# Project root for fixture paths
PROJECT_ROOT = Path(__file__).parent.parent
MOCK_SERVER_MODULE = "tests.integration.mock_server"

TEST_HOST = "http://lakefs.test/api/v1"

Handler = Callable[[httpx.Request], httpx.Response]


def make_client(
    handler: Handler,
    credentials: CredentialStore | None = None,
    **config_overrides: Any,
) -> ApiClient:
    """Create an ApiClient whose transport is the given request handler.

    Prefer this over constructing ApiClient directly in unit tests - no
    sockets are opened and the handler sees the exact httpx.Request sent.
    """
    config = ClientConfig(host=TEST_HOST, **config_overrides)
    return ApiClient(
        config,
        credentials=credentials or CredentialStore(),
        transport=httpx.MockTransport(handler),
    )


def json_response(status_code: int, payload: Any, **kwargs: Any) -> httpx.Response:
    return httpx.Response(status_code, json=payload, **kwargs)


class RecordingCallback(ApiCallback):
    """Records hook invocations and signals when the call completes."""

    def __init__(self) -> None:
        self.successes: list[ApiResponse] = []
        self.failures: list[ApiError] = []
        self.upload_progress: list[tuple[int, int, bool]] = []
        self.download_progress: list[tuple[int, int, bool]] = []
        self.completed = threading.Event()
        self.threads: list[str] = []

    def on_success(self, response: ApiResponse) -> None:
        self.threads.append(threading.current_thread().name)
        self.successes.append(response)
        self.completed.set()

    def on_failure(self, error: ApiError) -> None:
        self.threads.append(threading.current_thread().name)
        self.failures.append(error)
        self.completed.set()

    def on_upload_progress(self, bytes_written: int, content_length: int, done: bool) -> None:
        self.upload_progress.append((bytes_written, content_length, done))

    def on_download_progress(self, bytes_read: int, content_length: int, done: bool) -> None:
        self.download_progress.append((bytes_read, content_length, done))

    def wait(self, timeout: float = 5.0) -> bool:
        return self.completed.wait(timeout)


class PortReservation:
    """Holds a reserved port with socket kept open to prevent races.

    WHY this exists: find_free_port() has a race window - another process can
    grab the port between when we find it and when our server binds. This class
    keeps the socket open until just before the server starts.
    """

    def __init__(self) -> None:
        self._socket = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        self._socket.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        self._socket.bind(("127.0.0.1", 0))  # Port 0 = OS assigns ephemeral port
        self._port = self._socket.getsockname()[1]
        self._released = False

    @property
    def port(self) -> int:
        return self._port

    def release(self) -> int:
        """Release the socket and return the port for server use.

        Safe to call multiple times - subsequent calls are no-ops.
        """
        if not self._released:
            self._socket.close()
            self._released = True
        return self._port

    def __enter__(self) -> PortReservation:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.release()


def find_free_port() -> int:
    """Find an available port on localhost (racy; see PortReservation)."""
    with PortReservation() as reservation:
        return reservation.port


def wait_for_server_ready(host: str, port: int, timeout: float = 10.0) -> bool:
    """Block until server accepts TCP connections, or timeout expires."""
    start = time.time()
    while time.time() - start < timeout:
        try:
            with socket.create_connection((host, port), timeout=1.0):
                return True
        except (ConnectionRefusedError, socket.timeout, OSError):
            time.sleep(0.1)
    return False


class MockServer:
    """Manages the mock lakeFS server subprocess for integration tests."""

    def __init__(self, port: int | PortReservation) -> None:
        if isinstance(port, PortReservation):
            self._reservation = port
            self.port = port.port
        else:
            self._reservation = None
            self.port = port
        self.host = "127.0.0.1"
        self.base_url = f"http://{self.host}:{self.port}/api/v1"
        self._process: subprocess.Popen | None = None

    def start(self) -> None:
        """Start the mock server subprocess.

        Raises:
            RuntimeError: If server fails to start within 10 seconds.
        """
        if self._reservation:
            self._reservation.release()

        self._process = subprocess.Popen(
            [
                sys.executable, "-m", MOCK_SERVER_MODULE,
                "--host", self.host,
                "--port", str(self.port),
            ],
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            cwd=PROJECT_ROOT,
        )

        if not wait_for_server_ready(self.host, self.port):
            stderr = ""
            if self._process and self._process.stderr:
                stderr = self._process.stderr.read().decode(errors="replace")
            self.stop()
            raise RuntimeError(
                f"MockServer failed to start on port {self.port}. "
                f"stderr: {stderr or '(empty)'}"
            )

    def stop(self) -> None:
        """Stop the mock server subprocess, escalating to SIGKILL after 5s."""
        if self._process:
            self._process.terminate()
            try:
                self._process.wait(timeout=5)
            except subprocess.TimeoutExpired:
                self._process.kill()
                try:
                    self._process.wait(timeout=5)
                except subprocess.TimeoutExpired:
                    pass  # Process is unkillable (zombie?), nothing more we can do
            self._process = None

    def __enter__(self) -> MockServer:
        self.start()
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.stop()


# =============================================================================
# Pytest Fixtures
# =============================================================================


@pytest.fixture(scope="session")
def mock_lakefs() -> Generator[MockServer, None, None]:
    """Mock lakeFS server, started once per test session."""
    with MockServer(PortReservation()) as server:
        yield server


@pytest.fixture
def recording_callback() -> RecordingCallback:
    return RecordingCallback()


# =============================================================================
# Pytest Hooks
# =============================================================================


def pytest_collection_modifyitems(
    config: pytest.Config, items: list[pytest.Item]
) -> None:
    """Automatically apply markers based on test location.

    Enables running subsets via:
        pytest -m integration  # only integration tests
        pytest -m unit         # only unit tests
    """
    for item in items:
        test_path = Path(item.fspath)
        if "integration" in test_path.parts:
            item.add_marker(pytest.mark.integration)
        else:
            item.add_marker(pytest.mark.unit)
