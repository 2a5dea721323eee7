"""Shared pytest fixtures for integration and unit tests."""

from __future__ import annotations

import subprocess
import sys
from pathlib import Path
from typing import TYPE_CHECKING, Generator, TypedDict

import pytest

from tests.utils.http import reserve_port, wait_for_port

if TYPE_CHECKING:
    from _pytest.tmpdir import TempPathFactory

PROJECT_ROOT = Path(__file__).resolve().parent.parent
SERVER_ENTRYPOINT = PROJECT_ROOT / "main.py"


class ServerProcessInfo(TypedDict):
    """Metadata describing a running server fixture instance."""

    base_url: str
    host: str
    port: int
    directory: Path
    process: subprocess.Popen[str]
    log_file: Path


def _server_command(
    host: str, port: int, directory: Path, log_file: Path, extra_args: list[str]
) -> list[str]:
    # A config path that never exists keeps the site defined by the flags;
    # a later --config in extra_args wins.
    return [
        sys.executable,
        str(SERVER_ENTRYPOINT),
        "--config",
        str(directory.parent / "no-such-Caddyfile"),
        "--root",
        str(directory),
        "--host",
        host,
        "--port",
        str(port),
        "--log-destination",
        str(log_file),
        *extra_args,
    ]


def _stop(process: subprocess.Popen[str]) -> None:
    if process.poll() is not None:
        return
    process.terminate()
    try:
        process.wait(timeout=5)
    except subprocess.TimeoutExpired:
        process.kill()
        process.wait()


def _launch_server(
    host: str,
    port: int,
    directory: Path,
    extra_args: list[str] | None = None,
    startup_timeout: float = 5.0,
    scheme: str = "http",
) -> Generator[ServerProcessInfo, None, None]:
    """Run main.py until the port accepts connections, yield, then stop it."""

    log_file = directory.parent / f"{directory.name}-server.log"
    command = _server_command(host, port, directory, log_file, extra_args or [])
    with subprocess.Popen(
        command,
        cwd=PROJECT_ROOT,
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        text=True,
    ) as process:
        try:
            wait_for_port(host, port, timeout=startup_timeout)
        except RuntimeError:
            _stop(process)
            stdout, stderr = process.communicate(timeout=5)
            print(f"\nServer stdout:\n{stdout}")
            print(f"\nServer stderr:\n{stderr}")
            raise

        try:
            yield {
                "base_url": f"{scheme}://{host}:{port}",
                "host": host,
                "port": port,
                "directory": directory,
                "process": process,
                "log_file": log_file,
            }
        finally:
            _stop(process)


@pytest.fixture(scope="session")
def project_root() -> Path:
    """Expose the repository root path to tests."""

    return PROJECT_ROOT


@pytest.fixture(name="server_process")
def _server_process(
    tmp_path_factory: "TempPathFactory",
) -> Generator[ServerProcessInfo, None, None]:
    """Launch the server in a background process over an empty document root."""

    host = "127.0.0.1"
    directory = tmp_path_factory.mktemp("site-root")
    yield from _launch_server(host, reserve_port(host), directory)


@pytest.fixture()
def base_url(server_process: ServerProcessInfo) -> str:
    """Expose the running server base URL to integration tests."""

    return server_process["base_url"]
