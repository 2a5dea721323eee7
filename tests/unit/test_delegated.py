"""Unit tests for the certbot-backed certificate provider."""

import subprocess
import threading
import time
from pathlib import Path
from typing import Callable, Optional

import pytest

from siteserve.certificates.base import (
    CertificateIssuanceError,
    CertificateNotFoundError,
    IssuanceToolNotFoundError,
)
from siteserve.certificates.delegated import DelegatedCertificateProvider
from tests.utils.certs import write_certificate

DOMAIN = "example.test"


class FakeRunner:
    """Stands in for subprocess.run and records every command line."""

    def __init__(
        self,
        returncode: int = 0,
        stderr: str = "",
        on_call: Optional[Callable[[list], None]] = None,
    ) -> None:
        self.returncode = returncode
        self.stderr = stderr
        self.on_call = on_call
        self.calls: list[list[str]] = []

    def __call__(self, command, **kwargs):
        assert kwargs == {"capture_output": True, "text": True, "check": False}
        self.calls.append(list(command))
        if command[1] == "--version":
            return subprocess.CompletedProcess(command, 0, "certbot 2.9.0\n", "")
        if self.on_call is not None:
            self.on_call(command)
        return subprocess.CompletedProcess(command, self.returncode, "", self.stderr)

    @property
    def work_calls(self) -> list[list[str]]:
        return [call for call in self.calls if call[1] != "--version"]


@pytest.fixture(name="certbot")
def _certbot(tmp_path: Path) -> str:
    """Create an executable stand-in and make shutil.which return it."""
    tool = tmp_path / "bin" / "certbot"
    tool.parent.mkdir()
    tool.write_text("#!/bin/sh\nexit 0\n")
    tool.chmod(0o755)
    return str(tool)


@pytest.fixture(name="which")
def _which(certbot: str, monkeypatch: pytest.MonkeyPatch) -> str:
    monkeypatch.setattr(
        "siteserve.certificates.delegated.shutil.which",
        lambda name: certbot if name == "certbot" else None,
    )
    return certbot


def _provider(tmp_path: Path, runner: FakeRunner, staging: bool = False):
    return DelegatedCertificateProvider(
        email="ops@example.test",
        webroot=tmp_path / "webroot",
        cert_root=tmp_path / "live",
        staging=staging,
        runner=runner,
    )


def _issue(tmp_path: Path, days_left: int = 90) -> Callable[[list], None]:
    def write(_command) -> None:
        write_certificate(
            tmp_path / "live" / DOMAIN / "fullchain.pem",
            tmp_path / "live" / DOMAIN / "privkey.pem",
            common_name=DOMAIN,
            days_left=days_left,
        )

    return write


def test_missing_tool_raises_with_install_hint(tmp_path, monkeypatch):
    monkeypatch.setattr("siteserve.certificates.delegated.shutil.which", lambda name: None)
    runner = FakeRunner()

    with pytest.raises(IssuanceToolNotFoundError) as excinfo:
        _provider(tmp_path, runner).ensure(DOMAIN)

    assert "brew install certbot" in str(excinfo.value)
    assert "apt-get install certbot" in str(excinfo.value)
    assert runner.calls == []


def test_tool_that_fails_version_check_is_treated_as_missing(tmp_path, which):
    def broken(command, **kwargs):
        return subprocess.CompletedProcess(command, 127, "", "not found")

    provider = DelegatedCertificateProvider(
        "ops@example.test", tmp_path / "webroot", tmp_path / "live", runner=broken
    )
    with pytest.raises(IssuanceToolNotFoundError):
        provider.ensure(DOMAIN)


def test_valid_stored_certificate_is_reused(tmp_path, which):
    _issue(tmp_path, days_left=60)(None)
    runner = FakeRunner()

    certificate = _provider(tmp_path, runner).ensure(DOMAIN)

    assert certificate.certificate_path == tmp_path / "live" / DOMAIN / "fullchain.pem"
    assert DOMAIN in certificate.subject_names
    assert runner.work_calls == []


def test_expiring_certificate_triggers_certonly(tmp_path, which):
    _issue(tmp_path, days_left=10)(None)
    runner = FakeRunner(on_call=_issue(tmp_path))

    certificate = _provider(tmp_path, runner).ensure(DOMAIN)

    assert runner.work_calls == [
        [
            which,
            "certonly",
            "--webroot",
            "--webroot-path",
            str(tmp_path / "webroot"),
            "--email",
            "ops@example.test",
            "--agree-tos",
            "--non-interactive",
            "--domains",
            DOMAIN,
        ]
    ]
    assert (tmp_path / "webroot").is_dir()
    assert not certificate.expires_within(30)


def test_staging_and_call_overrides(tmp_path, which):
    runner = FakeRunner(on_call=_issue(tmp_path))
    provider = _provider(tmp_path, runner, staging=True)

    provider.ensure(DOMAIN, email="other@example.test", webroot=tmp_path / "alt")

    command = runner.work_calls[0]
    assert command[-1] == "--staging"
    assert command[command.index("--email") + 1] == "other@example.test"
    assert command[command.index("--webroot-path") + 1] == str(tmp_path / "alt")


def test_nonzero_exit_raises_issuance_error_with_stderr(tmp_path, which):
    runner = FakeRunner(returncode=1, stderr="Challenge failed for domain example.test")

    with pytest.raises(CertificateIssuanceError) as excinfo:
        _provider(tmp_path, runner).ensure(DOMAIN)

    assert "Challenge failed" in str(excinfo.value)
    assert "status 1" in str(excinfo.value)


def test_success_without_artifacts_raises_not_found(tmp_path, which):
    with pytest.raises(CertificateNotFoundError):
        _provider(tmp_path, FakeRunner()).ensure(DOMAIN)


def test_renew_runs_for_single_certificate(tmp_path, which):
    _issue(tmp_path, days_left=60)(None)
    runner = FakeRunner()

    certificate = _provider(tmp_path, runner).renew(DOMAIN)

    assert runner.work_calls == [
        [which, "renew", "--cert-name", DOMAIN, "--non-interactive"]
    ]
    assert DOMAIN in certificate.subject_names


def test_renew_failure_raises(tmp_path, which):
    runner = FakeRunner(returncode=2, stderr="renewal failed")
    with pytest.raises(CertificateIssuanceError):
        _provider(tmp_path, runner).renew(DOMAIN)


def test_renew_all(tmp_path, which):
    runner = FakeRunner()
    _provider(tmp_path, runner).renew_all()
    assert runner.work_calls == [[which, "renew", "--non-interactive"]]


def test_concurrent_first_ensure_issues_once(tmp_path, which):
    """Callers racing on a fresh domain share one certonly run."""
    issue = _issue(tmp_path)

    def slow_issue(command) -> None:
        time.sleep(0.2)
        issue(command)

    runner = FakeRunner(on_call=slow_issue)
    provider = _provider(tmp_path, runner)
    start = threading.Barrier(4)
    results = []

    def call_ensure():
        start.wait()
        results.append(provider.ensure(DOMAIN))

    threads = [threading.Thread(target=call_ensure) for _ in range(4)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(10)

    assert len(results) == 4
    assert [call[1] for call in runner.work_calls] == ["certonly"]
    assert len({result.certificate_bytes for result in results}) == 1
