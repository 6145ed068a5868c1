import subprocess
from unittest.mock import patch

import pytest

import jira_wrap

CONFIG_TEXT = """[jira]
url=https://example.atlassian.net/
project=KAN
api_version=3

[defaults]
limit=10
type=Task
priority=Medium
"""


@pytest.fixture
def project_dir(tmp_path):
    """A project directory holding a valid .jira-config.ini."""
    directory = tmp_path / "project"
    directory.mkdir()
    (directory / jira_wrap.Constants.PROJECT_CONFIG_FILE).write_text(CONFIG_TEXT)
    return directory


@pytest.fixture
def credentials_path(tmp_path):
    return tmp_path / "home" / ".config" / "jira-cli" / "credentials"


@pytest.fixture
def stored_credentials(credentials_path):
    credentials_path.parent.mkdir(parents=True)
    credentials_path.write_text("user@example.com:secret-token\n")
    return credentials_path


@pytest.fixture
def environ(credentials_path):
    """A minimal environment that never points at the real home directory."""
    return {"JIRA_CREDENTIALS_FILE": str(credentials_path)}


@pytest.fixture
def no_external_calls():
    """Fail the test if any process is spawned or HTTP request is sent."""
    with patch("jira_wrap.subprocess.run") as mock_run, patch.object(
        jira_wrap.requests.Session, "request"
    ) as mock_request:
        mock_run.side_effect = AssertionError("unexpected subprocess call")
        mock_request.side_effect = AssertionError("unexpected HTTP request")
        yield mock_run, mock_request


def completed(args, returncode=0, stdout="", stderr=""):
    return subprocess.CompletedProcess(args, returncode, stdout=stdout, stderr=stderr)


AUTH_OK = "✓ Authenticated\n  Site: example.atlassian.net\n  Email: user@example.com\n  Token: ****\n"


class FakeAcli:
    """Stands in for subprocess.run and records every acli invocation."""

    def __init__(self, outputs=None, logged_in=True):
        self.outputs = outputs or {}
        self.logged_in = logged_in
        self.calls = []

    def __call__(self, cmd, **kwargs):
        self.calls.append((list(cmd), kwargs))
        if cmd[1:3] == ["auth", "status"]:
            if self.logged_in:
                return completed(cmd, stdout=AUTH_OK)
            return completed(cmd, returncode=1, stdout="✗ Not authenticated\n")
        if cmd[1:3] == ["auth", "login"]:
            self.logged_in = True
            return completed(cmd, stdout="Logged in\n")
        for prefix, result in self.outputs.items():
            if tuple(cmd[1 : 1 + len(prefix)]) == prefix:
                if isinstance(result, subprocess.CompletedProcess):
                    return result
                return completed(cmd, stdout=result)
        return completed(cmd, stdout="")

    @property
    def commands(self):
        """acli argument vectors, without the session checks."""
        return [cmd for cmd, _ in self.calls if cmd[1] != "auth"]


@pytest.fixture
def fake_acli():
    acli = FakeAcli()
    with patch("jira_wrap.subprocess.run", side_effect=acli):
        yield acli


class DummyResponse:
    def __init__(self, status_code=200, payload=None, text=None, reason="OK"):
        self.status_code = status_code
        self._payload = payload
        self.reason = reason
        if text is None:
            text = "" if payload is None else jira_wrap.json.dumps(payload)
        self.text = text
        self.content = text.encode("utf-8")

    @property
    def ok(self):
        return self.status_code < 400

    def json(self):
        if self._payload is None:
            raise ValueError("No JSON object could be decoded")
        return self._payload
