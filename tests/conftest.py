"""Pytest configuration: adds the repository root to sys.path for test discovery."""

import os
import sys

import pytest

# Add the repository root so tests can import sf_connector and the fixtures package
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))
sys.path.insert(0, os.path.dirname(__file__))

from fixtures.fake_collaborators import FakeOrgClient, FakeProcessRunner  # noqa: E402
from sf_connector.connector import SFConnector  # noqa: E402
from sf_connector.progress.core.events import RecordingSink  # noqa: E402


@pytest.fixture
def runner() -> FakeProcessRunner:
    return FakeProcessRunner()


@pytest.fixture
def org_client() -> FakeOrgClient:
    return FakeOrgClient()


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def project(tmp_path):
    """Empty sfdx project with a package directory."""
    root = tmp_path / "project"
    (root / "force-app" / "main" / "default").mkdir(parents=True)
    (root / "manifest").mkdir()
    return root


@pytest.fixture
def connector(project, runner, org_client, sink) -> SFConnector:
    conn = SFConnector(
        username="admin@example.com",
        api_version="60.0",
        project_folder=project,
        runner=runner,
        org_client=org_client,
        retrieve_timeout=2,
        poll_interval=0.01,
    )
    conn.add_sink(sink)
    return conn
