"""Shared test fixtures and configuration."""

import os
from pathlib import Path
import sys

import pytest


SRC_ROOT = Path(__file__).resolve().parents[1] / "src"
if str(SRC_ROOT) not in sys.path:
    sys.path.insert(0, str(SRC_ROOT))


# Test environment overriding every setting read from DOCS_SEARCH_* variables
TEST_ENV = {
    "DOCS_SEARCH_ENABLE": "true",
    "DOCS_SEARCH_MAX_HEADING_LEVEL": "3",
    "DOCS_SEARCH_ARTIFACT_PATH": "assets/search-data.json",
    "DOCS_SEARCH_ROOT_PATH": "",
    "DOCS_SEARCH_TOKEN_MAP_CHUNK_SIZE": "100",
    "DOCS_SEARCH_WORKER_THRESHOLD": "1000",
    "DOCS_SEARCH_WORKER_TIMEOUT_SECONDS": "5",
    "DOCS_SEARCH_LARGE_CORPUS_THRESHOLD": "10000",
    "DOCS_SEARCH_DEFAULT_LIMIT": "10",
    "DOCS_SEARCH_LOG_LEVEL": "info",
    "DOCS_SEARCH_LOG_JSON": "false",
}

for key, value in TEST_ENV.items():
    os.environ[key] = value

from docs_search.domain.model import Anchor, Document


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    """Pin DOCS_SEARCH_* variables for each test."""
    for key in list(os.environ):
        if key.startswith("DOCS_SEARCH_") and key not in TEST_ENV:
            monkeypatch.delenv(key, raising=False)
    for key, value in TEST_ENV.items():
        monkeypatch.setenv(key, value)


@pytest.fixture
def install_documents():
    """The two-page corpus used throughout the ranking tests."""
    return [
        Document(id=0, title="Getting Started", content="install guide", path="getting-started.html"),
        Document(
            id=1,
            title="Installation Requirements",
            content="Everything needed before you begin.",
            path="installation.html",
            anchors=(Anchor(id="reqs", text="Requirements", level=2),),
        ),
    ]


@pytest.fixture
def sample_corpus():
    """A small mixed corpus with anchors, as plain artifact entries."""
    return [
        {
            "id": 0,
            "title": "Configuration",
            "content": "Configure the service with environment variables and a settings file.",
            "path": "configuration.html",
            "anchors": [
                {"id": "env", "text": "Environment variables", "level": 2},
                {"id": "files", "text": "Settings files", "level": 2},
            ],
        },
        {
            "id": 1,
            "title": "Deployment",
            "content": "Deploy behind a reverse proxy. Configuration is read at startup.",
            "path": "deployment.html",
            "anchors": [{"id": "proxy", "text": "Reverse proxy", "level": 2}],
        },
        {
            "id": 2,
            "title": "Changelog",
            "content": "Release notes for every version.",
            "path": "changelog.html",
            "anchors": [],
        },
    ]
