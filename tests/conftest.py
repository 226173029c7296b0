# tests/conftest.py
import json
import os

import pytest
from freezegun import freeze_time

from modules.job_digest.lib import config as jd_config
from modules.job_digest.lib.pages.static import StaticPageSource


# ---------------------------------------------------------------------
# Live tests are opt-in: use --live or RUN_LIVE_TESTS=1
# ---------------------------------------------------------------------
def pytest_addoption(parser: pytest.Parser) -> None:
    parser.addoption(
        "--live",
        action="store_true",
        default=False,
        help="Run tests marked as 'live' (network calls or external services).",
    )


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line(
        "markers",
        "live: marks tests that perform live network calls or hit external services (skipped by default).",
    )


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    run_live = config.getoption("--live") or os.getenv("RUN_LIVE_TESTS") == "1"
    if run_live:
        return
    skip_live = pytest.mark.skip(reason="live tests disabled (use --live or RUN_LIVE_TESTS=1)")
    for item in items:
        if "live" in item.keywords:
            item.add_marker(skip_live)


# ---------------------------------------------------------------------
# Test-wide env defaults (autouse, function-scoped)
# ---------------------------------------------------------------------
@pytest.fixture(autouse=True)
def _env_defaults(monkeypatch, tmp_path):
    # Logs go to a per-test dir so real logs stay clean
    monkeypatch.setenv("LOG_DIR", str(tmp_path / "logs"))
    monkeypatch.setenv("ACTIVITY_LOG_PREFIX", "activity-test")
    monkeypatch.setenv("ERROR_LOG_PREFIX", "error-test")

    # Never talk to Telegram from unit tests
    monkeypatch.setenv("JOB_DIGEST_DRY_RUN", "1")
    for name in ("TELEGRAM_BOT_TOKEN", "TELEGRAM_CHAT_ID", "TELEGRAM_API_BASE", "CONFIG_PATH"):
        monkeypatch.delenv(name, raising=False)
    for name in list(os.environ):
        if name.startswith("JOB_DIGEST_") and name != "JOB_DIGEST_DRY_RUN":
            monkeypatch.delenv(name, raising=False)
    yield


@pytest.fixture
def frozen_utc():
    with freeze_time("2025-01-01T00:00:00Z"):
        yield


# ---------------------------------------------------------------------
# Listing pages
# ---------------------------------------------------------------------
def board_html(rows, *, base=None):
    """
    Build a minimal board page. Each row is (title, href, company, location);
    any element may be None to leave it out.
    """
    items = []
    for title, href, company, location in rows:
        parts = []
        if title is not None:
            parts.append(f"<h2>{title}</h2>")
        if href is not None:
            parts.append(f'<a href="{href}">Apply</a>')
        if company is not None:
            parts.append(f'<span class="company">{company}</span>')
        if location is not None:
            parts.append(f'<span class="location">{location}</span>')
        items.append(f'<li class="job">{"".join(parts)}</li>')
    head = f'<base href="{base}">' if base else ""
    return f"<html><head>{head}</head><body><ul>{''.join(items)}</ul></body></html>"


BOARDS = {
    "Alpha Board": [
        ("Backend Engineer", "/jobs/a1", "Acme", "Remote"),
        ("Product Designer", "/jobs/a2", "Acme", "Berlin"),
        ("Senior Senior Engineer • Remote", "/jobs/a3", "Globex", "Remote"),
        ("Office Manager", "/jobs/a4", "Initech", "Paris"),
    ],
    "Beta Board": [
        ("Data Engineer", "/jobs/b1", "Umbrella", "Remote"),
        ("Sales Lead", "/jobs/b2", "Umbrella", "Madrid"),
        ("Platform Engineer | Full-time", "/jobs/b3", "Hooli", "Remote"),
        ("Recruiter", "/jobs/b4", "Hooli", "Lisbon"),
    ],
    "Gamma Board": [
        ("QA Analyst", "/jobs/c1", "Stark", "Remote"),
        ("Frontend Engineer", "/jobs/c2", "Stark", "Remote"),
        ("Support Agent", "/jobs/c3", "Wayne", "Oslo"),
        ("ML Engineer", "/jobs/c4", "Wayne", "Remote"),
    ],
}


def board_url(name: str) -> str:
    slug = name.split()[0].lower()
    return f"https://{slug}.example.com/remote-jobs"


def board_source(name: str, **overrides) -> jd_config.SourceConfig:
    fields = {
        "name": name,
        "url": board_url(name),
        "item_selector": "li.job",
        "title_selector": "h2",
        "link_selector": "a",
        "company_selector": ".company",
        "location_selector": ".location",
        "limit": 10,
    }
    fields.update(overrides)
    return jd_config.SourceConfig(**fields)


@pytest.fixture
def board_sources():
    return tuple(board_source(name) for name in BOARDS)


@pytest.fixture
def board_pages():
    return {board_url(name): board_html(rows) for name, rows in BOARDS.items()}


@pytest.fixture
def static_source(board_pages):
    return StaticPageSource(pages=board_pages)


@pytest.fixture
def seen_path(tmp_path):
    return str(tmp_path / "data" / "seen.json")


@pytest.fixture
def settings(board_sources, seen_path):
    """Fresh Settings per test: the three fixture boards and a temp seen store."""
    return jd_config.Settings.from_env_and_kwargs({
        "sources": list(board_sources),
        "seen_path": seen_path,
    })


@pytest.fixture
def sent():
    """Notifier stub capturing every message text."""
    messages = []

    def notify(text):
        messages.append(text)
        return [len(messages)]

    notify.messages = messages
    return notify


@pytest.fixture
def sources_file(tmp_path):
    data = {
        "sources": [
            {
                "name": "Alpha Board",
                "url": board_url("Alpha Board"),
                "itemSelector": "li.job",
                "titleSelector": "h2",
                "linkSelector": "a",
                "timeoutMs": 5000,
                "stripAfter": ["•"],
            }
        ]
    }
    p = tmp_path / "sources.json"
    p.write_text(json.dumps(data), encoding="utf-8")
    return p


@pytest.fixture
def make_board():
    return board_html


@pytest.fixture
def make_source():
    return board_source
