import http
from datetime import datetime, timezone
from pathlib import Path

import gidgethub
import pytest
from unittest.mock import AsyncMock, Mock

from gh_promotion.bus import EventStatus
from gh_promotion.github import feedback
from gh_promotion.github.models import CheckRunConclusion, CommitState
from gh_promotion.utils import truncate
from tests.utils import AsyncIterator, make_bus

STAGING_SHA = "34c5c7793cb3b279e22454cb6750c80560547b3a"
NOW = datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)

COMMITS = [
    {
        "sha": "1111111aaaaaaa",
        "html_url": "https://github.com/acme/app/commit/1111111",
        "commit": {
            "message": "Older change\n\nbody",
            "committer": {"name": "a", "date": "2024-01-01T00:00:00Z"},
        },
    },
    {
        "sha": "2222222bbbbbbb",
        "html_url": "https://github.com/acme/app/commit/2222222",
        "commit": {
            "message": "Newer change",
            "committer": {"name": "b", "date": "2024-01-02T00:00:00Z"},
        },
    },
]


def reviewed_bus(gh, status=EventStatus.pending):
    bus = make_bus("pull_request_review", "pull_request_review.json", gh)
    pr = bus.payload.pull_request
    bus.context.head_ref = pr.head.ref
    bus.context.base_ref = pr.base.ref
    bus.context.head_sha = pr.head.sha
    bus.context.pull_request = pr
    bus.event_status = status
    return bus


@pytest.fixture
def gh():
    gh = AsyncMock()
    gh.getiter = Mock(return_value=AsyncIterator(COMMITS))
    return gh


def posted(gh, suffix):
    return [c for c in gh.post.call_args_list if c.args[0].endswith(suffix)]


def test_truncate():
    assert truncate("short", 140) == "short"
    long = "x" * 200
    assert len(truncate(long, 140)) == 140
    assert truncate(long, 140).endswith("...")


@pytest.mark.parametrize(
    "status,prefix",
    [
        (EventStatus.success, "✅"),
        (EventStatus.pending, "⏳"),
        (EventStatus.failure, "❌"),
        (EventStatus.error, "❌"),
    ],
)
def test_feedback_message(status, prefix):
    bus = reviewed_bus(None, status)
    assert feedback.feedback_message(bus, NOW) == f"{prefix} 2/4 @ 2024-01-02T03:04:05Z"


def test_placeholders():
    bus = reviewed_bus(None)
    values = feedback.placeholders(bus.context, NOW)
    assert feedback.substitute("{source}→{target} ({progress})", values) == (
        "staging→canary (2/4)"
    )


@pytest.mark.parametrize(
    "status,state,conclusion",
    [
        (EventStatus.success, CommitState.success, CheckRunConclusion.success),
        (EventStatus.pending, CommitState.pending, CheckRunConclusion.neutral),
        (EventStatus.failure, CommitState.failure, CheckRunConclusion.neutral),
        (EventStatus.error, CommitState.error, CheckRunConclusion.neutral),
    ],
)
def test_status_mapping(status, state, conclusion):
    bus = reviewed_bus(None, status)
    assert feedback.commit_state(bus) == state
    assert feedback.check_run_conclusion(bus) == conclusion


def test_error_overrides_status():
    bus = reviewed_bus(None, EventStatus.success)
    bus.error = "boom"
    assert feedback.commit_state(bus) == CommitState.error
    assert feedback.check_run_conclusion(bus) == CheckRunConclusion.neutral


def test_render_check_run_text(gh):
    bus = reviewed_bus(gh)
    bus.error = "something broke"
    bus.context.commits = []

    text = feedback.render_check_run_text(bus)

    assert "```mermaid\nflowchart LR" in text
    assert "s1 ==> s2" in text
    assert "something broke" in text
    assert "_No commits._" in text


@pytest.mark.asyncio
async def test_emit_commit_status(gh, config):
    config.CHECK_RUN_ENABLED = False
    bus = reviewed_bus(gh)

    await feedback.emit_feedback(bus, config)

    (call,) = posted(gh, f"/statuses/{STAGING_SHA}")
    assert call.args[0] == f"/repos/acme/app/statuses/{STAGING_SHA}"
    data = call.kwargs["data"]
    assert data["state"] == "pending"
    assert data["context"] == "staging→canary"
    assert data["description"].startswith("⏳ 2/4 @ ")
    assert data["target_url"] == "https://github.com/acme/app/pull/8"


@pytest.mark.asyncio
async def test_emit_check_run(gh, config):
    config.COMMIT_STATUS_ENABLED = False
    bus = reviewed_bus(gh, EventStatus.success)

    await feedback.emit_feedback(bus, config)

    assert gh.getiter.call_args.args[0] == "/repos/acme/app/pulls/8/commits?per_page=60"
    (call,) = posted(gh, "/check-runs")
    data = call.kwargs["data"]
    assert data["name"] == "staging→canary"
    assert data["head_sha"] == STAGING_SHA
    assert data["status"] == "completed"
    assert data["conclusion"] == "success"
    assert data["output"]["title"].startswith("✅ 2/4 @ ")
    assert data["output"]["summary"] == "staging→canary"
    text = data["output"]["text"]
    assert "```mermaid" in text
    # newest commit first
    assert text.index("Newer change") < text.index("Older change")
    assert "body" not in text


@pytest.mark.asyncio
async def test_check_run_render_failure(gh, config, monkeypatch):
    config.COMMIT_STATUS_ENABLED = False
    monkeypatch.setattr(feedback, "CHECK_RUN_TEMPLATE", Path("/nonexistent/check_run.md"))
    bus = reviewed_bus(gh, EventStatus.success)

    await feedback.emit_feedback(bus, config)

    assert bus.event_status == EventStatus.error
    assert bus.response.status_code == 500
    (call,) = posted(gh, "/check-runs")
    data = call.kwargs["data"]
    assert data["conclusion"] == "neutral"
    assert data["output"]["text"] == bus.error


@pytest.mark.asyncio
async def test_skipped_event_has_no_feedback(gh, config):
    bus = reviewed_bus(gh, EventStatus.skipped)

    await feedback.emit_feedback(bus, config)

    assert not gh.mock_calls


@pytest.mark.asyncio
@pytest.mark.parametrize("field", ["owner", "repository", "head_sha", "pull_request"])
async def test_incomplete_context_has_no_feedback(gh, config, field):
    bus = reviewed_bus(gh)
    setattr(bus.context, field, None)

    await feedback.emit_feedback(bus, config)

    assert not gh.mock_calls


@pytest.mark.asyncio
async def test_disabled_feedback(gh, config):
    config.COMMIT_STATUS_ENABLED = False
    config.CHECK_RUN_ENABLED = False
    bus = reviewed_bus(gh)

    await feedback.emit_feedback(bus, config)

    assert not gh.mock_calls


@pytest.mark.asyncio
async def test_feedback_failure_is_logged(gh, config):
    gh.post.side_effect = gidgethub.BadRequest(http.HTTPStatus.FORBIDDEN)
    bus = reviewed_bus(gh, EventStatus.success)

    await feedback.emit_feedback(bus, config)

    # both emitters are attempted and the outcome is unchanged
    assert gh.post.await_count == 2
    assert bus.event_status == EventStatus.success
