from datetime import datetime, timezone
from pathlib import Path
from string import Template

import aiohttp
import gidgethub

from gh_promotion.bus import Bus, Context, EventStatus
from gh_promotion.config import Config
from gh_promotion.exceptions import TemplateRenderError
from gh_promotion.github.models import (
    CheckRunConclusion,
    CheckRunOutput,
    CheckRunPayload,
    CommitState,
    CommitStatusPayload,
)
import gh_promotion.github.utils as github
from gh_promotion.utils import normalise_ref, truncate
from gh_promotion import metrics

MAX_MESSAGE_LENGTH = 140
MAX_COMMITS = 10
CHECK_RUN_TEMPLATE = Path(__file__).parent.parent / "templates" / "check_run.md"

MESSAGES = {
    EventStatus.success: "✅ {progress} @ {timestamp}",
    EventStatus.pending: "⏳ {progress} @ {timestamp}",
    EventStatus.failure: "❌ {progress} @ {timestamp}",
    EventStatus.error: "❌ {progress} @ {timestamp}",
}


def format_timestamp(now: datetime) -> str:
    return now.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def placeholders(ctx: Context, now: datetime) -> dict[str, str]:
    values = {
        "{progress}": ctx.promoter.progress(ctx.head_ref or ""),
        "{timestamp}": format_timestamp(now),
    }
    if ctx.head_ref and ctx.base_ref:
        values["{source}"] = normalise_ref(ctx.head_ref)
        values["{target}"] = normalise_ref(ctx.base_ref)
    return values


def substitute(template: str, values: dict[str, str]) -> str:
    for key, value in values.items():
        template = template.replace(key, value)
    return template


def feedback_message(bus: Bus, now: datetime) -> str:
    template = MESSAGES.get(bus.event_status, MESSAGES[EventStatus.pending])
    message = substitute(template, placeholders(bus.context, now))
    return truncate(message, MAX_MESSAGE_LENGTH)


def commit_state(bus: Bus) -> CommitState:
    if bus.event_status == EventStatus.error or bus.error:
        return CommitState.error
    return {
        EventStatus.success: CommitState.success,
        EventStatus.failure: CommitState.failure,
    }.get(bus.event_status, CommitState.pending)


def check_run_conclusion(bus: Bus) -> CheckRunConclusion:
    if bus.event_status == EventStatus.success and not bus.error:
        return CheckRunConclusion.success
    return CheckRunConclusion.neutral


def render_check_run_text(bus: Bus) -> str:
    """Render the markdown body of the check run.

    Shows the promotion path as a Mermaid flowchart, the error when there is
    one and the most recent commits of the promotion pull request.
    """
    ctx = bus.context
    failed = bus.event_status in (EventStatus.error, EventStatus.failure)

    error = ""
    if bus.error:
        error = f"\n### Error\n\n```\n{bus.error}\n```\n"

    commits = "\n".join(
        f"- [`{c.sha[:7]}`]({c.html_url}) {c.summary}"
        for c in ctx.commits[:MAX_COMMITS]
    )

    try:
        template = Template(CHECK_RUN_TEMPLATE.read_text(encoding="utf-8"))
        return template.substitute(
            mermaid=ctx.promoter.mermaid(ctx.head_ref, ctx.base_ref, failed),
            error=error,
            commits=commits or "_No commits._",
        )
    except (OSError, KeyError, ValueError) as e:
        raise TemplateRenderError(f"failed to render check run: {e}") from e


def is_reportable(ctx: Context) -> bool:
    return bool(ctx.owner and ctx.repository and ctx.head_sha and ctx.pull_request)


async def send_commit_status(bus: Bus, config: Config, now: datetime) -> None:
    ctx = bus.context
    values = placeholders(ctx, now)
    payload = CommitStatusPayload(
        state=commit_state(bus),
        description=feedback_message(bus, now),
        context=substitute(config.COMMIT_STATUS_CONTEXT, values),
        target_url=ctx.pull_request.html_url or None,
    )
    await github.create_commit_status(ctx, payload, config)


async def send_check_run(bus: Bus, config: Config, now: datetime) -> None:
    ctx = bus.context
    if not ctx.commits:
        try:
            ctx.commits = await github.list_pull_request_commits(ctx)
        except (gidgethub.GitHubException, aiohttp.ClientError) as e:
            ctx.logger.warning("Failed to list pull request commits: %s", e)

    try:
        text = render_check_run_text(bus)
    except TemplateRenderError as e:
        ctx.logger.error("%s", e)
        bus.fail(e)
        text = bus.error

    name = substitute(config.CHECK_RUN_NAME, placeholders(ctx, now))
    payload = CheckRunPayload(
        name=name,
        head_sha=ctx.head_sha,
        conclusion=check_run_conclusion(bus),
        completed_at=format_timestamp(now),
        output=CheckRunOutput(
            title=feedback_message(bus, now),
            summary=name,
            text=text,
        ),
    )
    await github.create_check_run(ctx, payload, config)


async def emit_feedback(bus: Bus, config: Config) -> None:
    """Report the outcome on the promoted commit.

    Delivery failures are logged and counted, never raised.
    """
    ctx = bus.context
    if bus.event_status == EventStatus.skipped:
        ctx.logger.debug("Event skipped, no feedback")
        return
    if not is_reportable(ctx) or ctx.promoter is None:
        ctx.logger.debug("Not enough context for feedback")
        return

    now = datetime.now(timezone.utc)
    emitters = []
    if config.COMMIT_STATUS_ENABLED:
        emitters.append(("commit_status", send_commit_status))
    if config.CHECK_RUN_ENABLED:
        emitters.append(("check_run", send_check_run))

    for name, emitter in emitters:
        try:
            await emitter(bus, config, now)
        except (gidgethub.GitHubException, aiohttp.ClientError) as e:
            ctx.logger.error("Failed to send %s feedback: %s", name, e)
            metrics.feedback_errors_total.labels(name).inc()
