import functools

from gidgethub.routing import Router
from gidgethub.sansio import Event as GitHubEvent

from gh_promotion.bus import Bus, EventStatus, Response
from gh_promotion.config import Config
from gh_promotion.exceptions import InvalidEventError
from gh_promotion.github.models import (
    CheckSuiteEvent,
    DeploymentStatusEvent,
    Event,
    PullRequest,
    PullRequestEvent,
    PullRequestReviewEvent,
    PushEvent,
    StatusEvent,
    WorkflowRunEvent,
)
import gh_promotion.github.utils as github
from gh_promotion.utils import normalise_ref

router = Router()


def classifier(model: type[Event], promotes: bool = False):
    """Register a classifier for ``model``'s event type.

    The wrapped coroutine only runs when the event type is enabled and is
    handed the typed payload. ``promotes`` marks events that may fast
    forward the next stage once classified.
    """

    def decorator(func):
        @functools.wraps(func)
        async def wrapper(event: GitHubEvent, bus: Bus, config: Config):
            if not config.event_enabled(model.event_type):
                bus.skip(f"{model.event_type} events are disabled")
                return
            if not isinstance(bus.payload, model):
                raise InvalidEventError(
                    f"expected {model.__name__}, got {type(bus.payload).__name__}"
                )
            bus.context.logger.debug("Classifying %s event", model.event_type)
            bus.promote = promotes
            await func(bus.payload, bus, config)

        router.add(wrapper, model.event_type.value)
        return wrapper

    return decorator


def _use_pull_request(bus: Bus, pr: PullRequest) -> None:
    ctx = bus.context
    ctx.head_ref = normalise_ref(pr.head.ref)
    ctx.base_ref = normalise_ref(pr.base.ref)
    ctx.head_sha = pr.head.sha
    ctx.pull_request = pr


@classifier(PushEvent)
async def on_push(data: PushEvent, bus: Bus, config: Config):
    ctx = bus.context
    if data.deleted:
        bus.skip(f"{data.ref} was deleted")
        return

    next_stage, promotable = ctx.promoter.is_promotable_ref(data.ref)
    if not promotable:
        bus.skip(f"{data.ref} is not a promotable stage")
        return

    ctx.head_ref = normalise_ref(data.ref)
    ctx.head_sha = data.after
    ctx.base_ref = next_stage

    if config.CREATE_TARGET_REF and not await github.target_ref_exists(ctx):
        await github.create_target_ref(ctx, config)

    pr = await github.find_pull_request(ctx, match_head_sha=False)
    if pr is not None:
        ctx.logger.info("Reusing promotion pull request #%d", pr.number)
        ctx.pull_request = pr
        bus.response = Response(
            status_code=200, body=f"promotion request #{pr.number} exists"
        )
    else:
        custom_properties = bus.repository.custom_properties if bus.repository else None
        ctx.pull_request = await github.create_pull_request(
            ctx, config, custom_properties
        )
        bus.response = Response(status_code=201, body="promotion request created")
    bus.event_status = EventStatus.pending


@classifier(PullRequestEvent)
async def on_pull_request(data: PullRequestEvent, bus: Bus, config: Config):
    pr = data.pull_request
    if pr.draft:
        bus.skip(f"pull request #{pr.number} is a draft")
        return
    if not bus.context.promoter.is_promotion_request(pr):
        bus.skip(f"pull request #{pr.number} is not a promotion request")
        return

    if data.action == "opened":
        _use_pull_request(bus, pr)
        bus.event_status = EventStatus.pending
    elif data.action == "closed" and pr.merged:
        _use_pull_request(bus, pr)
        bus.event_status = EventStatus.success
    else:
        bus.skip(f"pull request action {data.action}")


@classifier(PullRequestReviewEvent, promotes=True)
async def on_pull_request_review(
    data: PullRequestReviewEvent, bus: Bus, config: Config
):
    pr = data.pull_request
    if data.review.state.lower() != "approved":
        bus.skip(f"review state {data.review.state}")
        return
    if not bus.context.promoter.is_promotion_request(pr):
        bus.skip(f"pull request #{pr.number} is not a promotion request")
        return

    _use_pull_request(bus, pr)
    bus.event_status = EventStatus.pending


async def _classify_run(
    bus: Bus,
    status: str | None,
    conclusion: str | None,
    head_sha: str,
    pull_requests: list[PullRequest],
):
    if status != "completed" or conclusion != "success":
        bus.skip(f"status {status}, conclusion {conclusion}")
        return

    ctx = bus.context
    ctx.head_sha = head_sha
    for pr in pull_requests:
        if pr.head.sha == head_sha and ctx.promoter.is_promotion_request(pr):
            ctx.logger.debug("Matched pull request #%d", pr.number)
            _use_pull_request(bus, pr)
            break
    bus.event_status = EventStatus.pending


@classifier(CheckSuiteEvent, promotes=True)
async def on_check_suite(data: CheckSuiteEvent, bus: Bus, config: Config):
    suite = data.check_suite
    await _classify_run(
        bus, suite.status, suite.conclusion, suite.head_sha, suite.pull_requests
    )


@classifier(WorkflowRunEvent, promotes=True)
async def on_workflow_run(data: WorkflowRunEvent, bus: Bus, config: Config):
    run = data.workflow_run
    await _classify_run(bus, run.status, run.conclusion, run.head_sha, run.pull_requests)


@classifier(DeploymentStatusEvent, promotes=True)
async def on_deployment_status(
    data: DeploymentStatusEvent, bus: Bus, config: Config
):
    if data.deployment_status.state != "success":
        bus.skip(f"deployment state {data.deployment_status.state}")
        return

    ctx = bus.context
    ctx.head_ref = normalise_ref(data.deployment.ref)
    ctx.head_sha = data.deployment.sha
    bus.event_status = EventStatus.pending


@classifier(StatusEvent, promotes=True)
async def on_status(data: StatusEvent, bus: Bus, config: Config):
    if data.state != "success":
        bus.skip(f"commit state {data.state}")
        return

    bus.context.head_sha = data.sha
    bus.event_status = EventStatus.pending
