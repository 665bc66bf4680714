from datetime import datetime, timezone

import aiohttp
import gidgethub
from botocore.exceptions import BotoCoreError, ClientError

from gh_promotion.aws import AWS
from gh_promotion.bus import Bus, EventStatus, Response
from gh_promotion.config import Config
from gh_promotion.exceptions import PullRequestNotFoundError
import gh_promotion.github.utils as github
from gh_promotion.promotion import Promoter, new_dynamic_promoter
from gh_promotion.rate import RateGate
from gh_promotion.utils import normalise_ref


async def assign_promoter(bus: Bus, config: Config) -> None:
    ctx = bus.context
    if config.DYNAMIC_PROMOTION_ENABLED:
        custom_properties = bus.repository.custom_properties if bus.repository else None
        ctx.promoter = new_dynamic_promoter(
            custom_properties,
            config.DYNAMIC_PROMOTION_KEY,
            default_stages=config.DEFAULT_STAGES,
            logger=ctx.logger,
        )
    else:
        ctx.promoter = Promoter.default(config.DEFAULT_STAGES)
    ctx.logger.debug("Promotion stages: %s", ctx.promoter.stages)


async def fast_forward(bus: Bus, config: Config) -> None:
    """Move the next stage branch up to the promoted commit."""
    ctx = bus.context
    if not bus.promote:
        return

    if not ctx.head_sha:
        bus.skip("no head sha to promote")
        return

    if not ctx.head_ref or not ctx.base_ref or ctx.pull_request is None:
        pr = await github.find_pull_request(ctx)
        if pr is None:
            raise PullRequestNotFoundError(
                f"no open promotion request for {ctx.head_sha}"
            )
        ctx.pull_request = pr

    next_stage, promotable = ctx.promoter.is_promotable_ref(ctx.head_ref)
    if not promotable or next_stage != normalise_ref(ctx.base_ref):
        bus.skip(f"{ctx.head_ref} can no longer be promoted to {ctx.base_ref}")
        return

    try:
        await github.fast_forward_ref(ctx, config)
    except (gidgethub.GitHubException, aiohttp.ClientError) as e:
        ctx.logger.error("Failed to fast forward %s: %s", ctx.base_ref, e)
        bus.fail(e, status_code=500)
        return

    bus.event_status = EventStatus.success
    bus.response = Response(status_code=204, body="promotion complete")


async def sample_rate_limits(bus: Bus, config: Config, gate: RateGate) -> None:
    if not config.FETCH_RATE_LIMITS or bus.response.status_code != 204:
        return
    if not await gate.try_acquire():
        return

    try:
        limits = await github.get_rate_limits(bus.context.gh)
    except (gidgethub.GitHubException, aiohttp.ClientError) as e:
        bus.context.logger.warning("Failed to fetch rate limits: %s", e)
        return

    core = limits.get("resources", {}).get("core", {})
    bus.context.logger.info(
        "GitHub rate limit: %s/%s remaining, resets at %s",
        core.get("remaining"),
        core.get("limit"),
        core.get("reset"),
    )


def archive_key(bus: Bus) -> str:
    timestamp = datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")
    return f"{timestamp}.{bus.context.owner}/{bus.context.repository}/{bus.event_type}"


async def archive_payload(bus: Bus, config: Config, aws: AWS) -> None:
    if not config.S3_UPLOAD_ENABLED:
        return

    key = archive_key(bus)
    try:
        await aws.put_object(key, config.S3_BUCKET_NAME, bus.body)
    except (BotoCoreError, ClientError) as e:
        bus.context.logger.error("Failed to archive payload to %s: %s", key, e)
        bus.response = Response(status_code=500, body=f"failed to archive payload: {e}")
