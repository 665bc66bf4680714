import asyncio
from typing import Mapping

import aiohttp
import gidgethub
from gidgethub.routing import Router
from sanic.log import logger

from gh_promotion import metrics
from gh_promotion import stages
from gh_promotion.authenticator import authenticate
from gh_promotion.aws import AWS
from gh_promotion.bus import Bus, EventStatus
from gh_promotion.config import Config
from gh_promotion.exceptions import PromotionError
from gh_promotion.github import feedback
from gh_promotion.github.auth import GitHubApp
from gh_promotion.github.router import router as github_router
from gh_promotion.rate import RateGate


def normalise_headers(headers: Mapping[str, str | list[str]]) -> dict[str, str]:
    """Lowercase header names and keep the first value of repeated headers."""
    normalised = {}
    for key, value in headers.items():
        if isinstance(value, (list, tuple)):
            if not value:
                continue
            value = value[0]
        normalised.setdefault(key.lower(), value)
    return normalised


class PromotionHandler:
    """Runs one webhook through the promotion pipeline.

    authenticate, assign the promoter, classify, then fast forward, sample
    rate limits and archive. Feedback is always attempted last. Every phase
    shares a single deadline of ``REQUEST_TIMEOUT`` seconds.
    """

    def __init__(
        self,
        config: Config,
        session: aiohttp.ClientSession | None = None,
        github_app: GitHubApp | None = None,
        aws: AWS | None = None,
        gate: RateGate | None = None,
        router: Router | None = None,
    ):
        self.config = config
        self.session = session
        self.aws = aws or AWS()
        self.github_app = github_app or GitHubApp(config, aws=self.aws)
        self.gate = gate or RateGate(config.RATE_LIMIT_INTERVAL)
        self.router = router or github_router

    async def _run(self, bus: Bus) -> None:
        await authenticate(
            bus,
            router=self.router,
            github_app=self.github_app,
            session=self.session,
        )
        await stages.assign_promoter(bus, self.config)

        await self.router.dispatch(bus.event, bus=bus, config=self.config)
        if bus.event_status in (EventStatus.skipped, EventStatus.error):
            return

        await stages.fast_forward(bus, self.config)
        if bus.event_status in (EventStatus.skipped, EventStatus.error):
            return

        await stages.sample_rate_limits(bus, self.config, self.gate)
        await stages.archive_payload(bus, self.config, self.aws)

    async def process(self, body: bytes, headers: Mapping[str, str]) -> Bus:
        bus = Bus(body=body, headers=normalise_headers(headers))
        deadline = asyncio.get_running_loop().time() + self.config.REQUEST_TIMEOUT

        event_type = metrics.event_label(bus.headers.get("x-github-event"))
        metrics.webhooks_received_total.labels(event_type).inc()

        with metrics.track_webhook_processing(event_type) as tracker:
            try:
                async with asyncio.timeout_at(deadline):
                    await self._run(bus)
            except PromotionError as e:
                bus.context.logger.error("Promotion failed: %s", e)
                bus.fail(e, status_code=e.status_code)
                tracker.record_error(type(e).__name__)
            except TimeoutError:
                bus.context.logger.error(
                    "Processing exceeded %ss deadline", self.config.REQUEST_TIMEOUT
                )
                bus.fail("deadline exceeded", status_code=500)
                tracker.record_error("TimeoutError")
            except (gidgethub.GitHubException, aiohttp.ClientError) as e:
                bus.context.logger.error("GitHub request failed: %s", e, exc_info=e)
                bus.fail(e, status_code=500)
                tracker.record_error(type(e).__name__)
            except Exception as e:
                bus.context.logger.exception("Unexpected error processing webhook")
                bus.fail(e, status_code=500)
                tracker.record_error(type(e).__name__)
            finally:
                await self._feedback(bus, deadline)

        if not bus.response.body:
            bus.response.body = f"event {bus.event_status}"
        metrics.webhook_outcomes_total.labels(event_type, bus.event_status).inc()
        logger.info(
            "Processed %s event %s: %s (%d)",
            event_type,
            bus.delivery_id,
            bus.event_status,
            bus.response.status_code,
        )
        return bus

    async def _feedback(self, bus: Bus, deadline: float) -> None:
        try:
            async with asyncio.timeout_at(deadline):
                await feedback.emit_feedback(bus, self.config)
        except TimeoutError:
            bus.context.logger.error("Feedback exceeded the request deadline")
