from typing import Any

import gidgethub
from gidgethub.abc import GitHubAPI
from sanic.log import logger

from gh_promotion.bus import Context
from gh_promotion.config import Config
from gh_promotion.exceptions import InvalidEventError, PullRequestNotFoundError
from gh_promotion.github.models import (
    CheckRunPayload,
    CommitStatusPayload,
    PullRequest,
    PullRequestCommit,
    PullRequestCreateRequest,
    RefCreateRequest,
    RefUpdateRequest,
)
from gh_promotion.utils import get_custom_property, is_truthy, normalise_ref
from gh_promotion import metrics

ROOT_COMMIT_PAGE_SIZE = 100
PULL_REQUEST_COMMITS_PAGE_SIZE = 60


def promotion_title(head_ref: str, base_ref: str) -> str:
    return f"Promote {normalise_ref(head_ref)} to {normalise_ref(base_ref)}"


async def find_pull_request(
    ctx: Context, match_head_sha: bool = True
) -> PullRequest | None:
    """Find the open promotion pull request matching the context.

    The search is narrowed by head and base ref when they are known. A match
    refines ``ctx.head_ref`` and ``ctx.base_ref`` from the pull request.
    """
    gh: GitHubAPI = ctx.gh
    params = ["state=open"]
    if ctx.head_ref:
        params.append(f"head={ctx.owner}:{normalise_ref(ctx.head_ref)}")
    if ctx.base_ref:
        params.append(f"base={normalise_ref(ctx.base_ref)}")

    url = f"{ctx.repo_url}/pulls?{'&'.join(params)}"
    ctx.logger.debug("Looking for promotion pull request: %s", url)

    async for item in gh.getiter(url):
        pr = PullRequest.model_validate(item)
        if match_head_sha and pr.head.sha != ctx.head_sha:
            continue
        if ctx.promoter is not None and not ctx.promoter.is_promotion_request(pr):
            continue
        ctx.logger.info("Found promotion pull request #%d", pr.number)
        ctx.head_ref = normalise_ref(pr.head.ref)
        ctx.base_ref = normalise_ref(pr.base.ref)
        return pr

    ctx.logger.debug("No matching promotion pull request")
    return None


async def create_pull_request(
    ctx: Context, config: Config, custom_properties: dict[str, Any] | None = None
) -> PullRequest | None:
    if not ctx.head_ref or not ctx.base_ref:
        raise InvalidEventError("head and base ref are required to open a pull request")
    draft = is_truthy(
        get_custom_property(custom_properties, config.DRAFT_PULL_REQUEST_KEY)
    )
    payload = PullRequestCreateRequest(
        title=promotion_title(ctx.head_ref, ctx.base_ref),
        head=normalise_ref(ctx.head_ref),
        base=normalise_ref(ctx.base_ref),
        draft=draft,
    )

    ctx.logger.debug(
        "Creating pull request %r (draft: %s) on %s",
        payload.title,
        draft,
        ctx.repo_url,
    )
    if config.STERILE:
        return None

    data = await ctx.gh.post(f"{ctx.repo_url}/pulls", data=payload.model_dump())
    metrics.promotion_requests_created_total.labels(ctx.base_ref).inc()
    return PullRequest.model_validate(data)


async def target_ref_exists(ctx: Context) -> bool:
    url = f"{ctx.repo_url}/git/ref/heads/{normalise_ref(ctx.base_ref)}"
    try:
        await ctx.gh.getitem(url)
    except gidgethub.BadRequest as e:
        if e.status_code == 404:
            return False
        raise
    return True


async def get_root_commit(ctx: Context) -> str:
    """Return the oldest commit on the head branch by committer date."""
    url = (
        f"{ctx.repo_url}/commits"
        f"?sha={normalise_ref(ctx.head_ref)}&per_page={ROOT_COMMIT_PAGE_SIZE}"
    )
    root_sha = None
    root_date = None
    async for commit in ctx.gh.getiter(url):
        date = commit["commit"]["committer"]["date"]
        if root_date is None or date < root_date:
            root_sha, root_date = commit["sha"], date

    if root_sha is None:
        raise ValueError(f"no commits found on {ctx.head_ref}")
    return root_sha


async def create_target_ref(ctx: Context, config: Config) -> None:
    root_sha = await get_root_commit(ctx)
    payload = RefCreateRequest(ref=ctx.full_base_ref, sha=root_sha)

    ctx.logger.info("Creating missing ref %s at %s", payload.ref, root_sha)
    if not config.STERILE:
        await ctx.gh.post(f"{ctx.repo_url}/git/refs", data=payload.model_dump())


async def list_pull_request_commits(ctx: Context) -> list[PullRequestCommit]:
    if ctx.pull_request is None:
        raise PullRequestNotFoundError("no pull request to list commits for")
    url = (
        f"{ctx.repo_url}/pulls/{ctx.pull_request.number}/commits"
        f"?per_page={PULL_REQUEST_COMMITS_PAGE_SIZE}"
    )
    commits = [PullRequestCommit.model_validate(c) async for c in ctx.gh.getiter(url)]
    commits.sort(key=lambda c: c.date, reverse=True)
    return commits


async def fast_forward_ref(ctx: Context, config: Config) -> None:
    url = f"{ctx.repo_url}/git/refs/heads/{normalise_ref(ctx.base_ref)}"
    payload = RefUpdateRequest(sha=ctx.head_sha, force=False)

    ctx.logger.info("Fast forwarding %s to %s", ctx.base_ref, ctx.head_sha)
    if not config.STERILE:
        await ctx.gh.patch(url, data=payload.model_dump())
    metrics.fast_forwards_total.labels(ctx.base_ref).inc()


async def get_rate_limits(gh: GitHubAPI) -> dict[str, Any]:
    return await gh.getitem("/rate_limit")


async def create_commit_status(
    ctx: Context, payload: CommitStatusPayload, config: Config
) -> None:
    url = f"{ctx.repo_url}/statuses/{ctx.head_sha}"
    logger.debug(
        "Posting commit status %s for sha %s to GitHub: %s",
        payload.state,
        ctx.head_sha,
        url,
    )
    if not config.STERILE:
        await ctx.gh.post(url, data=payload.model_dump(mode="json", exclude_none=True))


async def create_check_run(
    ctx: Context, payload: CheckRunPayload, config: Config
) -> None:
    url = f"{ctx.repo_url}/check-runs"
    logger.debug(
        "Posting check run %s for sha %s to GitHub: %s",
        payload.conclusion,
        payload.head_sha,
        url,
    )
    if not config.STERILE:
        await ctx.gh.post(url, data=payload.model_dump(mode="json", exclude_none=True))
