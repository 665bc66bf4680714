import json

import aiohttp
import gidgethub
from gidgethub.routing import Router
from gidgethub.sansio import Event as GitHubEvent
from pydantic import ValidationError

from gh_promotion.bus import Bus, RequestLogger
from gh_promotion.exceptions import (
    CredentialsError,
    InvalidPayloadError,
    MissingHeaderError,
    MissingInstallationIdError,
    SignatureMismatchError,
    UnhandledEventTypeError,
)
from gh_promotion.github.auth import GitHubApp
from gh_promotion.github.models import (
    InstallationPayload,
    RepositoryPayload,
    parse_event,
)

EVENT_HEADER = "x-github-event"
DELIVERY_HEADER = "x-github-delivery"


async def authenticate(
    bus: Bus,
    *,
    router: Router,
    github_app: GitHubApp,
    session: aiohttp.ClientSession,
) -> Bus:
    """Verify an inbound webhook and fill in ``bus`` for the classifiers.

    The checks run in a fixed order and the first failing one raises, so the
    status code of the response identifies what was wrong with the request.
    """
    log = bus.context.logger
    if not isinstance(log, RequestLogger):
        log = bus.context.logger = RequestLogger(log, {})

    event_type = bus.headers.get(EVENT_HEADER)
    if not event_type:
        raise MissingHeaderError(f"missing {EVENT_HEADER} header")
    delivery_id = bus.headers.get(DELIVERY_HEADER)
    if not delivery_id:
        raise MissingHeaderError(f"missing {DELIVERY_HEADER} header")

    bus.event_type = event_type
    bus.delivery_id = delivery_id
    log.bind(event=event_type, delivery=delivery_id)

    if not router.fetch(GitHubEvent({}, event=event_type, delivery_id=delivery_id)):
        raise UnhandledEventTypeError(f"unhandled event type: {event_type}")

    await github_app.refresh_credentials()

    if not github_app.signature().validate_request(bus.body, bus.headers):
        raise SignatureMismatchError("signature mismatch")
    log.debug("Signature verified")

    try:
        data = json.loads(bus.body)
        repository = RepositoryPayload.model_validate(data).repository
    except (ValueError, ValidationError) as e:
        raise InvalidPayloadError(f"failed to read repository from payload: {e}") from e

    bus.repository = repository
    bus.context.owner = repository.owner.login
    bus.context.repository = repository.name
    log.bind(repo=repository.full_name)

    try:
        installation_id = InstallationPayload.model_validate(data).installation.id
    except ValidationError as e:
        raise MissingInstallationIdError("no installation id in payload") from e
    log.debug("Installation id: %s", installation_id)

    try:
        bus.context.gh = await github_app.client_for_installation(
            installation_id, session
        )
    except (gidgethub.GitHubException, aiohttp.ClientError) as e:
        raise CredentialsError(
            f"failed to create client for installation {installation_id}: {e}"
        ) from e

    try:
        bus.event = GitHubEvent(data, event=event_type, delivery_id=delivery_id)
        bus.payload = parse_event(event_type, data)
    except ValidationError as e:
        raise InvalidPayloadError(f"failed to parse {event_type} payload: {e}") from e

    return bus
