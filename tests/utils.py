import json
import os

from gidgethub.sansio import Event as GitHubEvent
from sanic.log import logger

from gh_promotion.bus import Bus, RequestLogger
from gh_promotion.github.models import parse_event
from gh_promotion.promotion import Promoter
from gh_promotion.signature import Signature

WEBHOOK_SECRET = "abc"


class AsyncIterator:
    def __init__(self, seq):
        self.iter = iter(seq)

    def __aiter__(self):
        return self

    async def __anext__(self):
        try:
            return next(self.iter)
        except StopIteration:
            raise StopAsyncIteration


def load_sample_data(filename):
    with open(os.path.join("tests/samples", filename)) as f:
        return json.load(f)


def signed_headers(body: bytes, event_type: str, secret: str = WEBHOOK_SECRET):
    return {
        "x-github-event": event_type,
        "x-github-delivery": "72d3162e-cc78-11e3-81ab-4c9367dc0958",
        "x-hub-signature-256": Signature(secret).create(body),
        "content-type": "application/json",
    }


def make_bus(event_type: str, filename: str, gh=None) -> Bus:
    """A bus as the authenticator leaves it, with the default promoter."""
    data = load_sample_data(filename)
    payload = parse_event(event_type, data)
    bus = Bus(
        body=json.dumps(data).encode(),
        event_type=event_type,
        delivery_id="test",
        event=GitHubEvent(data, event=event_type, delivery_id="test"),
        payload=payload,
        repository=payload.repository,
    )
    bus.context.owner = payload.repository.owner.login
    bus.context.repository = payload.repository.name
    bus.context.promoter = Promoter.default()
    bus.context.gh = gh
    bus.context.logger = RequestLogger(logger, {"event": event_type})
    return bus
