"""
AWS Lambda front door.

Accepts API Gateway (REST and HTTP API) and function URL invocations, runs
the webhook through the promotion pipeline and maps the result back to the
proxy response format. The event loop, HTTP session and handler live for the
lifetime of the container so the installation client cache survives between
invocations.
"""

import asyncio
import base64
import json
from typing import Any

import aiohttp
from sanic.log import logger

from gh_promotion.config import Config
from gh_promotion.handler import PromotionHandler, normalise_headers

_loop: asyncio.AbstractEventLoop | None = None
_handler: PromotionHandler | None = None


def extract_request(event: dict[str, Any], payload_type: str) -> tuple[bytes, dict[str, str]]:
    body = event.get("body") or ""
    if event.get("isBase64Encoded"):
        raw = base64.b64decode(body)
    else:
        raw = body.encode()

    if payload_type == "api-gateway-v1" and event.get("multiValueHeaders"):
        headers = event["multiValueHeaders"]
    else:
        headers = event.get("headers") or {}
    return raw, normalise_headers(headers)


def to_response(status_code: int, message: str, error: str | None) -> dict[str, Any]:
    if status_code == 204:
        return {"statusCode": 204, "body": ""}
    return {
        "statusCode": status_code,
        "headers": {"Content-Type": "application/json"},
        "body": json.dumps({"message": message, "error": error}),
        "isBase64Encoded": False,
    }


async def _create_handler(config: Config) -> PromotionHandler:
    config.print_config()
    logger.setLevel(config.OVERRIDE_LOGGING)
    return PromotionHandler(config, session=aiohttp.ClientSession())


def get_handler(config: Config | None = None) -> tuple[asyncio.AbstractEventLoop, PromotionHandler]:
    global _loop, _handler
    if _loop is None:
        _loop = asyncio.new_event_loop()
    if _handler is None:
        _handler = _loop.run_until_complete(_create_handler(config or Config()))
    return _loop, _handler


def lambda_handler(event: dict[str, Any], context: Any) -> dict[str, Any]:
    loop, handler = get_handler()
    body, headers = extract_request(event, handler.config.LAMBDA_PAYLOAD_TYPE)
    bus = loop.run_until_complete(handler.process(body, headers))
    return to_response(bus.response.status_code, bus.response.body, bus.error)
