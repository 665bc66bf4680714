from sanic import Sanic, response
import aiohttp
from sanic.log import logger
from aiolimiter import AsyncLimiter
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from gh_promotion.config import Config
from gh_promotion.handler import PromotionHandler, normalise_headers


def create_app(config: Config | None = None, handler: PromotionHandler | None = None):
    config = config or Config()

    app = Sanic("gh-promotion")
    logger.setLevel(config.OVERRIDE_LOGGING)

    app.ctx.promotion_config = config
    app.ctx.handler = handler

    limiter = AsyncLimiter(10)

    @app.listener("before_server_start")
    async def init(app, loop):
        config.print_config()
        logger.debug("Creating aiohttp session")
        app.ctx.aiohttp_session = aiohttp.ClientSession()
        if app.ctx.handler is None:
            app.ctx.handler = PromotionHandler(config)
        if app.ctx.handler.session is None:
            app.ctx.handler.session = app.ctx.aiohttp_session

    @app.listener("after_server_stop")
    async def close(app, loop):
        logger.debug("Closing aiohttp session")
        await app.ctx.aiohttp_session.close()

    @app.route("/")
    async def index(request):
        logger.debug("status check")
        return response.text("ok")

    @app.route("/health")
    async def health(request):
        if not limiter.has_capacity():
            return response.text("Rate limited", status=429)
        await limiter.acquire()

        logger.info("Checking health")
        try:
            await app.ctx.handler.github_app.refresh_credentials()
        except Exception as e:
            logger.error("Loading credentials failed: %s", e)
            return response.text("Credentials: not ok", status=500)
        return response.text("Credentials: ok")

    @app.route("/metrics")
    async def metrics(request):
        return response.raw(
            generate_latest(), headers={"Content-Type": CONTENT_TYPE_LATEST}
        )

    @app.route("/webhook", methods=["POST"])
    async def webhook(request):
        logger.debug("Webhook received")

        headers = {}
        for key in request.headers.keys():
            headers.setdefault(key, request.headers.getall(key))
        bus = await app.ctx.handler.process(request.body, normalise_headers(headers))

        if bus.response.status_code == 204:
            return response.empty(204)
        return response.json(
            {"message": bus.response.body, "error": bus.error},
            status=bus.response.status_code,
        )

    return app
