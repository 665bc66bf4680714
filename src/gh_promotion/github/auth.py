import asyncio
from typing import Awaitable, Callable

import aiohttp
import cachetools
from botocore.exceptions import BotoCoreError, ClientError
from gidgethub import aiohttp as gh_aiohttp
from gidgethub.abc import GitHubAPI
from gidgethub.apps import get_installation_access_token
from pydantic import BaseModel, ValidationError
from sanic.log import logger

from gh_promotion.aws import AWS
from gh_promotion.config import Config
from gh_promotion.exceptions import CredentialsError
from gh_promotion.signature import Signature

REQUESTER = "gh-promotion"


class Credentials(BaseModel):
    app_id: int | None = None
    private_key: str = ""
    webhook_secret: str = ""
    token: str = ""


class ClientCache:
    """Installation id to GitHub client.

    A client is only ever stored fully constructed, and construction for a
    missing key happens inside a single lock so concurrent first use builds
    one client. Entries expire after ``ttl`` seconds, ahead of the one hour
    lifetime of installation access tokens.
    """

    def __init__(self, maxsize: int = 500, ttl: float = 3000.0):
        self._clients: cachetools.TTLCache = cachetools.TTLCache(
            maxsize=maxsize, ttl=ttl
        )
        self._lock = asyncio.Lock()

    def __contains__(self, installation_id: int) -> bool:
        return installation_id in self._clients

    def __len__(self) -> int:
        return len(self._clients)

    async def get_or_create(
        self,
        installation_id: int,
        factory: Callable[[], Awaitable[GitHubAPI]],
    ) -> GitHubAPI:
        client = self._clients.get(installation_id)
        if client is not None:
            return client

        async with self._lock:
            client = self._clients.get(installation_id)
            if client is None:
                logger.debug("Creating client for installation %d", installation_id)
                client = await factory()
                self._clients[installation_id] = client
        return client


class GitHubApp:
    def __init__(
        self,
        config: Config,
        aws: AWS | None = None,
        clients: ClientCache | None = None,
    ):
        self.config = config
        self.aws = aws or AWS()
        self.clients = clients or ClientCache(
            maxsize=config.CLIENT_CACHE_SIZE, ttl=config.CLIENT_CACHE_TTL
        )
        self.http_cache = cachetools.LRUCache(maxsize=500)
        self.credentials: Credentials | None = None

    async def refresh_credentials(self) -> Credentials:
        if self.credentials is not None:
            return self.credentials

        if self.config.AUTH_MODE == "token":
            credentials = Credentials(
                token=self.config.GITHUB_TOKEN,
                webhook_secret=self.config.WEBHOOK_SECRET,
            )
        else:
            logger.debug("Loading credentials from parameter %s", self.config.SSM_KEY)
            try:
                raw = await self.aws.get_secret(self.config.SSM_KEY, decrypt=True)
                credentials = Credentials.model_validate_json(raw)
            except (BotoCoreError, ClientError, ValidationError) as e:
                raise CredentialsError(f"failed to load credentials: {e}") from e
            if not credentials.webhook_secret:
                credentials.webhook_secret = self.config.WEBHOOK_SECRET

        self.credentials = credentials
        return credentials

    def signature(self) -> Signature:
        secret = self.credentials.webhook_secret if self.credentials else ""
        return Signature(secret)

    async def _create_client(
        self, installation_id: int, session: aiohttp.ClientSession
    ) -> GitHubAPI:
        credentials = await self.refresh_credentials()

        if credentials.token:
            token = credentials.token
        else:
            if credentials.app_id is None or not credentials.private_key:
                raise CredentialsError("no app id or private key to authenticate with")
            gh_pre = gh_aiohttp.GitHubAPI(session, REQUESTER)
            access_token_response = await get_installation_access_token(
                gh_pre,
                installation_id=installation_id,
                app_id=str(credentials.app_id),
                private_key=credentials.private_key,
            )
            token = access_token_response["token"]

        return gh_aiohttp.GitHubAPI(
            session,
            REQUESTER,
            oauth_token=token,
            cache=self.http_cache,
        )

    async def client_for_installation(
        self, installation_id: int, session: aiohttp.ClientSession
    ) -> GitHubAPI:
        return await self.clients.get_or_create(
            installation_id,
            lambda: self._create_client(installation_id, session),
        )
