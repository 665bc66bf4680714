import asyncio

import boto3
from sanic.log import logger


class AWS:
    """Parameter store and object storage access.

    boto3 is blocking, so every call is pushed to a worker thread and the
    caller's deadline applies to the await.
    """

    def __init__(self, ssm_client=None, s3_client=None):
        self._ssm = ssm_client
        self._s3 = s3_client

    @property
    def ssm(self):
        if self._ssm is None:
            self._ssm = boto3.client("ssm")
        return self._ssm

    @property
    def s3(self):
        if self._s3 is None:
            self._s3 = boto3.client("s3")
        return self._s3

    async def get_secret(self, key: str, decrypt: bool = True) -> str:
        logger.debug("Fetching parameter %s", key)
        response = await asyncio.to_thread(
            self.ssm.get_parameter, Name=key, WithDecryption=decrypt
        )
        return response["Parameter"]["Value"]

    async def put_object(self, id: str, bucket: str, body: bytes) -> None:
        if not bucket:
            logger.debug("No bucket configured, not uploading %s", id)
            return
        logger.debug("Uploading %s to bucket %s", id, bucket)
        await asyncio.to_thread(self.s3.put_object, Bucket=bucket, Key=id, Body=body)
