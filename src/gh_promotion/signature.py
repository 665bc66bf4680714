import hmac
from typing import Mapping, Union

SIGNATURE_HEADER = "x-hub-signature-256"
SIGNATURE_PREFIX = "sha256="


class Signature:
    def __init__(self, secret: Union[str, bytes, None]):
        if isinstance(secret, str):
            secret = secret.encode()
        self.secret = secret or b""

    def create(self, payload: Union[str, bytes]) -> str:
        """Create a signature for the given payload."""
        if isinstance(payload, str):
            payload = payload.encode()
        digest = hmac.new(
            self.secret,
            payload,
            digestmod="sha256",
        ).hexdigest()
        return f"{SIGNATURE_PREFIX}{digest}"

    def verify(self, payload: Union[str, bytes], signature: str) -> bool:
        """Verify that the signature matches the payload.

        An empty secret never verifies anything.
        """
        if not self.secret or not signature.startswith(SIGNATURE_PREFIX):
            return False
        return hmac.compare_digest(
            self.create(payload).encode(),
            signature.encode("utf-8", "surrogateescape"),
        )

    def validate_request(self, body: bytes, headers: Mapping[str, str]) -> bool:
        """Check a webhook request; ``headers`` must have lowercase keys."""
        if headers.get("content-type") != "application/json":
            return False
        signature = headers.get(SIGNATURE_HEADER)
        if not signature:
            return False
        return self.verify(body, signature)
