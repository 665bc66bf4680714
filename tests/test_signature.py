import pytest

from gh_promotion.signature import Signature

BODY = b'{"key": "value"}'
EXPECTED = "sha256=bc7daef0d3e3b227f6f1dd1b6e8ee0711a94bfd6a61ca28ec3c4aa22a33d27d8"


def headers(signature=EXPECTED, content_type="application/json"):
    result = {}
    if signature is not None:
        result["x-hub-signature-256"] = signature
    if content_type is not None:
        result["content-type"] = content_type
    return result


def test_create():
    assert Signature("key").create(BODY) == EXPECTED
    assert Signature(b"key").create(BODY.decode()) == EXPECTED


def test_validate_request():
    assert Signature("key").validate_request(BODY, headers())


@pytest.mark.parametrize(
    "signature",
    [
        "sha256=bc7daef0d3e3b227f6f1dd1b6e8ee0711a94bfd6a61ca28ec3c4aa22a33d27d9",
        "bc7daef0d3e3b227f6f1dd1b6e8ee0711a94bfd6a61ca28ec3c4aa22a33d27d8",
        "sha1=bc7daef0d3e3b227f6f1dd1b6e8ee0711a94bfd6a61ca28ec3c4aa22a33d27d8",
        "",
        None,
    ],
)
def test_rejects_wrong_signature(signature):
    assert not Signature("key").validate_request(BODY, headers(signature=signature))


@pytest.mark.parametrize(
    "content_type",
    [None, "", "text/plain", "application/x-www-form-urlencoded", "APPLICATION/JSON"],
)
def test_rejects_wrong_content_type(content_type):
    assert not Signature("key").validate_request(
        BODY, headers(content_type=content_type)
    )


@pytest.mark.parametrize("body", [b"", b"{}", BODY])
def test_rejects_missing_header_regardless_of_body(body):
    signature = Signature("key")
    assert not signature.validate_request(body, {"content-type": "application/json"})


@pytest.mark.parametrize("secret", ["", None])
def test_missing_secret_fails_closed(secret):
    signature = Signature(secret)
    assert not signature.validate_request(BODY, headers(signature=signature.create(BODY)))


def test_other_secret_rejected():
    assert not Signature("other").validate_request(BODY, headers())


@pytest.mark.parametrize("signature", ["sha256=ü", "sha256=\udcff" + "0" * 63])
def test_rejects_non_ascii_signature(signature):
    assert not Signature("key").validate_request(BODY, headers(signature=signature))
