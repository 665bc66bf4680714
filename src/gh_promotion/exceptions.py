class PromotionError(ValueError):
    """Base class for all errors raised while processing a promotion webhook.

    ``status_code`` is the HTTP status the webhook response carries when the
    error ends the pipeline.
    """

    status_code: int = 500


class MissingHeaderError(PromotionError):
    """Raised when a required webhook header is absent."""

    status_code = 422


class UnhandledEventTypeError(PromotionError):
    """Raised when no classifier is registered for the event type."""

    status_code = 400


class CredentialsError(PromotionError):
    """Raised when credentials cannot be loaded from the secret store."""

    status_code = 401


class SignatureMismatchError(PromotionError):
    """Raised when a signature verification fails."""

    status_code = 403


class InvalidPayloadError(PromotionError):
    """Raised when the webhook body lacks the fields the pipeline needs."""

    status_code = 422


class MissingInstallationIdError(PromotionError):
    """Raised when the installation id is missing from the webhook payload."""

    status_code = 401


class InvalidEventError(PromotionError):
    """Raised when a payload is the wrong variant or lacks what a step needs."""

    pass


class PullRequestNotFoundError(PromotionError):
    """Raised when no open promotion pull request matches the context."""

    pass


class TemplateRenderError(PromotionError):
    """Raised when the check run body cannot be rendered."""

    pass
