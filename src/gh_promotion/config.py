from typing import Literal

from pydantic_settings import BaseSettings
from sanic.log import logger


class Config(BaseSettings):
    AUTH_MODE: Literal["token", "ssm"] = "ssm"
    GITHUB_TOKEN: str = ""
    SSM_KEY: str = "gh-promotion-app-creds"
    WEBHOOK_SECRET: str = ""

    OVERRIDE_LOGGING: Literal[
        "CRITICAL",
        "FATAL",
        "ERROR",
        "WARNING",
        "WARN",
        "INFO",
        "DEBUG",
        "NOTSET",
    ] = "INFO"

    STERILE: bool = False

    PROMOTION_EVENTS: list[str] = [
        "push",
        "pull_request",
        "pull_request_review",
        "deployment_status",
        "status",
        "check_suite",
        "workflow_run",
    ]
    DEFAULT_STAGES: list[str] = ["main", "staging", "canary", "production"]

    DYNAMIC_PROMOTION_ENABLED: bool = True
    DYNAMIC_PROMOTION_KEY: str = "gitops-promotion-path"

    CREATE_TARGET_REF: bool = True
    DRAFT_PULL_REQUEST_KEY: str = "gitops-promotion-draft-pr"

    COMMIT_STATUS_ENABLED: bool = False
    COMMIT_STATUS_CONTEXT: str = "{source}→{target}"
    CHECK_RUN_ENABLED: bool = True
    CHECK_RUN_NAME: str = "{source}→{target}"

    FETCH_RATE_LIMITS: bool = False
    RATE_LIMIT_INTERVAL: float = 60.0

    S3_UPLOAD_ENABLED: bool = False
    S3_BUCKET_NAME: str = ""

    REQUEST_TIMEOUT: float = 5.0

    CLIENT_CACHE_SIZE: int = 500
    CLIENT_CACHE_TTL: float = 3000.0

    LAMBDA_PAYLOAD_TYPE: Literal["api-gateway-v1", "api-gateway-v2", "lambda-url"] = (
        "api-gateway-v2"
    )

    def event_enabled(self, event_type: str) -> bool:
        return event_type in self.PROMOTION_EVENTS

    def print_config(self):
        """Print configuration values with sensitive attributes masked"""
        sensitive_attrs = {
            "GITHUB_TOKEN",
            "WEBHOOK_SECRET",
        }

        logger.info("=== GitHub Promotion Configuration ===")
        for field_name, field_value in self.model_dump().items():
            if field_name in sensitive_attrs:
                logger.info(f"{field_name}: ***")
            else:
                logger.info(f"{field_name}: {field_value}")
        logger.info("======================================")
