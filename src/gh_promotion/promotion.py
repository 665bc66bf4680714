import logging
from typing import Any, Sequence

from pydantic import BaseModel, ConfigDict, Field
from sanic.log import logger as default_logger

from gh_promotion.github.models import PullRequest
from gh_promotion.utils import get_custom_property, normalise_ref

DEFAULT_STAGES = ("main", "staging", "canary", "production")


class Promoter(BaseModel):
    """An ordered sequence of stage branches.

    Promotion only ever moves forward by one stage: ``main`` may be promoted
    into ``staging``, never directly into ``canary``, and the last stage is
    never promotable.
    """

    model_config = ConfigDict(frozen=True)

    stages: tuple[str, ...] = Field(min_length=1)

    @classmethod
    def default(cls, stages: Sequence[str] = DEFAULT_STAGES) -> "Promoter":
        return cls(stages=tuple(stages))

    def stage_index(self, ref: str) -> int:
        try:
            return self.stages.index(normalise_ref(ref))
        except ValueError:
            return -1

    def is_promotable_ref(self, ref: str) -> tuple[str | None, bool]:
        index = self.stage_index(ref)
        if index == -1 or index >= len(self.stages) - 1:
            return None, False
        return self.stages[index + 1], True

    def next_stage(self, ref: str) -> str | None:
        return self.is_promotable_ref(ref)[0]

    def is_promotion_request(self, pr: PullRequest) -> bool:
        next_stage, ok = self.is_promotable_ref(pr.head.ref)
        return ok and next_stage == normalise_ref(pr.base.ref)

    def progress(self, ref: str) -> str:
        return f"{self.stage_index(ref) + 1}/{len(self.stages)}"

    def mermaid(self, head_ref: str | None, base_ref: str | None, failed: bool) -> str:
        """Render the promotion path as a Mermaid flowchart.

        Stages already passed are marked done, the transition being promoted is
        highlighted and marked failed when ``failed`` is set.
        """
        head = self.stage_index(head_ref) if head_ref else -1
        base = self.stage_index(base_ref) if base_ref else -1

        lines = ["flowchart LR"]
        for index, stage in enumerate(self.stages):
            lines.append(f'    s{index}["{stage}"]')
        for index in range(len(self.stages) - 1):
            arrow = "==>" if (index, index + 1) == (head, base) else "-->"
            lines.append(f"    s{index} {arrow} s{index + 1}")

        lines.append("    classDef done fill:#2da44e,color:#fff")
        lines.append("    classDef current fill:#bf8700,color:#fff")
        lines.append("    classDef failed fill:#cf222e,color:#fff")
        for index in range(len(self.stages)):
            if index == base:
                css = "failed" if failed else "current"
            elif head != -1 and index <= head:
                css = "done"
            else:
                continue
            lines.append(f"    class s{index} {css}")
        return "\n".join(lines)


def new_dynamic_promoter(
    custom_properties: dict[str, Any] | None,
    key: str,
    default_stages: Sequence[str] = DEFAULT_STAGES,
    logger: logging.Logger | logging.LoggerAdapter = default_logger,
) -> Promoter:
    """Build a promoter from a repository custom property.

    Misconfiguration never blocks promotion: a missing or empty property, or
    one that yields no stage names, falls back to ``default_stages``.
    """
    default = Promoter.default(default_stages)

    value = get_custom_property(custom_properties, key)
    if value is None:
        logger.warning("Promotion key %s not found in custom properties, using default stages", key)
        return default

    value = value.strip()
    if not value:
        logger.warning("Promotion key %s is empty, using default stages", key)
        return default

    if value.endswith(","):
        logger.warning("Promotion key %s has a trailing comma, removing it", key)
        value = value.rstrip(",")

    stages = [stage.strip() for stage in value.split(",")]
    stages = [stage for stage in stages if stage]
    if not stages:
        logger.warning("Promotion key %s defines no stages, using default stages", key)
        return default

    logger.debug("Loaded dynamic promotion stages: %s", stages)
    return Promoter(stages=tuple(stages))
