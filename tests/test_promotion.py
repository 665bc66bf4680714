from unittest.mock import Mock

import pytest
from pydantic import ValidationError

from gh_promotion.github.models import PullRequest, PullRequestBranch
from gh_promotion.promotion import DEFAULT_STAGES, Promoter, new_dynamic_promoter
from gh_promotion.utils import normalise_full_ref, normalise_ref


def make_pr(head: str, base: str) -> PullRequest:
    return PullRequest(
        number=1,
        head=PullRequestBranch(ref=head, sha="abc"),
        base=PullRequestBranch(ref=base, sha="def"),
    )


@pytest.fixture
def promoter():
    return Promoter.default()


@pytest.mark.parametrize(
    "ref", ["main", "staging", "refs/heads/canary", "production", "feature", ""]
)
def test_stage_index_normalisation_is_idempotent(promoter, ref):
    assert promoter.stage_index(normalise_full_ref(ref)) == promoter.stage_index(ref)
    assert normalise_ref(normalise_full_ref(ref)) == normalise_ref(ref)


def test_stage_index(promoter):
    assert promoter.stage_index("main") == 0
    assert promoter.stage_index("refs/heads/production") == 3
    assert promoter.stage_index("feature/x") == -1


def test_is_promotable_ref(promoter):
    assert promoter.is_promotable_ref("main") == ("staging", True)
    assert promoter.is_promotable_ref("refs/heads/canary") == ("production", True)
    assert promoter.is_promotable_ref("production") == (None, False)
    assert promoter.is_promotable_ref("feature") == (None, False)


@pytest.mark.parametrize(
    "head,base,expected",
    [
        ("main", "staging", True),
        ("refs/heads/staging", "refs/heads/canary", True),
        ("main", "canary", False),
        ("staging", "main", False),
        ("production", "main", False),
        ("main", "main", False),
        ("feature", "staging", False),
    ],
)
def test_is_promotion_request(promoter, head, base, expected):
    assert promoter.is_promotion_request(make_pr(head, base)) is expected


def test_progress(promoter):
    assert promoter.progress("main") == "1/4"
    assert promoter.progress("canary") == "3/4"


def test_promoter_requires_a_stage():
    with pytest.raises(ValidationError):
        Promoter(stages=())


def test_promoter_is_frozen(promoter):
    with pytest.raises(ValidationError):
        promoter.stages = ("main",)


@pytest.mark.parametrize(
    "properties",
    [
        None,
        {},
        {"gitops-promotion-path": ""},
        {"gitops-promotion-path": "   "},
        {"gitops-promotion-path": ","},
        {"other-key": "dev,prod"},
    ],
)
def test_dynamic_promoter_falls_back_to_default(properties):
    log = Mock()
    promoter = new_dynamic_promoter(properties, "gitops-promotion-path", logger=log)
    assert promoter.stages == DEFAULT_STAGES
    log.warning.assert_called()


def test_dynamic_promoter_uses_given_default():
    promoter = new_dynamic_promoter({}, "gitops-promotion-path", ["dev", "prod"])
    assert promoter.stages == ("dev", "prod")


@pytest.mark.parametrize(
    "value,expected",
    [
        ("dev,test,prod", ("dev", "test", "prod")),
        ("dev,test,prod,", ("dev", "test", "prod")),
        (" dev , test ,prod ", ("dev", "test", "prod")),
        ("dev,,prod", ("dev", "prod")),
        (["dev", "prod"], ("dev", "prod")),
    ],
)
def test_dynamic_promoter_parses_stages(value, expected):
    promoter = new_dynamic_promoter(
        {"gitops-promotion-path": value}, "gitops-promotion-path"
    )
    assert promoter.stages == expected


def test_mermaid_highlights_transition(promoter):
    diagram = promoter.mermaid("staging", "canary", failed=False)
    assert diagram.startswith("flowchart LR")
    assert "s1 ==> s2" in diagram
    assert "s0 --> s1" in diagram
    assert "class s2 current" in diagram
    assert "class s0 done" in diagram

    assert "class s2 failed" in promoter.mermaid("staging", "canary", failed=True)
