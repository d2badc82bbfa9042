"""
Tests for the relevance scorer.
"""

from datetime import datetime, timedelta, timezone

import pytest

from feedengine.config import RankingWeights
from feedengine.models.domain import Article, RoleWeight
from feedengine.services.relevance import RelevanceScorer

NOW = datetime(2024, 6, 1, 12, 0, 0)


def make_article(**overrides) -> Article:
    fields = {
        "id": 1,
        "title": "Scaling Postgres",
        "url": "https://example.com/postgres",
        "published_at": NOW,
    }
    fields.update(overrides)
    return Article(**fields)


@pytest.fixture
def scorer() -> RelevanceScorer:
    return RelevanceScorer()


class TestRelevanceScore:
    """Tests for the combined score."""

    def test_worked_example(self, scorer):
        user_roles = [RoleWeight(role="FRONTEND", weight=0.6), RoleWeight(role="BACKEND", weight=0.4)]
        article = make_article(
            target_roles=[RoleWeight(role="FRONTEND", weight=0.5), RoleWeight(role="DEVOPS", weight=0.5)],
        )

        assert scorer.score(user_roles, [], article, NOW) == 32

    def test_perfect_match_is_100(self, scorer):
        article = make_article(
            target_roles=[RoleWeight(role="BACKEND", weight=1.0)],
            tags=["python"],
            views=1000,
            saves=100,
        )

        assert scorer.score([RoleWeight(role="BACKEND", weight=1.0)], ["python"], article, NOW) == 100

    def test_no_signal_is_freshness_only(self, scorer):
        assert scorer.score([], [], make_article(), NOW) == 20

    def test_missing_publish_date_is_neutral(self, scorer):
        assert scorer.score([], [], make_article(published_at=None), NOW) == 10

    def test_score_is_deterministic(self, scorer):
        article = make_article(tags=["react"], views=10)
        roles = [RoleWeight(role="FRONTEND", weight=1.0)]

        assert scorer.score(roles, ["react"], article, NOW) == scorer.score(roles, ["react"], article, NOW)

    def test_more_saves_never_lowers_score(self, scorer):
        roles = [RoleWeight(role="ML", weight=1.0)]
        scores = [
            scorer.score(roles, [], make_article(saves=saves), NOW)
            for saves in (0, 10, 50, 100, 500)
        ]

        assert scores == sorted(scores)

    def test_stronger_role_match_never_lowers_score(self, scorer):
        roles = [RoleWeight(role="BACKEND", weight=1.0)]
        scores = [
            scorer.score(
                roles,
                ["python"],
                make_article(
                    target_roles=[RoleWeight(role="BACKEND", weight=step / 10)],
                    tags=["python"],
                    views=40,
                    saves=3,
                ),
                NOW,
            )
            for step in range(11)
        ]

        assert scores == sorted(scores)
        assert scores[0] < scores[-1]

    def test_result_always_in_bounds(self, scorer):
        roles = [RoleWeight(role="DATA", weight=1.0), RoleWeight(role="ML", weight=1.0)]
        article = make_article(
            target_roles=[RoleWeight(role="DATA", weight=1.0), RoleWeight(role="ML", weight=1.0)],
            tags=["pandas", "spark"],
            views=10**6,
            saves=10**6,
        )

        score = scorer.score(roles, ["pandas", "spark"], article, NOW)
        assert 0 <= score <= 100

    def test_custom_weights(self):
        weights = RankingWeights(
            weight_role_alignment=0.0,
            weight_tag_match=0.0,
            weight_freshness=1.0,
            weight_engagement=0.0,
        )

        assert RelevanceScorer(weights).score([], [], make_article(), NOW) == 100


class TestRankingWeights:
    """Tests for weight validation."""

    def test_weights_must_sum_to_one(self):
        with pytest.raises(ValueError):
            RankingWeights(weight_role_alignment=0.9)


class TestComponents:
    """Tests for the individual factors."""

    def test_role_alignment_caps_at_one(self):
        roles = [RoleWeight(role="BACKEND", weight=1.0), RoleWeight(role="DEVOPS", weight=1.0)]

        assert RelevanceScorer.role_alignment(roles, roles) == 1.0

    def test_role_alignment_ignores_duplicate_user_roles(self):
        user = [RoleWeight(role="BACKEND", weight=0.5), RoleWeight(role="BACKEND", weight=0.5)]
        article = [RoleWeight(role="BACKEND", weight=0.5)]

        assert RelevanceScorer.role_alignment(user, article) == pytest.approx(0.25)

    def test_role_alignment_without_overlap(self):
        user = [RoleWeight(role="MOBILE", weight=1.0)]
        article = [RoleWeight(role="SECURITY", weight=1.0)]

        assert RelevanceScorer.role_alignment(user, article) == 0.0

    def test_tag_match_is_case_insensitive_substring(self):
        assert RelevanceScorer.tag_match(["Python", "react"], ["python3"]) == pytest.approx(0.5)
        assert RelevanceScorer.tag_match(["kubernetes"], ["K8S", "Kubernetes"]) == pytest.approx(0.5)

    def test_tag_match_empty_inputs(self):
        assert RelevanceScorer.tag_match([], ["python"]) == 0.0
        assert RelevanceScorer.tag_match(["python"], []) == 0.0
        assert RelevanceScorer.tag_match(["  "], ["python"]) == 0.0

    @pytest.mark.parametrize(
        "age_days,expected",
        [
            (0, 1.0),
            (7, 1.0),
            (10, 0.8),
            (14, 0.8),
            (20, 0.5),
            (30, 0.5),
            (31, 0.2),
            (365, 0.2),
        ],
    )
    def test_freshness_steps(self, age_days, expected):
        published = NOW - timedelta(days=age_days)

        assert RelevanceScorer.freshness(published, NOW) == expected

    def test_freshness_unknown_date(self):
        assert RelevanceScorer.freshness(None, NOW) == 0.5

    def test_freshness_accepts_aware_datetimes(self):
        published = (NOW - timedelta(days=10)).replace(tzinfo=timezone.utc)

        assert RelevanceScorer.freshness(published, NOW) == 0.8

    def test_engagement_blend(self, scorer):
        assert scorer.engagement(0, 0) == 0.0
        assert scorer.engagement(500, 50) == pytest.approx(0.5)
        assert scorer.engagement(5000, 5000) == pytest.approx(1.0)

    def test_engagement_treats_missing_counters_as_zero(self, scorer):
        assert scorer.engagement(None, None) == 0.0
