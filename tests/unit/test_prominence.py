"""Tests for prominence scoring."""

from datetime import date, datetime

import pytest

from civicwatch.models import (
    ActivityCounts,
    Entity,
    Mandate,
    MandateType,
    PartyRole,
    PartyRoleEntry,
)
from civicwatch.scoring import ProminenceScorer, compute_prominence
from civicwatch.scoring.prominence import cap, months_ago

NOW = datetime(2024, 6, 1, 12, 0, 0)


@pytest.fixture
def scorer():
    return ProminenceScorer()


class TestHelpers:
    """Test rounding and date helpers."""

    def test_cap_rounds_half_up(self):
        assert cap(1.5, 100) == 2
        assert cap(2.49, 100) == 2

    def test_cap_clamps(self):
        assert cap(250, 200) == 200
        assert cap(-3, 200) == 0

    def test_months_ago_clamps_day(self):
        assert months_ago(datetime(2024, 5, 31), 3) == datetime(2024, 2, 29)
        assert months_ago(datetime(2024, 1, 15), 3) == datetime(2023, 10, 15)


class TestMandateWeight:
    """Test the mandate sub-score."""

    def test_current_mandate_with_recency(self, scorer):
        entity = Entity(mandates=[Mandate(mandate_type=MandateType.DEPUTE, is_current=True)])

        breakdown = scorer.score_breakdown(entity, now=NOW)

        assert breakdown.mandate_weight == 200
        assert breakdown.recency_bonus == 150
        assert breakdown.total == 350

    def test_best_mandate_wins(self, scorer):
        entity = Entity(
            mandates=[
                Mandate(mandate_type=MandateType.MAIRE, is_current=True),
                Mandate(mandate_type=MandateType.SENATEUR, is_current=True),
            ]
        )

        assert scorer.score_breakdown(entity, now=NOW).mandate_weight == 200

    def test_old_past_mandate_is_discounted(self, scorer):
        entity = Entity(
            mandates=[
                Mandate(
                    mandate_type=MandateType.PRESIDENT_REPUBLIQUE,
                    is_current=False,
                    end_date=date(2012, 5, 15),
                )
            ]
        )

        breakdown = scorer.score_breakdown(entity, now=NOW)

        assert breakdown.mandate_weight == 120
        assert breakdown.recency_bonus == 0
        assert breakdown.total == 120

    def test_recent_past_mandate_gets_bonus(self, scorer):
        entity = Entity(
            mandates=[
                Mandate(mandate_type=MandateType.MINISTRE, is_current=False, end_date=date(2022, 7, 4))
            ]
        )

        breakdown = scorer.score_breakdown(entity, now=NOW)

        assert breakdown.mandate_weight == 84
        assert breakdown.recency_bonus == 50

    def test_active_party_role(self, scorer):
        entity = Entity(party_roles=[PartyRoleEntry(role=PartyRole.SECRETARY_GENERAL)])

        breakdown = scorer.score_breakdown(entity, now=NOW)

        assert breakdown.mandate_weight == 140
        assert breakdown.recency_bonus == 100

    def test_plain_membership_scores_nothing(self, scorer):
        entity = Entity(party_roles=[PartyRoleEntry(role=PartyRole.MEMBER)])

        assert scorer.score(entity, now=NOW) == 0


class TestActivity:
    """Test the activity, media and affairs sub-scores."""

    def test_activity_terms_are_capped_separately(self, scorer):
        activity = ActivityCounts(votes=1000, press_mentions=10, fact_check_mentions=10)

        breakdown = scorer.score_breakdown(Entity(), activity, NOW)

        # 80 (votes cap) + 30 + 60 (fact-check cap)
        assert breakdown.activity_score == 170

    def test_media_and_affairs(self, scorer):
        activity = ActivityCounts(recent_media_mentions=40, affairs=3)

        breakdown = scorer.score_breakdown(Entity(), activity, NOW)

        assert breakdown.media_score == 150
        assert breakdown.affairs_score == 45

    def test_total_is_capped(self, scorer):
        entity = Entity(
            mandates=[Mandate(mandate_type=MandateType.PRESIDENT_REPUBLIQUE, is_current=True)]
        )
        activity = ActivityCounts(
            votes=5000,
            press_mentions=500,
            fact_check_mentions=100,
            recent_media_mentions=100,
            affairs=20,
        )

        breakdown = scorer.score_breakdown(entity, activity, NOW)

        assert breakdown.activity_score == 200
        assert breakdown.affairs_score == 100
        assert breakdown.total == 1000

    def test_score_is_deterministic(self):
        entity = Entity(mandates=[Mandate(mandate_type=MandateType.DEPUTE, is_current=True)])
        activity = ActivityCounts(votes=3, press_mentions=2)

        assert compute_prominence(entity, activity, NOW) == compute_prominence(entity, activity, NOW)
        assert compute_prominence(entity, activity, NOW) == 200 + 8 + 150


class TestProminencePass:
    """Test the batch recomputation against the store."""

    def test_scores_are_written(self, store, make_entity, make_affair):
        deputy = make_entity(
            "Anne", "Martin", mandates=[Mandate(mandate_type=MandateType.DEPUTE, is_current=True)]
        )
        nobody = make_entity("Paul", "Durand")
        store.record_activity(deputy.id, votes=100, press_mentions=5)
        store.add_media_mention(deputy.id, datetime(2024, 5, 1))
        store.add_media_mention(deputy.id, datetime(2023, 1, 1))
        make_affair(deputy.id)

        stats = ProminenceScorer().run_prominence_pass(store, now=NOW)

        # 200 + (50 + 15) + 5 media + 15 affair + 150 recency
        assert store.get_entity(deputy.id).prominence_score == 435
        assert store.get_entity(nobody.id).prominence_score == 0
        assert stats.total == 2
        assert stats.updated == 2
        assert stats.max_score == 435

    def test_dry_run_writes_nothing(self, store, make_entity):
        deputy = make_entity(
            "Anne", "Martin", mandates=[Mandate(mandate_type=MandateType.DEPUTE, is_current=True)]
        )

        stats = ProminenceScorer().run_prominence_pass(store, dry_run=True, now=NOW)

        assert stats.dry_run is True
        assert stats.updated == 0
        assert stats.max_score == 350
        assert store.get_entity(deputy.id).prominence_score == 0


ACTIVITY_FIELDS = ["votes", "press_mentions", "fact_check_mentions", "recent_media_mentions", "affairs"]


def base_entities():
    return [
        Entity(),
        Entity(mandates=[Mandate(mandate_type=MandateType.MAIRE, is_current=True)]),
        Entity(
            mandates=[
                Mandate(mandate_type=MandateType.MINISTRE, is_current=False, end_date=date(2022, 7, 4))
            ]
        ),
        Entity(
            mandates=[
                Mandate(mandate_type=MandateType.DEPUTE, is_current=False, end_date=date(2001, 6, 1))
            ]
        ),
        Entity(party_roles=[PartyRoleEntry(role=PartyRole.SPOKESPERSON)]),
    ]


class TestMonotonicity:
    """Adding any positive input never lowers the score."""

    @pytest.mark.parametrize("field", ACTIVITY_FIELDS)
    def test_each_count_is_non_decreasing(self, scorer, field):
        for entity in base_entities():
            previous = -1
            for value in range(0, 400, 7):
                counts = {name: 20 for name in ACTIVITY_FIELDS}
                counts[field] = value
                activity = ActivityCounts(**counts)

                score = scorer.score(entity, activity, now=NOW)

                assert score >= previous
                previous = score

    @pytest.mark.parametrize("mandate_type", list(MandateType))
    @pytest.mark.parametrize("is_current", [True, False])
    def test_adding_a_mandate_never_lowers(self, scorer, mandate_type, is_current):
        activity = ActivityCounts(votes=30, press_mentions=5)
        added = Mandate(
            mandate_type=mandate_type,
            is_current=is_current,
            end_date=None if is_current else date(2015, 1, 1),
        )
        for entity in base_entities():
            before = scorer.score(entity, activity, now=NOW)
            grown = entity.model_copy(update={"mandates": entity.mandates + [added]})

            assert scorer.score(grown, activity, now=NOW) >= before

    @pytest.mark.parametrize("role", list(PartyRole))
    @pytest.mark.parametrize("end_date", [None, date(2019, 1, 1)])
    def test_adding_a_party_role_never_lowers(self, scorer, role, end_date):
        added = PartyRoleEntry(role=role, end_date=end_date)
        for entity in base_entities():
            before = scorer.score(entity, now=NOW)
            grown = entity.model_copy(update={"party_roles": entity.party_roles + [added]})

            assert scorer.score(grown, now=NOW) >= before

    @pytest.mark.parametrize("mandate_type", list(MandateType))
    def test_current_mandate_scores_at_least_past_one(self, scorer, mandate_type):
        past = Entity(
            mandates=[Mandate(mandate_type=mandate_type, is_current=False, end_date=date(2023, 1, 1))]
        )
        current = Entity(mandates=[Mandate(mandate_type=mandate_type, is_current=True)])

        assert scorer.score(current, now=NOW) >= scorer.score(past, now=NOW)
