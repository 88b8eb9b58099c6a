"""Tests for publication status rules."""

from datetime import date, datetime

import pytest

from civicwatch.models import Entity, EntityStatus, Mandate, MandateType, StatusRules
from civicwatch.scoring import PublicationStatusEngine, determine_publication_status

NOW = datetime(2024, 6, 1)


def current_mandate():
    return [Mandate(mandate_type=MandateType.DEPUTE, is_current=True)]


class TestDeterminePublicationStatus:
    """Test rule priority."""

    def test_override_is_respected(self):
        entity = Entity(status_override=True, mandates=current_mandate())

        assert determine_publication_status(entity, NOW) is None

    def test_died_before_fifth_republic_is_excluded(self):
        entity = Entity(death_date=date(1950, 3, 2), prominence_score=900, mandates=current_mandate())

        assert determine_publication_status(entity, NOW) == EntityStatus.EXCLUDED

    def test_born_before_1920_without_mandate_is_excluded(self):
        entity = Entity(birth_date=date(1910, 1, 1), prominence_score=100)

        assert determine_publication_status(entity, NOW) == EntityStatus.EXCLUDED

    def test_born_before_1920_but_prominent_is_not_excluded(self):
        entity = Entity(birth_date=date(1910, 1, 1), prominence_score=200, has_photo=True)

        assert determine_publication_status(entity, NOW) == EntityStatus.PUBLISHED

    def test_current_mandate_publishes(self):
        entity = Entity(mandates=current_mandate())

        assert determine_publication_status(entity, NOW) == EntityStatus.PUBLISHED

    def test_prominent_with_minimum_data_publishes(self):
        entity = Entity(prominence_score=150, has_biography=True)

        assert determine_publication_status(entity, NOW) == EntityStatus.PUBLISHED

    def test_prominent_without_data_stays_draft(self):
        entity = Entity(prominence_score=300)

        assert determine_publication_status(entity, NOW) == EntityStatus.DRAFT

    def test_minimum_data_requirement_can_be_disabled(self):
        entity = Entity(prominence_score=300)
        rules = StatusRules(require_min_data=False)

        assert determine_publication_status(entity, NOW, rules) == EntityStatus.PUBLISHED

    def test_long_dead_is_archived(self):
        entity = Entity(death_date=date(2005, 1, 1), prominence_score=120)

        assert determine_publication_status(entity, NOW) == EntityStatus.ARCHIVED

    def test_low_score_is_archived(self):
        entity = Entity(prominence_score=49)

        assert determine_publication_status(entity, NOW) == EntityStatus.ARCHIVED

    def test_middle_ground_stays_draft(self):
        entity = Entity(prominence_score=100, has_photo=True)

        assert determine_publication_status(entity, NOW) == EntityStatus.DRAFT


class TestPublicationStatusEngine:
    """Test the batch pass against the store."""

    @pytest.fixture
    def population(self, make_entity):
        return {
            "deputy": make_entity("Anne", "Martin", mandates=current_mandate()),
            "retired": make_entity("Paul", "Durand", prominence_score=10),
            "frozen": make_entity(
                "Luc", "Petit", prominence_score=10, status_override=True
            ),
            "published": make_entity(
                "Eve", "Blanc", mandates=current_mandate(), publication_status=EntityStatus.PUBLISHED
            ),
        }

    def test_only_changes_are_written(self, store, population, audit_logger):
        engine = PublicationStatusEngine(store, audit_logger=audit_logger)

        stats = engine.run(now=NOW)

        assert stats.total == 4
        assert stats.skipped_override == 1
        assert stats.unchanged == 1
        assert stats.changes == {EntityStatus.PUBLISHED: 1, EntityStatus.ARCHIVED: 1}
        assert store.get_entity(population["deputy"].id).publication_status == EntityStatus.PUBLISHED
        assert store.get_entity(population["retired"].id).publication_status == EntityStatus.ARCHIVED
        assert store.get_entity(population["frozen"].id).publication_status == EntityStatus.DRAFT
        assert audit_logger.log_status_change.call_count == 2

    def test_dry_run_reports_samples_without_writing(self, store, population, audit_logger):
        engine = PublicationStatusEngine(store, audit_logger=audit_logger)

        stats = engine.run(dry_run=True, now=NOW)

        assert stats.changed == 2
        assert {s.entity_id for s in stats.samples} == {
            population["deputy"].id,
            population["retired"].id,
        }
        assert store.get_entity(population["deputy"].id).publication_status == EntityStatus.DRAFT
        audit_logger.log_status_change.assert_not_called()
