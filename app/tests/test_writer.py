from datetime import UTC, date, datetime

import pytest
from sqlalchemy import func, select

from app import models
from app.db.base import Base
from app.services.ingestion.normalize import (
    DerivedId,
    NativeId,
    NormalizedAssignee,
    NormalizedCitation,
    NormalizedClassification,
    NormalizedInventor,
    NormalizedPatent,
    normalize_record,
)
from app.services.ingestion.writer import PatentUpsertWriter, UpsertError, citation_dedupe_key


def snapshot(engine):
    """Every row of every table, in primary-key order."""

    with engine.connect() as conn:
        return {
            table.name: conn.execute(select(table).order_by(*table.primary_key.columns)).all()
            for table in Base.metadata.sorted_tables
        }


def count(session_factory, model):
    with session_factory() as session:
        return session.scalar(select(func.count()).select_from(model))


def make_patent(patent_id="US999", title="Widget title", **overrides):
    fields = dict(
        id=patent_id,
        title=title,
        abstract="A widget for testing upserts.",
        ipc_codes=["G06F16/00"],
        cpc_codes=["G06F16/31"],
        publication_date="2024-03-01",
        filing_date="2023-01-15",
        assignees=[NormalizedAssignee(identity=DerivedId("assignee", "Widget Co"), name="Widget Co", country="US")],
        inventors=[
            NormalizedInventor(identity=NativeId("inv-1"), first_name="Grace", last_name="Hopper"),
        ],
        classifications=[
            NormalizedClassification(code="G06F16/00", scheme="ipc"),
            NormalizedClassification(code="G06F16/31", scheme="cpc", description="Indexing"),
        ],
        citations=[
            NormalizedCitation(cited_patent_id="US111", citation_type="SEA"),
            NormalizedCitation(cited_patent_id=None, citation_type="APP"),
        ],
    )
    fields.update(overrides)
    return NormalizedPatent(**fields)


def test_write_batch_populates_all_tables(session_factory, fixed_clock):
    writer = PatentUpsertWriter(session_factory, clock=fixed_clock)

    assert writer.write_batch([make_patent()]) == 1

    with session_factory() as session:
        patent = session.get(models.Patent, "US999")
        assert patent.title == "Widget title"
        assert patent.publication_date == date(2024, 3, 1)
        assert patent.filing_date == date(2023, 1, 15)
        assert patent.priority_date is None
        assert patent.ipc_codes == ["G06F16/00"]
        assert [a.name for a in patent.assignees] == ["Widget Co"]
        assert [i.display_name for i in patent.inventors] == ["Grace Hopper"]
        assert [(c.code, c.scheme) for c in patent.classifications] == [
            ("G06F16/00", "ipc"),
            ("G06F16/31", "cpc"),
        ]
        assert sorted((c.cited_patent_id or "", c.citation_type) for c in patent.citations) == [
            ("", "APP"),
            ("US111", "SEA"),
        ]


def test_upserting_a_batch_twice_is_idempotent(engine, session_factory, fixed_clock, bigquery_record):
    batch = [make_patent(), normalize_record(bigquery_record)]
    writer = PatentUpsertWriter(session_factory, clock=fixed_clock)

    writer.write_batch(batch)
    first = snapshot(engine)
    writer.write_batch(batch)
    second = snapshot(engine)

    assert first == second
    assert len(first["patent"]) == 2
    assert len(first["citation"]) == 4
    assert len(first["patent_classification"]) == 6


def test_second_run_title_wins_and_updated_at_advances(session_factory):
    first_clock = datetime(2024, 1, 1, tzinfo=UTC)
    second_clock = datetime(2024, 2, 1, tzinfo=UTC)

    PatentUpsertWriter(session_factory, clock=lambda: first_clock).write_batch([make_patent(title="First")])
    with session_factory() as session:
        before = session.get(models.Patent, "US999")

    PatentUpsertWriter(session_factory, clock=lambda: second_clock).write_batch([make_patent(title="Second")])
    with session_factory() as session:
        after = session.get(models.Patent, "US999")

    assert after.title == "Second"
    assert after.created_at == before.created_at
    assert after.updated_at > before.updated_at
    assert count(session_factory, models.Patent) == 1


def test_entity_fields_are_refreshed_on_conflict(session_factory, fixed_clock):
    writer = PatentUpsertWriter(session_factory, clock=fixed_clock)
    writer.write_batch([make_patent()])

    renamed = make_patent(
        assignees=[
            NormalizedAssignee(
                identity=DerivedId("assignee", "Widget Co"), name="Widget Co", country="DE", city="Berlin"
            )
        ],
        classifications=[NormalizedClassification(code="G06F16/31", scheme="cpc", description="Full-text indexing")],
    )
    writer.write_batch([renamed])

    with session_factory() as session:
        assignee = session.scalars(select(models.Assignee)).one()
        assert (assignee.country, assignee.city) == ("DE", "Berlin")
        classification = session.scalars(
            select(models.Classification).where(models.Classification.scheme == "cpc")
        ).one()
        assert classification.description == "Full-text indexing"


def test_classification_ids_are_stable_and_shared(session_factory, fixed_clock):
    writer = PatentUpsertWriter(session_factory, clock=fixed_clock)
    writer.write_batch([make_patent("US1")])
    with session_factory() as session:
        ids_before = dict(session.execute(select(models.Classification.code, models.Classification.id)).all())

    writer.write_batch([make_patent("US2"), make_patent("US1")])
    with session_factory() as session:
        ids_after = dict(session.execute(select(models.Classification.code, models.Classification.id)).all())

    assert ids_before == ids_after
    assert count(session_factory, models.Classification) == 2
    assert count(session_factory, models.PatentClassification) == 4


def test_same_code_in_both_schemes_is_two_classifications(session_factory, fixed_clock):
    patent = make_patent(
        classifications=[
            NormalizedClassification(code="A01B", scheme="ipc"),
            NormalizedClassification(code="A01B", scheme="cpc"),
        ]
    )
    PatentUpsertWriter(session_factory, clock=fixed_clock).write_batch([patent])

    assert count(session_factory, models.Classification) == 2
    assert count(session_factory, models.PatentClassification) == 2


def test_duplicate_parties_within_a_patent_are_written_once(session_factory, fixed_clock):
    widget = NormalizedAssignee(identity=DerivedId("assignee", "Widget Co"), name="Widget Co")
    patent = make_patent(assignees=[widget, widget], citations=[NormalizedCitation("US5", "SEA")] * 2)

    PatentUpsertWriter(session_factory, clock=fixed_clock).write_batch([patent])

    assert count(session_factory, models.Assignee) == 1
    assert count(session_factory, models.PatentAssignee) == 1
    assert count(session_factory, models.Citation) == 1


def test_citations_without_cited_id_are_deduplicated():
    assert citation_dedupe_key("US1", None, "APP") == citation_dedupe_key("US1", None, "APP")
    assert citation_dedupe_key("US1", None, "APP") != citation_dedupe_key("US1", None, None)
    assert citation_dedupe_key("US1", None, None) != citation_dedupe_key("US1", "None", None)
    assert citation_dedupe_key("US1", "US2", None) != citation_dedupe_key("US2", "US1", None)


def test_failed_patent_is_rolled_back_and_earlier_patents_stay(session_factory, fixed_clock):
    broken = make_patent(
        "US-BROKEN",
        assignees=[NormalizedAssignee(identity=DerivedId("assignee", "Orphan Co"), name="Orphan Co")],
        classifications=[NormalizedClassification(code="X99", scheme="xyz")],
    )
    writer = PatentUpsertWriter(session_factory, clock=fixed_clock)

    with pytest.raises(UpsertError) as excinfo:
        writer.write_batch([make_patent("US-OK"), broken, make_patent("US-LATER")])

    assert excinfo.value.patent_id == "US-BROKEN"
    assert "US-BROKEN" in str(excinfo.value)
    with session_factory() as session:
        assert session.scalars(select(models.Patent.id)).all() == ["US-OK"]
        assert session.scalars(select(models.Assignee.name)).all() == ["Widget Co"]
        assert session.scalar(select(func.count()).select_from(models.Citation)) == 2


def test_source_filled_columns_are_unbounded():
    bounded = {
        f"{table.name}.{column.name}"
        for table in Base.metadata.sorted_tables
        for column in table.columns
        if getattr(column.type, "length", None) is not None
    }

    assert bounded == {"classification.scheme", "citation.dedupe_key"}


def test_long_source_values_are_stored_intact(session_factory, fixed_clock):
    long_type = "cited by examiner; " * 20
    long_id = "pv-" + "7" * 200
    patent = make_patent(
        "US-" + "1" * 120,
        assignees=[NormalizedAssignee(identity=NativeId(long_id), name="Widget Co", city="X" * 300)],
        citations=[NormalizedCitation("WO-" + "9" * 100, long_type)],
    )

    PatentUpsertWriter(session_factory, clock=fixed_clock).write_batch([patent])

    with session_factory() as session:
        assert session.scalars(select(models.Assignee.id)).one() == long_id
        assert session.scalars(select(models.Citation.citation_type)).one() == long_type
