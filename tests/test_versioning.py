"""Tests for the append-only version history."""
import pytest

from contract_review import models, versioning
from contract_review.errors import ConcurrentVersionConflict, NotFound


@pytest.fixture
def db(database):
    with database.session() as session:
        yield session


def _contract(db, contract_id):
    return db.get(models.Contract, contract_id)


def test_edits_get_consecutive_version_numbers(db, contract_id, seed):
    contract = _contract(db, contract_id)

    assert versioning.record_edit(db, contract, "Draft one", seed.member_id) == 1
    assert versioning.record_edit(db, contract, "Draft two", seed.member_id, "Reworded") == 2
    assert versioning.record_edit(db, contract, "Draft three", seed.admin_id) == 3

    versions = versioning.list_versions(db, contract_id)
    assert [v.version_number for v in versions] == [3, 2, 1]
    assert [v.content for v in versions] == ["Draft three", "Draft two", "Draft one"]
    assert versions[1].changes_summary == "Reworded"
    assert versions[0].created_by == seed.admin_id

    db.refresh(contract)
    assert contract.current_version == 3
    assert contract.edited_content == "Draft three"


def test_unchanged_content_creates_no_version(db, contract_id, seed):
    contract = _contract(db, contract_id)
    versioning.record_edit(db, contract, "Same text", seed.member_id)

    assert versioning.record_edit(db, contract, "Same text", seed.member_id) == 1
    assert len(versioning.list_versions(db, contract_id)) == 1


def test_restore_appends_copy_of_old_version(db, contract_id, seed):
    contract = _contract(db, contract_id)
    versioning.record_edit(db, contract, "Original wording", seed.member_id)
    versioning.record_edit(db, contract, "Changed wording", seed.member_id)
    first = versioning.list_versions(db, contract_id)[-1]

    assert versioning.restore(db, contract, first.id, seed.admin_id) == 3

    versions = versioning.list_versions(db, contract_id)
    assert [v.version_number for v in versions] == [3, 2, 1]
    assert versions[0].content == "Original wording"
    assert versions[0].changes_summary == "Restored from version 1"
    assert versions[0].created_by == seed.admin_id
    # The restored version itself is untouched
    assert versions[2].id == first.id
    assert versions[2].content == "Original wording"

    db.refresh(contract)
    assert contract.current_version == 3
    assert contract.edited_content == "Original wording"


def test_restore_current_version_still_appends(db, contract_id, seed):
    contract = _contract(db, contract_id)
    versioning.record_edit(db, contract, "Only draft", seed.member_id)
    current = versioning.list_versions(db, contract_id)[0]

    assert versioning.restore(db, contract, current.id, seed.member_id) == 2


def test_restore_unknown_version(db, contract_id, seed):
    contract = _contract(db, contract_id)
    with pytest.raises(NotFound):
        versioning.restore(db, contract, "missing", seed.member_id)


def test_get_version_of_other_contract(db, contract_id, seed):
    contract = _contract(db, contract_id)
    versioning.record_edit(db, contract, "Draft", seed.member_id)
    version = versioning.list_versions(db, contract_id)[0]

    assert versioning.get_version(db, contract_id, version.id).content == "Draft"
    with pytest.raises(NotFound):
        versioning.get_version(db, "another-contract", version.id)


def test_stale_writer_loses_version_race(database, contract_id, seed):
    with database.session() as first, database.session() as second:
        stale = _contract(first, contract_id)
        base_version = stale.current_version

        fresh = _contract(second, contract_id)
        assert versioning.record_edit(second, fresh, "Winner", seed.member_id) == 1

        with pytest.raises(ConcurrentVersionConflict):
            versioning.append_version(first, contract_id, "Loser", seed.admin_id, None, base_version)

    with database.session() as db:
        versions = versioning.list_versions(db, contract_id)
        assert [(v.version_number, v.content) for v in versions] == [(1, "Winner")]
        assert _contract(db, contract_id).current_version == 1


def test_pointer_moved_without_version_row_is_a_conflict(db, contract_id, seed):
    db.query(models.Contract).filter(models.Contract.id == contract_id).update({"current_version": 4})
    db.commit()

    with pytest.raises(ConcurrentVersionConflict):
        versioning.append_version(db, contract_id, "Late edit", seed.member_id, None, base_version=0)
    assert versioning.list_versions(db, contract_id) == []


def test_record_edit_retries_after_conflict(database, contract_id, seed):
    with database.session() as first, database.session() as second:
        stale = _contract(first, contract_id)
        assert stale.current_version == 0

        versioning.record_edit(second, _contract(second, contract_id), "Other edit", seed.admin_id)

        assert versioning.record_edit(first, stale, "My edit", seed.member_id) == 2

    with database.session() as db:
        versions = versioning.list_versions(db, contract_id)
        assert [(v.version_number, v.content) for v in versions] == [(2, "My edit"), (1, "Other edit")]


def test_record_edit_gives_up_after_retries(db, contract_id, seed, monkeypatch):
    contract = _contract(db, contract_id)

    def always_conflicts(*args, **kwargs):
        raise ConcurrentVersionConflict("busy")

    monkeypatch.setattr(versioning, "append_version", always_conflicts)
    with pytest.raises(ConcurrentVersionConflict):
        versioning.record_edit(db, contract, "Never stored", seed.member_id, max_retries=2)


def test_metadata_commits_with_new_version(db, contract_id, seed):
    contract = _contract(db, contract_id)

    versioning.record_edit(db, contract, "Draft", seed.member_id, metadata={"counterparty": "XYZ Solutions"})

    db.refresh(contract)
    assert contract.counterparty == "XYZ Solutions"
    assert contract.current_version == 1


def test_metadata_saved_when_content_unchanged(db, contract_id, seed):
    contract = _contract(db, contract_id)
    versioning.record_edit(db, contract, "Draft", seed.member_id)

    assert versioning.record_edit(db, contract, "Draft", seed.member_id, metadata={"counterparty": "XYZ"}) == 1

    db.refresh(contract)
    assert contract.counterparty == "XYZ"


def test_lost_race_discards_metadata(db, contract_id, seed, monkeypatch):
    def always_conflict(*args, **kwargs):
        raise ConcurrentVersionConflict("raced")

    monkeypatch.setattr(versioning, "append_version", always_conflict)
    contract = _contract(db, contract_id)

    with pytest.raises(ConcurrentVersionConflict):
        versioning.record_edit(db, contract, "Draft", seed.member_id, metadata={"counterparty": "XYZ"})

    db.refresh(contract)
    assert contract.counterparty is None
    assert contract.current_version == 0
