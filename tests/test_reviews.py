"""Tests for review persistence."""
import pytest

from contract_review import crud, models
from contract_review.analysis import MockAnalysisEngine
from contract_review.errors import NotFound
from contract_review.schemas import AnalysisResult


@pytest.fixture
def db(database):
    with database.session() as session:
        yield session


def _result(*risk_types, level="medium", score=60):
    return AnalysisResult.model_validate({
        "riskLevel": level,
        "overallScore": score,
        "summary": f"{len(risk_types)} risks",
        "risks": [{"riskType": risk_type, "riskLevel": "low"} for risk_type in risk_types],
        "checklist": [{"item": "Parties identified", "checked": True}],
    })


def test_save_review_stores_result(db, contract_id):
    contract = db.get(models.Contract, contract_id)
    result = MockAnalysisEngine().analyze(None, "contract")

    review = crud.save_review(db, contract, result, "mock", 0.12)

    assert review.risk_level == "medium"
    assert review.overall_score == 72
    assert review.ai_model == "mock"
    assert review.analysis_duration == 0.12
    assert review.checklist[4] == {"item": "Liability cap", "checked": False, "note": "A cap is recommended"}
    items = crud.get_risk_items(db, review.id)
    assert [item.risk_type for item in items] == ["Liability", "Termination", "Intellectual Property"]
    assert [item.position for item in items] == [0, 1, 2]
    assert items[0].original_text.startswith("The Contractor shall compensate")
    assert contract.status == "completed"


def test_reanalysis_replaces_risk_items(db, contract_id):
    contract = db.get(models.Contract, contract_id)

    first = crud.save_review(db, contract, _result("Liability", "Payment", "Term"), "gpt-4o-mini", 1.0)
    second = crud.save_review(db, contract, _result("Jurisdiction", level="high", score=20), "gpt-4o-mini", 2.0)

    assert second.id == first.id
    assert second.risk_level == "high"
    assert second.overall_score == 20
    assert [item.risk_type for item in crud.get_risk_items(db, second.id)] == ["Jurisdiction"]
    assert crud.get_total_reviews(db) == 1
    assert crud.get_total_risk_items(db) == 1


def test_review_without_risks(db, contract_id):
    contract = db.get(models.Contract, contract_id)
    crud.save_review(db, contract, _result("Liability"), "mock", 0.1)

    review = crud.save_review(db, contract, _result(), "mock", 0.1)

    assert review.risk_items == []
    assert crud.get_review(db, contract_id).summary == "0 risks"


def test_update_contract_metadata_ignores_protected_fields(db, contract_id):
    contract = db.get(models.Contract, contract_id)

    crud.update_contract_metadata(db, contract, {
        "counterparty": "XYZ Solutions",
        "file_path": "elsewhere/file.pdf",
        "current_version": 9,
        "edited_content": "sneaky",
    })

    db.refresh(contract)
    assert contract.counterparty == "XYZ Solutions"
    assert contract.file_path.endswith("agreement.txt")
    assert contract.current_version == 0
    assert contract.edited_content is None


def test_get_contract_for_org_hides_other_tenants(db, contract_id, seed):
    assert crud.get_contract_for_org(db, contract_id, seed.org_id).id == contract_id
    with pytest.raises(NotFound):
        crud.get_contract_for_org(db, contract_id, seed.other_org_id)
