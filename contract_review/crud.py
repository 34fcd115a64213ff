"""CRUD operations for database models."""
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from contract_review import models, schemas
from contract_review.errors import NotFound

logger = logging.getLogger(__name__)

# Fields a caller may change through a metadata update
CONTRACT_METADATA_FIELDS = (
    "contract_title",
    "contract_type",
    "counterparty",
    "our_position",
    "expiry_date",
    "tags",
    "folder_id",
)


def get_user(db: Session, user_id: str) -> Optional[models.User]:
    """Get user by id."""
    return db.get(models.User, user_id)


def get_contract_for_org(db: Session, contract_id: str, organization_id: str) -> models.Contract:
    """Get a contract owned by the organization, or raise NotFound."""
    contract = db.query(models.Contract).filter(
        models.Contract.id == contract_id,
        models.Contract.organization_id == organization_id
    ).first()
    if contract is None:
        raise NotFound(f"Contract {contract_id} not found")
    return contract


def list_contracts_for_org(
    db: Session,
    organization_id: str,
    skip: int = 0,
    limit: int = 100,
    status: Optional[str] = None
) -> List[models.Contract]:
    """Get the organization's contracts, newest first, with pagination."""
    query = db.query(models.Contract).filter(models.Contract.organization_id == organization_id)
    if status:
        query = query.filter(models.Contract.status == status)
    return query.order_by(
        models.Contract.created_at.desc(), models.Contract.id
    ).offset(skip).limit(limit).all()


def create_contract(
    db: Session,
    organization_id: str,
    uploaded_by: str,
    file_name: str,
    file_path: str,
    file_size: int,
    file_type: str = "application/pdf",
    contract_title: Optional[str] = None,
    contract_type: Optional[str] = None,
    folder_id: Optional[str] = None,
    status: str = "analyzing"
) -> models.Contract:
    """Create a new contract record."""
    db_contract = models.Contract(
        organization_id=organization_id,
        uploaded_by=uploaded_by,
        file_name=file_name,
        file_path=file_path,
        file_size=file_size,
        file_type=file_type,
        contract_title=contract_title,
        contract_type=contract_type,
        folder_id=folder_id,
        status=status,
        current_version=0,
        tags=[]
    )
    db.add(db_contract)
    db.commit()
    db.refresh(db_contract)
    return db_contract


def metadata_changes(changes: Dict[str, Any]) -> Dict[str, Any]:
    """Keep only the fields a metadata update may change."""
    return {key: value for key, value in changes.items() if key in CONTRACT_METADATA_FIELDS}


def update_contract_metadata(
    db: Session,
    contract: models.Contract,
    changes: Dict[str, Any]
) -> models.Contract:
    """Apply metadata changes; file path and versioned content are never touched here."""
    applied = metadata_changes(changes)
    if not applied:
        return contract

    for key, value in applied.items():
        setattr(contract, key, value)
    db.commit()
    db.refresh(contract)
    return contract


def delete_contract(db: Session, contract: models.Contract) -> None:
    """Delete a contract together with its versions, review and risk items."""
    db.delete(contract)
    db.commit()


def get_review(db: Session, contract_id: str) -> Optional[models.ContractReview]:
    """Get the review of a contract, if it has been analyzed."""
    return db.query(models.ContractReview).filter(
        models.ContractReview.contract_id == contract_id
    ).first()


def get_risk_items(db: Session, review_id: str) -> List[models.RiskItem]:
    """Get all risk items of a review, in the order the engine reported them."""
    return db.query(models.RiskItem).filter(
        models.RiskItem.review_id == review_id
    ).order_by(models.RiskItem.position).all()


def save_review(
    db: Session,
    contract: models.Contract,
    result: schemas.AnalysisResult,
    ai_model: str,
    duration_seconds: float
) -> models.ContractReview:
    """Store an analysis result as the contract's one review.

    Upserts the review, replaces its whole risk-item set and marks the
    contract completed, all in a single transaction. Two first-time saves
    racing on the unique contract id are resolved by retrying as an update.
    """
    fields = {
        "risk_level": result.risk_level,
        "overall_score": result.overall_score,
        "summary": result.summary,
        "checklist": [item.model_dump(exclude_none=True) for item in result.checklist],
        "ai_model": ai_model,
        "analysis_duration": duration_seconds,
    }

    for attempt in range(2):
        try:
            review = get_review(db, contract.id)
            if review:
                for key, value in fields.items():
                    setattr(review, key, value)
            else:
                review = models.ContractReview(contract_id=contract.id, **fields)
                db.add(review)
            db.flush()

            db.query(models.RiskItem).filter(
                models.RiskItem.review_id == review.id
            ).delete(synchronize_session=False)

            db.add_all([
                models.RiskItem(
                    review_id=review.id,
                    position=position,
                    risk_type=risk.risk_type,
                    risk_level=risk.risk_level,
                    section_title=risk.section_title,
                    original_text=risk.original_text,
                    suggested_text=risk.suggested_text,
                    reason=risk.reason,
                    legal_basis=risk.legal_basis
                )
                for position, risk in enumerate(result.risks)
            ])

            contract.status = "completed"
            db.commit()
        except IntegrityError:
            db.rollback()
            if attempt:
                raise
            logger.warning(f"Concurrent review insert for contract {contract.id}; retrying as update")
            continue

        db.refresh(review)
        return review


def get_total_contracts(db: Session) -> int:
    """Get total count of contracts."""
    return db.query(func.count(models.Contract.id)).scalar()


def get_total_reviews(db: Session) -> int:
    """Get total count of reviews."""
    return db.query(func.count(models.ContractReview.id)).scalar()


def get_total_risk_items(db: Session) -> int:
    """Get total count of risk items."""
    return db.query(func.count(models.RiskItem.id)).scalar()


def get_total_versions(db: Session) -> int:
    """Get total count of contract versions."""
    return db.query(func.count(models.ContractVersion.id)).scalar()
