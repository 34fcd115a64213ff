"""Append-only version history of a contract's edited content."""
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from contract_review import models
from contract_review.errors import ConcurrentVersionConflict, NotFound

logger = logging.getLogger(__name__)

MAX_VERSION_RETRIES = 3
DEFAULT_EDIT_SUMMARY = "Edited content"


def list_versions(db: Session, contract_id: str) -> List[models.ContractVersion]:
    """Get all versions of a contract, newest first."""
    return db.query(models.ContractVersion).filter(
        models.ContractVersion.contract_id == contract_id
    ).order_by(models.ContractVersion.version_number.desc()).all()


def get_version(db: Session, contract_id: str, version_id: str) -> models.ContractVersion:
    """Get one version of a contract, or raise NotFound."""
    version = db.query(models.ContractVersion).filter(
        models.ContractVersion.id == version_id,
        models.ContractVersion.contract_id == contract_id
    ).first()
    if version is None:
        raise NotFound(f"Version {version_id} not found for contract {contract_id}")
    return version


def append_version(
    db: Session,
    contract_id: str,
    content: str,
    author_id: str,
    changes_summary: Optional[str],
    base_version: int,
    metadata: Optional[Dict[str, Any]] = None
) -> int:
    """Write version base_version + 1 and move the contract pointer to it.

    Both writes, and any contract metadata passed along, commit together.
    The pointer only moves if the contract is still at base_version, and the
    (contract, version number) pair is unique, so of two writers starting
    from the same base exactly one wins.

    Raises:
        ConcurrentVersionConflict: another writer got there first
    """
    next_version = base_version + 1
    try:
        db.add(models.ContractVersion(
            contract_id=contract_id,
            version_number=next_version,
            content=content,
            created_by=author_id,
            changes_summary=changes_summary
        ))
        db.flush()

        updated = db.query(models.Contract).filter(
            models.Contract.id == contract_id,
            models.Contract.current_version == base_version
        ).update(
            {**(metadata or {}), "current_version": next_version, "edited_content": content},
            synchronize_session=False
        )
        if updated != 1:
            raise ConcurrentVersionConflict(
                f"Contract {contract_id} moved past version {base_version}"
            )
        db.commit()
    except IntegrityError as e:
        db.rollback()
        raise ConcurrentVersionConflict(
            f"Version {next_version} of contract {contract_id} already exists"
        ) from e
    except ConcurrentVersionConflict:
        db.rollback()
        raise

    return next_version


def _append_with_retry(
    db: Session,
    contract: models.Contract,
    content: str,
    author_id: str,
    changes_summary: Optional[str],
    skip_if_unchanged: bool,
    max_retries: int,
    metadata: Optional[Dict[str, Any]] = None
) -> int:
    for attempt in range(1, max_retries + 1):
        if skip_if_unchanged and contract.edited_content == content:
            if metadata:
                for key, value in metadata.items():
                    setattr(contract, key, value)
                db.commit()
            return contract.current_version or 0
        try:
            return append_version(
                db,
                contract.id,
                content,
                author_id,
                changes_summary,
                contract.current_version or 0,
                metadata
            )
        except ConcurrentVersionConflict:
            logger.warning(
                f"Version conflict on contract {contract.id} (attempt {attempt}/{max_retries})"
            )
            # The rollback expired the instance; re-read the current pointer
            db.refresh(contract)

    raise ConcurrentVersionConflict(
        f"Could not record a new version of contract {contract.id} after {max_retries} attempts"
    )


def record_edit(
    db: Session,
    contract: models.Contract,
    new_content: str,
    editor_id: str,
    changes_summary: Optional[str] = None,
    max_retries: int = MAX_VERSION_RETRIES,
    metadata: Optional[Dict[str, Any]] = None
) -> int:
    """Record edited content as a new version.

    Returns the contract's current version number, unchanged when the
    content equals what is already stored. Metadata changes are saved in the
    same commit, so a lost version race leaves them unapplied as well.
    """
    return _append_with_retry(
        db,
        contract,
        new_content,
        editor_id,
        changes_summary or DEFAULT_EDIT_SUMMARY,
        skip_if_unchanged=True,
        max_retries=max_retries,
        metadata=metadata
    )


def restore(
    db: Session,
    contract: models.Contract,
    version_id: str,
    restorer_id: str,
    max_retries: int = MAX_VERSION_RETRIES
) -> int:
    """Append a new version carrying the content of an earlier one.

    The restored version itself is left untouched.
    """
    target = get_version(db, contract.id, version_id)
    version_number = target.version_number
    content = target.content

    new_version = _append_with_retry(
        db,
        contract,
        content,
        restorer_id,
        f"Restored from version {version_number}",
        skip_if_unchanged=False,
        max_retries=max_retries
    )
    logger.info(f"Contract {contract.id}: restored version {version_number} as version {new_version}")
    return new_version
