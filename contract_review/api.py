"""FastAPI endpoints for the contract review service."""
import logging
import mimetypes
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, Header, HTTPException, Query, Request, UploadFile, status
from fastapi.responses import Response
from sqlalchemy.orm import Session

from contract_review import crud, models, schemas, versioning
from contract_review.audit import AuditLogger, list_audit_logs, request_info
from contract_review.config import Settings
from contract_review.database import get_db
from contract_review.errors import (
    ConcurrentVersionConflict,
    ContractReviewError,
    ExtractionFailed,
    NotFound,
)
from contract_review.extraction import GENERIC_FILE_TYPES, TextExtractor, is_valid_extraction, text_to_html
from contract_review.pipeline import ContractAnalyzer
from contract_review.report import build_review_report
from contract_review.storage import BlobStore, LocalBlobStore, build_object_path

logger = logging.getLogger(__name__)

router = APIRouter()

ALLOWED_EXTENSIONS = (".pdf", ".txt")


# ============================================================================
# Dependencies
# ============================================================================

def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_blob_store(request: Request) -> BlobStore:
    return request.app.state.blob_store


def get_extractor(request: Request) -> TextExtractor:
    return request.app.state.extractor


def get_analyzer(request: Request) -> ContractAnalyzer:
    return request.app.state.analyzer


def get_audit_logger(request: Request) -> AuditLogger:
    return request.app.state.audit_logger


def get_current_user(
    x_user_id: Optional[str] = Header(default=None),
    db: Session = Depends(get_db)
) -> models.User:
    """Resolve the caller from the X-User-Id header set by the identity proxy."""
    if not x_user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required"
        )

    user = crud.get_user(db, x_user_id)
    if not user:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="User not found"
        )
    return user


def _get_contract_or_404(db: Session, contract_id: str, user: models.User) -> models.Contract:
    try:
        return crud.get_contract_for_org(db, contract_id, user.organization_id)
    except NotFound:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Contract with ID {contract_id} not found"
        )


# ============================================================================
# Contracts
# ============================================================================

@router.post("/upload", response_model=schemas.UploadResponse, status_code=status.HTTP_201_CREATED)
async def upload_contract(
    request: Request,
    file: UploadFile = File(...),
    contract_name: Optional[str] = Form(default=None),
    contract_type: Optional[str] = Form(default=None),
    folder_id: Optional[str] = Form(default=None),
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
    blob_store: BlobStore = Depends(get_blob_store),
    audit_logger: AuditLogger = Depends(get_audit_logger)
):
    """
    Upload a contract file.

    - **file**: PDF or plain-text contract
    - **contract_name**: Optional display title
    - **contract_type**: Kind of contract (e.g. "service agreement")
    - **folder_id**: Optional folder reference

    The contract is created with status "analyzing".
    """
    filename = file.filename or ""
    if not filename.lower().endswith(ALLOWED_EXTENSIONS):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"{filename}: Only PDF and text files are supported"
        )

    file_content = await file.read()
    if not file_content:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"{filename}: Empty file"
        )

    file_type = file.content_type
    if file_type in GENERIC_FILE_TYPES:
        file_type = mimetypes.guess_type(filename)[0] or "application/octet-stream"
    file_path = build_object_path(user.organization_id, filename)

    try:
        blob_store.upload(file_path, file_content, file_type)
    except Exception as e:
        logger.error(f"Error storing file {filename}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to upload file"
        )

    contract = crud.create_contract(
        db=db,
        organization_id=user.organization_id,
        uploaded_by=user.id,
        file_name=filename,
        file_path=file_path,
        file_size=len(file_content),
        file_type=file_type,
        contract_title=contract_name,
        contract_type=contract_type,
        folder_id=folder_id
    )

    ip_address, user_agent = request_info(request)
    audit_logger.record(
        organization_id=user.organization_id,
        user_id=user.id,
        action="create",
        resource_type="contract",
        resource_id=contract.id,
        ip_address=ip_address,
        user_agent=user_agent,
        metadata={"file_name": filename, "contract_type": contract_type}
    )

    logger.info(f"Uploaded contract {contract.id} ({filename}, {len(file_content)} bytes)")
    return schemas.UploadResponse(id=contract.id, file_name=contract.file_name, status=contract.status)


@router.get("/contracts", response_model=List[schemas.ContractSummary])
async def list_contracts(
    skip: int = 0,
    limit: int = 100,
    status_filter: Optional[str] = Query(default=None, alias="status"),
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user)
):
    """
    List the caller's organization's contracts.

    - **skip**: Number of contracts to skip (for pagination)
    - **limit**: Maximum number of contracts to return
    - **status**: Only return contracts in this status
    """
    return crud.list_contracts_for_org(
        db, user.organization_id, skip=skip, limit=limit, status=status_filter
    )


@router.get("/contracts/{contract_id}", response_model=schemas.ContractDetail)
async def get_contract(
    contract_id: str,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
    blob_store: BlobStore = Depends(get_blob_store),
    settings: Settings = Depends(get_settings)
):
    """Get a contract with its review and a time-limited download URL."""
    contract = _get_contract_or_404(db, contract_id, user)

    detail = schemas.ContractDetail.model_validate(contract)
    try:
        detail.file_url = blob_store.signed_url(contract.file_path, settings.signed_url_ttl_seconds)
    except Exception as e:
        logger.warning(f"Could not sign URL for contract {contract_id}: {e}")
    return detail


@router.patch("/contracts/{contract_id}", response_model=schemas.ContractUpdateResponse)
async def update_contract(
    contract_id: str,
    update: schemas.ContractUpdate,
    request: Request,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
    audit_logger: AuditLogger = Depends(get_audit_logger)
):
    """
    Update contract metadata and/or its edited content.

    Changed **edited_content** is stored as a new version; identical content
    does not create one.
    """
    contract = _get_contract_or_404(db, contract_id, user)
    changes = update.model_dump(exclude_unset=True)

    previous_version = contract.current_version or 0
    current_version = previous_version
    if changes.get("edited_content") is None:
        crud.update_contract_metadata(db, contract, changes)
    else:
        # Metadata commits together with the new version, or not at all
        try:
            current_version = versioning.record_edit(
                db,
                contract,
                changes["edited_content"],
                user.id,
                changes.get("changes_summary"),
                metadata=crud.metadata_changes(changes)
            )
        except ConcurrentVersionConflict as e:
            logger.error(f"Edit of contract {contract_id} lost a version race: {e}")
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="The contract was modified concurrently. Please reload and try again."
            )

    ip_address, user_agent = request_info(request)
    audit_logger.record(
        organization_id=user.organization_id,
        user_id=user.id,
        action="update",
        resource_type="contract",
        resource_id=contract_id,
        ip_address=ip_address,
        user_agent=user_agent,
        metadata={"fields": sorted(changes.keys()), "version": current_version}
    )

    return schemas.ContractUpdateResponse(
        current_version=current_version,
        version_created=current_version != previous_version
    )


@router.delete("/contracts/{contract_id}")
async def delete_contract(
    contract_id: str,
    request: Request,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
    blob_store: BlobStore = Depends(get_blob_store),
    audit_logger: AuditLogger = Depends(get_audit_logger)
):
    """Delete a contract, its file, versions and review."""
    contract = _get_contract_or_404(db, contract_id, user)

    try:
        blob_store.delete(contract.file_path)
    except Exception as e:
        logger.error(f"Failed to delete file {contract.file_path}: {e}")

    crud.delete_contract(db, contract)

    ip_address, user_agent = request_info(request)
    audit_logger.record(
        organization_id=user.organization_id,
        user_id=user.id,
        action="delete",
        resource_type="contract",
        resource_id=contract_id,
        ip_address=ip_address,
        user_agent=user_agent
    )
    return {"success": True}


# ============================================================================
# Extraction & Analysis
# ============================================================================

@router.get("/contracts/{contract_id}/extract", response_model=schemas.ExtractResponse)
async def extract_contract_text(
    contract_id: str,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
    blob_store: BlobStore = Depends(get_blob_store),
    extractor: TextExtractor = Depends(get_extractor)
):
    """
    Extract the text of the original upload.

    Returns plain text and a simple HTML rendering. Scanned documents without
    a text layer return **success: false**.
    """
    contract = _get_contract_or_404(db, contract_id, user)

    try:
        data = blob_store.download(contract.file_path)
    except NotFound:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Contract file not found"
        )

    try:
        extracted = extractor.extract(data, contract.file_type, contract.file_name)
    except ExtractionFailed as e:
        logger.error(f"Error extracting text from contract {contract_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="The document could not be read. It may be corrupt or password protected."
        )

    if not is_valid_extraction(extracted.text):
        return schemas.ExtractResponse(
            success=False,
            num_pages=extracted.num_pages,
            info=extracted.info,
            error="No text could be extracted. The document may be a scanned image."
        )

    return schemas.ExtractResponse(
        success=True,
        text=extracted.text,
        html=text_to_html(extracted.text),
        num_pages=extracted.num_pages,
        info=extracted.info
    )


@router.post("/contracts/{contract_id}/analyze", response_model=schemas.AnalyzeResponse)
async def analyze_contract(
    contract_id: str,
    request: Request,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
    analyzer: ContractAnalyzer = Depends(get_analyzer)
):
    """
    Run the AI risk analysis of a contract and store the review.

    Re-analysis replaces the previous review and all of its risk items.
    **is_mock_analysis** is true when the placeholder analysis was used.
    """
    contract = _get_contract_or_404(db, contract_id, user)
    ip_address, user_agent = request_info(request)

    try:
        outcome = analyzer.run(db, contract, user, ip_address=ip_address, user_agent=user_agent)
    except ContractReviewError as e:
        logger.error(f"Error analyzing contract {contract_id}: {type(e).__name__}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Analysis failed"
        )

    return schemas.AnalyzeResponse(
        review_id=outcome.review.id,
        risk_level=outcome.result.risk_level,
        overall_score=outcome.result.overall_score,
        summary=outcome.result.summary,
        risks_count=len(outcome.result.risks),
        duration=outcome.duration,
        ai_model=outcome.ai_model,
        is_mock_analysis=outcome.is_mock_analysis
    )


@router.post("/contracts/{contract_id}/suggest-order", response_model=schemas.SuggestOrderResponse)
async def suggest_article_order(
    contract_id: str,
    body: schemas.SuggestOrderRequest,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
    analyzer: ContractAnalyzer = Depends(get_analyzer)
):
    """
    Suggest a conventional order for the contract's articles.

    - **articles**: List of `{number, title}` in their current order
    """
    _get_contract_or_404(db, contract_id, user)
    if not body.articles:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="At least one article is required"
        )

    try:
        suggestion, is_mock = analyzer.suggest_article_order(body.articles)
    except ContractReviewError as e:
        logger.error(f"Error suggesting article order for contract {contract_id}: {type(e).__name__}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Article order suggestion failed"
        )

    return schemas.SuggestOrderResponse(
        suggested_order=suggestion.suggested_order,
        reasoning=suggestion.reasoning,
        is_mock_analysis=is_mock
    )


@router.get("/contracts/{contract_id}/report")
async def download_report(
    contract_id: str,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user)
):
    """Download the review of a contract as a PDF report."""
    contract = _get_contract_or_404(db, contract_id, user)
    review = crud.get_review(db, contract.id)
    if not review:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="This contract has not been analyzed yet"
        )

    pdf = build_review_report(contract, review)
    return Response(
        content=pdf,
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="contract-report-{contract.id}.pdf"'}
    )


# ============================================================================
# Versions
# ============================================================================

@router.get("/contracts/{contract_id}/versions", response_model=schemas.VersionListResponse)
async def list_contract_versions(
    contract_id: str,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user)
):
    """List versions of the edited content, newest first."""
    contract = _get_contract_or_404(db, contract_id, user)
    versions = versioning.list_versions(db, contract.id)
    return schemas.VersionListResponse(
        versions=[schemas.VersionSummary.model_validate(v) for v in versions],
        current_version=contract.current_version or 0
    )


@router.get("/contracts/{contract_id}/versions/{version_id}", response_model=schemas.VersionDetail)
async def get_contract_version(
    contract_id: str,
    version_id: str,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user)
):
    """Get one version including its content."""
    contract = _get_contract_or_404(db, contract_id, user)
    try:
        return versioning.get_version(db, contract.id, version_id)
    except NotFound:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Version with ID {version_id} not found"
        )


@router.post("/contracts/{contract_id}/versions/{version_id}/restore", response_model=schemas.RestoreResponse)
async def restore_contract_version(
    contract_id: str,
    version_id: str,
    request: Request,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
    audit_logger: AuditLogger = Depends(get_audit_logger)
):
    """
    Restore an earlier version.

    The restored content becomes a new version; history is never rewritten.
    """
    contract = _get_contract_or_404(db, contract_id, user)
    try:
        new_version = versioning.restore(db, contract, version_id, user.id)
    except NotFound:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Version with ID {version_id} not found"
        )
    except ConcurrentVersionConflict as e:
        logger.error(f"Restore of contract {contract_id} lost a version race: {e}")
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="The contract was modified concurrently. Please reload and try again."
        )

    ip_address, user_agent = request_info(request)
    audit_logger.record(
        organization_id=user.organization_id,
        user_id=user.id,
        action="update",
        resource_type="contract",
        resource_id=contract_id,
        ip_address=ip_address,
        user_agent=user_agent,
        metadata={"restored_version_id": version_id, "version": new_version}
    )
    return schemas.RestoreResponse(new_version=new_version)


# ============================================================================
# Audit logs & files
# ============================================================================

@router.get("/audit-logs", response_model=List[schemas.AuditLogResponse])
async def get_audit_logs(
    limit: int = 100,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user)
):
    """Most recent audit entries of the organization (admins only)."""
    if user.role != "admin":
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Administrator privileges required"
        )
    return list_audit_logs(db, user.organization_id, limit=min(limit, 500))


@router.get("/files/{path:path}")
async def download_file(
    path: str,
    expires: int,
    signature: str,
    blob_store: BlobStore = Depends(get_blob_store)
):
    """Serve a locally stored file through a signed URL."""
    if not isinstance(blob_store, LocalBlobStore) or not blob_store.verify_signature(path, expires, signature):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid or expired link"
        )

    try:
        data = blob_store.download(path)
    except NotFound:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="File not found"
        )

    media_type = mimetypes.guess_type(path)[0] or "application/octet-stream"
    return Response(content=data, media_type=media_type)
