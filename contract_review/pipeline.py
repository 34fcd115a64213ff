"""End-to-end analysis of one contract: download, extract, analyze, persist."""
import logging
import time
from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

from sqlalchemy.orm import Session

from contract_review import crud, models
from contract_review.analysis import (
    EngineKind,
    MockAnalysisEngine,
    RiskAnalysisEngine,
    choose_engine,
)
from contract_review.audit import AuditLogger
from contract_review.errors import InvalidExtraction
from contract_review.extraction import TextExtractor, ensure_valid_extraction
from contract_review.schemas import AnalysisResult, ArticleInput, ArticleOrderSuggestion
from contract_review.storage import BlobStore

logger = logging.getLogger(__name__)

DEFAULT_CONTRACT_TYPE = "contract"


@dataclass
class AnalysisOutcome:
    """What an analysis run produced."""
    review: models.ContractReview
    result: AnalysisResult
    is_mock_analysis: bool
    ai_model: str
    duration: float


class ContractAnalyzer:
    """Runs the analysis pipeline for a single contract."""

    def __init__(
        self,
        blob_store: BlobStore,
        extractor: TextExtractor,
        real_engine: Optional[RiskAnalysisEngine],
        mock_engine: MockAnalysisEngine,
        audit_logger: AuditLogger,
        force_mock: bool = False
    ):
        self.blob_store = blob_store
        self.extractor = extractor
        self.real_engine = real_engine
        self.mock_engine = mock_engine
        self.audit_logger = audit_logger
        self.force_mock = force_mock

    @property
    def has_credential(self) -> bool:
        return self.real_engine is not None

    def run(
        self,
        db: Session,
        contract: models.Contract,
        user: models.User,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None
    ) -> AnalysisOutcome:
        """Analyze a contract and store the result as its review.

        Raises:
            NotFound: the uploaded file is missing from the blob store
            ExtractionFailed: the uploaded file cannot be parsed
            AnalysisFailed: the model call errored or timed out
            AnalysisParseError: the model response was not a valid analysis
        """
        start_time = time.monotonic()
        contract_type = contract.contract_type or DEFAULT_CONTRACT_TYPE

        contract_text = None
        extraction_valid = False
        if self.has_credential and not self.force_mock:
            data = self.blob_store.download(contract.file_path)
            extracted = self.extractor.extract(data, contract.file_type, contract.file_name)
            try:
                contract_text = ensure_valid_extraction(extracted.text)
                extraction_valid = True
            except InvalidExtraction as e:
                logger.warning(f"Contract {contract.id}: {e}; falling back to mock analysis")

        engine_kind = choose_engine(self.has_credential, self.force_mock, extraction_valid)
        if engine_kind is EngineKind.REAL:
            engine = self.real_engine
        else:
            engine = self.mock_engine

        result = engine.analyze(contract_text, contract_type)
        duration = round(time.monotonic() - start_time, 2)

        review = crud.save_review(db, contract, result, engine.model_name, duration)
        logger.info(
            f"Contract {contract.id} analyzed with {engine.model_name}: "
            f"{result.risk_level} risk, score {result.overall_score}, {len(result.risks)} risks"
        )

        self.audit_logger.record(
            organization_id=contract.organization_id,
            user_id=user.id,
            action="analyze",
            resource_type="contract",
            resource_id=contract.id,
            ip_address=ip_address,
            user_agent=user_agent,
            metadata={"ai_model": engine.model_name, "is_mock_analysis": engine_kind is EngineKind.MOCK}
        )

        return AnalysisOutcome(
            review=review,
            result=result,
            is_mock_analysis=engine_kind is EngineKind.MOCK,
            ai_model=engine.model_name,
            duration=duration
        )

    def suggest_article_order(
        self,
        articles: Sequence[ArticleInput]
    ) -> Tuple[ArticleOrderSuggestion, bool]:
        """Suggest an article order, returning it with whether the mock produced it.

        Article titles need no extraction, so only the credential and the
        mock setting decide the engine.

        Raises:
            AnalysisFailed: the model call errored or timed out
            AnalysisParseError: the model response was not a valid suggestion
        """
        engine_kind = choose_engine(self.has_credential, self.force_mock, extraction_valid=True)
        if engine_kind is EngineKind.REAL:
            suggestion = self.real_engine.suggest_article_order(articles)
        else:
            suggestion = self.mock_engine.suggest_article_order(articles)
        return suggestion, engine_kind is EngineKind.MOCK
