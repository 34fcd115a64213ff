"""Failure kinds raised by the contract review core."""


class ContractReviewError(Exception):
    """Base class for contract review failures."""


class NotFound(ContractReviewError):
    """Raised when a record is absent or not owned by the caller's organization."""


class ExtractionFailed(ContractReviewError):
    """Raised when a document cannot be parsed at all (corrupt or encrypted)."""


class InvalidExtraction(ContractReviewError):
    """Extraction succeeded but produced unusable text (e.g. a scanned PDF)."""


class AnalysisFailed(ContractReviewError):
    """Raised when the model call errors or times out."""


class AnalysisParseError(ContractReviewError):
    """Raised when the model response holds no valid analysis JSON object."""


class ConcurrentVersionConflict(ContractReviewError):
    """Raised when another writer claimed the same version number."""
