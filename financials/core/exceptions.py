"""Custom exception hierarchy."""


class AppError(Exception):
    """Base exception for application errors."""
    def __init__(self, message: str, original_error: Exception = None):
        super().__init__(message)
        self.original_error = original_error


class APIClientError(AppError):
    """Raised when an external API call fails."""
    pass


class APITimeoutError(APIClientError):
    """Raised when an external API call times out."""
    pass


class ValidationError(AppError):
    """Raised when input validation fails."""
    pass


class ConfigurationError(AppError):
    """Raised when configuration is invalid or missing."""
    pass


class PipelineError(AppError):
    """Base exception for ingestion pipeline errors."""
    pass


class FileLoadError(PipelineError):
    """Source document could not be read."""
    pass


class UnsupportedFileTypeError(FileLoadError):
    """Source document is not a PDF or spreadsheet."""
    pass


class ExtractionError(PipelineError):
    """Extraction oracle failed to produce a result."""
    pass


class ExtractionValidationError(ExtractionError):
    """Extraction payload does not match the expected shape."""
    pass


class PersistenceError(PipelineError):
    """Reading or writing the financials store failed."""
    pass


class SnippetRenderError(PipelineError):
    """Audit snippet could not be rendered."""
    pass


class GuideNotFoundError(AppError):
    """Raised when no guide exists for a company."""
    pass


class FormulaError(AppError):
    """Raised when a metric formula uses unsupported syntax."""
    pass
