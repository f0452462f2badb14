class PixpressError(Exception):
    """Base exception for all Pixpress errors."""

    status_code: int = 500
    error_code: str = "internal_error"

    def __init__(self, message: str, **kwargs):
        self.message = message
        self.details = kwargs
        super().__init__(message)


class BadRequestError(PixpressError):
    """Malformed request body, invalid options JSON, missing fields."""

    status_code = 400
    error_code = "bad_request"


class FileTooLargeError(PixpressError):
    """File exceeds maximum allowed size."""

    status_code = 413
    error_code = "file_too_large"


class UnsupportedFormatError(PixpressError):
    """Format not recognized, not allowed, or not encodable by the runtime."""

    status_code = 415
    error_code = "unsupported_format"


class DecodeError(PixpressError):
    """Source bytes cannot be interpreted as an image."""

    status_code = 422
    error_code = "decode_failed"


class EncodeError(PixpressError):
    """Target format rejected by the codec or encoder produced no output."""

    status_code = 422
    error_code = "encode_failed"


class AnalysisDegraded(PixpressError):
    """Feature extraction failed; the analyzer falls back to defaults.

    Raised and caught inside the analyzer only. Callers see an
    ImageAnalysis with analysis_error set instead.
    """

    status_code = 422
    error_code = "analysis_degraded"


class StorageError(PixpressError):
    """Persisting an uploaded image failed."""

    status_code = 500
    error_code = "storage_failed"


class BackpressureError(PixpressError):
    """Processing queue is full."""

    status_code = 503
    error_code = "service_overloaded"
