from __future__ import annotations


class SkyalgoError(RuntimeError):
    """Base class for every failure surfaced to the caller of an operation."""

    status_code: int = 500
    user_message: str = ">>> ERROR: An unexpected error occurred."

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.user_message)


# ----------------------------
# Input checks (before any work)
# ----------------------------
class InvalidInput(SkyalgoError):
    status_code = 400


class MissingImages(InvalidInput):
    user_message = ">>> ERROR: Upload at least one data stream image."


class TooManyImages(InvalidInput):
    user_message = ">>> ERROR: Too many data stream images."


class MissingPriceSignal(InvalidInput):
    user_message = ">>> ERROR: Enter current NIFTY price signal."


class EncodingError(SkyalgoError):
    status_code = 400
    user_message = ">>> ERROR: Could not read one of the uploaded images."


# ----------------------------
# Model call
# ----------------------------
class MissingCredential(SkyalgoError):
    status_code = 401
    user_message = ">>> API KEY ERROR: No API key configured. Please select a key and try again."


class ResponseFormatError(SkyalgoError):
    status_code = 502
    user_message = ">>> ANALYSIS FAILED: The model returned output that is not valid JSON."


class InvalidAnalysisStructure(SkyalgoError):
    status_code = 502
    user_message = ">>> ANALYSIS FAILED: Invalid analysis structure received from API."


class RequestFailed(SkyalgoError):
    status_code = 502
    user_message = ">>> ANALYSIS FAILED: The analysis request could not be completed."


class PermissionDenied(RequestFailed):
    status_code = 403
    user_message = ">>> API KEY ERROR: Permission denied or invalid. Please select a valid key and try again."


# ----------------------------
# Share links
# ----------------------------
class ShareLinkError(SkyalgoError):
    status_code = 400
    user_message = ">>> ERROR: Could not load the shared analysis. The link may be corrupted."
