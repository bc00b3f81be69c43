"""
Mintless Claim API - Error Taxonomy

Service-level exceptions shared by the store, the deriver, the facade and
the HTTP layer. "Not eligible" is not an error: lookups return ``None``.
"""


class ClaimAPIError(Exception):
    """Base exception for claim service errors."""

    pass


class FormatError(ClaimAPIError):
    """Snapshot or identity file is corrupt or inconsistent. Fatal at startup."""

    pass


class ParseError(ClaimAPIError):
    """Malformed owner address in a request."""

    pass


class UpstreamError(ClaimAPIError):
    """
    Issuing collaborator unreachable or returned an invalid response.

    Attributes:
        retryable: True for transient failures (network, timeout),
            False for structurally invalid responses
        timed_out: True if the call exceeded its deadline
    """

    def __init__(self, message: str, retryable: bool = False, timed_out: bool = False) -> None:
        super().__init__(message)
        self.retryable = retryable
        self.timed_out = timed_out


class EncodingMismatch(ClaimAPIError):
    """Proof does not verify against the loaded root, or a payload is malformed."""

    pass
