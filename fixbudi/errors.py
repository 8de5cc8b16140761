"""
Error taxonomy for marketplace operations

Every error is an HTTPException so services can raise them directly and
FastAPI renders the status code and detail without extra handlers.
"""

from typing import Optional

from fastapi import HTTPException


class ValidationError(HTTPException):
    """Malformed input: bad rating, missing reason, non-positive cost"""

    def __init__(self, detail: str):
        super().__init__(status_code=400, detail=detail)


class AuthorizationError(HTTPException):
    """Caller is not the owner, staff member or admin required for the mutation"""

    def __init__(self, detail: str = "Not authorized to perform this action", status_code: int = 403):
        super().__init__(status_code=status_code, detail=detail)


class WebhookSignatureError(AuthorizationError):
    """Raised when webhook signature verification fails"""

    def __init__(self, detail: str = "Invalid webhook signature"):
        super().__init__(detail=detail, status_code=401)


class NotFoundError(HTTPException):
    def __init__(self, detail: str):
        super().__init__(status_code=404, detail=detail)


class StateConflictError(HTTPException):
    """The entity is not in a state that allows the requested mutation"""

    def __init__(self, detail: str, current_state: Optional[str] = None):
        if current_state:
            detail = f"{detail} (current state: {current_state})"
        super().__init__(status_code=409, detail=detail)
        self.current_state = current_state


class UpstreamProviderError(HTTPException):
    """
    A courier or payment provider call failed or timed out.

    `kind` is one of: unauthorized, not_found, timeout, provider_error.
    The detail is safe to show to end users; the raw provider response is
    only logged.
    """

    USER_MESSAGES = {
        "unauthorized": "{provider} rejected our credentials. Please contact support.",
        "not_found": "{provider} could not find the requested resource.",
        "timeout": "{provider} did not respond in time. Please try again.",
        "provider_error": "{provider} could not complete the request. Please try again later.",
    }

    def __init__(self, provider: str, step: str, kind: str = "provider_error", status_code: Optional[int] = None):
        self.provider = provider
        self.step = step
        self.kind = kind
        self.provider_status_code = status_code
        template = self.USER_MESSAGES.get(kind, self.USER_MESSAGES["provider_error"])
        detail = f"{template.format(provider=provider)} (failed step: {step})"
        super().__init__(status_code=502, detail=detail)

    @classmethod
    def from_status(cls, provider: str, step: str, status_code: int) -> "UpstreamProviderError":
        if status_code in (401, 403):
            kind = "unauthorized"
        elif status_code == 404:
            kind = "not_found"
        else:
            kind = "provider_error"
        return cls(provider, step, kind=kind, status_code=status_code)
