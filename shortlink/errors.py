"""Error taxonomy for the short link engine.

Every failure that crosses the engine boundary is one of the ``LinkError``
subclasses below. Each carries the HTTP status it maps to, so the exception
handler in ``shortlink.main`` can render it without a lookup table.

Error Kinds
===========
::
    LinkError
    ├─ InvalidInput          400  client-correctable input
    ├─ UnsafeURL             400  security policy rejection (carries reason)
    ├─ CodeAlreadyInUse      409  custom code conflict
    ├─ NotFound              404  never existed, or not owned by caller
    │   └─ Forbidden         403  ownership mismatch (folded into 404 by default)
    ├─ Expired               410  code exists but expires_at has passed
    ├─ GenerationExhausted   500  code space pressure, caller retries later
    └─ StoreUnavailable      503  storage failure translated at the boundary

``StorageError`` is not part of the taxonomy: stores raise it and the
lifecycle/resolver layer translates it into ``StoreUnavailable``.
"""

__all__ = [
    "LinkError",
    "InvalidInput",
    "UnsafeURL",
    "CodeAlreadyInUse",
    "NotFound",
    "Forbidden",
    "Expired",
    "GenerationExhausted",
    "StoreUnavailable",
    "StorageError",
]


class LinkError(Exception):
    status_code: int = 500
    error: str = "link_error"
    default_detail: str = "Short link operation failed"

    def __init__(self, detail: str | None = None):
        self.detail = detail or self.default_detail
        super().__init__(self.detail)


class InvalidInput(LinkError):
    status_code = 400
    error = "invalid_input"
    default_detail = "Invalid input"


class UnsafeURL(LinkError):
    status_code = 400
    error = "unsafe_url"
    default_detail = "URL blocked for security reasons"

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(self.default_detail)


class CodeAlreadyInUse(LinkError):
    status_code = 409
    error = "code_already_in_use"

    def __init__(self, code: str):
        self.code = code
        super().__init__(f"Shortcode '{code}' is already in use")


class NotFound(LinkError):
    status_code = 404
    error = "not_found"
    default_detail = "Short link not found"


class Forbidden(NotFound):
    status_code = 403
    error = "forbidden"
    default_detail = "Short link belongs to another owner"


class Expired(LinkError):
    status_code = 410
    error = "expired"
    default_detail = "Short link expired"


class GenerationExhausted(LinkError):
    status_code = 500
    error = "generation_exhausted"
    default_detail = "Unable to generate unique shortcode"


class StoreUnavailable(LinkError):
    status_code = 503
    error = "store_unavailable"
    default_detail = "Link store unavailable"


class StorageError(Exception):
    """Raised by stores when the underlying driver fails."""
