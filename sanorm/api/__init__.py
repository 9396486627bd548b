"""sanorm HTTP adapters.

ASGI middleware and FastAPI helpers that feed requests through the
sanitization engine and responses through the normalization engine.
"""

from .dependencies import request_context, sanitized_body  # noqa: F401
from .handlers import install_error_handlers  # noqa: F401
from .middleware import (  # noqa: F401
    NormalizationMiddleware,
    RequestContextMiddleware,
    SanitizationMiddleware,
)
from .server import create_app  # noqa: F401
