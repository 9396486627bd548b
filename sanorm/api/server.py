from __future__ import annotations

import logging
import os
from typing import Any, List, Optional

from fastapi import Depends, FastAPI, Query

from sanorm.api.dependencies import sanitized_body
from sanorm.api.handlers import install_error_handlers
from sanorm.api.middleware import NormalizationMiddleware, RequestContextMiddleware, SanitizationMiddleware
from sanorm.api.models import HealthOut, RuleOut, SanitizeIn, SanitizeOut
from sanorm.config import ModuleConfig, config_from_env
from sanorm.core.normalization.engine import NormalizationEngine
from sanorm.core.sanitization.engine import SanitizationEngine

log = logging.getLogger("sanorm.api")

# Demo inventory for GET /items.
_ITEMS = [{"id": i, "name": f"item-{i}"} for i in range(1, 24)]


def create_app(config: Optional[ModuleConfig] = None) -> FastAPI:
    """Create the demo FastAPI app.

    Pipeline (outermost first):
      RequestContextMiddleware -> NormalizationMiddleware -> SanitizationMiddleware -> routes

    Raises
    - ConfigError if the configured rule names are not all registered.
    """

    cfg = config if config is not None else config_from_env()

    # Logging: safe defaults (no request bodies), can be configured by host app.
    logging.getLogger("sanorm").setLevel(os.environ.get("SANORM_LOG_LEVEL", "INFO").upper())

    sanitizer = SanitizationEngine(cfg.sanitization)
    sanitizer.validate_config()
    normalizer = NormalizationEngine(cfg.normalization)

    app = FastAPI(title="sanorm demo", version="0.1")
    app.state.cfg = cfg
    app.state.sanitizer = sanitizer
    app.state.normalizer = normalizer

    # /sanitize reports on raw input and /echo sanitizes through its dependency.
    app.add_middleware(
        SanitizationMiddleware,
        engine=sanitizer,
        exclude_paths=("/sanitize", "/echo"),
        on_violation=lambda violations, scope: log.info(
            "request_violations",
            extra={"path": scope.get("path"), "violation_count": len(violations)},
        ),
    )
    app.add_middleware(NormalizationMiddleware, engine=normalizer)
    app.add_middleware(RequestContextMiddleware)

    install_error_handlers(app, normalizer)

    @app.get("/health", response_model=HealthOut)
    def health() -> HealthOut:
        return HealthOut(
            sanitization_enabled=cfg.sanitization.enabled,
            normalization_enabled=normalizer.config.enabled,
            rules=list(cfg.sanitization.rules),
            options={
                "strict_mode": cfg.sanitization.strict_mode,
                "reject_on_violation": cfg.sanitization.reject_on_violation,
                "format": normalizer.config.format,
                "error_format": normalizer.config.error_format,
            },
        )

    @app.get("/rules", response_model=List[RuleOut])
    def list_rules() -> List[RuleOut]:
        return [
            RuleOut(
                name=r.name,
                description=r.description,
                transforms=r.transform is not None,
                validates=r.validate is not None,
            )
            for r in sanitizer.get_rules()
        ]

    @app.post("/sanitize", response_model=SanitizeOut)
    def sanitize(body: SanitizeIn) -> SanitizeOut:
        result = sanitizer.sanitize(body.payload, body.rules)
        return SanitizeOut(
            sanitized=result.sanitized,
            violations=result.violations,
            applied_rules=result.applied_rules,
        )

    @app.post("/echo")
    def echo(body: Any = Depends(sanitized_body(sanitizer))) -> Any:
        return body

    @app.get("/items")
    def items(
        page: int = Query(default=1),
        limit: int = Query(default=10),
    ) -> dict:
        size = max(1, min(100, limit))
        start = (max(1, page) - 1) * size
        return {
            "items": _ITEMS[start : start + size],
            "page": page,
            "limit": limit,
            "total": len(_ITEMS),
        }

    return app
