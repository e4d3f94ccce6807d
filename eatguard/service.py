"""
eatguard Verification Service

HTTP front for the capability verifier, so off-chain components can check
a token before submitting it:

    GET  /health   liveness and config checks
    GET  /domain   the token domain this service verifies against
    GET  /issuers  current issuer registry
    POST /verify   verify a token, optionally against an expected call
"""

import logging
import time
from typing import Callable, Optional

from fastapi import FastAPI, HTTPException

from . import config
from .access_token import Domain
from .errors import ValidationError
from .logging_config import configure_logging, set_call_id
from .registry import IssuerRegistry
from .schemas import IssuersResponse, VerifyRequest, VerifyResponse
from .verifier import verify_access_token

logger = logging.getLogger(__name__)


def now_epoch() -> int:
    return int(time.time())


def load_service_state(path: Optional[str] = None):
    """
    Build (domain, registry) from the registry config file.

    The file holds the registry fields plus the verifier's
    `verifyingContract` address.
    """
    data = config.load_registry_config(path)
    if "verifyingContract" not in data:
        raise ValidationError("verifyingContract", "missing field")
    domain = Domain(
        name=config.DOMAIN_NAME,
        version=config.DOMAIN_VERSION,
        chain_id=config.CHAIN_ID,
        verifying_contract=data["verifyingContract"],
    )
    return domain, IssuerRegistry.from_dict(data)


def create_app(
    domain: Optional[Domain] = None,
    registry: Optional[IssuerRegistry] = None,
    clock: Callable[[], int] = now_epoch
) -> FastAPI:
    """
    Create the service. Without an explicit domain and registry, both are
    loaded from configuration at startup.
    """
    app = FastAPI(title="eatguard verification service")
    app.state.domain = domain
    app.state.registry = registry

    @app.on_event("startup")
    def _startup():
        if app.state.domain is None or app.state.registry is None:
            configure_logging(config.LOG_LEVEL, config.LOG_JSON)
            app.state.domain, app.state.registry = load_service_state()
            logger.info("Loaded issuer registry version %d", app.state.registry.version)

    @app.get("/health")
    def health():
        return {
            "status": "ok",
            "env": config.ENV,
            "config": config.validate_config(),
        }

    @app.get("/domain")
    def get_domain():
        return app.state.domain.to_dict()

    @app.get("/issuers", response_model=IssuersResponse)
    def get_issuers():
        return app.state.registry.to_dict()

    @app.post("/verify", response_model=VerifyResponse)
    def verify(req: VerifyRequest):
        set_call_id()
        try:
            token = req.token.to_token()
            expected = req.expectedCall.to_function_call() if req.expectedCall else None
            if req.token.domain is not None and req.token.domain.to_domain() != app.state.domain:
                raise HTTPException(400, "DOMAIN_MISMATCH")
        except ValidationError as e:
            raise HTTPException(422, {"field": e.field, "message": e.message})

        result = verify_access_token(token, app.state.domain, app.state.registry.snapshot(), clock(), expected)
        logger.info("Token verification: %s", result.outcome.value)
        return result.to_dict()

    return app
