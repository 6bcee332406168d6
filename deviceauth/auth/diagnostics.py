"""Signature compatibility checks for client developers (non-production only)."""

from __future__ import annotations

import hashlib
import logging
import secrets
import time
from datetime import datetime, timezone
from typing import Callable

from fastapi import APIRouter

from deviceauth.api.contracts import (
    ApiErrorResponse,
    CryptoInfoResponse,
    DiagnosticChallengeResponse,
    HashMessageResponse,
    SignatureDiagnosticsResponse,
)
from deviceauth.auth.models import HashMessageRequest, SignatureDiagnosticsRequest
from deviceauth.auth.signatures import (
    SignatureVerifier,
    decode_hex,
    describe_signature_format,
)

LOGGER = logging.getLogger(__name__)

_ERRORS_400 = {400: {"model": ApiErrorResponse}}


def create_diagnostics_router(
    verifier: SignatureVerifier,
    *,
    challenge_ttl_seconds: int = 300,
    clock: Callable[[], float] = time.time,
) -> APIRouter:
    """Report how the server encodes, hashes and verifies client signatures."""
    router = APIRouter(prefix="/diagnostic", tags=["diagnostic"])

    @router.post(
        "/test-signature",
        response_model=SignatureDiagnosticsResponse,
        responses=_ERRORS_400,
    )
    def test_signature(req: SignatureDiagnosticsRequest) -> SignatureDiagnosticsResponse:
        strategy = verifier.match(
            req.message, req.signature, req.public_key, platform=req.platform
        )
        signature = decode_hex(req.signature) or b""
        public_key = decode_hex(req.public_key) or b""
        LOGGER.info(
            "diagnostic_signature_tested",
            extra={"strategy": strategy or "none", "platform": req.platform or "unknown"},
        )
        return SignatureDiagnosticsResponse(
            valid=strategy is not None,
            strategy=strategy,
            expected_hash=hashlib.sha256(req.message.encode("utf-8")).hexdigest(),
            signature_format=describe_signature_format(req.signature),
            message_length=len(req.message),
            signature_length=len(signature),
            public_key_length=len(public_key),
        )

    @router.post("/hash-message", response_model=HashMessageResponse, responses=_ERRORS_400)
    def hash_message(req: HashMessageRequest) -> HashMessageResponse:
        encoded = req.message.encode("utf-8")
        return HashMessageResponse(
            message=req.message,
            message_length=len(req.message),
            message_bytes=encoded.hex(),
            hash=hashlib.sha256(encoded).hexdigest(),
        )

    @router.get("/crypto-info", response_model=CryptoInfoResponse)
    def crypto_info() -> CryptoInfoResponse:
        return CryptoInfoResponse(
            curve="P-256 (secp256r1)",
            hash_algorithm="SHA-256",
            public_key_formats=["SEC1 uncompressed (65 bytes)", "SEC1 compressed (33 bytes)"],
            signature_formats=["compact r||s (64 bytes)", "DER (variable)"],
            verification_strategies=[strategy.name for strategy in verifier.strategies],
        )

    @router.post("/generate-test-challenge", response_model=DiagnosticChallengeResponse)
    def generate_test_challenge() -> DiagnosticChallengeResponse:
        """Random challenge for local signing tests; it cannot be used to log in."""
        expires_at = datetime.fromtimestamp(clock() + challenge_ttl_seconds, tz=timezone.utc)
        return DiagnosticChallengeResponse(
            challenge=secrets.token_hex(32),
            expires_at=expires_at.isoformat(),
        )

    return router
