"""
Idempotency helpers - replay protection for mutating wallet calls

A record stores the JSON response of a committed call under
(user_id, scope, idempotency_key). A retry with the same request gets the
stored response back; a different request under the same key is rejected.
"""

import hashlib
import json
from typing import Any, Dict, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from wallet_engine.core.idempotency.models import IdempotencyRecord
from wallet_engine.services.errors import IdempotencyConflictError


def request_fingerprint(request: Dict[str, Any]) -> str:
    """sha256 of the canonical JSON form of a request"""
    canonical = json.dumps(request, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def check_idempotency_key(
    db: Session,
    *,
    user_id: UUID,
    scope: str,
    idempotency_key: str,
    fingerprint: str,
) -> Optional[Dict[str, Any]]:
    """
    Return the stored response for this key, None if the key is new.

    Raises:
        IdempotencyConflictError: If the key was used for a different request
    """
    record = db.query(IdempotencyRecord).filter(
        IdempotencyRecord.user_id == user_id,
        IdempotencyRecord.scope == scope,
        IdempotencyRecord.idempotency_key == idempotency_key,
    ).first()

    if record is None:
        return None

    if record.request_fingerprint != fingerprint:
        raise IdempotencyConflictError(
            "Idempotency key already used for a different request",
            {"idempotency_key": idempotency_key, "scope": scope},
        )

    return record.response_payload


def store_idempotent_response(
    db: Session,
    *,
    user_id: UUID,
    scope: str,
    idempotency_key: str,
    fingerprint: str,
    response: Dict[str, Any],
    response_status: int = 200,
) -> IdempotencyRecord:
    """
    Store a response under its key.

    NO COMMIT - written in the same transaction as the operation it protects.
    """
    record = IdempotencyRecord(
        user_id=user_id,
        scope=scope,
        idempotency_key=idempotency_key,
        request_fingerprint=fingerprint,
        response_status=response_status,
        response_payload=response,
    )
    db.add(record)
    db.flush()
    return record
