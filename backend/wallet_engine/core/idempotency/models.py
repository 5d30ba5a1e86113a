"""
IdempotencyRecord model - Replay protection for mutating wallet calls
"""

from sqlalchemy import Column, String, Integer, JSON, Uuid, UniqueConstraint
from wallet_engine.core.common.base_model import BaseModel


class IdempotencyRecord(BaseModel):
    """
    Stores the response of a mutating call under (user_id, scope, idempotency_key).

    Written in the same database transaction as the operation it protects, so a
    record exists if and only if the operation committed.
    """

    __tablename__ = "idempotency_records"

    user_id = Column(Uuid(as_uuid=True), nullable=False, index=True)
    scope = Column(String(50), nullable=False)  # add_funds, withdraw_funds, place_bid, buy_now, cancel_order
    idempotency_key = Column(String(255), nullable=False)
    request_fingerprint = Column(String(64), nullable=False)  # sha256 of the canonical request
    response_status = Column(Integer, nullable=False, default=200)
    response_payload = Column(JSON, nullable=False)

    __table_args__ = (
        UniqueConstraint('user_id', 'scope', 'idempotency_key', name='uq_idempotency_records_user_scope_key'),
    )
