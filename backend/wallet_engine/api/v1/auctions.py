"""
Auction API endpoints - auction view, bid history, bidding
"""

import logging
from typing import Optional
from uuid import UUID
from fastapi import APIRouter, Depends, Header, Query, status
from sqlalchemy.orm import Session

from wallet_engine.api.exceptions import to_http_exception
from wallet_engine.auth.dependencies import get_current_user_id
from wallet_engine.infrastructure.database import get_db
from wallet_engine.schemas.auctions import AuctionResponse, BidListResponse, PlaceBidRequest, PlaceBidResponse
from wallet_engine.services import wallet_api
from wallet_engine.services.errors import WalletEngineError

logger = logging.getLogger(__name__)

router = APIRouter(tags=["auctions"])


@router.get(
    "/auctions/{product_id}",
    response_model=AuctionResponse,
    summary="Get auction state",
    description="Current bid, next minimum acceptable bid, state and end date.",
)
def get_auction(
    product_id: UUID,
    db: Session = Depends(get_db),
    user_id: UUID = Depends(get_current_user_id),
) -> AuctionResponse:
    try:
        return AuctionResponse(**wallet_api.get_auction(db=db, product_id=product_id))
    except WalletEngineError as e:
        raise to_http_exception(e)


@router.get(
    "/auctions/{product_id}/bids",
    response_model=BidListResponse,
    summary="Get bid history",
)
def list_bids(
    product_id: UUID,
    limit: int = Query(50, ge=1, le=200),
    db: Session = Depends(get_db),
    user_id: UUID = Depends(get_current_user_id),
) -> BidListResponse:
    try:
        return BidListResponse(**wallet_api.list_auction_bids(db=db, product_id=product_id, limit=limit))
    except WalletEngineError as e:
        raise to_http_exception(e)


@router.post(
    "/auctions/{product_id}/bids",
    response_model=PlaceBidResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Place a bid",
    description=(
        "Reserve the bid amount on the bidder's wallet and release the previous high bidder's hold. "
        "Rejections name the violated rule (minimum acceptable bid, available balance)."
    ),
)
def place_bid(
    product_id: UUID,
    request: PlaceBidRequest,
    idempotency_key: Optional[str] = Header(None, alias="Idempotency-Key"),
    db: Session = Depends(get_db),
    user_id: UUID = Depends(get_current_user_id),
) -> PlaceBidResponse:
    logger.info(
        f"Bid request: product_id={product_id}, user_id={user_id}, amount={request.amount}",
        extra={"product_id": str(product_id), "user_id": str(user_id)},
    )
    try:
        result = wallet_api.place_bid(
            db=db,
            user_id=user_id,
            product_id=product_id,
            amount=request.amount,
            idempotency_key=idempotency_key,
        )
    except WalletEngineError as e:
        db.rollback()
        raise to_http_exception(e)
    return PlaceBidResponse(**result)
