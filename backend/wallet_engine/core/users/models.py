"""
User model
"""

from sqlalchemy import Column, String, Enum as SQLEnum
from sqlalchemy.orm import relationship
import enum
from wallet_engine.core.common.base_model import BaseModel


class UserStatus(str, enum.Enum):
    """User status enum"""
    ACTIVE = "ACTIVE"
    SUSPENDED = "SUSPENDED"


class User(BaseModel):
    """
    User model

    Profile editing lives in the marketplace; this table only carries what the
    wallet engine needs to attribute wallets, bids and orders.
    """

    __tablename__ = "users"

    email = Column(String(255), unique=True, nullable=False, index=True)
    status = Column(SQLEnum(UserStatus, name="user_status", create_constraint=True), nullable=False, default=UserStatus.ACTIVE)
    first_name = Column(String(255), nullable=True)
    last_name = Column(String(255), nullable=True)

    # Relationships
    wallet = relationship("Wallet", back_populates="user", uselist=False, lazy="select")
