"""
Security models - Roles enum
"""

import enum


class Role(str, enum.Enum):
    """RBAC roles"""
    USER = "USER"
    ADMIN = "ADMIN"
    OPS = "OPS"
