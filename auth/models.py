"""
auth/models.py -- Domain dataclasses for accounts and the deployment record.

Pattern: Data class (pure data container, zero logic). Dataclasses own domain
shape; the store and the admission controller do the work.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class Rank(str, Enum):
    OWNER = "OWNER"
    ADMIN = "ADMIN"
    USER = "USER"


class WhitelistStatus(str, Enum):
    PENDING = "PENDING"
    ACCEPTED = "ACCEPTED"
    DECLINED = "DECLINED"


@dataclass
class User:
    """An account of the CAD deployment.

    hashed_password and temp_password are bcrypt hashes, never plaintext.
    temp_password is written by the password-reset flow; when set it replaces
    hashed_password for verification and the client is told to change it.

    rank, whitelist_status and the capability flags are assigned once at
    registration. Moderation (PENDING -> ACCEPTED/DECLINED, bans) happens
    elsewhere; this package only reads those fields at login.
    """

    username: str
    hashed_password: str
    id: int | None = None
    temp_password: str | None = None
    rank: Rank = Rank.USER
    whitelist_status: WhitelistStatus = WhitelistStatus.ACCEPTED
    banned: bool = False
    is_dispatch: bool = False
    is_leo: bool = False
    is_ems_fd: bool = False
    is_supervisor: bool = False
    is_tow: bool = False
    created_at: str | None = None


@dataclass
class Deployment:
    """The single CAD installation record and its admission policy.

    whitelisted:     new non-owner accounts start PENDING instead of ACCEPTED.
    tow_whitelisted: new non-owner accounts do not get the tow capability.
    """

    owner_id: int
    name: str = "My CAD"
    whitelisted: bool = False
    tow_whitelisted: bool = False
    id: int | None = None
    created_at: str | None = None
