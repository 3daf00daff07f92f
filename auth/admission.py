"""
auth/admission.py -- Login and registration decisions for the CAD.

This module owns the admission rules:
  - the ordered login gates (whitelist, ban, password),
  - temporary-password precedence,
  - first-account-becomes-owner bootstrap,
  - the initial rank / whitelist / tow policy for everyone else.

It issues session tokens but never touches HTTP. Routes attach the returned
token to the response with set_session_cookie().

Every rejection is an AdmissionError subclass with a stable code. Storage
faults are not caught here; they reach the caller unchanged.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Union

from sqlalchemy.exc import IntegrityError

from auth.models import Deployment, Rank, User, WhitelistStatus
from auth.store import UserStore
from auth.tokens import create_session_token, hash_password, verify_password

logger = logging.getLogger("cadgate.auth")


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class AdmissionError(Exception):
    """Base for expected admission outcomes. code is the class name."""

    status_code = 400
    message = "Request rejected."

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.message)
        self.message = message or self.message

    @property
    def code(self) -> str:
        return type(self).__name__


class UserNotFound(AdmissionError):
    status_code = 404
    message = "No account exists with that username."


class WhitelistPending(AdmissionError):
    message = "This account is awaiting whitelist approval."


class WhitelistDeclined(AdmissionError):
    message = "This account was declined by the whitelist."


class UserBanned(AdmissionError):
    message = "This account is banned."


class PasswordIncorrect(AdmissionError):
    message = "Incorrect password."


class UserAlreadyExists(AdmissionError):
    message = "That username is already taken."


# ---------------------------------------------------------------------------
# Registration policy
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class OwnerPolicy:
    """First account of the installation: full rank and every capability."""

    is_owner = True

    def fields(self) -> dict:
        return {
            "rank": Rank.OWNER,
            "is_dispatch": True,
            "is_leo": True,
            "is_ems_fd": True,
            "is_supervisor": True,
            "is_tow": True,
            "whitelist_status": WhitelistStatus.ACCEPTED,
        }


@dataclass(frozen=True)
class StandardPolicy:
    """Every later account: USER rank, defaults taken from the deployment."""

    is_tow: bool
    whitelist_status: WhitelistStatus

    is_owner = False

    @property
    def awaiting_whitelist(self) -> bool:
        return self.whitelist_status is WhitelistStatus.PENDING

    def fields(self) -> dict:
        return {
            "rank": Rank.USER,
            "is_tow": self.is_tow,
            "whitelist_status": self.whitelist_status,
        }


Policy = Union[OwnerPolicy, StandardPolicy]


def resolve_policy(is_first_account: bool, deployment: Deployment) -> Policy:
    """Pure decision: which initial standing does a new registrant get."""
    if is_first_account:
        return OwnerPolicy()
    return StandardPolicy(
        is_tow=not deployment.tow_whitelisted,
        whitelist_status=WhitelistStatus.PENDING if deployment.whitelisted else WhitelistStatus.ACCEPTED,
    )


# ---------------------------------------------------------------------------
# Outcomes
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class LoginOutcome:
    user_id: int
    token: str
    has_temp_password: bool = False

    def body(self) -> dict:
        # A temp-password login deliberately omits userId: the client must
        # change the password before it is treated as a normal session.
        if self.has_temp_password:
            return {"hasTempPassword": True}
        return {"userId": self.user_id}


@dataclass(frozen=True)
class RegisterOutcome:
    user_id: int
    token: str
    is_owner: bool

    def body(self) -> dict:
        return {"userId": self.user_id, "isOwner": self.is_owner}


# ---------------------------------------------------------------------------
# Login
# ---------------------------------------------------------------------------

# Evaluated in order; the first matching gate rejects. Whitelist state is
# checked before the ban flag, and both before the password.
LOGIN_GATES: tuple[tuple[Callable[[User], bool], type[AdmissionError]], ...] = (
    (lambda u: u.whitelist_status is WhitelistStatus.PENDING, WhitelistPending),
    (lambda u: u.whitelist_status is WhitelistStatus.DECLINED, WhitelistDeclined),
    (lambda u: u.banned, UserBanned),
)


def login(store: UserStore, username: str, password: str) -> LoginOutcome:
    """Verify credentials and issue a session token.

    Raises UserNotFound, WhitelistPending, WhitelistDeclined, UserBanned or
    PasswordIncorrect. Does not write to the database.
    """
    user = store.get_by_username(username)
    if user is None:
        logger.info("Login rejected: UserNotFound")
        raise UserNotFound()

    for rejects, error in LOGIN_GATES:
        if rejects(user):
            logger.info("Login rejected for user_id=%s: %s", user.id, error.__name__)
            raise error()

    # A temporary password, when present, is the only accepted credential.
    candidate_hash = user.temp_password or user.hashed_password
    if not verify_password(password, candidate_hash):
        logger.info("Login rejected for user_id=%s: PasswordIncorrect", user.id)
        raise PasswordIncorrect()

    token = create_session_token(user.id)
    logger.info("Login succeeded for user_id=%s", user.id)
    return LoginOutcome(user_id=user.id, token=token, has_temp_password=user.temp_password is not None)


# ---------------------------------------------------------------------------
# Register
# ---------------------------------------------------------------------------


def register(store: UserStore, username: str, password: str) -> RegisterOutcome:
    """Create an account, assign its initial standing and issue a session token.

    The account count is read before the insert; an empty installation makes
    this registrant the owner, provided it also wins the owner slot. Losing
    that race (two simultaneous first registrations) yields the standard
    policy instead.

    Raises UserAlreadyExists, or WhitelistPending when the deployment is
    whitelisted. In the latter case the account has already been stored and
    stays PENDING until a moderator acts; no session is issued.
    """
    if store.get_by_username(username) is not None:
        raise UserAlreadyExists()

    user_count = store.count_users()

    try:
        user_id = store.create_user(User(username=username, hashed_password=hash_password(password)))
    except IntegrityError as exc:
        # Another request inserted the same username after our pre-check.
        raise UserAlreadyExists() from exc

    deployment = store.find_or_create_deployment(owner_id=user_id)

    is_first_account = user_count <= 0 and store.claim_owner_slot(user_id)
    policy = resolve_policy(is_first_account, deployment)
    fields = policy.fields()
    store.update_user(user_id, **fields)
    logger.info(
        "Registered user_id=%s (rank=%s, whitelist_status=%s)",
        user_id,
        fields["rank"].value,
        fields["whitelist_status"].value,
    )

    if isinstance(policy, StandardPolicy) and policy.awaiting_whitelist:
        raise WhitelistPending()

    token = create_session_token(user_id)
    return RegisterOutcome(user_id=user_id, token=token, is_owner=policy.is_owner)
