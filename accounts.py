"""Local user records and their reconciliation with the identity provider.

The identity provider is the source of truth for who a user is. Local edits
and deletions are pushed to it after the local write commits; those pushes
are best effort and their failures are only logged.
"""

import logging
from typing import List, Optional, Tuple

from auth import check_password, hash_password
from database import Store
from errors import Conflict, InvalidRequest, PersistenceFailure, UserNotFound
from gateways import IdentityProvider, primary_email, remote_name, remote_role
from schemas import UserCreate, UserUpdate

logger = logging.getLogger(__name__)

# Stored for users that only ever authenticate through the identity provider.
EXTERNAL_PASSWORD = "clerk-auth-user"


def public_user(doc: dict) -> dict:
    return {k: v for k, v in doc.items() if k != "password_hash"}


def get_user(store: Store, user_id: str) -> dict:
    user = store.get_user(user_id)
    if user is None:
        raise UserNotFound(user_id)
    return user


def list_users(store: Store) -> List[dict]:
    return [public_user(u) for u in store.list_users()]


def create_user(store: Store, payload: UserCreate) -> dict:
    if not payload.name or not payload.email or not payload.password:
        raise InvalidRequest("Name, email, and password are required")
    if store.get_user_by_email(payload.email):
        logger.info("User with email already exists: %s", payload.email)
        raise Conflict("User with this email already exists")
    user = store.create_user({
        "name": payload.name,
        "email": payload.email,
        "password_hash": hash_password(payload.password),
        "role": payload.role,
    })
    logger.info("New user created: %s", user["id"])
    return public_user(user)


def authenticate(store: Store, email: str, password: str) -> Optional[dict]:
    user = store.get_user_by_email(email)
    if not user or not check_password(password, user.get("password_hash", "")):
        return None
    return user


def update_user(store: Store, user_id: str, payload: UserUpdate) -> Tuple[dict, dict]:
    """Apply the provided fields and return ``(updated, previous)``."""
    previous = get_user(store, user_id)
    changes = {}
    if payload.name:
        changes["name"] = payload.name
    if payload.email:
        if payload.email != previous["email"] and store.get_user_by_email(payload.email):
            raise Conflict("User with this email already exists")
        changes["email"] = payload.email
    if payload.role:
        changes["role"] = payload.role
    if payload.password:
        changes["password_hash"] = hash_password(payload.password)

    updated = store.update_user(user_id, changes)
    if updated is None:
        raise PersistenceFailure("Failed to update user in database")
    logger.info("User %s updated", user_id)
    return public_user(updated), previous


def delete_user(store: Store, user_id: str) -> dict:
    """Delete the local record and return it for the remote cleanup."""
    user = get_user(store, user_id)
    if not store.delete_user(user_id):
        raise PersistenceFailure("Failed to delete user")
    logger.info("User %s deleted locally", user_id)
    return user


# --- identity provider side effects ---


def push_profile_changes(idp: IdentityProvider, previous: dict, payload: UserUpdate) -> None:
    """Mirror name and role edits onto the matching remote identity."""
    if not idp.enabled or not previous.get("email"):
        return
    remote = idp.find_by_email(previous["email"])
    if remote is None:
        logger.info("No matching identity found for %s", previous["email"])
        return

    changes = {}
    if payload.name and payload.name != previous.get("name"):
        first, _, last = payload.name.partition(" ")
        changes["first_name"] = first
        changes["last_name"] = last
    if payload.role and payload.role != previous.get("role"):
        changes["public_metadata"] = {**(remote.get("public_metadata") or {}), "role": payload.role}
    if changes:
        idp.update_user(remote["id"], changes)
        logger.info("Identity %s updated", remote["id"])


def remove_remote_identity(idp: IdentityProvider, user: dict) -> None:
    if not idp.enabled:
        return
    remote_id = user.get("clerk_id")
    if not remote_id and user.get("email"):
        remote = idp.find_by_email(user["email"])
        remote_id = remote["id"] if remote else None
    if not remote_id:
        logger.info("No matching identity found for %s", user.get("email"))
        return
    idp.delete_user(remote_id)
    logger.info("Identity %s deleted", remote_id)


def sync_identities(store: Store, idp: IdentityProvider) -> dict:
    """Create or update a local user for every remote identity."""
    remote_users = idp.list_users()
    report = {"total": len(remote_users), "created": 0, "updated": 0, "errors": 0, "details": []}

    local = store.list_users()
    by_clerk_id = {u["clerk_id"]: u for u in local if u.get("clerk_id")}
    by_email = {u["email"].lower(): u for u in local if u.get("email")}

    for remote in remote_users:
        email = primary_email(remote)
        if not email:
            report["errors"] += 1
            report["details"].append(f"No email found for identity {remote.get('id')}")
            continue
        fields = {"name": remote_name(remote), "role": remote_role(remote), "clerk_id": remote["id"]}
        existing = by_clerk_id.get(remote["id"]) or by_email.get(email.lower())
        try:
            if existing:
                store.update_user(existing["id"], fields)
                report["updated"] += 1
                report["details"].append(f"Updated user {email}")
            else:
                store.create_user({**fields, "email": email, "password_hash": EXTERNAL_PASSWORD})
                report["created"] += 1
                report["details"].append(f"Created user {email}")
        except (Conflict, PersistenceFailure) as e:
            logger.error("Failed to sync identity %s: %s", remote["id"], e)
            report["errors"] += 1
            report["details"].append(f"Error syncing {email}: {e}")

    logger.info(
        "Identity sync finished: %d created, %d updated, %d errors",
        report["created"], report["updated"], report["errors"],
    )
    return report
