"""Clients for the pinning gateway and the identity provider.

Both are used for side effects that run after the local write has been
committed. ``post_commit`` wraps such a step so that a failing upstream call
is logged and dropped; it runs at most once and never reaches the caller.
"""

import logging
from typing import Callable, List, Optional

import requests

from errors import UpstreamFailure

logger = logging.getLogger(__name__)

TIMEOUT = 10


def post_commit(label: str, func: Callable, *args, **kwargs) -> None:
    try:
        func(*args, **kwargs)
    except (UpstreamFailure, requests.RequestException) as e:
        logger.error("Post-commit step '%s' failed: %s", label, e)
    else:
        logger.info("Post-commit step '%s' done", label)


def extract_cid(url: Optional[str]) -> Optional[str]:
    """Return the CID from an ``.../ipfs/<cid>?...`` URL, if there is one."""
    if not url or "/ipfs/" not in url:
        return None
    cid = url.split("/ipfs/", 1)[1].split("?", 1)[0].strip("/")
    return cid or None


class PinningGateway:
    def __init__(self, jwt: str, api_url: str = "https://api.pinata.cloud",
                 session: Optional[requests.Session] = None):
        self.jwt = jwt
        self.api_url = api_url.rstrip("/")
        self.session = session or requests.Session()

    def unpin(self, cid: str) -> None:
        if not cid:
            raise UpstreamFailure("No CID provided")
        clean = cid.strip().split("?", 1)[0]
        resp = self.session.delete(
            f"{self.api_url}/pinning/unpin/{clean}",
            headers={"Authorization": f"Bearer {self.jwt}"},
            timeout=TIMEOUT,
        )
        if not resp.ok:
            raise UpstreamFailure(
                f"Pinata deletion failed: {resp.status_code} {resp.reason}", resp.text[:200]
            )
        logger.info("Unpinned %s", clean)

    def unpin_all(self, cids: List[str]) -> None:
        # Each CID is attempted even when an earlier one fails.
        failures = []
        for cid in cids:
            try:
                self.unpin(cid)
            except (UpstreamFailure, requests.RequestException) as e:
                logger.warning("Could not unpin %s: %s", cid, e)
                failures.append(cid)
        if failures:
            raise UpstreamFailure(f"Failed to unpin {len(failures)} of {len(cids)} files", failures)


class IdentityProvider:
    """Minimal Clerk REST client."""

    def __init__(self, secret_key: str, api_url: str = "https://api.clerk.com/v1",
                 session: Optional[requests.Session] = None):
        self.secret_key = secret_key
        self.api_url = api_url.rstrip("/")
        self.session = session or requests.Session()

    @property
    def enabled(self) -> bool:
        return bool(self.secret_key)

    def _call(self, method: str, path: str, **kwargs):
        resp = self.session.request(
            method,
            f"{self.api_url}{path}",
            headers={
                "Authorization": f"Bearer {self.secret_key}",
                "Content-Type": "application/json",
            },
            timeout=TIMEOUT,
            **kwargs,
        )
        if not resp.ok:
            raise UpstreamFailure(
                f"Identity provider error: {resp.status_code} {resp.reason}", resp.text[:200]
            )
        return resp.json() if resp.content else None

    @staticmethod
    def _users(payload) -> List[dict]:
        if isinstance(payload, dict):
            return payload.get("data") or []
        return payload or []

    def list_users(self) -> List[dict]:
        return self._users(self._call("GET", "/users", params={"limit": 500}))

    def find_by_email(self, email: str) -> Optional[dict]:
        users = self._users(self._call("GET", "/users", params={"email_address": email}))
        return users[0] if users else None

    def update_user(self, remote_id: str, changes: dict) -> None:
        self._call("PATCH", f"/users/{remote_id}", json=changes)

    def delete_user(self, remote_id: str) -> None:
        self._call("DELETE", f"/users/{remote_id}")


def primary_email(remote: dict) -> str:
    addresses = remote.get("email_addresses") or []
    return addresses[0].get("email_address", "") if addresses else ""


def remote_role(remote: dict) -> str:
    metadata = remote.get("public_metadata") or {}
    return "admin" if metadata.get("role") == "admin" else "customer"


def remote_name(remote: dict) -> str:
    name = f"{remote.get('first_name') or ''} {remote.get('last_name') or ''}".strip()
    return name or "Unnamed User"
