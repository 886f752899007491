"""Convex backend client for the friend roster."""

import logging
from typing import Any
from uuid import UUID

import httpx

from ..exceptions import RemoteAPIError
from ..models import AccountFriend

logger = logging.getLogger(__name__)


def friend_from_dto(data: dict[str, Any]) -> AccountFriend | None:
    """Map a snake_case friend DTO to an AccountFriend, or None if invalid."""
    try:
        member_id = UUID(str(data["member_id"]))
    except (KeyError, ValueError):
        return None

    return AccountFriend(
        member_id=member_id,
        name=data.get("name") or "",
        nickname=data.get("nickname"),
        has_linked_account=bool(data.get("has_linked_account") or False),
        linked_account_id=data.get("linked_account_id"),
        linked_account_email=data.get("linked_account_email"),
        profile_image_url=data.get("profile_image_url"),
        profile_color_hex=data.get("profile_avatar_color"),
        status=data.get("status"),
    )


class ConvexClient:
    """Client for the Convex HTTP query API."""

    def __init__(
        self,
        base_url: str,
        auth_token: str | None = None,
        transport: httpx.BaseTransport | None = None,
    ):
        """Initialize the Convex client."""
        headers = {"Content-Type": "application/json"}
        if auth_token:
            headers["Authorization"] = f"Bearer {auth_token}"
        self.client = httpx.Client(
            base_url=base_url,
            headers=headers,
            timeout=30.0,
            transport=transport,
        )

    def close(self):
        """Close the HTTP client."""
        self.client.close()

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.close()

    def query(self, path: str, args: dict[str, Any] | None = None) -> Any:
        """
        Run a Convex query function.

        Args:
            path: Function path, e.g. "friends:list"
            args: Function arguments

        Returns:
            The function's return value

        Raises:
            RemoteAPIError: If the request fails or Convex reports an error
        """
        payload = {"path": path, "args": args or {}, "format": "json"}
        try:
            response = self.client.post("/api/query", json=payload)
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPError as e:
            raise RemoteAPIError(f"Convex query {path} failed: {e}") from e
        except ValueError as e:
            raise RemoteAPIError(f"Convex query {path} returned invalid JSON") from e

        if data.get("status") != "success":
            message = data.get("errorMessage", "unknown error")
            raise RemoteAPIError(f"Convex query {path} failed: {message}")

        return data.get("value")

    def fetch_friends(self) -> list[AccountFriend]:
        """Fetch the account's friend roster."""
        rows = self.query("friends:list") or []
        friends = []
        for row in rows:
            friend = friend_from_dto(row)
            if friend is None:
                logger.warning(f"Skipping friend with invalid member_id: {row!r}")
                continue
            friends.append(friend)

        logger.info(f"Fetched {len(friends)} friends from Convex")
        return friends
