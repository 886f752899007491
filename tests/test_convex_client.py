"""Tests for the Convex friend roster client."""

import json
from uuid import uuid4

import httpx
import pytest

from payback.clients.convex import ConvexClient, friend_from_dto
from payback.exceptions import RemoteAPIError


def make_client(handler) -> ConvexClient:
    return ConvexClient(
        "https://example.convex.cloud",
        auth_token="token-123",
        transport=httpx.MockTransport(handler),
    )


class TestFriendFromDto:
    def test_maps_snake_case_fields(self):
        member_id = uuid4()

        friend = friend_from_dto(
            {
                "member_id": str(member_id),
                "name": "Alex",
                "nickname": "Lex",
                "has_linked_account": True,
                "linked_account_id": "acc-1",
                "linked_account_email": "alex@example.com",
                "profile_avatar_color": "#FF8800",
                "status": "friend",
            }
        )

        assert friend.member_id == member_id
        assert friend.has_linked_account is True
        assert friend.linked_account_id == "acc-1"
        assert friend.profile_color_hex == "#FF8800"

    def test_invalid_member_id(self):
        assert friend_from_dto({"member_id": "nope", "name": "Alex"}) is None
        assert friend_from_dto({"name": "Alex"}) is None


class TestQuery:
    """Tests for ConvexClient.query."""

    def test_posts_query_payload(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["path"] = request.url.path
            seen["auth"] = request.headers.get("Authorization")
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"status": "success", "value": [1, 2]})

        with make_client(handler) as client:
            result = client.query("friends:list", {"limit": 5})

        assert result == [1, 2]
        assert seen["path"] == "/api/query"
        assert seen["auth"] == "Bearer token-123"
        assert seen["body"] == {
            "path": "friends:list",
            "args": {"limit": 5},
            "format": "json",
        }

    def test_convex_error_status(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                200, json={"status": "error", "errorMessage": "Not authenticated"}
            )

        with make_client(handler) as client:
            with pytest.raises(RemoteAPIError) as exc_info:
                client.query("friends:list")

        assert "Not authenticated" in str(exc_info.value)

    def test_http_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(500, text="boom")

        with make_client(handler) as client:
            with pytest.raises(RemoteAPIError):
                client.query("friends:list")

    def test_invalid_json(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, text="<html>")

        with make_client(handler) as client:
            with pytest.raises(RemoteAPIError):
                client.query("friends:list")


class TestFetchFriends:
    def test_skips_invalid_rows(self):
        good_id = uuid4()

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                200,
                json={
                    "status": "success",
                    "value": [
                        {"member_id": str(good_id), "name": "Alex"},
                        {"member_id": "broken", "name": "Ghost"},
                    ],
                },
            )

        with make_client(handler) as client:
            friends = client.fetch_friends()

        assert [f.member_id for f in friends] == [good_id]

    def test_null_value_is_empty(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"status": "success", "value": None})

        with make_client(handler) as client:
            assert client.fetch_friends() == []
