"""
Tests for the programSubscribe discovery feed (no live socket).
"""
import pytest
import json

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from config import POOL_ACCOUNT_SIZE, PUMPSWAP_PROGRAM_ID
from pool_feed import PoolDiscoveryFeed, build_subscribe_request, parse_notification


def notification(pubkey="pool1"):
    return json.dumps({
        "jsonrpc": "2.0",
        "method": "programNotification",
        "params": {
            "subscription": 42,
            "result": {
                "context": {"slot": 1},
                "value": {"pubkey": pubkey, "account": {"data": ["", "base64"]}},
            },
        },
    })


class TestMessages:
    def test_subscribe_request(self):
        request = build_subscribe_request(commitment="processed")
        assert request["method"] == "programSubscribe"
        program_id, options = request["params"]
        assert program_id == PUMPSWAP_PROGRAM_ID
        assert options["encoding"] == "base64"
        assert options["commitment"] == "processed"
        assert options["filters"] == [{"dataSize": POOL_ACCOUNT_SIZE}]

    def test_parse_notification(self):
        assert parse_notification(notification("poolX")) == "poolX"
        assert parse_notification(json.loads(notification("poolX"))) == "poolX"

    @pytest.mark.parametrize("message", [
        "not json",
        '{"jsonrpc": "2.0", "result": 42, "id": 1}',
        '{"method": "programNotification", "params": {}}',
        '{"method": "programNotification", "params": {"result": {"value": {"pubkey": ""}}}}',
        "[]",
    ])
    def test_ignores_other_messages(self, message):
        assert parse_notification(message) is None


class TestHandleMessage:
    @pytest.mark.asyncio
    async def test_ack_sets_subscription(self):
        feed = PoolDiscoveryFeed("wss://example.invalid", on_pool=lambda pool: None)
        await feed._handle_message('{"jsonrpc": "2.0", "result": 42, "id": 1}')
        assert feed.subscription_id == 42

    @pytest.mark.asyncio
    async def test_sync_callback(self):
        seen = []
        feed = PoolDiscoveryFeed("wss://example.invalid", on_pool=seen.append)
        await feed._handle_message(notification("pool1"))
        await feed._handle_message(notification("pool1"))
        # Duplicates are passed through; dedup happens downstream
        assert seen == ["pool1", "pool1"]
        assert feed.notifications == 2

    @pytest.mark.asyncio
    async def test_async_callback(self):
        seen = []

        async def on_pool(pool_id):
            seen.append(pool_id)

        feed = PoolDiscoveryFeed("wss://example.invalid", on_pool=on_pool)
        await feed._handle_message(notification("pool2"))
        assert seen == ["pool2"]

    @pytest.mark.asyncio
    async def test_callback_error_contained(self):
        def on_pool(pool_id):
            raise RuntimeError("boom")

        feed = PoolDiscoveryFeed("wss://example.invalid", on_pool=on_pool)
        await feed._handle_message(notification("pool3"))
        assert feed.notifications == 1

    @pytest.mark.asyncio
    async def test_error_and_garbage_ignored(self):
        seen = []
        feed = PoolDiscoveryFeed("wss://example.invalid", on_pool=seen.append)
        await feed._handle_message('{"jsonrpc": "2.0", "error": {"code": -32602}}')
        await feed._handle_message(b"\xff\xfe")
        await feed._handle_message("garbage")
        assert seen == []
        assert feed.subscription_id is None
