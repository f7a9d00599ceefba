"""Tests for the per-endpoint proxy dispatcher."""

import logging

import httpx
import pytest
from conftest import MockApi, make_api, make_peer, ok

from restgate import (
    AuthenticationError,
    AuthLevel,
    EndpointDoc,
    HookSet,
    ProxyDispatcher,
    RestgateConfig,
    UpstreamError,
)


def make_dispatcher(mock_api, hooks=None, auth=AuthLevel.DISABLED, event="svc./ping", config=None):
    api = make_api(hooks=hooks)
    return ProxyDispatcher(api, mock_api.connector(), event, EndpointDoc(auth=auth), config)


@pytest.fixture
def ping_api():
    return MockApi({("GET", "/ping"): ok({"status": "ok", "value": 21})})


class TestAuthLevels:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("user", [None, {"id": 1}])
    async def test_disabled_never_signs(self, server, ping_api, user):
        signed = []
        dispatcher = make_dispatcher(ping_api, HookSet(sign=lambda *args: signed.append(args)))

        await dispatcher(make_peer(server, user), {})

        assert signed == []
        assert len(ping_api.requests) == 1

    @pytest.mark.asyncio
    async def test_required_without_user_makes_no_call(self, server, ping_api):
        signed = []
        dispatcher = make_dispatcher(
            ping_api, HookSet(sign=lambda *args: signed.append(args)), auth=AuthLevel.REQUIRED
        )

        with pytest.raises(AuthenticationError):
            await dispatcher(make_peer(server), {})

        assert len(ping_api.requests) == 0
        assert signed == []

    @pytest.mark.asyncio
    async def test_required_with_user_signs(self, server, ping_api):
        async def sign(caller, builder, payload):
            builder.set_header("authorization", f"Bearer {caller.user['token']}")

        dispatcher = make_dispatcher(ping_api, HookSet(sign=sign), auth=AuthLevel.REQUIRED)

        await dispatcher(make_peer(server, {"token": "abc"}), {})

        assert ping_api.requests[0].headers["authorization"] == "Bearer abc"

    @pytest.mark.asyncio
    async def test_required_without_sign_hook(self, server, ping_api):
        dispatcher = make_dispatcher(ping_api, auth=AuthLevel.REQUIRED)
        assert await dispatcher(make_peer(server, "user"), {}) == {"status": "ok", "value": 21}

    @pytest.mark.asyncio
    @pytest.mark.parametrize("user, expected", [(None, 0), ("user", 1)])
    async def test_optional_signs_only_with_user(self, server, ping_api, user, expected):
        signed = []
        dispatcher = make_dispatcher(
            ping_api, HookSet(sign=lambda *args: signed.append(args)), auth=AuthLevel.OPTIONAL
        )

        await dispatcher(make_peer(server, user), {})

        assert len(signed) == expected
        assert len(ping_api.requests) == 1


class TestHookOrder:
    @pytest.mark.asyncio
    async def test_full_order(self, server, ping_api):
        calls = []

        def sign(caller, builder, payload):
            calls.append("sign")

        def modify_builder(caller, builder, payload):
            assert calls == ["sign"]
            calls.append("modify_builder")
            builder.set_header("x-custom", "1")

        def transform_response(response):
            assert len(ping_api.requests) == 1
            calls.append("transform_response")
            return response

        async def handle_response(caller, method, endpoint, payload, response):
            calls.append("handle_response")

        async def get_broadcast_filter(caller):
            calls.append("get_broadcast_filter")
            return None

        hooks = HookSet(
            sign=sign,
            modify_builder=modify_builder,
            transform_response=transform_response,
            handle_response=handle_response,
            get_broadcast_filter=get_broadcast_filter,
        )
        dispatcher = make_dispatcher(ping_api, hooks, auth=AuthLevel.REQUIRED)

        await dispatcher(make_peer(server, "user"), {"broadcast": True})

        assert calls == [
            "sign",
            "modify_builder",
            "transform_response",
            "handle_response",
            "get_broadcast_filter",
        ]
        assert ping_api.requests[0].headers["x-custom"] == "1"

    @pytest.mark.asyncio
    async def test_handle_sees_transformed_response(self, server, ping_api):
        seen = []

        def double(response):
            return {**response, "value": response["value"] * 2}

        async def record(caller, method, endpoint, payload, response):
            seen.append((method, endpoint, response["value"]))
            return "ignored"

        dispatcher = make_dispatcher(ping_api, HookSet(transform_response=double, handle_response=record))

        result = await dispatcher(make_peer(server), {})

        assert seen == [("GET", "/ping", 42)]
        assert result == {"status": "ok", "value": 42}

    @pytest.mark.asyncio
    async def test_raw_response_without_transform(self, server, ping_api):
        dispatcher = make_dispatcher(ping_api)
        assert await dispatcher(make_peer(server), None) == {"status": "ok", "value": 21}

    @pytest.mark.asyncio
    async def test_error_hook_observes_and_error_propagates(self, server):
        api = MockApi({("GET", "/ping"): httpx.Response(502, json={"error": {"message": "bad gateway"}})})
        errors = []
        handled = []
        dispatcher = make_dispatcher(
            api,
            HookSet(
                on_error=lambda caller, error: errors.append(error),
                handle_response=lambda *args: handled.append(args),
            ),
        )
        peer = make_peer(server)

        with pytest.raises(UpstreamError) as exc_info:
            await dispatcher(peer, {})

        assert errors == [exc_info.value]
        assert exc_info.value.status == 502
        assert handled == []

    @pytest.mark.asyncio
    async def test_failing_error_hook_keeps_original_error(self, server, caplog):
        api = MockApi({("GET", "/ping"): httpx.Response(502, json={"error": {"message": "bad gateway"}})})

        def on_error(caller, error):
            raise RuntimeError("notifier down")

        dispatcher = make_dispatcher(api, HookSet(on_error=on_error))

        with caplog.at_level(logging.ERROR, logger="restgate.dispatcher"):
            with pytest.raises(UpstreamError) as exc_info:
                await dispatcher(make_peer(server), {})

        assert exc_info.value.status == 502
        assert "on_error hook for svc./ping failed" in caplog.text
        assert "notifier down" in caplog.text

    @pytest.mark.asyncio
    async def test_hook_failure_is_annotated(self, server, ping_api):
        def sign(caller, builder, payload):
            raise RuntimeError("token store down")

        dispatcher = make_dispatcher(ping_api, HookSet(sign=sign), auth=AuthLevel.OPTIONAL)

        with pytest.raises(RuntimeError) as exc_info:
            await dispatcher(make_peer(server, "user"), {})

        assert any("svc GET /ping" in note for note in exc_info.value.__notes__)
        assert len(ping_api.requests) == 0


class TestPayload:
    @pytest.mark.asyncio
    async def test_params_args_headers_are_forwarded(self, server):
        api = MockApi({("POST", "/1/user/5"): ok({"id": 5})})
        dispatcher = make_dispatcher(api, event="svc.POST /1/user/:id")

        await dispatcher(
            make_peer(server),
            {"args": {"id": 5}, "params": {"name": "John"}, "headers": {"x-a": "b"}, "authType": "basic"},
        )

        request = api.requests[0]
        assert request.method == "POST"
        assert request.url.path == "/1/user/5"
        assert request.headers["x-a"] == "b"

    @pytest.mark.asyncio
    async def test_sign_receives_payload(self, server, ping_api):
        received = []
        dispatcher = make_dispatcher(
            ping_api,
            HookSet(sign=lambda caller, builder, payload: received.append(payload)),
            auth=AuthLevel.OPTIONAL,
        )

        await dispatcher(make_peer(server, "user"), {"authType": "cookie", "custom": 1})

        assert received[0].auth_type == "cookie"
        assert received[0].model_extra == {"custom": 1}

    @pytest.mark.asyncio
    async def test_logging(self, server, ping_api, caplog):
        dispatcher = make_dispatcher(ping_api, config=RestgateConfig(logging=True))

        with caplog.at_level(logging.INFO, logger="restgate.dispatcher"):
            await dispatcher(make_peer(server), {"args": {"a": 1}, "params": {"b": 2}})

        assert 'API: svc method: GET endpoint: /ping args: {"a": 1} params: json[8]' in caplog.text


class TestBroadcast:
    @pytest.mark.asyncio
    async def test_broadcast_skips_caller(self, server, ping_api):
        caller = make_peer(server, "me")
        others = [make_peer(server), make_peer(server)]
        dispatcher = make_dispatcher(ping_api)

        await dispatcher(caller, {"broadcast": True})

        assert caller.connection.sent == []
        for peer in others:
            assert peer.connection.sent == [
                {"event": "svc./ping", "data": {"data": {"status": "ok", "value": 21}}}
            ]

    @pytest.mark.asyncio
    async def test_broadcast_carries_transformed_response(self, server, ping_api):
        caller = make_peer(server)
        other = make_peer(server)
        dispatcher = make_dispatcher(ping_api, HookSet(transform_response=lambda response: response["value"]))

        await dispatcher(caller, {"broadcast": True})

        assert other.connection.sent[0]["data"] == {"data": 21}

    @pytest.mark.asyncio
    async def test_no_broadcast_by_default(self, server, ping_api):
        caller = make_peer(server)
        other = make_peer(server)

        await make_dispatcher(ping_api)(caller, {})

        assert other.connection.sent == []

    @pytest.mark.asyncio
    async def test_filter_restricts_peers(self, server, ping_api):
        caller = make_peer(server, {"team": "a"})
        teammate = make_peer(server, {"team": "a"})
        stranger = make_peer(server, {"team": "b"})

        async def get_broadcast_filter(peer):
            team = peer.user["team"]
            return lambda other: other.user["team"] == team

        dispatcher = make_dispatcher(ping_api, HookSet(get_broadcast_filter=get_broadcast_filter))

        await dispatcher(caller, {"broadcast": True})

        assert len(teammate.connection.sent) == 1
        assert stranger.connection.sent == []
        assert caller.connection.sent == []

    @pytest.mark.asyncio
    async def test_filter_hook_returning_none_broadcasts_to_all_others(self, server, ping_api):
        caller = make_peer(server)
        others = [make_peer(server), make_peer(server)]

        dispatcher = make_dispatcher(ping_api, HookSet(get_broadcast_filter=lambda peer: None))

        await dispatcher(caller, {"broadcast": True})

        assert all(len(peer.connection.sent) == 1 for peer in others)
        assert caller.connection.sent == []
