"""Tests for frame message validation against the signature service."""

import json

import httpx
import pytest
import respx

from target_onchain.frame_message import FrameMessage, FrameMessageValidator

from conftest import NEYNAR_VALIDATE_URL, frame_body, neynar_action


class TestFrameMessage:
    def test_input_wins_over_verified_account(self):
        msg = FrameMessage.from_action(neynar_action(address="0xwallet", input_text="0xtyped"))
        assert msg.address == "0xtyped"
        assert msg.dev_mode

    def test_first_verified_account(self):
        action = neynar_action(address="0xfirst")
        action["interactor"]["verifications"].append("0xsecond")
        msg = FrameMessage.from_action(action)
        assert msg.address == "0xfirst"
        assert not msg.dev_mode
        assert msg.fid == 42
        assert msg.button == 1

    def test_no_address(self):
        msg = FrameMessage.from_action(neynar_action(address=None))
        assert msg.address == ""

    def test_verified_addresses_shape(self):
        action = {"interactor": {"verified_addresses": {"eth_addresses": ["0xeth"]}}}
        assert FrameMessage.from_action(action).address == "0xeth"

    def test_empty_input_is_not_dev_mode(self):
        msg = FrameMessage.from_action(neynar_action(input_text=""))
        assert msg.input is None
        assert not msg.dev_mode

    def test_state(self):
        msg = FrameMessage.from_action(neynar_action(state="%7B%7D"))
        assert msg.state == "%7B%7D"


class TestValidator:
    @pytest.mark.asyncio
    async def test_valid_message(self, settings, http, upstream):
        validation = await FrameMessageValidator(settings, http).validate(frame_body())
        assert validation.is_valid
        assert validation.message.address == "0xwallet"
        assert upstream.neynar_calls == 1

    @pytest.mark.asyncio
    async def test_sends_message_bytes_and_key(self, settings):
        with respx.mock:
            route = respx.post(NEYNAR_VALIDATE_URL).mock(
                return_value=httpx.Response(200, json={"valid": True, "action": neynar_action()}))
            await FrameMessageValidator(settings, httpx.AsyncClient()).validate(frame_body("deadbeef"))

        assert route.called
        request = route.calls.last.request
        assert request.headers["api_key"] == "test-neynar"
        assert json.loads(request.content) == {"message_bytes_in_hex": "deadbeef"}

    @pytest.mark.asyncio
    async def test_rejected_signature(self, settings, http, upstream):
        upstream.valid = False
        validation = await FrameMessageValidator(settings, http).validate(frame_body())
        assert not validation.is_valid
        assert validation.message is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize("body", [{}, {"trustedData": {}}, {"trustedData": "x"}, []])
    async def test_missing_message_bytes_skips_network(self, settings, http, upstream, body):
        validation = await FrameMessageValidator(settings, http).validate(body)
        assert not validation.is_valid
        assert upstream.neynar_calls == 0

    @pytest.mark.asyncio
    async def test_service_error(self, settings):
        with respx.mock:
            respx.post(NEYNAR_VALIDATE_URL).mock(
                return_value=httpx.Response(500, json={"message": "boom"}))
            validation = await FrameMessageValidator(settings, httpx.AsyncClient()).validate(frame_body())
        assert not validation.is_valid

    @pytest.mark.asyncio
    async def test_connection_refused(self, settings):
        with respx.mock:
            respx.post(NEYNAR_VALIDATE_URL).mock(side_effect=httpx.ConnectError("refused"))
            validation = await FrameMessageValidator(settings, httpx.AsyncClient()).validate(frame_body())
        assert not validation.is_valid

    @pytest.mark.asyncio
    async def test_valid_without_action(self, settings):
        with respx.mock:
            respx.post(NEYNAR_VALIDATE_URL).mock(
                return_value=httpx.Response(200, json={"valid": True}))
            validation = await FrameMessageValidator(settings, httpx.AsyncClient()).validate(frame_body())
        assert not validation.is_valid
