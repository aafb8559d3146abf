"""
Tests for request/response correlation.

Uses the scripted in-memory channel; replies are either produced by the
fake node or pushed by the test to control arrival order.
"""

import asyncio
import logging

import pytest
from conftest import TIP, ScriptedChannel, envelope

from ogmios_mdk import (
    BigInt,
    ChannelClosed,
    ChannelClosedAbnormally,
    ChannelError,
    Correlator,
    MalformedPayload,
    RemoteRejection,
)


@pytest.fixture
async def correlator(channel):
    correlator = Correlator(channel)
    correlator.start()
    yield correlator
    await correlator.close()


@pytest.fixture
async def manual():
    """Correlator over a channel whose replies are pushed by the test."""
    channel = ScriptedChannel()
    correlator = Correlator(channel)
    correlator.start()
    yield channel, correlator
    await correlator.close()


class TestAsk:
    """Single request/response exchanges."""

    @pytest.mark.asyncio
    async def test_returns_result(self, correlator, channel):
        result = await correlator.ask("queryNetwork/tip")
        assert result == TIP
        assert channel.sent_methods == ["queryNetwork/tip"]
        assert correlator.pending_count == 0

    @pytest.mark.asyncio
    async def test_rejection_carries_error_verbatim(self, correlator):
        with pytest.raises(RemoteRejection) as exc_info:
            await correlator.ask("unknown/method")
        assert exc_info.value.error["code"] == -32601
        assert exc_info.value.code == -32601
        assert "Method not found" in exc_info.value.message
        assert exc_info.value.method == "unknown/method"

    @pytest.mark.asyncio
    async def test_response_is_sanitized(self, manual):
        channel, correlator = manual
        task = asyncio.ensure_future(correlator.ask("queryLedgerState/utxo"))
        await asyncio.sleep(0)
        channel.push(envelope("queryLedgerState/utxo", [{"value": {"ada": {"lovelace": 2**70}}}]))
        result = await task
        assert isinstance(result[0]["value"]["ada"]["lovelace"], BigInt)

    @pytest.mark.asyncio
    async def test_warns_when_requests_in_flight(self, manual, caplog):
        """ask() with other requests outstanding is a caller error."""
        channel, correlator = manual
        await correlator.request("nextBlock")
        with caplog.at_level(logging.WARNING, logger="ogmios_mdk.correlator"):
            task = asyncio.ensure_future(correlator.ask("queryNetwork/tip"))
            await asyncio.sleep(0)
        assert "still in flight" in caplog.text
        channel.push(envelope("nextBlock", {"direction": "backward"}))
        channel.push(envelope("queryNetwork/tip", TIP))
        assert await task == TIP


class TestSend:
    """Fire-and-forget requests."""

    @pytest.mark.asyncio
    async def test_send_does_not_register_slot(self, manual):
        channel, correlator = manual
        await correlator.send("queryNetwork/tip", id="my-id")
        assert channel.sent == [
            {"jsonrpc": "2.0", "method": "queryNetwork/tip", "params": {}, "id": "my-id"}
        ]
        assert correlator.pending_count == 0

    @pytest.mark.asyncio
    async def test_id_omitted_by_default(self, manual):
        channel, correlator = manual
        await correlator.send("nextBlock")
        assert "id" not in channel.sent[0]

    @pytest.mark.asyncio
    async def test_write_failure_is_channel_error(self, manual):
        channel, correlator = manual
        channel.close_code = 1006
        with pytest.raises(ChannelError):
            await correlator.request("nextBlock")
        assert correlator.pending_count == 0


class TestOrdering:
    """Responses resolve slots in send order."""

    @pytest.mark.asyncio
    async def test_fifo_matching(self, manual):
        channel, correlator = manual
        slots = [await correlator.request(f"method/{i}") for i in range(3)]
        for i in range(3):
            channel.push(envelope(f"method/{i}", i))
        results = [await slot for slot in slots]
        assert [r["result"] for r in results] == [0, 1, 2]

    @pytest.mark.asyncio
    async def test_abandoned_slot_still_consumes_its_response(self, manual):
        """A cancelled request does not shift later responses."""
        channel, correlator = manual
        first = await correlator.request("first")
        first.cancel()
        second = await correlator.request("second")
        channel.push(envelope("first", "a"))
        channel.push(envelope("second", "b"))
        assert (await second)["result"] == "b"

    @pytest.mark.asyncio
    async def test_unsolicited_message_dropped(self, manual, caplog):
        channel, correlator = manual
        with caplog.at_level(logging.WARNING, logger="ogmios_mdk.correlator"):
            channel.push(envelope("nextBlock", {}))
            await asyncio.sleep(0.01)
        assert "no request pending" in caplog.text
        assert correlator.termination is None

    @pytest.mark.asyncio
    async def test_malformed_response_fails_its_slot_only(self, manual):
        channel, correlator = manual
        bad = await correlator.request("bad")
        good = await correlator.request("good")
        channel.push("{not json")
        channel.push(envelope("good", 1))
        with pytest.raises(MalformedPayload):
            await bad
        assert (await good)["result"] == 1


class TestTermination:
    """Channel closure and failure."""

    @pytest.mark.asyncio
    async def test_abnormal_close_fails_pending(self, manual):
        channel, correlator = manual
        slot = await correlator.request("nextBlock")
        channel.push_close(1011, "internal error")
        with pytest.raises(ChannelClosedAbnormally) as exc_info:
            await slot
        assert exc_info.value.code == 1011
        assert exc_info.value.reason == "internal error"
        assert exc_info.value.details["code"] == 1011

    @pytest.mark.asyncio
    async def test_normal_close_fails_pending(self, manual):
        channel, correlator = manual
        slot = await correlator.request("nextBlock")
        channel.push_close(1000)
        with pytest.raises(ChannelClosed) as exc_info:
            await slot
        assert not isinstance(exc_info.value, ChannelClosedAbnormally)

    @pytest.mark.asyncio
    async def test_requests_after_close_fail_immediately(self, manual):
        channel, correlator = manual
        channel.push_close(1001, "going away")
        await correlator.wait_terminated()
        with pytest.raises(ChannelClosedAbnormally):
            await correlator.ask("queryNetwork/tip")
        assert channel.sent == []

    @pytest.mark.asyncio
    async def test_error_message_is_channel_error(self, manual):
        channel, correlator = manual
        slot = await correlator.request("nextBlock")
        channel.push_error(ConnectionResetError("reset by peer"))
        with pytest.raises(ChannelError) as exc_info:
            await slot
        assert isinstance(exc_info.value.cause, ConnectionResetError)

    @pytest.mark.asyncio
    async def test_close_fails_pending(self, manual):
        channel, correlator = manual
        slot = await correlator.request("nextBlock")
        await correlator.close()
        with pytest.raises(ChannelClosed):
            await slot
        assert isinstance(await correlator.wait_terminated(), ChannelClosed)

    @pytest.mark.asyncio
    async def test_wait_terminated_requires_a_reason(self):
        correlator = Correlator(ScriptedChannel())
        correlator._terminated.set()
        with pytest.raises(RuntimeError):
            await correlator.wait_terminated()
