import asyncio

import pytest

from ftplink import DataChannel, DataChannelFailed, Mode, Timeout
from tests.fakes import ScriptedData


class Broken(ScriptedData):
    async def receive(self):
        if self.chunks:
            return self.chunks.pop(0)
        raise ConnectionResetError("peer reset")


def channel(transport, mode=Mode.BINARY, timeout=None):
    return DataChannel(transport, mode, timeout=timeout or Timeout(read=1.0, idle=0.05))


class TestReceive:
    @pytest.mark.asyncio
    async def test_inactivity_completes_an_open_connection(self):
        transport = ScriptedData([b"A", b"B"], eof=False)
        data = channel(transport, timeout=Timeout(read=2.0, idle=0.5))

        loop = asyncio.get_running_loop()
        started = loop.time()
        payload = await data.receive()

        assert payload == b"AB"
        assert loop.time() - started >= 0.45
        assert transport.closed

    @pytest.mark.asyncio
    async def test_end_of_stream_completes_without_waiting(self):
        transport = ScriptedData([b"hello ", b"world"])
        data = channel(transport, timeout=Timeout(read=10.0, idle=5.0))

        payload = await asyncio.wait_for(data.receive(), 1.0)

        assert payload == b"hello world"

    @pytest.mark.asyncio
    async def test_binary_bytes_are_untouched(self):
        raw = [b"\x00\xff\r\n", b"\r\x1a", b"\n\x80"]
        payload = await channel(ScriptedData(raw)).receive()
        assert payload == b"".join(raw)

    @pytest.mark.asyncio
    async def test_text_is_decoded_across_chunks(self):
        text = "café ✓".encode("utf-8")
        payload = await channel(ScriptedData([text[:4], text[4:]]), Mode.TEXT).receive()
        assert payload == "café ✓"

    @pytest.mark.asyncio
    async def test_undecodable_text_is_replaced(self):
        payload = await channel(ScriptedData([b"ok\xff"]), Mode.TEXT).receive()
        assert payload == "ok�"

    @pytest.mark.asyncio
    async def test_nothing_at_all_gives_an_empty_payload(self):
        transport = ScriptedData([], eof=False)
        data = channel(transport, timeout=Timeout(read=0.1, idle=0.05))

        assert await data.receive() == b""
        assert transport.closed

    @pytest.mark.asyncio
    async def test_connection_reset_mid_transfer(self):
        transport = Broken([b"partial"])

        with pytest.raises(DataChannelFailed):
            await channel(transport).receive()
        assert transport.closed


class TestSend:
    @pytest.mark.asyncio
    async def test_bytes_are_sent_then_closed(self):
        transport = ScriptedData()
        await channel(transport).send(b"\x00\x01binary")

        assert bytes(transport.received) == b"\x00\x01binary"
        assert transport.closed

    @pytest.mark.asyncio
    async def test_text_is_encoded(self):
        transport = ScriptedData()
        data = DataChannel(transport, Mode.TEXT, encoding="latin-1")
        await data.send("café")

        assert bytes(transport.received) == b"caf\xe9"

    @pytest.mark.asyncio
    async def test_send_failure(self):
        transport = ScriptedData()
        transport.closed = True

        with pytest.raises(DataChannelFailed):
            await channel(transport).send(b"data")


class TestOpen:
    @pytest.mark.asyncio
    async def test_connects_to_the_endpoint(self):
        calls = []
        transport = ScriptedData()

        async def connector(host, port):
            calls.append((host, port))
            return transport

        data = await DataChannel.open("10.0.0.5", 5001, Mode.TEXT, connector=connector)

        assert calls == [("10.0.0.5", 5001)]
        assert data.mode is Mode.TEXT
        assert data.transport is transport

    @pytest.mark.asyncio
    async def test_refused_connection(self):
        async def connector(host, port):
            raise ConnectionRefusedError("refused")

        with pytest.raises(DataChannelFailed):
            await DataChannel.open("10.0.0.5", 5001, Mode.BINARY, connector=connector)

    @pytest.mark.asyncio
    async def test_connection_timeout(self):
        async def connector(host, port):
            await asyncio.sleep(10)

        with pytest.raises(DataChannelFailed):
            await DataChannel.open(
                "10.0.0.5",
                5001,
                Mode.BINARY,
                connector=connector,
                timeout=Timeout(connect=0.05, read=1.0, idle=0.05),
            )

    @pytest.mark.asyncio
    async def test_close_is_idempotent(self):
        transport = ScriptedData()
        data = DataChannel(transport)

        data.close()
        data.close()

        assert data.closed
        assert transport.closed
