import asyncio
import socket

import pytest

from gesture_teleop.transport import ConnectionStatus, TransportClient


async def wait_until(predicate, timeout=3.0):
    async def poll():
        while not predicate():
            await asyncio.sleep(0.01)
    await asyncio.wait_for(poll(), timeout)


def free_port():
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


def test_tcp_messages_reach_the_robot():
    expected = b"<Reset><Gripper>"

    async def scenario():
        received = bytearray()

        async def handle(reader, writer):
            while len(received) < len(expected):
                chunk = await reader.read(1024)
                if not chunk:
                    break
                received.extend(chunk)
            writer.close()

        server = await asyncio.start_server(handle, "127.0.0.1", 0)
        port = server.sockets[0].getsockname()[1]

        statuses = []
        client = TransportClient(
            f"tcp://127.0.0.1:{port}",
            retry_interval_s=0.05,
            on_status_change=statuses.append,
        )
        await client.start()
        await wait_until(lambda: client.connected)

        assert client.send(b"<Reset>")
        assert client.send(b"<Gripper>")
        await wait_until(lambda: len(received) >= len(expected))

        await client.stop()
        server.close()
        await server.wait_closed()
        return bytes(received), statuses, client.get_stats()

    received, statuses, stats = asyncio.run(scenario())

    assert received == expected
    assert statuses[:2] == [ConnectionStatus.CONNECTING, ConnectionStatus.CONNECTED]
    assert statuses[-1] is ConnectionStatus.DISCONNECTED
    assert stats["messages_sent"] == 2


def test_refused_connection_retries_and_drops_messages():
    async def scenario():
        statuses = []
        client = TransportClient(
            f"tcp://127.0.0.1:{free_port()}",
            retry_interval_s=0.05,
            on_status_change=statuses.append,
        )
        await client.start()
        await wait_until(lambda: client.stats.reconnect_attempts >= 2)

        assert client.send(b"<Reset>")
        await wait_until(lambda: client.stats.messages_failed == 1)

        await client.stop()
        return statuses, client.get_stats()

    statuses, stats = asyncio.run(scenario())

    assert ConnectionStatus.FAILED in statuses
    assert ConnectionStatus.CONNECTED not in statuses
    assert stats["messages_sent"] == 0
    assert not stats["connected"]


def test_full_queue_rejects_send():
    async def scenario():
        client = TransportClient(f"tcp://127.0.0.1:{free_port()}", queue_size=1)
        # Not started: nothing drains the queue
        return client.send(b"<Reset>"), client.send(b"<Reset>"), client.get_stats()

    first, second, stats = asyncio.run(scenario())
    assert first
    assert not second
    assert stats["messages_failed"] == 1


@pytest.mark.parametrize("url", [
    "udp://127.0.0.1:5000",
    "tcp://127.0.0.1",
    "robot",
])
def test_bad_urls(url):
    with pytest.raises(ValueError):
        TransportClient(url)


def test_websocket_url_accepted():
    client = TransportClient("ws://127.0.0.1:8080/teleop")
    assert client.scheme == "ws"
    assert client.status is ConnectionStatus.DISCONNECTED
