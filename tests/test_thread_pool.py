"""Tests for the bounded connection worker pool."""

import socket
import threading

import pytest

from thread_pool import ThreadPool


def test_thread_pool_starts_fixed_worker_count() -> None:
    pool = ThreadPool(worker_count=3, queue_size=4, handler=lambda _sock, _addr: None)
    pool.start()

    try:
        assert pool.worker_count == 3
        assert len(pool.threads) == 3
        assert all(thread.is_alive() for thread in pool.threads)
    finally:
        pool.shutdown()


def test_thread_pool_submit_returns_false_when_full() -> None:
    pool = ThreadPool(worker_count=1, queue_size=1, handler=lambda _sock, _addr: None)
    first, second = socket.socketpair()
    try:
        assert pool.submit(first, ("127.0.0.1", 0)) is True
        assert pool.submit(second, ("127.0.0.1", 1)) is False
    finally:
        pool.shutdown()
        second.close()

    assert first.fileno() == -1


def test_thread_pool_runs_handler_and_survives_errors() -> None:
    handled = threading.Event()
    calls: list[tuple] = []

    def handler(client_socket: socket.socket, address: tuple) -> None:
        calls.append(address)
        if len(calls) == 1:
            raise RuntimeError("boom")
        handled.set()

    pool = ThreadPool(worker_count=1, queue_size=2, handler=handler)
    pool.start()
    sockets = socket.socketpair()
    try:
        pool.submit(sockets[0], ("127.0.0.1", 1))
        pool.submit(sockets[1], ("127.0.0.1", 2))
        assert handled.wait(timeout=2)
    finally:
        pool.shutdown()
        for sock in sockets:
            sock.close()

    assert calls == [("127.0.0.1", 1), ("127.0.0.1", 2)]


def test_submit_after_shutdown_is_refused() -> None:
    pool = ThreadPool(worker_count=1, queue_size=1, handler=lambda _sock, _addr: None)
    pool.start()
    pool.shutdown()
    first, second = socket.socketpair()
    with first, second:
        assert pool.submit(first, ("127.0.0.1", 0)) is False


@pytest.mark.parametrize(("worker_count", "queue_size"), [(0, 1), (1, 0)])
def test_thread_pool_rejects_invalid_sizes(worker_count: int, queue_size: int) -> None:
    with pytest.raises(ValueError, match="must be positive"):
        ThreadPool(worker_count=worker_count, queue_size=queue_size, handler=lambda _s, _a: None)
