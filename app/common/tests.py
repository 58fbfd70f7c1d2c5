"""
Tests para montos y bloqueo por clave
"""

import threading
from decimal import Decimal

import pytest

from app.common.exceptions import ResourceConflict
from app.common.locking import (
    KeyedLocks, client_key, ordered_keys, product_key, sequence_key, seller_key, shift_key
)
from app.common.money import format_currency, to_amount


class TestMoney:

    @pytest.mark.parametrize("value, expected", [
        (1500, 1500),
        ("20000", 20000),
        (" 300 ", 300),
        (Decimal("4500"), 4500),
        ("12.00", 12),
    ])
    def test_to_amount(self, value, expected):
        assert to_amount(value) == expected

    @pytest.mark.parametrize("value", [1.0, "12.5", "abc", True, "NaN"])
    def test_to_amount_rejects(self, value):
        with pytest.raises(ValueError):
            to_amount(value)

    @pytest.mark.parametrize("amount, text", [
        (0, "$0"),
        (990, "$990"),
        (20000, "$20.000"),
        (1234567, "$1.234.567"),
        (-1500, "-$1.500"),
    ])
    def test_format_currency(self, amount, text):
        assert format_currency(amount) == text


class TestKeyedLocks:

    def test_global_order(self):
        keys = [
            sequence_key("ticket"), shift_key("s1"), client_key("c1"),
            product_key("b"), product_key("a"), seller_key("Eliana"), product_key("a")
        ]
        assert ordered_keys(keys) == [
            product_key("a"), product_key("b"), client_key("c1"),
            shift_key("s1"), seller_key("Eliana"), sequence_key("ticket")
        ]

    def test_reentrant_in_same_thread(self):
        locks = KeyedLocks(timeout=1)
        with locks.acquire(product_key("a")):
            with locks.acquire(product_key("a"), client_key("c")):
                pass

    def test_timeout_raises_conflict(self):
        locks = KeyedLocks(timeout=0.05)
        holding = threading.Event()
        release = threading.Event()

        def holder():
            with locks.acquire(shift_key("s1")):
                holding.set()
                release.wait(2)

        thread = threading.Thread(target=holder)
        thread.start()
        holding.wait(2)
        try:
            with pytest.raises(ResourceConflict) as exc_info:
                with locks.acquire(shift_key("s1")):
                    pass
            assert exc_info.value.context["resource"] == "shift"
        finally:
            release.set()
            thread.join()

    def test_disjoint_keys_do_not_block(self):
        locks = KeyedLocks(timeout=0.05)
        holding = threading.Event()
        release = threading.Event()

        def holder():
            with locks.acquire(product_key("a")):
                holding.set()
                release.wait(2)

        thread = threading.Thread(target=holder)
        thread.start()
        holding.wait(2)
        try:
            with locks.acquire(product_key("b")):
                pass
        finally:
            release.set()
            thread.join()

    def test_partial_acquisition_is_released(self):
        locks = KeyedLocks(timeout=0.05)
        holding = threading.Event()
        release = threading.Event()

        def holder():
            with locks.acquire(client_key("c1")):
                holding.set()
                release.wait(2)

        thread = threading.Thread(target=holder)
        thread.start()
        holding.wait(2)
        try:
            with pytest.raises(ResourceConflict):
                with locks.acquire(product_key("a"), client_key("c1")):
                    pass
        finally:
            release.set()
            thread.join()

        done = []

        def other():
            with locks.acquire(product_key("a")):
                done.append(True)

        checker = threading.Thread(target=other)
        checker.start()
        checker.join()
        assert done == [True]

    def test_released_keys_leave_the_registry(self):
        locks = KeyedLocks(timeout=1)
        with locks.acquire(product_key("a"), client_key("c1")):
            assert len(locks) == 2
            with locks.acquire(product_key("a")):
                assert len(locks) == 2
            assert len(locks) == 2
        assert len(locks) == 0

        for number in range(50):
            with locks.acquire(product_key(number)):
                pass
        assert len(locks) == 0

    def test_timed_out_waiter_does_not_leak_its_key(self):
        locks = KeyedLocks(timeout=0.05)
        holding = threading.Event()
        release = threading.Event()

        def holder():
            with locks.acquire(shift_key("s1")):
                holding.set()
                release.wait(2)

        thread = threading.Thread(target=holder)
        thread.start()
        holding.wait(2)
        try:
            with pytest.raises(ResourceConflict):
                with locks.acquire(shift_key("s1")):
                    pass
            assert len(locks) == 1
        finally:
            release.set()
            thread.join()
        assert len(locks) == 0
