"""Tests for compensated multi-step writes."""

import asyncio

from combinators import lift as L

from storefront import saga as S

from tests.helpers import err, ok


class Journal:
    def __init__(self) -> None:
        self.entries: list[str] = []

    def action(self, name: str, fail: bool = False):
        async def impl() -> str:
            if fail:
                raise RuntimeError(f"{name} failed")
            self.entries.append(f"+{name}")
            return name

        return L.catching_async(impl, on_error=lambda e: str(e))

    async def undo(self, value: str) -> None:
        self.entries.append(f"-{value}")


def test_chain_returns_last_value():
    journal = Journal()
    saga = (
        S.step(journal.action("promo"), compensate=journal.undo)
        .then(lambda _: S.step(journal.action("order"), compensate=journal.undo))
    )

    result = ok(asyncio.run(S.run(saga)))
    assert result.value == "order"
    assert result.steps_executed == 2
    assert result.compensators_recorded == 2
    assert journal.entries == ["+promo", "+order"]


def test_failure_compensates_in_reverse():
    journal = Journal()
    saga = (
        S.step(journal.action("promo"), compensate=journal.undo)
        .then(lambda _: S.step(journal.action("reserve"), compensate=journal.undo))
        .then(lambda _: S.step(journal.action("order", fail=True), compensate=journal.undo))
    )

    error = err(asyncio.run(S.run(saga)))
    assert error.error == "order failed"
    assert error.step_failed == 3
    assert error.compensators_run == 2
    assert error.rollback_complete
    assert journal.entries == ["+promo", "+reserve", "-reserve", "-promo"]


def test_failed_compensator_is_reported():
    journal = Journal()

    async def broken(_: str) -> None:
        raise RuntimeError("release failed")

    saga = (
        S.step(journal.action("promo"), compensate=broken)
        .then(lambda _: S.from_async(lambda: _boom(), on_error=str))
    )

    error = err(asyncio.run(S.run(saga)))
    assert error.compensators_failed == 1
    assert not error.rollback_complete


async def _boom() -> None:
    raise ValueError("disk full")


def test_from_async_lifts_exceptions():
    error = err(asyncio.run(S.run(S.from_async(_boom, on_error=lambda e: f"lifted: {e}"))))
    assert error.error == "lifted: disk full"
    assert error.compensators_run == 0
