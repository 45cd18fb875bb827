"""Tests for the at-most-once executor over the in-memory and SQL stores."""

import asyncio
from datetime import timedelta

from kungfu import Error, LazyCoroResult, Ok

from storefront import idempotency as I
from storefront.db import IdempotencyRecordTable

from tests.helpers import err, ok


class Charges:
    def __init__(self, fail: bool = False, delay: float = 0) -> None:
        self.calls = 0
        self.fail = fail
        self.delay = delay

    def charge(self, order_id: str) -> LazyCoroResult[str, str]:
        async def impl():
            self.calls += 1
            if self.delay:
                await asyncio.sleep(self.delay)
            if self.fail:
                return Error("card declined")
            return Ok(f"tx-{order_id}-{self.calls}")

        return LazyCoroResult(impl)


def executor(charges: Charges, store=None, policy=I.Policy()):
    return (
        I.idempotent(charges.charge)
        .key(lambda order_id: f"charge:{order_id}")
        .store(store if store is not None else I.MemoryStore())
        .policy(policy)
        .build()
    )


def test_second_call_replays_first_value():
    charges = Charges()
    charge = executor(charges)

    async def scenario():
        first = ok(await charge.run("A1"))
        second = ok(await charge.run("A1"))
        other = ok(await charge.run("B2"))
        return first, second, other

    first, second, other = asyncio.run(scenario())
    assert not first.from_cache and second.from_cache
    assert first.value == second.value == "tx-A1-1"
    assert other.value == "tx-B2-2"
    assert charges.calls == 2


def test_failures_are_forgotten_unless_persisted():
    async def scenario(policy):
        charges = Charges(fail=True)
        charge = executor(charges, policy=policy)
        first = err(await charge.run("A1"))
        second = err(await charge.run("A1"))
        return charges.calls, first, second

    calls, first, _ = asyncio.run(scenario(I.Policy()))
    assert calls == 2
    assert first.kind is I.IdempotencyErrorKind.EXECUTION
    assert first.original_error == "card declined"

    calls, _, second = asyncio.run(scenario(I.Policy().with_store_failed()))
    assert calls == 1
    assert second.original_error == "card declined"


def test_concurrent_duplicates_wait_for_the_winner():
    charges = Charges(delay=0.05)
    charge = executor(charges)

    async def scenario():
        return await asyncio.gather(*(charge.run("A1") for _ in range(4)))

    results = [ok(r) for r in asyncio.run(scenario())]
    assert charges.calls == 1
    assert {r.value for r in results} == {"tx-A1-1"}
    assert sum(not r.from_cache for r in results) == 1


def test_fail_policy_reports_conflict():
    charges = Charges(delay=0.05)
    charge = executor(charges, policy=I.Policy().with_on_pending(I.FAIL))

    async def scenario():
        return await asyncio.gather(charge.run("A1"), charge.run("A1"))

    first, second = asyncio.run(scenario())
    ok(first)
    assert err(second).kind is I.IdempotencyErrorKind.CONFLICT


def test_sql_store_survives_a_new_executor(with_store):
    async def scenario(store):
        charges = Charges()
        sql = lambda: I.SQLAlchemyStore(store.session_factory, IdempotencyRecordTable)

        first = ok(await executor(charges, sql()).run("A1"))
        replay = ok(await executor(charges, sql()).run("A1"))

        assert replay.from_cache
        assert replay.value == first.value
        assert charges.calls == 1

        assert await executor(charges, sql()).invalidate("A1")
        ok(await executor(charges, sql()).run("A1"))
        assert charges.calls == 2

    with_store(scenario)


def test_abandoned_claim_is_taken_over_after_its_lease():
    charges = Charges()
    store = I.MemoryStore()
    charge = executor(charges, store, I.Policy().with_lock_timeout(seconds=0.05))

    async def scenario():
        # A caller that claimed the key and never came back.
        ok(await store.set_pending("charge:A1", timedelta(milliseconds=50)))
        await asyncio.sleep(0.1)
        return await charge.run("A1")

    result = ok(asyncio.run(scenario()))
    assert not result.from_cache
    assert result.value == "tx-A1-1"
    assert charges.calls == 1


def test_live_claim_still_blocks():
    charges = Charges()
    store = I.MemoryStore()
    charge = executor(charges, store, I.Policy().with_on_pending(I.FAIL))

    async def scenario():
        ok(await store.set_pending("charge:A1", timedelta(minutes=5)))
        return await charge.run("A1")

    assert err(asyncio.run(scenario())).kind is I.IdempotencyErrorKind.CONFLICT
    assert charges.calls == 0
