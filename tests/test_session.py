"""Tests for guest sessions and user tokens."""

import re
from dataclasses import replace
from datetime import timedelta

import jwt

from storefront._types import utcnow
from storefront.checkout import PaymentMethod
from storefront.errors import SessionExpired, Unauthenticated
from storefront.session import MemoryClientStorage, SessionContext, SessionStore, UserIdentity

from tests.helpers import err, kochi_address, ok


def test_init_issues_fresh_guest_with_fixed_lifetime(with_store):
    async def scenario(store):
        first = await store.sessions.init_guest_session()
        second = await store.sessions.init_guest_session()

        assert re.fullmatch(r"guest_[0-9a-f]{32}", first.id)
        assert first.id != second.id
        lifetime = first.expires_at - utcnow()
        assert timedelta(days=29, hours=23) < lifetime <= timedelta(days=30)

        assert ok(await store.sessions.resolve_guest(first.id)) == first
        cart = ok(await store.cart.get_cart(first))
        assert cart.is_empty and cart.owner_id == first.id

    with_store(scenario)


def test_unknown_guest_is_expired(with_store):
    async def scenario(store):
        error = err(await store.sessions.resolve_guest("guest_" + "0" * 32))
        assert isinstance(error, SessionExpired)

    with_store(scenario)


def test_ensure_guest_replaces_a_gone_session(with_store):
    async def scenario(store):
        storage = MemoryClientStorage()
        storage.save_guest_id("guest_gone")

        guest = await store.sessions.ensure_guest(storage)
        assert guest.id != "guest_gone"
        assert storage.load_guest_id() == guest.id

        again = await store.sessions.ensure_guest(storage)
        assert again.id == guest.id

    with_store(scenario)


def test_purge_removes_expired_sessions(with_store):
    async def scenario(store):
        guest = await store.sessions.init_guest_session()
        ok(await store.cart.add_item(guest, "P1", "M", "red", 1))

        assert await store.sessions.purge_expired(utcnow()) == 0
        assert await store.sessions.purge_expired(utcnow() + timedelta(days=31)) == 1
        assert isinstance(err(await store.sessions.resolve_guest(guest.id)), SessionExpired)

    with_store(scenario)


def test_purge_keeps_guests_whose_orders_are_unlinked(with_store):
    async def scenario(store):
        buyer = await store.sessions.init_guest_session()
        browser = await store.sessions.init_guest_session()
        ok(await store.cart.add_item(buyer, "P1", "M", "red", 1))
        review = ok(store.checkout.review(kochi_address(), PaymentMethod.COD))
        order = ok((await store.checkout.place_deferred(buyer, review)).result)

        assert await store.sessions.purge_expired(utcnow() + timedelta(days=31)) == 1
        assert isinstance(err(await store.sessions.resolve_guest(browser.id)), SessionExpired)

        report = ok(await store.conversions.convert(buyer.id, "user-1"))
        assert report.orders_linked == 1
        assert [o.id for o in await store.orders.list_for(("user", "user-1"))] == [order.id]

    with_store(scenario)


def test_user_token_round_trip(with_store):
    async def scenario(store):
        token = store.sessions.issue_user_token("user-1")
        assert ok(store.sessions.resolve_identity(token)) == UserIdentity(id="user-1")

    with_store(scenario)


def test_stored_token_restores_the_user(with_store):
    async def scenario(store):
        storage = MemoryClientStorage()
        storage.save_token(store.sessions.issue_user_token("user-1"))

        assert ok(store.sessions.resolve_identity(storage.load_token())) == UserIdentity(id="user-1")

        storage.clear()
        assert storage.load_token() is None
        assert storage.load_guest_id() is None

    with_store(scenario)


def test_bad_tokens_are_unauthenticated(settings):
    sessions = SessionStore(session_factory=None, settings=settings)  # type: ignore[arg-type]

    forged = jwt.encode({"sub": "user-1", "exp": utcnow() + timedelta(hours=1)}, "other", algorithm="HS256")
    assert isinstance(err(sessions.resolve_identity(forged)), Unauthenticated)
    assert isinstance(err(sessions.resolve_identity("not-a-token")), Unauthenticated)

    stale = SessionStore(session_factory=None, settings=replace(settings, user_token_ttl_hours=-1))  # type: ignore[arg-type]
    expired = err(sessions.resolve_identity(stale.issue_user_token("user-1")))
    assert expired.message == "Token expired"


def test_session_context_switches_identity():
    guest_ctx = SessionContext()
    assert guest_ctx.guest_id is None

    user_ctx = guest_ctx.with_identity(UserIdentity(id="u1"), token="t")
    assert not user_ctx.is_guest
    assert user_ctx.token == "t"
