"""Tests for guest-to-user conversion and the account flows that trigger it."""

from storefront.checkout import PaymentMethod
from storefront.conversion import ConversionStep
from storefront.errors import ConversionPartialFailure
from storefront.session import UserIdentity

from tests.helpers import err, kochi_address, ok


async def guest_with_order(store, email="asha@example.com"):
    """A guest who placed one COD order and left one more line in the cart."""
    guest = await store.sessions.init_guest_session()
    ok(await store.cart.add_item(guest, "P3", "M", "black", 1))
    checkout = ok(store.checkout.review(kochi_address(), PaymentMethod.COD, contact_email=email))
    order = ok((await store.checkout.place_deferred(guest, checkout)).result)
    ok(await store.cart.add_item(guest, "P1", "M", "red", 2))
    return guest, order


def test_register_links_guest_order_exactly_once(with_store):
    async def scenario(store):
        guest, order = await guest_with_order(store)

        auth = ok(await store.accounts.register("asha@example.com", "secret1", "Asha", guest_id=guest.id))
        assert auth.conversion.orders_linked == 1
        assert auth.conversion.cart_merged

        user = UserIdentity(id=auth.user.id)
        assert [o.id for o in await store.orders.list_for(user.owner)] == [order.id]
        assert await store.orders.list_for(guest.owner) == []

        again = ok(await store.conversions.convert(guest.id, auth.user.id))
        assert again.orders_linked == 0
        assert len(await store.orders.list_for(user.owner)) == 1

        cart = ok(await store.cart.get_cart(user))
        assert cart.line("P1", "M", "red").quantity == 2

    with_store(scenario)


def test_merge_adds_to_existing_user_lines_and_drops_discontinued(with_store, catalog):
    async def scenario(store):
        guest = await store.sessions.init_guest_session()
        ok(await store.cart.add_item(guest, "P1", "M", "red", 7))
        ok(await store.cart.add_item(guest, "P2", "S", "blue", 1))

        user = UserIdentity(id="u1")
        ok(await store.cart.add_item(user, "P1", "M", "red", 5))
        catalog.set_orderable("P2", "S", "blue", False)

        report = ok(await store.conversions.convert(guest.id, user.id))
        assert [(l.product_id, l.quantity) for l in report.dropped_lines] == [("P2", 1)]
        assert [(l.product_id, l.quantity) for l in report.clamped_lines] == [("P1", 2)]

        cart = ok(await store.cart.get_cart(user))
        assert cart.line("P1", "M", "red").quantity == 10
        assert cart.line("P1", "M", "red").price_at_add == 500
        assert cart.line("P2", "S", "blue") is None
        assert ok(await store.cart.get_cart(guest)).is_empty

    with_store(scenario)


def test_failed_step_resumes_without_relinking(with_store, catalog, monkeypatch):
    async def scenario(store):
        guest, _ = await guest_with_order(store)
        user = UserIdentity(id="u1")

        async def offline(*args):
            raise ConnectionError("catalog offline")

        with monkeypatch.context() as patched:
            patched.setattr(catalog, "get_variant", offline)
            failure = err(await store.conversions.convert(guest.id, user.id))

        assert isinstance(failure, ConversionPartialFailure)
        assert failure.step is ConversionStep.CART
        assert len(await store.orders.list_for(user.owner)) == 1
        assert ok(await store.cart.get_cart(user)).is_empty
        assert await store.conversions.pending_for_user(user.id) == [guest.id]

        report = ok(await store.conversions.convert(guest.id, user.id))
        assert report.orders_linked == 1
        assert report.cart_merged
        assert len(await store.orders.list_for(user.owner)) == 1
        assert ok(await store.cart.get_cart(user)).item_count == 2
        assert await store.conversions.pending_for_user(user.id) == []

    with_store(scenario)


def test_guest_claimed_by_one_user_is_not_converted_for_another(with_store):
    async def scenario(store):
        guest, _ = await guest_with_order(store)

        ok(await store.conversions.convert(guest.id, "u1"))
        other = ok(await store.conversions.convert(guest.id, "u2"))

        assert other.orders_linked == 0 and not other.cart_merged
        assert await store.orders.list_for(("user", "u2")) == []
        assert len(await store.orders.list_for(("user", "u1"))) == 1

    with_store(scenario)


def test_unknown_guest_is_a_no_op(with_store):
    async def scenario(store):
        report = ok(await store.conversions.convert("guest_" + "f" * 32, "u1"))
        assert report.orders_linked == 0

    with_store(scenario)


def test_register_links_orders_placed_under_the_same_email(with_store):
    async def scenario(store):
        _, order = await guest_with_order(store, email="Ravi@Example.com")

        auth = ok(await store.accounts.register("ravi@example.com", "secret1", "Ravi"))
        assert auth.conversion is None
        orders = await store.orders.list_for(("user", auth.user.id))
        assert [o.id for o in orders] == [order.id]

    with_store(scenario)


def test_login_retries_an_unfinished_conversion(with_store, catalog, monkeypatch):
    async def scenario(store):
        guest, _ = await guest_with_order(store, email="someone-else@example.com")

        async def offline(*args):
            raise ConnectionError("catalog offline")

        with monkeypatch.context() as patched:
            patched.setattr(catalog, "get_variant", offline)
            auth = ok(await store.accounts.register("asha@example.com", "secret1", "Asha", guest_id=guest.id))

        assert auth.conversion is None  # account exists regardless
        user = UserIdentity(id=auth.user.id)
        assert ok(await store.cart.get_cart(user)).is_empty

        ok(await store.accounts.login("ASHA@example.com", "secret1"))
        assert ok(await store.cart.get_cart(user)).item_count == 2

    with_store(scenario)


def test_account_errors(with_store):
    async def scenario(store):
        ok(await store.accounts.register("asha@example.com", "secret1", "Asha"))

        assert err(await store.accounts.register("asha@example.com", "secret2", "Asha")).message == "User already exists"
        assert "at least 6" in err(await store.accounts.register("b@example.com", "123", "B")).message
        assert err(await store.accounts.register("not-an-email", "secret1", "C")).message == "Please provide a valid email"

        wrong = err(await store.accounts.login("asha@example.com", "wrong-pass"))
        assert wrong.status == 401
        assert err(await store.accounts.login("nobody@example.com", "secret1")).status == 401

    with_store(scenario)
