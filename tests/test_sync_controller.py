import asyncio
import json
import sqlite3
import time
from datetime import datetime, timezone

import httpx
import pytest

from money_tracker.client.app import TrackerApp
from money_tracker.client.errors import CacheError
from money_tracker.client.local_cache import LocalCacheStore
from money_tracker.client.remote import RemoteTransactionService
from money_tracker.client.sync import Operation, OperationState
from money_tracker.schemas import Transaction

API_URL = "http://api.test/api"


class FakeApi:
    """Scripted stand-in for the HTTP API; records every request it sees."""

    def __init__(self):
        self.requests = []
        self.responses = {}
        self.offline = False
        self.next_id = 100
        self.before_response = None

    def on(self, key, status_code, body):
        self.responses[key] = (status_code, body)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        if self.before_response is not None:
            self.before_response(request)
        if self.offline:
            raise httpx.ConnectError("network is unreachable", request=request)
        body = json.loads(request.content) if request.content else None
        self.requests.append((request.method, dict(request.url.params), body))

        key = request.method
        if request.method == "POST":
            key = f"POST:{body.get('action')}"
        if key in self.responses:
            status_code, payload = self.responses[key]
            return httpx.Response(status_code, json=payload)

        if key == "POST:add_transaction":
            self.next_id += 1
            tx = {k: body.get(k) for k in ("user_id", "type", "amount", "title", "description", "tags")}
            tx.update(id=self.next_id, created_at="2024-05-01 12:00:00")
            return httpx.Response(200, json={"status": "success", "message": "Transaction added", "transaction": tx})
        if key == "GET":
            return httpx.Response(200, json=[])
        return httpx.Response(500, json={"status": "error", "message": "unscripted"})

    @property
    def methods(self):
        return [m for m, _, _ in self.requests]


@pytest.fixture()
def api():
    return FakeApi()


@pytest.fixture()
def make_app(api, tmp_path):
    def factory(online=True, cache=None):
        client = httpx.AsyncClient(transport=httpx.MockTransport(api))
        remote = RemoteTransactionService(API_URL, client=client)
        return TrackerApp(remote=remote, cache=cache, cache_path=tmp_path / "cache.sqlite3", online=online)

    return factory


def _row(tx_id, **fields):
    row = {"id": tx_id, "type": "expense", "amount": 1000, "title": None, "description": None,
           "tags": None, "created_at": "2024-04-01 08:00:00"}
    row.update(fields)
    return row


async def _signed_in(app, user_id=7):
    await app.start()
    app.state.sign_in(app.cache, user_id)


async def _fill_form(app, amount, type_="expense", title="", tags=""):
    await app.change_field("amount", amount)
    await app.change_field("type", type_)
    await app.change_field("title", title)
    await app.change_field("tags", tags)


def test_login_stores_session_and_fetches(make_app, api):
    api.on("POST:login", 200, {"status": "success", "user_id": 7})
    api.on("GET", 200, [_row(3, title="Rent")])

    async def scenario():
        app = make_app()
        await app.start()
        ok = await app.login("alice", "secret")
        try:
            return ok, app.cache.get_item("userId"), list(app.transactions)
        finally:
            await app.aclose()

    ok, stored, transactions = asyncio.run(scenario())
    assert ok
    assert stored == "7"
    assert api.requests[0] == ("POST", {}, {"action": "login", "username": "alice", "password": "secret"})
    assert api.requests[1] == ("GET", {"user_id": "7"}, None)
    assert [tx.id for tx in transactions] == [3]
    assert transactions[0].user_id == 7


def test_login_failure_shows_server_message(make_app, api):
    api.on("POST:login", 401, {"status": "error", "message": "Invalid credentials"})

    async def scenario():
        app = make_app()
        await app.start()
        ok = await app.login("alice", "wrong")
        await app.aclose()
        return ok, app

    ok, app = asyncio.run(scenario())
    assert not ok
    assert not app.state.is_logged_in
    assert app.messages.error == "Invalid credentials"
    assert api.methods == ["POST"]


def test_stored_session_is_restored_on_start(make_app, api, tmp_path):
    api.on("GET", 200, [_row(1), _row(2)])
    previous = LocalCacheStore(tmp_path / "cache.sqlite3")
    previous.set_item("userId", "7")
    previous.close()

    async def scenario():
        app = make_app()
        await app.start()
        await app.aclose()
        return app

    app = asyncio.run(scenario())
    assert app.state.user_id == 7
    assert [tx.id for tx in app.transactions] == [1, 2]
    assert api.requests == [("GET", {"user_id": "7"}, None)]
    # fetched rows are mirrored into the cache
    assert {tx.id for tx in app.cache.get_all(7)} == {1, 2}


def test_online_add_mirrors_server_record(make_app, api):
    async def scenario():
        app = make_app()
        await _signed_in(app)
        await _fill_form(app, "50.000", title="Groceries", tags=" food, ,weekly ")
        ok = await app.submit()
        cached = app.cache.get_all(7)
        await app.aclose()
        return ok, app, cached

    ok, app, cached = asyncio.run(scenario())
    assert ok
    _, _, body = api.requests[-1]
    assert body == {"action": "add_transaction", "user_id": 7, "type": "expense", "amount": 50000,
                    "title": "Groceries", "description": None, "tags": "food,weekly"}
    assert [tx.id for tx in app.transactions] == [101]
    assert [tx.id for tx in cached] == [101]
    assert app.messages.success == "Transaction added successfully!"
    assert app.form.amount == ""
    assert app.controller.status[Operation.ADD] is OperationState.SUCCEEDED


def test_online_add_failure_changes_nothing(make_app, api):
    api.on("POST:add_transaction", 400, {"status": "error", "message": "Amount must be positive"})

    async def scenario():
        app = make_app()
        await _signed_in(app)
        await _fill_form(app, "10")
        ok = await app.submit()
        await app.aclose()
        return ok, app

    ok, app = asyncio.run(scenario())
    assert not ok
    assert app.transactions == []
    assert app.cache.get_all(7) == []
    assert app.messages.error == "Amount must be positive"
    assert app.controller.status[Operation.ADD] is OperationState.FAILED_REMOTE


@pytest.mark.parametrize("amount", ["", "0", "0.000", "abc", "-5"])
def test_invalid_amount_is_rejected_before_any_call(make_app, api, amount):
    async def scenario():
        app = make_app()
        await _signed_in(app)
        app.form.amount = amount
        ok = await app.submit()
        await app.aclose()
        return ok, app

    ok, app = asyncio.run(scenario())
    assert not ok
    assert api.requests == []
    assert app.cache.get_all(7) == []
    assert app.messages.error == "Please enter a valid, positive amount for the transaction."


def test_submit_requires_sign_in(make_app, api):
    async def scenario():
        app = make_app()
        await app.start()
        await _fill_form(app, "10")
        ok = await app.submit()
        await app.aclose()
        return ok, app

    ok, app = asyncio.run(scenario())
    assert not ok
    assert api.requests == []
    assert app.messages.error == "Cannot save transaction: User not logged in."


def test_offline_add_creates_placeholder(make_app, api):
    async def scenario():
        app = make_app(online=False)
        await _signed_in(app)
        before = time.time()
        await _fill_form(app, "50000", title="Groceries")
        ok = await app.submit()
        after = time.time()
        cached = app.cache.get_all(7)
        await app.aclose()
        return ok, app, cached, before, after

    ok, app, cached, before, after = asyncio.run(scenario())
    assert ok
    assert api.requests == []
    assert len(app.transactions) == 1
    tx = app.transactions[0]
    assert tx.type == "expense"
    assert tx.amount == 50000
    assert tx.user_id == 7
    assert tx.unsynced is True
    assert int(before * 1000) <= tx.id <= int(after * 1000) + 1
    created = datetime.strptime(tx.created_at, "%Y-%m-%d %H:%M:%S").replace(tzinfo=timezone.utc)
    assert int(before) - 1 <= created.timestamp() <= after + 1
    assert cached == [tx]
    assert app.messages.success == "Transaction added locally (offline)."


def test_offline_placeholder_ids_increase(make_app, api):
    async def scenario():
        app = make_app(online=False)
        await _signed_in(app)
        for _ in range(3):
            await _fill_form(app, "1")
            await app.submit()
        await app.aclose()
        return app

    app = asyncio.run(scenario())
    ids = [tx.id for tx in reversed(app.transactions)]
    assert len(set(ids)) == 3
    assert ids == sorted(ids)


def test_update_unchanged_keeps_list_and_clears_form(make_app, api):
    api.on("GET", 200, [_row(3, amount=500, title="Lunch")])
    api.on("PUT", 200, {"status": "success", "message": "Transaction data unchanged"})

    async def scenario():
        app = make_app()
        await _signed_in(app)
        await app.controller.fetch()
        before = list(app.transactions)
        app.edit(app.transactions[0])
        ok = await app.submit()
        await app.aclose()
        return ok, app, before

    ok, app, before = asyncio.run(scenario())
    assert ok
    assert app.transactions == before
    assert app.messages.success == "Transaction data was unchanged."
    assert app.form.editing_transaction_id is None
    assert api.requests[-1][2]["transaction_id"] == 3


def test_update_online_replaces_entry(make_app, api):
    api.on("GET", 200, [_row(3), _row(4)])
    api.on("PUT", 200, {"status": "success", "message": "Transaction updated",
                        "transaction": {**_row(3, amount=2500, title="Dinner"), "user_id": 7}})

    async def scenario():
        app = make_app()
        await _signed_in(app)
        await app.controller.fetch()
        app.edit(app.transactions[0])
        await app.change_field("amount", "2500")
        await app.change_field("title", "Dinner")
        ok = await app.submit()
        cached = {tx.id: tx for tx in app.cache.get_all(7)}
        await app.aclose()
        return ok, app, cached

    ok, app, cached = asyncio.run(scenario())
    assert ok
    assert [tx.id for tx in app.transactions] == [3, 4]
    assert app.transactions[0].amount == 2500
    assert cached[3].title == "Dinner"
    assert app.messages.success == "Transaction updated successfully!"


def test_update_not_found_is_an_error(make_app, api):
    api.on("GET", 200, [_row(3)])
    api.on("PUT", 404, {"status": "error", "message": "Transaction not found or not owned by user"})

    async def scenario():
        app = make_app()
        await _signed_in(app)
        await app.controller.fetch()
        app.edit(app.transactions[0])
        await app.change_field("amount", "99")
        ok = await app.submit()
        await app.aclose()
        return ok, app

    ok, app = asyncio.run(scenario())
    assert not ok
    assert app.transactions[0].amount == 1000
    assert app.messages.error == "Transaction not found or not owned by user"
    assert app.form.editing_transaction_id == 3
    assert app.controller.status[Operation.UPDATE] is OperationState.FAILED_REMOTE


def test_offline_update_keeps_id_and_created_at(make_app, api):
    api.on("GET", 200, [_row(3, created_at="2024-01-02 03:04:05")])

    async def scenario():
        app = make_app()
        await _signed_in(app)
        await app.controller.fetch()
        await app.set_online(False)
        app.edit(app.transactions[0])
        await app.change_field("amount", "4.321")
        ok = await app.submit()
        await app.aclose()
        return ok, app

    ok, app = asyncio.run(scenario())
    assert ok
    tx = app.transactions[0]
    assert (tx.id, tx.amount, tx.created_at, tx.unsynced) == (3, 4321, "2024-01-02 03:04:05", True)
    assert app.cache.get_all(7) == [tx]
    assert api.methods == ["GET"]


def test_delete_not_found_online_leaves_state(make_app, api):
    api.on("GET", 200, [_row(5)])
    api.on("DELETE", 404, {"status": "error", "message": "Transaction not found or not owned by user"})

    async def scenario():
        app = make_app()
        await _signed_in(app)
        await app.controller.fetch()
        ok = await app.delete(5, confirmed=True)
        cached = app.cache.get_all(7)
        await app.aclose()
        return ok, app, cached

    ok, app, cached = asyncio.run(scenario())
    assert not ok
    assert [tx.id for tx in app.transactions] == [5]
    assert [tx.id for tx in cached] == [5]
    assert app.messages.error == "Transaction not found or not owned by user"
    assert api.requests[-1] == ("DELETE", {"user_id": "7", "transaction_id": "5"}, None)


def test_delete_requires_confirmation(make_app, api):
    api.on("GET", 200, [_row(5)])

    async def scenario():
        app = make_app()
        await _signed_in(app)
        await app.controller.fetch()
        ok = await app.delete(5, confirmed=False)
        await app.aclose()
        return ok, app

    ok, app = asyncio.run(scenario())
    assert not ok
    assert api.methods == ["GET"]
    assert [tx.id for tx in app.transactions] == [5]


def test_delete_online_and_offline(make_app, api):
    api.on("GET", 200, [_row(5), _row(6)])
    api.on("DELETE", 200, {"status": "success", "message": "Transaction deleted"})

    async def scenario():
        app = make_app()
        await _signed_in(app)
        await app.controller.fetch()
        app.edit(app.transactions[0])
        await app.delete(5, confirmed=True)
        editing_after_online = app.form.editing_transaction_id
        await app.set_online(False)
        await app.delete(6, confirmed=True)
        cached = app.cache.get_all(7)
        await app.aclose()
        return app, editing_after_online, cached

    app, editing_after_online, cached = asyncio.run(scenario())
    assert editing_after_online is None
    assert app.transactions == []
    assert cached == []
    assert api.methods == ["GET", "DELETE"]
    assert app.messages.success == "Transaction deleted locally (offline)."


def test_fetch_failure_falls_back_to_cache(make_app, api):
    api.on("GET", 500, {"status": "error", "message": "boom"})

    async def scenario():
        app = make_app()
        await app.start()
        app.cache.put(Transaction(id=1, user_id=7, type="income", amount=10))
        app.state.sign_in(app.cache, 7)
        await app.controller.fetch()
        await app.aclose()
        return app

    app = asyncio.run(scenario())
    assert [tx.id for tx in app.transactions] == [1]
    assert app.messages.success == "Displaying locally cached transactions."
    assert app.messages.error.startswith("Failed to fetch from server: boom")
    assert app.controller.status[Operation.FETCH] is OperationState.FAILED_REMOTE


def test_fetch_failure_with_empty_cache(make_app, api):
    api.offline = True

    async def scenario():
        app = make_app()
        await _signed_in(app)
        await app.controller.fetch()
        await app.aclose()
        return app

    app = asyncio.run(scenario())
    assert app.transactions == []
    assert app.messages.error == "Failed to fetch from server and no local data for user 7."


def test_offline_fetch_reads_cache_only(make_app, api):
    async def scenario():
        app = make_app(online=False)
        await app.start()
        app.cache.put(Transaction(id=1, user_id=7, type="income", amount=10))
        app.cache.put(Transaction(id=2, user_id=8, type="income", amount=10))
        app.state.sign_in(app.cache, 7)
        await app.controller.fetch()
        await app.aclose()
        return app

    app = asyncio.run(scenario())
    assert api.requests == []
    assert [tx.id for tx in app.transactions] == [1]
    assert app.messages.error == "You are offline. Displaying locally stored data."


def test_network_loss_during_add_falls_back_to_offline_write(make_app, api):
    async def scenario():
        app = make_app()
        await _signed_in(app)
        api.offline = True
        await _fill_form(app, "700")
        ok = await app.submit()
        await app.aclose()
        return ok, app

    ok, app = asyncio.run(scenario())
    assert ok
    assert not app.connectivity.is_online
    assert app.transactions[0].unsynced is True
    assert app.messages.success == "Transaction added locally (offline)."


def test_reconnect_refetches_and_replaces_placeholders(make_app, api):
    api.on("GET", 200, [_row(9, title="from server")])

    async def scenario():
        app = make_app(online=False)
        await _signed_in(app)
        await _fill_form(app, "300")
        await app.submit()
        offline_ids = [tx.id for tx in app.transactions]
        await app.set_online(True)
        await app.aclose()
        return app, offline_ids

    app, offline_ids = asyncio.run(scenario())
    assert len(offline_ids) == 1
    assert api.requests == [("GET", {"user_id": "7"}, None)]
    assert [tx.id for tx in app.transactions] == [9]
    assert [tx.id for tx in app.cache.get_all(7)] == [9]
    assert app.messages.success == "You are back online!"


def test_going_offline_only_posts_a_notice(make_app, api):
    api.on("GET", 200, [_row(1)])

    async def scenario():
        app = make_app()
        await _signed_in(app)
        await app.controller.fetch()
        changed = await app.set_online(False)
        again = await app.set_online(False)
        await app.aclose()
        return app, changed, again

    app, changed, again = asyncio.run(scenario())
    assert changed and not again
    assert [tx.id for tx in app.transactions] == [1]
    assert app.messages.error == "You are currently offline. Some features might be limited."
    assert api.methods == ["GET"]


def test_logout_clears_session_and_state(make_app, api):
    api.on("POST:login", 200, {"status": "success", "user_id": 7})
    api.on("GET", 200, [_row(1)])

    async def scenario():
        app = make_app()
        await app.start()
        await app.login("alice", "secret")
        app.select_tag("food")
        app.logout()
        await app.aclose()
        return app

    app = asyncio.run(scenario())
    assert app.state.user_id is None
    assert app.state.selected_tag_filter is None
    assert app.transactions == []
    assert app.cache.get_item("userId") is None
    # cached rows stay for the next sign-in
    assert [tx.id for tx in app.cache.get_all(7)] == [1]


def test_theme_preference_is_persisted(make_app):
    async def scenario():
        app = make_app()
        await app.start(prefers_dark=True)
        initial = app.state.theme
        toggled = app.toggle_theme()
        stored = app.cache.get_item("themePreference")
        await app.start(prefers_dark=True)
        restored = app.state.theme
        await app.aclose()
        return initial, toggled, stored, restored

    assert asyncio.run(scenario()) == ("dark", "light", "light", "light")


def test_invalid_stored_user_id_is_discarded(make_app, api):
    async def scenario():
        app = make_app()
        app.cache.set_item("userId", "not-a-number")
        await app.start()
        await app.aclose()
        return app

    app = asyncio.run(scenario())
    assert not app.state.is_logged_in
    assert app.cache.get_item("userId") is None
    assert api.requests == []


class FlakyCache(LocalCacheStore):
    """Local cache whose named operations fail on demand."""

    def __init__(self, path):
        super().__init__(path)
        self.failing = set()

    def _check(self, name):
        if name in self.failing:
            raise CacheError(f"{name} failed: disk I/O error")

    def get_all(self, user_id):
        self._check("get_all")
        return super().get_all(user_id)

    def put(self, transaction):
        self._check("put")
        super().put(transaction)

    def delete(self, transaction_id):
        self._check("delete")
        super().delete(transaction_id)


@pytest.fixture()
def flaky_cache(tmp_path):
    store = FlakyCache(tmp_path / "flaky.sqlite3")
    try:
        yield store
    finally:
        store.close()


def test_logout_during_failed_fetch_shows_nothing(make_app, api):
    async def scenario():
        app = make_app()
        await _signed_in(app)
        app.cache.put(Transaction(id=1, user_id=7, type="income", amount=10))

        def sign_out_mid_request(request):
            app.logout()
            api.offline = True

        api.before_response = sign_out_mid_request
        await app.controller.fetch(7)
        await app.aclose()
        return app

    app = asyncio.run(scenario())
    assert app.state.user_id is None
    assert app.transactions == []
    assert app.messages.error is None
    assert app.messages.success is None
    assert app.controller.status[Operation.FETCH] is OperationState.IDLE


def test_offline_fetch_with_broken_cache(make_app, flaky_cache, api):
    flaky_cache.failing.add("get_all")

    async def scenario():
        app = make_app(online=False, cache=flaky_cache)
        await _signed_in(app)
        await app.controller.fetch()
        await app.remote.aclose()
        return app

    app = asyncio.run(scenario())
    assert app.transactions == []
    assert app.messages.error == "Error fetching local data: get_all failed: disk I/O error"
    assert app.controller.status[Operation.FETCH] is OperationState.FAILED_LOCAL
    assert api.requests == []


def test_offline_fetch_with_corrupted_cache(make_app, api, tmp_path):
    async def scenario():
        app = make_app(online=False)
        await _signed_in(app)
        app.cache.put(Transaction(id=1, user_id=7, type="income", amount=10))
        conn = sqlite3.connect(str(tmp_path / "cache.sqlite3"))
        with conn:
            conn.execute("UPDATE transactions SET type = 'transfer' WHERE id = 1")
        conn.close()
        await app.controller.fetch()
        await app.aclose()
        return app

    app = asyncio.run(scenario())
    assert app.transactions == []
    assert app.messages.error.startswith("Error fetching local data: Cached transactions are corrupted")
    assert app.controller.status[Operation.FETCH] is OperationState.FAILED_LOCAL


def test_fetch_failure_with_broken_cache(make_app, flaky_cache, api):
    api.on("GET", 500, {"status": "error", "message": "boom"})
    flaky_cache.failing.add("get_all")

    async def scenario():
        app = make_app(cache=flaky_cache)
        await _signed_in(app)
        await app.controller.fetch()
        await app.remote.aclose()
        return app

    app = asyncio.run(scenario())
    assert app.transactions == []
    assert app.messages.error == "Failed to fetch from server and DB: get_all failed: disk I/O error"
    assert app.controller.status[Operation.FETCH] is OperationState.FAILED_LOCAL


def test_offline_add_fails_when_cache_write_fails(make_app, flaky_cache, api):
    flaky_cache.failing.add("put")

    async def scenario():
        app = make_app(online=False, cache=flaky_cache)
        await _signed_in(app)
        await _fill_form(app, "250", title="Bus")
        ok = await app.submit()
        await app.remote.aclose()
        return ok, app

    ok, app = asyncio.run(scenario())
    assert not ok
    assert app.transactions == []
    assert app.messages.error == "Failed to save locally: put failed: disk I/O error"
    assert app.messages.success is None
    assert app.controller.status[Operation.ADD] is OperationState.FAILED_LOCAL
    # the input stays for another try
    assert app.form.amount == "250"
    assert app.form.title == "Bus"


def test_offline_update_fails_when_cache_write_fails(make_app, flaky_cache, api):
    api.on("GET", 200, [_row(3, amount=500)])

    async def scenario():
        app = make_app(cache=flaky_cache)
        await _signed_in(app)
        await app.controller.fetch()
        await app.set_online(False)
        flaky_cache.failing.add("put")
        app.edit(app.transactions[0])
        await app.change_field("amount", "900")
        ok = await app.submit()
        await app.remote.aclose()
        return ok, app

    ok, app = asyncio.run(scenario())
    assert not ok
    assert [(tx.id, tx.amount, tx.unsynced) for tx in app.transactions] == [(3, 500, False)]
    assert app.messages.error == "Failed to save locally: put failed: disk I/O error"
    assert app.controller.status[Operation.UPDATE] is OperationState.FAILED_LOCAL
    assert app.form.editing_transaction_id == 3


def test_online_add_keeps_server_record_when_mirror_fails(make_app, flaky_cache, api):
    flaky_cache.failing.add("put")

    async def scenario():
        app = make_app(cache=flaky_cache)
        await _signed_in(app)
        await _fill_form(app, "75")
        ok = await app.submit()
        await app.remote.aclose()
        return ok, app

    ok, app = asyncio.run(scenario())
    assert ok
    assert [tx.id for tx in app.transactions] == [101]
    assert app.messages.success == "Transaction added successfully!"
    assert app.messages.error.startswith("Saved on the server, but the local cache could not be updated")
    assert app.controller.status[Operation.ADD] is OperationState.SUCCEEDED


def test_offline_delete_fails_when_cache_write_fails(make_app, flaky_cache, api):
    api.on("GET", 200, [_row(5)])

    async def scenario():
        app = make_app(cache=flaky_cache)
        await _signed_in(app)
        await app.controller.fetch()
        await app.set_online(False)
        flaky_cache.failing.add("delete")
        ok = await app.delete(5, confirmed=True)
        await app.remote.aclose()
        return ok, app

    ok, app = asyncio.run(scenario())
    assert not ok
    assert [tx.id for tx in app.transactions] == [5]
    assert app.messages.error == "Failed to delete locally: delete failed: disk I/O error"
    assert app.controller.status[Operation.DELETE] is OperationState.FAILED_LOCAL
