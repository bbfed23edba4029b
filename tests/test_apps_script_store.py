import json

import httpx

from adas_ops.domain.records import AppsScriptRecordStore

WEBHOOK = "https://script.google.com/macros/s/abc/exec"
ECHO = "https://script.googleusercontent.com/macros/echo?user_content_key=xyz"


class FakeAppsScript:
    """Mimics the webhook: POST answers 302, the follow-up GET returns the output"""

    def __init__(self, rows=None, shops=None):
        self.rows = rows or {}
        self.shops = shops or []
        self.calls: list[dict] = []
        self._pending = None

    def __call__(self, request: httpx.Request) -> httpx.Response:
        if request.method == "POST":
            payload = json.loads(request.content)
            self.calls.append(payload)
            self._pending = self._handle(payload)
            return httpx.Response(302, headers={"location": ECHO})
        return httpx.Response(200, json=self._pending)

    def _handle(self, payload):
        action, data = payload["action"], payload["data"]
        if payload.get("token") != "secret":
            return {"success": False, "error": "Unauthorized"}
        if action == "lookup_ro":
            row = self.rows.get(data["roPo"])
            return {"success": True, "found": row is not None, "data": row}
        if action == "tech_update":
            row = self.rows.setdefault(data["roPo"], {"roPo": data["roPo"]})
            row.update({k: v for k, v in data.items() if k != "roPo"})
            return {"success": True}
        if action == "get_all_shops":
            return {"success": True, "shops": self.shops}
        return {"success": False, "error": f"Unknown action {action}"}


def _store(fake, token="secret"):
    return AppsScriptRecordStore(
        webhook_url=WEBHOOK, token=token, timeout=5, transport=httpx.MockTransport(fake)
    )


async def test_get_follows_redirect_and_normalizes_row():
    fake = FakeAppsScript(rows={"12345": {"roPo": "12345", "shopName": "JMD", "notes": "hi"}})

    row = await _store(fake).get("12345")

    assert row == {"ro_number": "12345", "shop_name": "JMD", "notes": "hi"}
    assert fake.calls[0]["action"] == "lookup_ro"


async def test_get_missing_row_returns_none():
    assert await _store(FakeAppsScript()).get("99999") is None


async def test_upsert_maps_fields_and_appends_notes():
    fake = FakeAppsScript(rows={"12345": {"roPo": "12345", "tech_notes": "[01/01/2025, 08:00 AM] Scheduled"}})

    result = await _store(fake).upsert("12345", {"status": "Ready", "notes": "Confirmation sent"})

    assert result.success is True
    update = fake.calls[-1]
    assert update["action"] == "tech_update"
    assert update["data"]["status_from_tech"] == "Ready"
    assert update["data"]["tech_notes"] == "[01/01/2025, 08:00 AM] Scheduled | Confirmation sent"


async def test_rejected_call_is_a_non_retryable_failure():
    result = await _store(FakeAppsScript(), token="wrong").upsert("12345", {"status": "Ready"})

    assert result.success is False
    assert result.error == "Unauthorized"
    assert result.retryable is False


async def test_timeout_is_a_retryable_failure():
    def slow(request):
        raise httpx.ReadTimeout("timed out", request=request)

    store = AppsScriptRecordStore(
        webhook_url=WEBHOOK, token="secret", transport=httpx.MockTransport(slow)
    )
    result = await store.upsert("12345", {"status": "Ready"})

    assert result.success is False
    assert result.retryable is True


async def test_server_error_is_retryable():
    store = AppsScriptRecordStore(
        webhook_url=WEBHOOK,
        token="secret",
        transport=httpx.MockTransport(lambda request: httpx.Response(502)),
    )
    result = await store.upsert("12345", {"status": "Ready"})
    assert result.retryable is True


async def test_unconfigured_webhook_fails_cleanly():
    store = AppsScriptRecordStore(webhook_url=None, token=None)
    result = await store.upsert("12345", {"status": "Ready"})
    assert result.success is False
    assert await store.get("12345") is None


async def test_shop_lookup_uses_cached_directory():
    fake = FakeAppsScript(
        shops=[
            {"name": "JMD Body Shop", "email": "jmd@example.com", "billing_cc": "acct@jmd.com"},
            {"name": "No Email Shop", "email": ""},
        ]
    )
    store = _store(fake)

    shop = await store.lookup_shop_by_name("JMD")
    again = await store.lookup_shop_by_name("JMD Body Shop")

    assert shop.email == "jmd@example.com"
    assert shop.billing_cc == "acct@jmd.com"
    assert again.name == "JMD Body Shop"
    assert await store.lookup_shop_by_name("No Email Shop") is None
    assert [c["action"] for c in fake.calls] == ["get_all_shops"]
