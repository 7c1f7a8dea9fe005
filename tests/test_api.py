from fastapi.testclient import TestClient

from slotbook.container import build_container
from slotbook.main import create_app


def make_client(repository, email_sender, message_sender, clock):
    container = build_container(
        repository=repository,
        email_sender=email_sender,
        message_sender=message_sender,
        clock=clock,
        site_url="https://book.example.com",
        cron_secret="s3cret",
    )
    return TestClient(create_app(container))


def test_health(repository, email_sender, message_sender, clock):
    client = make_client(repository, email_sender, message_sender, clock)
    res = client.get("/health")
    assert res.status_code == 200
    assert res.json() == {"status": "ok"}


def test_availability_endpoint(repository, email_sender, message_sender, clock):
    client = make_client(repository, email_sender, message_sender, clock)
    res = client.get(
        "/public/availability",
        params={"tenant_id": "tenant-1", "service_id": "service-1", "day": "2026-03-04"},
    )
    assert res.status_code == 200
    body = res.json()
    assert body["day"] == "2026-03-04"
    assert len(body["slots"]) == 15
    assert body["slots"][0]["start_time"].startswith("2026-03-04T09:00:00")


def test_availability_unknown_tenant_is_404(repository, email_sender, message_sender, clock):
    client = make_client(repository, email_sender, message_sender, clock)
    res = client.get(
        "/public/availability",
        params={"tenant_id": "ghost", "service_id": "service-1", "day": "2026-03-04"},
    )
    assert res.status_code == 404


def test_availability_bad_date_is_422(repository, email_sender, message_sender, clock):
    client = make_client(repository, email_sender, message_sender, clock)
    res = client.get(
        "/public/availability",
        params={"tenant_id": "tenant-1", "service_id": "service-1", "day": "not-a-date"},
    )
    assert res.status_code == 422


def test_booking_flow_create_conflict_cancel(repository, email_sender, message_sender, clock):
    client = make_client(repository, email_sender, message_sender, clock)
    payload = {
        "tenant_id": "tenant-1",
        "service_id": "service-1",
        "customer_id": "customer-1",
        "start_time": "2026-03-04T10:00:00Z",
    }

    created = client.post("/public/bookings", json=payload)
    assert created.status_code == 201
    body = created.json()
    assert body["status"] == "pending"
    assert body["payment_status"] == "unpaid"
    assert body["management_token"]
    assert email_sender.sent[0][1] == "Booking Confirmed"

    conflict = client.post("/public/bookings", json=payload)
    assert conflict.status_code == 409

    wrong = client.post(f"/public/bookings/{body['id']}/cancel", json={"token": "nope"})
    assert wrong.status_code == 404

    cancelled = client.post(f"/public/bookings/{body['id']}/cancel", json={"token": body["management_token"]})
    assert cancelled.status_code == 200
    assert cancelled.json()["status"] == "cancelled"
    assert cancelled.json()["management_token"] is None

    again = client.post(f"/public/bookings/{body['id']}/cancel", json={"token": body["management_token"]})
    assert again.status_code == 409

    rebooked = client.post("/public/bookings", json=payload)
    assert rebooked.status_code == 201


def test_cron_requires_bearer_secret(repository, email_sender, message_sender, clock):
    client = make_client(repository, email_sender, message_sender, clock)
    assert client.post("/api/cron/reminders").status_code == 401
    assert client.post("/api/cron/reminders", headers={"Authorization": "Bearer wrong"}).status_code == 401

    res = client.post("/api/cron/reminders", headers={"Authorization": "Bearer s3cret"})
    assert res.status_code == 200
    assert res.json() == {"scanned": 0, "reminded": 0, "skipped": 0, "failed": 0, "deliveries": 0}


def test_cron_disabled_without_secret(repository, email_sender, message_sender, clock):
    container = build_container(repository, email_sender, message_sender, clock=clock)
    client = TestClient(create_app(container))
    assert client.post("/api/cron/reminders", headers={"Authorization": "Bearer "}).status_code == 401


def _admin_client(repository, email_sender, message_sender, clock, **secrets):
    container = build_container(repository, email_sender, message_sender, clock=clock, **secrets)
    return TestClient(create_app(container))


def test_admin_status_update(repository, email_sender, message_sender, clock):
    client = _admin_client(repository, email_sender, message_sender, clock, admin_secret="adm1n")
    created = client.post(
        "/public/bookings",
        json={
            "tenant_id": "tenant-1",
            "service_id": "service-1",
            "customer_id": "customer-1",
            "start_time": "2026-03-04T10:00:00Z",
        },
    ).json()
    url = f"/api/admin/tenants/tenant-1/bookings/{created['id']}/status"
    auth = {"Authorization": "Bearer adm1n"}

    assert client.post(url, json={"status": "confirmed"}).status_code == 401
    assert client.post(url, json={"status": "completed"}, headers=auth).status_code == 422

    other_tenant = f"/api/admin/tenants/tenant-2/bookings/{created['id']}/status"
    assert client.post(other_tenant, json={"status": "confirmed"}, headers=auth).status_code == 404

    res = client.post(url, json={"status": "confirmed"}, headers=auth)
    assert res.status_code == 200
    assert res.json()["status"] == "confirmed"
    assert res.json()["management_token"] is None
    assert email_sender.sent[-1][1] == "Booking Confirmed"


def test_admin_route_disabled_without_secret(repository, email_sender, message_sender, clock):
    client = _admin_client(repository, email_sender, message_sender, clock)
    res = client.post(
        "/api/admin/tenants/tenant-1/bookings/any/status",
        json={"status": "confirmed"},
        headers={"Authorization": "Bearer "},
    )
    assert res.status_code == 401


def test_telegram_webhook_checks_secret_header(repository, email_sender, message_sender, clock):
    client = _admin_client(repository, email_sender, message_sender, clock, telegram_webhook_secret="tg-hook")
    update = {"update_id": 9, "message": {"chat": {"id": 4242}, "text": "/start studio-uno"}}

    assert client.post("/api/webhooks/telegram", json=update).status_code == 401
    wrong = client.post(
        "/api/webhooks/telegram", json=update, headers={"X-Telegram-Bot-Api-Secret-Token": "nope"}
    )
    assert wrong.status_code == 401
    assert repository.tenants["tenant-1"].telegram_chat_id == "owner-chat"

    res = client.post(
        "/api/webhooks/telegram", json=update, headers={"X-Telegram-Bot-Api-Secret-Token": "tg-hook"}
    )
    assert res.status_code == 200
    assert res.json() == {"received": True, "result": "tenant"}
    assert repository.tenants["tenant-1"].telegram_chat_id == "4242"
    assert message_sender.sent[-1][0] == "4242"


def test_telegram_webhook_without_secret_accepts_updates(repository, email_sender, message_sender, clock):
    client = _admin_client(repository, email_sender, message_sender, clock)
    res = client.post("/api/webhooks/telegram", json={"update_id": 1, "message": {"chat": {"id": 1}, "text": "hi"}})
    assert res.status_code == 200
    assert res.json()["result"] == "ignored"

    bad = client.post("/api/webhooks/telegram", json=[1, 2])
    assert bad.status_code == 400
