import asyncio

import httpx

from conftest import (
    double_blink_profile,
    no_blink_profile,
    start_checkin,
    unique_email,
    upload_video,
)
from checkin.config import MAX_BLINK_ATTEMPTS


def send_concurrently(requests):
    """
    Issue (method, url, kwargs) requests against the app at the same time.

    Tables already exist because the `client` fixture ran the lifespan.
    """
    from checkin.main import app

    async def send_all():
        transport = httpx.ASGITransport(app=app, raise_app_exceptions=False)
        async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as ac:
            return await asyncio.gather(
                *(ac.request(method, url, **kwargs) for method, url, kwargs in requests)
            )

    return asyncio.run(send_all())


def blink_upload(session_id, headers, clip: bytes):
    return (
        "POST",
        "/checkin/blink",
        {"data": {"session_id": session_id}, "files": upload_video(clip), "headers": headers},
    )


def test_concurrent_signups_with_one_email(client):
    email = unique_email()
    payload = {"email": email, "password": "secret123", "full_name": "Racer"}

    responses = send_concurrently([("POST", "/auth/signup", {"json": payload})] * 4)

    assert sorted(r.status_code for r in responses) == [201, 409, 409, 409]
    r = client.post("/auth/login", data={"username": email, "password": "secret123"})
    assert r.status_code == 200


def test_concurrent_failing_blinks_respect_attempt_limit(client, face_model, blink_model, enrolled_user):
    headers, embedding, _ = enrolled_user
    face = start_checkin(client, face_model, headers, embedding, seed=10001)
    session_id = face["session"]["id"]
    blink_model.register(b"single-blink-10001", no_blink_profile())

    responses = send_concurrently(
        [blink_upload(session_id, headers, b"single-blink-10001")] * 8
    )

    codes = [r.status_code for r in responses]
    assert codes.count(200) == MAX_BLINK_ATTEMPTS
    assert codes.count(409) == 8 - MAX_BLINK_ATTEMPTS
    assert all(r.json()["verified"] is False for r in responses if r.status_code == 200)

    session = client.get(f"/checkin/sessions/{session_id}", headers=headers).json()
    assert session["status"] == "failed"
    assert session["blink_attempts"] == MAX_BLINK_ATTEMPTS


def test_concurrent_good_blinks_record_one_attendance(client, face_model, blink_model, enrolled_user):
    headers, embedding, _ = enrolled_user
    face = start_checkin(client, face_model, headers, embedding, seed=10101)
    session_id = face["session"]["id"]
    blink_model.register(b"good-a-10101", double_blink_profile(410.0))
    blink_model.register(b"good-b-10101", double_blink_profile(390.0))

    responses = send_concurrently([
        blink_upload(session_id, headers, b"good-a-10101"),
        blink_upload(session_id, headers, b"good-b-10101"),
    ])

    assert sorted(r.status_code for r in responses) == [200, 409]
    accepted = next(r.json() for r in responses if r.status_code == 200)
    assert accepted["verified"] is True
    assert accepted["session"]["status"] == "complete"

    r = client.get("/attendance", headers=headers)
    assert r.json()["total_count"] == 1
