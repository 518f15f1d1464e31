"""
Shiprocket bearer token cache.

Tokens live in the api_tokens table for 240 hours and are refreshed once
fewer than 10 hours remain. The carrier API is faked at the _request seam.
"""
import asyncio
from datetime import datetime, timedelta

import pytest

from storefront.config import Settings
from storefront.connectors.shiprocket_connector import (
    CARRIER_NAME,
    CarrierAPIError,
    CarrierNotConfigured,
    ShiprocketConnector,
)
from storefront.models.credential import CachedCredential


def _run(coro):
    """Run an async coroutine in a sync test."""
    return asyncio.run(coro)


class FakeClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class FakeCarrier:
    """Stands in for ShiprocketConnector._request."""

    def __init__(self, login_delay: float = 0.0):
        self.login_delay = login_delay
        self.logins = 0
        self.calls = []
        self.responses = {}

    async def __call__(self, method, path, json=None, params=None, headers=None, auth=None):
        self.calls.append((method, path, (headers or {}).get("Authorization")))
        if path == "/auth/login":
            self.logins += 1
            if self.login_delay:
                await asyncio.sleep(self.login_delay)
            return {"token": f"tok-{self.logins}"}
        queued = self.responses.get(path)
        if queued:
            result = queued.pop(0)
            if isinstance(result, Exception):
                raise result
            return result
        return {}


@pytest.fixture
def clock():
    return FakeClock(datetime(2025, 1, 1, 12, 0))


@pytest.fixture
def carrier(db, clock, monkeypatch):
    connector = ShiprocketConnector(clock=clock)
    connector.RETRY_BASE_DELAY = 0.0
    fake = FakeCarrier()
    monkeypatch.setattr(connector, "_request", fake)
    connector.fake = fake
    return connector


class TestTokenReuse:
    def test_two_calls_within_window_share_one_login(self, carrier):
        first = _run(carrier.get_token())
        second = _run(carrier.get_token())

        assert first == second == "tok-1"
        assert carrier.fake.logins == 1

    def test_token_is_stored_with_validity_window(self, carrier, db, clock):
        _run(carrier.get_token())
        cred = db.get(CachedCredential, CARRIER_NAME)
        assert cred.token == "tok-1"
        assert cred.expires_at == clock.now + timedelta(hours=240)

    def test_other_processes_reuse_stored_token(self, carrier, clock, monkeypatch):
        _run(carrier.get_token())

        other = ShiprocketConnector(clock=clock)
        other_fake = FakeCarrier()
        monkeypatch.setattr(other, "_request", other_fake)
        assert _run(other.get_token()) == "tok-1"
        assert other_fake.logins == 0

    def test_still_cached_with_more_than_threshold_left(self, carrier, clock):
        _run(carrier.get_token())
        clock.advance(hours=229)
        assert _run(carrier.get_token()) == "tok-1"
        assert carrier.fake.logins == 1


class TestTokenRefresh:
    def test_expired_token_refreshed_exactly_once(self, carrier, clock):
        _run(carrier.get_token())
        clock.advance(hours=241)

        assert _run(carrier.get_token()) == "tok-2"
        assert _run(carrier.get_token()) == "tok-2"
        assert carrier.fake.logins == 2

    def test_refresh_when_inside_threshold(self, carrier, clock):
        _run(carrier.get_token())
        clock.advance(hours=231)
        assert _run(carrier.get_token()) == "tok-2"

    def test_concurrent_callers_share_one_refresh(self, carrier):
        carrier.fake.login_delay = 0.05

        async def many():
            return await asyncio.gather(*(carrier.get_token() for _ in range(5)))

        assert set(_run(many())) == {"tok-1"}
        assert carrier.fake.logins == 1

    def test_rejected_token_triggers_one_reauthentication(self, carrier):
        carrier.fake.responses["/courier/assign/awb"] = [
            CarrierAPIError("Unauthenticated", status=401),
            {"awb_assign_status": 1},
        ]

        result = _run(carrier.assign_awb(101, 7))

        assert result == {"awb_assign_status": 1}
        assert carrier.fake.logins == 2
        auth_headers = [h for m, p, h in carrier.fake.calls if p == "/courier/assign/awb"]
        assert auth_headers == ["Bearer tok-1", "Bearer tok-2"]

    def test_second_rejection_is_raised(self, carrier):
        carrier.fake.responses["/courier/assign/awb"] = [
            CarrierAPIError("Unauthenticated", status=401),
            CarrierAPIError("Unauthenticated", status=401),
        ]
        with pytest.raises(CarrierAPIError) as exc:
            _run(carrier.assign_awb(101, 7))
        assert exc.value.status == 401

    def test_login_without_token_raises(self, db, clock, monkeypatch):
        connector = ShiprocketConnector(clock=clock)

        async def no_token(*args, **kwargs):
            return {"message": "Invalid credentials"}

        monkeypatch.setattr(connector, "_request", no_token)
        with pytest.raises(CarrierAPIError):
            _run(connector.get_token())
        assert db.get(CachedCredential, CARRIER_NAME) is None

    def test_missing_credentials(self, db, clock):
        settings = Settings(shiprocket_email=None, shiprocket_password=None)
        connector = ShiprocketConnector(settings=settings, clock=clock)
        with pytest.raises(CarrierNotConfigured):
            _run(connector.get_token())
