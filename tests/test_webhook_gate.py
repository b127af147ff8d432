# flake8: noqa
import threading
import time

import pytest
from limits.storage import MemoryStorage

from ldt_gateway.commons.errors import (
    AuthenticationError,
    EmptyPayloadError,
    ForbiddenSourceError,
    RateLimitError,
    UnsupportedMediaTypeError,
)
from ldt_gateway.security.webhook_gate import (
    RateLimiter,
    SourceAllowList,
    WebhookGate,
    body_hash,
    sign_body,
)

from tests.samples import LINES_SAMPLE

SECRET = "test-secret"
NOW = 1_700_000_000.0
BODY = LINES_SAMPLE.encode("utf-8")


class FakeClock:
    def __init__(self, t: float = NOW):
        self.t = t

    def __call__(self) -> float:
        return self.t


def _ts(clock: FakeClock, offset_sec: float = 0) -> str:
    return str(int((clock() + offset_sec) * 1000))


def _gate(clock=None, **kw) -> WebhookGate:
    clock = clock or FakeClock()
    return WebhookGate(secret=SECRET, clock=clock, **kw)


def _admit(gate, clock, raw=BODY, offset_sec=0, content_type="text/plain", **kw):
    ts = kw.pop("timestamp", None) or _ts(clock, offset_sec)
    sig = kw.pop("signature", None) or sign_body(SECRET, ts, raw)
    return gate.admit(raw, content_type=content_type, timestamp=ts, signature=sig, **kw)


def test_valid_delivery_is_admitted():
    clock = FakeClock()
    decision = _admit(_gate(clock), clock)
    assert not decision.duplicate
    assert decision.body_hash == body_hash(BODY)


def test_missing_secret_refuses_to_start():
    with pytest.raises(ValueError):
        WebhookGate(secret="")


def test_flipped_signature_bit_is_rejected():
    clock = FakeClock()
    ts = _ts(clock)
    sig = sign_body(SECRET, ts, BODY)
    flipped = sig[:-1] + ("0" if sig[-1] != "0" else "1")
    with pytest.raises(AuthenticationError) as exc:
        _admit(_gate(clock), clock, timestamp=ts, signature=flipped)
    assert exc.value.status_code == 401


def test_flipped_body_byte_is_rejected():
    clock = FakeClock()
    ts = _ts(clock)
    sig = sign_body(SECRET, ts, BODY)
    tampered = BODY[:5] + bytes([BODY[5] ^ 1]) + BODY[6:]
    assert len(tampered) == len(BODY) and tampered != BODY
    with pytest.raises(AuthenticationError):
        _admit(_gate(clock), clock, raw=tampered, timestamp=ts, signature=sig)


def test_signature_over_other_body_is_rejected():
    clock = FakeClock()
    ts = _ts(clock)
    with pytest.raises(AuthenticationError):
        _admit(_gate(clock), clock, raw=BODY + b"x", timestamp=ts, signature=sign_body(SECRET, ts, BODY))


def test_uppercase_hex_signature_is_accepted():
    clock = FakeClock()
    ts = _ts(clock)
    sig = "sha256=" + sign_body(SECRET, ts, BODY).split("=", 1)[1].upper()
    assert not _admit(_gate(clock), clock, timestamp=ts, signature=sig).duplicate


def test_timestamp_window():
    clock = FakeClock()
    gate = _gate(clock)
    with pytest.raises(AuthenticationError):
        _admit(gate, clock, offset_sec=-6 * 60)
    with pytest.raises(AuthenticationError):
        _admit(gate, clock, offset_sec=6 * 60)
    assert not _admit(gate, clock, offset_sec=-4 * 60).duplicate


@pytest.mark.parametrize(
    "timestamp,signature",
    [(None, "sha256=" + "a" * 64), ("1700000000000", None), ("", "")],
)
def test_missing_headers_are_rejected(timestamp, signature):
    gate = _gate()
    with pytest.raises(AuthenticationError):
        gate.admit(BODY, content_type="text/plain", timestamp=timestamp, signature=signature)


@pytest.mark.parametrize(
    "timestamp,signature",
    [
        ("abc", "sha256=" + "a" * 64),
        ("\u00b2", "sha256=" + "a" * 64),
        ("1" * 17, "sha256=" + "a" * 64),
        ("1700000000000", "md5=abc"),
        ("1700000000000", "sha256=zz"),
    ],
)
def test_malformed_headers_are_rejected(timestamp, signature):
    gate = _gate()
    with pytest.raises(AuthenticationError):
        gate.admit(BODY, content_type="text/plain", timestamp=timestamp, signature=signature)


def test_media_type_and_empty_body_checks():
    clock = FakeClock()
    gate = _gate(clock)
    with pytest.raises(UnsupportedMediaTypeError) as exc:
        _admit(gate, clock, content_type="application/xml")
    assert exc.value.status_code == 415
    with pytest.raises(UnsupportedMediaTypeError):
        _admit(gate, clock, content_type=None)
    with pytest.raises(EmptyPayloadError) as exc:
        _admit(gate, clock, raw=b"  \r\n ")
    assert exc.value.status_code == 400
    assert not _admit(gate, clock, content_type="application/vnd.lab+json; charset=utf-8").duplicate


def test_replay_is_reported_as_duplicate_and_release_allows_retry():
    clock = FakeClock()
    gate = _gate(clock)
    ts = _ts(clock)
    first = _admit(gate, clock, timestamp=ts)
    second = _admit(gate, clock, timestamp=ts)
    assert not first.duplicate
    assert second.duplicate
    gate.release(first.replay_key)
    assert not _admit(gate, clock, timestamp=ts).duplicate


def test_replay_cache_expires():
    clock = FakeClock()
    gate = _gate(clock, tolerance_sec=3600, replay_ttl_sec=600)
    ts = _ts(clock)
    assert not _admit(gate, clock, timestamp=ts).duplicate
    clock.t += 601
    assert not _admit(gate, clock, timestamp=ts).duplicate


def test_idempotency_key_dedupes_across_timestamps():
    clock = FakeClock()
    gate = _gate(clock)
    assert not _admit(gate, clock, idempotency_key="delivery-1").duplicate
    clock.t += 5
    assert _admit(gate, clock, idempotency_key="delivery-1").duplicate
    assert not _admit(gate, clock, idempotency_key="delivery-2").duplicate


def test_rate_limit_per_source():
    clock = FakeClock()
    limiter = RateLimiter(limit=2, storage=MemoryStorage())
    gate = _gate(clock, rate_limiter=limiter)
    _admit(gate, clock, source="10.0.0.1", idempotency_key="a")
    _admit(gate, clock, source="10.0.0.1", idempotency_key="b")
    with pytest.raises(RateLimitError) as exc:
        _admit(gate, clock, source="10.0.0.1", idempotency_key="c")
    assert exc.value.status_code == 429
    # otro origen tiene su propio contador
    _admit(gate, clock, source="10.0.0.2", idempotency_key="d")
    # ventana nueva
    limiter.reset()
    _admit(gate, clock, source="10.0.0.1", idempotency_key="e")


def test_rate_limit_window_expires():
    limiter = RateLimiter(limit=1, per="second")
    assert limiter.hit("10.0.0.1")
    assert not limiter.hit("10.0.0.1")
    time.sleep(1.1)
    assert limiter.hit("10.0.0.1")


def test_rate_limit_disabled():
    limiter = RateLimiter(limit=0)
    assert all(limiter.hit("10.0.0.1") for _ in range(100))


def test_rate_limit_counts_unauthenticated_requests():
    clock = FakeClock()
    gate = _gate(clock, rate_limiter=RateLimiter(limit=1))
    with pytest.raises(AuthenticationError):
        gate.admit(BODY, content_type="text/plain", timestamp=None, signature=None, source="1.2.3.4")
    with pytest.raises(RateLimitError):
        _admit(gate, clock, source="1.2.3.4")


def test_concurrent_replays_admit_exactly_one():
    clock = FakeClock()
    gate = _gate(clock, rate_limiter=RateLimiter(limit=0))
    ts = _ts(clock)
    barrier = threading.Barrier(16)
    decisions = []

    def deliver():
        barrier.wait()
        decisions.append(_admit(gate, clock, timestamp=ts))

    threads = [threading.Thread(target=deliver) for _ in range(16)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert len(decisions) == 16
    assert sum(1 for d in decisions if not d.duplicate) == 1


def test_allow_list():
    allow = SourceAllowList(["10.0.0.0/8", "192.168.1.5"])
    assert allow.allows("10.1.2.3")
    assert allow.allows("::ffff:10.1.2.3")
    assert allow.allows("192.168.1.5")
    assert not allow.allows("192.168.1.6")
    assert not allow.allows("testclient")
    assert SourceAllowList([]).allows("anything")

    clock = FakeClock()
    gate = _gate(clock, allow_list=allow)
    with pytest.raises(ForbiddenSourceError) as exc:
        _admit(gate, clock, source="172.16.0.1")
    assert exc.value.status_code == 403
    assert not _admit(gate, clock, source="10.0.0.9").duplicate
