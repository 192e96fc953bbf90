"""Tests for the sliding-window admission controller."""

import threading
from types import SimpleNamespace

import pytest

from shortener.admission import AdmissionController, client_identity


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def controller(clock: FakeClock) -> AdmissionController:
    return AdmissionController(max_requests=5, window_seconds=60, clock=clock)


def test_allows_max_requests_then_denies(controller: AdmissionController) -> None:
    results = [controller.check("1.2.3.4") for _ in range(5)]
    assert results == [True] * 5
    assert controller.check("1.2.3.4") is False
    assert controller.check("1.2.3.4") is False


def test_allows_again_after_window(controller: AdmissionController, clock: FakeClock) -> None:
    for _ in range(5):
        controller.check("1.2.3.4")
    assert controller.check("1.2.3.4") is False

    clock.advance(61)

    assert controller.check("1.2.3.4") is True
    for _ in range(4):
        assert controller.check("1.2.3.4") is True
    assert controller.check("1.2.3.4") is False


def test_window_does_not_slide_on_denied_requests(controller: AdmissionController, clock: FakeClock) -> None:
    for _ in range(5):
        controller.check("1.2.3.4")
    clock.advance(30)
    assert controller.check("1.2.3.4") is False
    clock.advance(31)
    assert controller.check("1.2.3.4") is True


def test_identities_are_independent(controller: AdmissionController) -> None:
    for _ in range(5):
        controller.check("a")
    assert controller.check("a") is False
    assert controller.check("b") is True
    assert len(controller) == 2


def test_retry_after(controller: AdmissionController, clock: FakeClock) -> None:
    assert controller.retry_after("nobody") == 0
    controller.check("a")
    clock.advance(20.5)
    assert controller.retry_after("a") == 40


def test_reset_clears_state(controller: AdmissionController) -> None:
    for _ in range(6):
        controller.check("a")
    controller.reset()
    assert len(controller) == 0
    assert controller.check("a") is True


def test_closed_windows_pruned_past_threshold(clock: FakeClock) -> None:
    controller = AdmissionController(max_requests=5, window_seconds=60, clock=clock, prune_threshold=3)
    for identity in ("a", "b", "c"):
        controller.check(identity)
    assert len(controller) == 3

    clock.advance(30)
    controller.check("d")
    assert len(controller) == 4

    clock.advance(31)
    assert controller.check("e") is True
    assert len(controller) == 2
    assert controller.retry_after("a") == 0
    assert controller.retry_after("d") >= 1


def test_concurrent_checks_admit_exactly_max() -> None:
    controller = AdmissionController(max_requests=100, window_seconds=3600)
    admitted = []
    lock = threading.Lock()

    def worker() -> None:
        local = sum(controller.check("shared") for _ in range(50))
        with lock:
            admitted.append(local)

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert sum(admitted) == 100


def _request(headers: dict[str, str] | None = None, host: str | None = "10.0.0.1") -> SimpleNamespace:
    client = SimpleNamespace(host=host) if host else None
    return SimpleNamespace(headers=headers or {}, client=client)


def test_client_identity_uses_peer_address() -> None:
    assert client_identity(_request()) == "10.0.0.1"


def test_client_identity_ignores_forwarded_header_by_default() -> None:
    request = _request({"x-forwarded-for": "203.0.113.7, 10.0.0.2"})
    assert client_identity(request) == "10.0.0.1"


def test_client_identity_trusts_forwarded_header_when_enabled() -> None:
    request = _request({"x-forwarded-for": "203.0.113.7, 10.0.0.2"})
    assert client_identity(request, trust_forwarded=True) == "203.0.113.7"


def test_client_identity_unknown() -> None:
    assert client_identity(_request(host=None)) == "unknown"
