"""
Concurrent commands on one gallery.

A recurring payment and a clock sweep that arrive together for the same
gallery must not interleave: whichever runs second sees the state the
first committed.  The interleaving is forced by pausing the first command
inside its lifecycle evaluation, while it holds the gallery, and checking
that the second command waits.

Run alone with:
    pytest tests/concurrency -v -m slow_locks
"""

import itertools
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta

import pytest

from commission_kernel.domain.dtos import AccountStatus, CommandStatus, EntryKind
from commission_kernel.services.gallery_locks import GalleryLockRegistry
from commission_services import lifecycle_engine
from commission_services.lifecycle_engine import LifecycleEngine
from tests.conftest import CLIENT, PARTNER, T0, months_after

pytestmark = pytest.mark.slow_locks

WAIT_SECONDS = 10


@pytest.fixture
def pause_first_evaluation(monkeypatch):
    """
    Arm a gate that blocks the next lifecycle evaluation until released.

    Calling the fixture returns ``(entered, release)`` events; evaluations
    after the first pass straight through.
    """

    def _arm():
        entered = threading.Event()
        release = threading.Event()
        original = lifecycle_engine.evaluate_clock
        calls = itertools.count()

        def gated(**kwargs):
            if next(calls) == 0:
                entered.set()
                release.wait(WAIT_SECONDS)
            return original(**kwargs)

        monkeypatch.setattr(lifecycle_engine, "evaluate_clock", gated)
        return entered, release

    return _arm


class TestForcedInterleaving:

    def test_payment_waits_for_clock_sweep(self, lifecycle, paid_gallery, pause_first_evaluation):
        gallery_id = paid_gallery()
        entered, release = pause_first_evaluation()
        sweep_at = months_after(2)
        paid_at = sweep_at + timedelta(hours=1)

        with ThreadPoolExecutor(max_workers=2) as pool:
            sweep = pool.submit(lifecycle.advance_clock, gallery_id, sweep_at)
            assert entered.wait(WAIT_SECONDS)

            payment = pool.submit(lifecycle.record_recurring_payment, gallery_id, 800, paid_at)
            time.sleep(0.2)
            assert not payment.done()

            release.set()
            sweep_result = sweep.result(WAIT_SECONDS)
            payment_result = payment.result(WAIT_SECONDS)

        assert sweep_result.account.status is AccountStatus.INACTIVE
        assert payment_result.status is CommandStatus.APPLIED
        assert payment_result.account.status is AccountStatus.ACTIVE
        # The payment saw the sweep's inactive state, not the stale active one.
        assert [(t.from_status, t.to_status) for t in payment_result.transitions] == [
            (AccountStatus.INACTIVE, AccountStatus.ACTIVE),
        ]

        account = lifecycle.get_billing_account(gallery_id)
        assert account.status is AccountStatus.ACTIVE
        assert account.period_end == paid_at + (months_after(3) - months_after(2))

        log = [(t.from_status, t.to_status) for t in lifecycle.transitions_for(gallery_id)]
        assert log[-2:] == [
            (AccountStatus.ACTIVE, AccountStatus.INACTIVE),
            (AccountStatus.INACTIVE, AccountStatus.ACTIVE),
        ]
        recurring = [
            e for e in lifecycle.entries_for(gallery_id, "2025-03")
            if e.kind is EntryKind.RECURRING_COMMISSION
        ]
        assert len(recurring) == 1
        assert recurring[0].recipient_id == PARTNER

    def test_sweep_waits_for_payment(self, lifecycle, paid_gallery, pause_first_evaluation):
        gallery_id = paid_gallery()
        entered, release = pause_first_evaluation()
        paid_at = months_after(1)

        with ThreadPoolExecutor(max_workers=2) as pool:
            payment = pool.submit(lifecycle.record_recurring_payment, gallery_id, 800, paid_at)
            assert entered.wait(WAIT_SECONDS)

            sweep = pool.submit(lifecycle.advance_clock, gallery_id, paid_at + timedelta(days=5))
            time.sleep(0.2)
            assert not sweep.done()

            release.set()
            payment_result = payment.result(WAIT_SECONDS)
            sweep_result = sweep.result(WAIT_SECONDS)

        assert payment_result.status is CommandStatus.APPLIED
        # The sweep saw the extended period and had nothing to do.
        assert sweep_result.status is CommandStatus.NO_CHANGE
        assert lifecycle.get_billing_account(gallery_id).status is AccountStatus.ACTIVE


class TestParallelGalleries:

    def test_independent_galleries_all_apply(self, lifecycle, paid_gallery):
        galleries = [paid_gallery() for _ in range(4)]
        barrier = threading.Barrier(len(galleries))

        def pay(gallery_id):
            barrier.wait(WAIT_SECONDS)
            return lifecycle.record_recurring_payment(gallery_id, 800, months_after(1))

        with ThreadPoolExecutor(max_workers=len(galleries)) as pool:
            results = list(pool.map(pay, galleries))

        assert all(r.status is CommandStatus.APPLIED for r in results)
        for gallery_id in galleries:
            entries = lifecycle.entries_for(gallery_id, "2025-02")
            assert sum(e.amount_cents for e in entries) == 800

    def test_same_gallery_duplicate_upfront_applies_once(self, lifecycle, open_gallery):
        gallery_id = open_gallery()
        barrier = threading.Barrier(3)

        def pay(_):
            barrier.wait(WAIT_SECONDS)
            return lifecycle.record_upfront_payment(gallery_id, 10_000, months_after(0))

        with ThreadPoolExecutor(max_workers=3) as pool:
            results = list(pool.map(pay, range(3)))

        statuses = sorted(r.status.value for r in results)
        assert statuses == ["applied", "rejected", "rejected"]
        assert len(lifecycle.entries_for(gallery_id, "2025-01")) == 2


class TestGalleryLockRegistry:

    def test_reentrant(self):
        locks = GalleryLockRegistry()
        with locks.hold("g1"):
            with locks.hold("g1"):
                assert len(locks) == 1
            assert len(locks) == 1
        assert len(locks) == 0

    def test_idle_locks_are_released(self, session_factory, catalog, settings, clock):
        locks = GalleryLockRegistry()
        engine = LifecycleEngine(session_factory, catalog, settings=settings, clock=clock, locks=locks)
        for n in range(5):
            gallery_id = f"gallery-{n}"
            engine.open_account(gallery_id, CLIENT, "storage_package", PARTNER, T0)
            engine.record_upfront_payment(gallery_id, 10_000, T0)
        swept = engine.advance_clock_all(months_after(2))
        assert len(swept) == 5
        assert len(locks) == 0

    def test_blocks_same_gallery_only(self):
        locks = GalleryLockRegistry()
        held = threading.Event()
        release = threading.Event()

        def holder():
            with locks.hold("g1"):
                held.set()
                release.wait(WAIT_SECONDS)

        thread = threading.Thread(target=holder)
        thread.start()
        assert held.wait(WAIT_SECONDS)

        other_done = threading.Event()
        same_done = threading.Event()

        def take(gallery_id, done):
            with locks.hold(gallery_id):
                done.set()

        threading.Thread(target=take, args=("g2", other_done)).start()
        threading.Thread(target=take, args=("g1", same_done)).start()

        assert other_done.wait(WAIT_SECONDS)
        assert not same_done.wait(0.2)

        release.set()
        assert same_done.wait(WAIT_SECONDS)
        thread.join(WAIT_SECONDS)
