"""Tests for the debounced login status prober."""

from __future__ import annotations

from renda_portal.errors import BackendError
from renda_portal.policy.login_status import LoginStatus
from renda_portal.prober import Debouncer, LoginStatusProber


class TestDebouncer:
    def test_only_last_call_fires(self, fake_timers):
        seen = []
        d = Debouncer(0.5, seen.append, timer_factory=fake_timers)
        for ch in "abc":
            d.call(ch)
        for t in fake_timers.created:
            t.fire()
        assert seen == ["c"]
        assert all(t.interval == 0.5 for t in fake_timers.created)

    def test_cancel(self, fake_timers):
        seen = []
        d = Debouncer(0.5, seen.append, timer_factory=fake_timers)
        d.call("a")
        d.cancel()
        for t in fake_timers.created:
            t.fire()
        assert seen == []
        assert d.pending is False

    def test_flush_runs_pending_now(self, fake_timers):
        seen = []
        d = Debouncer(0.5, seen.append, timer_factory=fake_timers)
        d.call("a")
        d.flush()
        assert seen == ["a"]
        fake_timers.created[0].fire()
        assert seen == ["a"]


class TestLoginStatusProber:
    def _make(self, backend, fake_timers) -> LoginStatusProber:
        return LoginStatusProber(backend, delay_sec=0.5, timer_factory=fake_timers)

    def test_typing_burst_issues_one_probe_for_settled_value(self, backend, fake_timers):
        prober = self._make(backend, fake_timers)
        email = "ana@example.com"
        for i in range(1, len(email) + 1):
            prober.on_email_change(email[:i])
        for t in fake_timers.created:
            t.fire()

        probes = [c for c in backend.calls if c[0] == "check_login_allowed"]
        assert probes == [("check_login_allowed", email)]
        assert prober.status is not None

    def test_email_is_trimmed(self, backend, fake_timers):
        prober = self._make(backend, fake_timers)
        prober.on_email_change("  ana@example.com  ")
        prober.flush()
        assert backend.calls == [("check_login_allowed", "ana@example.com")]

    def test_empty_email_clears_without_call(self, backend, fake_timers):
        prober = self._make(backend, fake_timers)
        backend.failed["ana@example.com"] = 3
        prober.on_email_change("ana@example.com")
        prober.flush()
        assert prober.show_challenge is True

        prober.on_email_change("   ")
        assert prober.status is None
        assert prober.show_challenge is False
        assert backend.count("check_login_allowed") == 1

    def test_signup_mode_clears_and_skips_probe(self, backend, fake_timers):
        prober = self._make(backend, fake_timers)
        prober.on_email_change("ana@example.com")
        prober.flush()
        assert prober.status is not None

        prober.set_login_mode(False)
        assert prober.status is None
        prober.on_email_change("ana@example.com")
        for t in fake_timers.created:
            t.fire()
        assert backend.count("check_login_allowed") == 1

    def test_transport_error_keeps_previous_status(self, backend, fake_timers):
        prober = self._make(backend, fake_timers)
        prober.on_email_change("ana@example.com")
        prober.flush()
        before = prober.status

        def boom(email):
            raise BackendError("connection reset")

        backend.check_login_allowed = boom
        prober.on_email_change("ana@example.com")
        prober.flush()
        assert prober.status is before

    def test_stale_response_is_discarded(self, backend, fake_timers):
        prober = self._make(backend, fake_timers)
        original = backend.check_login_allowed
        fresh = LoginStatus(failed_count=0, remaining_attempts=5)

        def slow_then_overtaken(email):
            if email == "old@example.com":
                # A newer probe lands while this one is still in flight
                backend.check_login_allowed = lambda e: fresh
                prober.probe_now("new@example.com")
                return LoginStatus(failed_count=4, remaining_attempts=1)
            return original(email)

        backend.check_login_allowed = slow_then_overtaken
        prober.on_email_change("old@example.com")
        prober.flush()
        assert prober.status is fresh

    def test_probe_now_bypasses_debounce(self, backend, fake_timers):
        prober = self._make(backend, fake_timers)
        prober.on_email_change("ana@example.com")
        status = prober.probe_now("ana@example.com")
        assert status is prober.status
        for t in fake_timers.created:
            t.fire()
        assert backend.count("check_login_allowed") == 1
