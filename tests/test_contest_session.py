import asyncio
import unittest

from contest_proctor.api.schemas import ClientEvent
from contest_proctor.config import FAILED_ROUTE, HOME_ROUTE, RESUME_UPLOAD_ROUTE
from contest_proctor.models.session import SessionState, SuspicionKind
from contest_proctor.services.contest_session import SUBMIT_FAILED_MESSAGE, SessionError
from contest_proctor.services.submitter import SubmitTrigger
from tests.fakes import FakeStore, ManualScheduler, drain_outbox, make_session, of_type

HIDDEN = ClientEvent(type="visibilitychange", hidden=True)


class TestContestSession(unittest.IsolatedAsyncioTestCase):

    def setUp(self):
        self.scheduler = ManualScheduler()
        self.store = FakeStore(score=85)
        self.finished = []
        self.session = make_session(
            self.scheduler, self.store, total_seconds=60, on_finished=self.finished.append
        )

    def mount(self):
        self.session.mount()
        drain_outbox(self.session)

    # ---------------- Auto-fail ---------------- #
    async def test_third_tab_switch_auto_fails_without_submission(self):
        self.mount()
        for second in (5, 10, 10):
            self.scheduler.advance(second)
            self.session.handle_event(HIDDEN)
        self.assertEqual(self.session.state, SessionState.AUTO_FAILED)

        self.scheduler.advance(10)
        self.assertIsNone(self.session.handle_event(HIDDEN))
        self.scheduler.advance(60)
        await self.scheduler.drain()

        self.assertEqual(self.session.state, SessionState.AUTO_FAILED)
        self.assertEqual(self.session.counters[SuspicionKind.TAB_SWITCHES], 3)
        self.assertEqual(self.store.submit_calls, [])
        self.assertFalse(self.session.clock.running)
        self.assertEqual(self.scheduler.pending, 0)

        messages = drain_outbox(self.session)
        screens = of_type(messages, "auto_failed")
        self.assertEqual(len(screens), 1)
        self.assertEqual(screens[0]["actions"], [{"label": "Back to Home", "target": HOME_ROUTE}])
        self.assertEqual(self.finished, [self.session])

    async def test_auto_failed_session_cannot_submit(self):
        self.mount()
        for _ in range(3):
            self.session.handle_event(HIDDEN)
        self.assertIsNone(await self.session.submit())
        self.assertEqual(self.store.submit_calls, [])

    async def test_tab_switch_warning_clears_after_three_seconds(self):
        self.mount()
        self.session.handle_event(HIDDEN)
        self.assertEqual(self.session.warnings, {"tab_switch": "Warning: Tab switch detected (1/3)"})

        self.scheduler.advance(3)
        self.assertEqual(self.session.warnings, {})
        self.assertEqual(len(of_type(drain_outbox(self.session), "warning_cleared")), 1)

    async def test_idle_warning(self):
        session = make_session(self.scheduler, self.store, total_seconds=3600)
        session.mount()
        self.scheduler.advance(300)
        self.assertEqual(session.counters[SuspicionKind.IDLE_WARNINGS], 1)
        self.assertEqual(session.warnings, {"idle": "You've been idle for 5 minutes. Keep coding!"})

    # ---------------- Submission ---------------- #
    async def test_concurrent_submits_reach_store_once(self):
        self.mount()
        results = await asyncio.gather(
            self.session.submit(SubmitTrigger.MANUAL),
            self.session.submit(SubmitTrigger.EXPIRY),
        )
        self.assertEqual(len(self.store.submit_calls), 1)
        self.assertEqual(sum(1 for r in results if r is not None), 1)
        self.assertEqual(self.session.state, SessionState.PASSED)

    async def test_manual_submit_racing_clock_expiry(self):
        self.store.gate = asyncio.Event()
        self.mount()
        self.scheduler.advance(59)

        manual = asyncio.ensure_future(self.session.submit(SubmitTrigger.MANUAL))
        await asyncio.sleep(0)
        self.assertEqual(self.session.state, SessionState.SUBMITTING)

        self.scheduler.advance(1)
        self.assertTrue(self.session.clock.expired)
        self.store.gate.set()
        outcome = await manual
        expiry_results = await self.scheduler.drain()

        self.assertIsNotNone(outcome)
        self.assertEqual(expiry_results, [None])
        self.assertEqual(len(self.store.submit_calls), 1)

    async def test_clock_expiry_submits(self):
        self.mount()
        self.scheduler.advance(60)
        await self.scheduler.drain()

        self.assertEqual(self.session.state, SessionState.PASSED)
        self.assertEqual(self.session.outcome.time_taken_seconds, 60)
        self.assertIn({"type": "time_up"}, drain_outbox(self.session))

    async def test_snapshot_captures_time_code_and_flags(self):
        self.mount()
        self.session.handle_event(ClientEvent(type="code", language="css", value="h1 { color: tan; }"))
        self.session.handle_event(ClientEvent(type="contextmenu"))
        self.scheduler.advance(42)

        outcome = await self.session.submit()
        snapshot, _ = self.store.submit_calls[0]

        self.assertEqual(snapshot.time_taken_seconds, 42)
        self.assertEqual(snapshot.css, "h1 { color: tan; }")
        self.assertEqual(snapshot.flags["rightClicks"], 1)
        self.assertEqual(outcome.flags["rightClicks"], 1)

    async def test_passing_score_routes_to_resume_upload(self):
        self.mount()
        outcome = await self.session.submit()

        self.assertEqual(outcome.score, 85)
        self.assertEqual(self.session.destination, RESUME_UPLOAD_ROUTE)
        navigate = of_type(drain_outbox(self.session), "navigate")
        self.assertEqual(navigate[0]["target"], RESUME_UPLOAD_ROUTE)
        self.assertEqual(navigate[0]["state"]["submission"]["score"], 85)
        self.assertFalse(self.session.mounted)
        self.assertEqual(self.scheduler.pending, 0)

    async def test_failing_score_routes_to_rejection(self):
        self.store.score = 70
        self.mount()
        await self.session.submit()
        self.assertEqual(self.session.state, SessionState.FAILED)
        self.assertEqual(self.session.destination, FAILED_ROUTE)

    async def test_video_upload_failure_does_not_block_submission(self):
        self.store.fail_video = True
        self.mount()
        self.session.recording.append(b"webm-chunk")

        outcome = await self.session.submit()

        self.assertEqual(self.session.state, SessionState.PASSED)
        self.assertIsNone(outcome.video_url)
        self.assertEqual(self.store.video_calls, [b"webm-chunk"])
        self.assertIsNone(self.store.submit_calls[0][1])

    async def test_video_url_is_attached_when_upload_succeeds(self):
        self.mount()
        self.session.recording.append(b"part-1")
        self.session.recording.append(b"part-2")

        outcome = await self.session.submit()

        self.assertEqual(self.store.video_calls, [b"part-1part-2"])
        self.assertEqual(outcome.video_url, "https://cdn.example.com/videos/user-1.webm")

    async def test_no_recording_skips_video_upload(self):
        self.mount()
        outcome = await self.session.submit()
        self.assertEqual(self.store.video_calls, [])
        self.assertIsNone(outcome.video_url)

    async def test_transport_failure_returns_to_active_and_retry_succeeds(self):
        self.store.fail_submit = 1
        self.mount()
        self.scheduler.advance(10)

        self.assertIsNone(await self.session.submit())
        self.assertEqual(self.session.state, SessionState.ACTIVE)
        self.assertIsNone(self.session.destination)
        messages = drain_outbox(self.session)
        self.assertEqual(of_type(messages, "navigate"), [])
        self.assertIn(
            {"type": "notification", "level": "error", "message": SUBMIT_FAILED_MESSAGE}, messages
        )

        self.scheduler.advance(5)
        outcome = await self.session.submit()

        self.assertEqual(self.session.state, SessionState.PASSED)
        self.assertEqual(len(self.store.submit_calls), 2)
        self.assertIs(self.store.submit_calls[0][0], self.store.submit_calls[1][0])
        self.assertEqual(outcome.time_taken_seconds, 10)

    async def test_failure_after_expiry_does_not_restart_clock(self):
        self.store.fail_submit = 1
        self.mount()
        self.scheduler.advance(60)
        await self.scheduler.drain()

        self.assertEqual(self.session.state, SessionState.ACTIVE)
        self.assertTrue(self.session.clock.expired)
        self.assertFalse(self.session.clock.running)
        self.assertEqual(self.session.clock.remaining_seconds, 0)

        self.assertIsNotNone(await self.session.submit())
        self.assertEqual(self.session.state, SessionState.PASSED)

    async def test_tab_switch_during_failed_submission_auto_fails(self):
        self.store.gate = asyncio.Event()
        self.store.fail_submit = 1
        self.mount()
        self.session.handle_event(HIDDEN)
        self.session.handle_event(HIDDEN)

        self.scheduler.advance(60)
        await asyncio.sleep(0)
        self.assertEqual(self.session.state, SessionState.SUBMITTING)

        self.session.handle_event(HIDDEN)
        self.assertEqual(self.session.counters[SuspicionKind.TAB_SWITCHES], 3)
        self.assertEqual(self.session.state, SessionState.SUBMITTING)

        self.store.gate.set()
        self.assertEqual(await self.scheduler.drain(), [None])
        self.assertEqual(self.session.state, SessionState.AUTO_FAILED)
        self.assertEqual(len(of_type(drain_outbox(self.session), "auto_failed")), 1)

        self.assertIsNone(await self.session.submit())
        self.assertEqual(len(self.store.submit_calls), 1)

    async def test_time_taken_is_frozen_at_unmount(self):
        self.mount()
        self.scheduler.advance(10)
        self.session.unmount()
        self.scheduler.advance(7200)

        outcome = await self.session.submit()

        self.assertEqual(outcome.time_taken_seconds, 10)
        self.assertEqual(self.session.elapsed_seconds, 10)

    async def test_time_taken_never_exceeds_duration(self):
        self.store.fail_submit = 1
        self.mount()
        # A late loop can fire the final tick well after the deadline
        self.scheduler.suspend(500)
        self.scheduler.advance(1)
        await self.scheduler.drain()

        self.assertEqual(self.session.state, SessionState.ACTIVE)
        self.assertEqual(self.session.snapshot.time_taken_seconds, 60)

    # ---------------- Events ---------------- #
    async def test_review_and_confirm_through_events(self):
        self.mount()
        self.session.handle_event(ClientEvent(type="keydown", key="v", ctrl=True))

        review = self.session.handle_event(ClientEvent(type="submit_request"))
        self.assertEqual(review["type"], "review")
        self.assertEqual(review["flags"]["copyPasteAttempts"], 1)
        self.assertEqual(review["tab_switch_limit"], 3)

        self.assertIsNone(self.session.handle_event(ClientEvent(type="submit_confirm")))
        await self.scheduler.drain()
        self.assertEqual(self.session.state, SessionState.PASSED)

    async def test_collector_events_are_acknowledged(self):
        self.mount()
        reply = self.session.handle_event(ClientEvent(type="contextmenu"))
        self.assertEqual(reply, {"type": "ack", "event": "contextmenu", "prevent_default": True})
        self.assertEqual(self.session.activity.total(), 1)

    async def test_ticks_are_published(self):
        self.mount()
        self.scheduler.advance(1)
        ticks = of_type(drain_outbox(self.session), "tick")
        self.assertEqual(ticks[0], {"type": "tick", "remaining": 59, "display": "00:59", "level": "critical"})

    # ---------------- Lifecycle ---------------- #
    async def test_unmount_cancels_all_timers(self):
        self.mount()
        self.session.handle_event(HIDDEN)
        self.session.unmount()

        self.assertEqual(self.scheduler.pending, 0)
        self.assertFalse(self.session.clock.running)
        self.assertFalse(self.session.collectors.attached)
        self.assertFalse(self.session.renderer.attached)
        self.assertIsNone(self.session.handle_event(ClientEvent(type="blur")))

        self.scheduler.advance(1000)
        self.assertEqual(self.session.counters[SuspicionKind.IDLE_WARNINGS], 0)

    async def test_mount_only_once(self):
        self.mount()
        self.session.unmount()
        with self.assertRaises(SessionError):
            self.session.mount()

    async def test_reset_for_fresh_attempt(self):
        self.mount()
        with self.assertRaises(SessionError):
            self.session.reset()

        await self.session.submit()
        self.session.reset()

        self.assertEqual(self.session.state, SessionState.ACTIVE)
        self.assertEqual(set(self.session.counters.snapshot().values()), {0})
        self.assertIsNone(self.session.outcome)
        self.assertEqual(self.session.view()["clock"]["display"], "01:00")
        self.assertEqual(self.session.elapsed_seconds, 0)
        self.session.mount()
        self.assertTrue(self.session.clock.running)

    async def test_submit_before_mount_is_ignored(self):
        self.assertIsNone(await self.session.submit())
        self.assertEqual(self.store.submit_calls, [])


if __name__ == '__main__':
    unittest.main()
