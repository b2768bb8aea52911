import unittest

from ws_fakes import make_snapshot

from quotefeed.schemas.session import CloseReason, SessionPhase, SessionResult
from quotefeed.services.quote_cache import QuoteCache, QuoteIngestWorker


class TestQuoteCache(unittest.TestCase):
    def test_upsert_keeps_latest_per_instrument(self):
        cache = QuoteCache()
        cache.upsert(make_snapshot(timestamp=1))
        cache.upsert(make_snapshot(timestamp=2))
        cache.upsert(make_snapshot(instrument_id="8984", timestamp=3))

        self.assertEqual(cache.get("945629").timestamp, 2)
        self.assertEqual(len(cache.list_all()), 2)
        self.assertEqual([r.instrument_id for r in cache.list_many(["8984", "missing", "945629"])], ["8984", "945629"])

    def test_clear(self):
        cache = QuoteCache()
        cache.upsert(make_snapshot())
        cache.clear()

        self.assertIsNone(cache.get("945629"))
        self.assertEqual(cache.list_all(), [])


class TestQuoteIngestWorker(unittest.TestCase):
    def setUp(self):
        self.worker = QuoteIngestWorker(QuoteCache(), stale_after_sec=10)

    def test_on_snapshot_updates_cache_and_status(self):
        self.worker.on_snapshot(make_snapshot(timestamp=100))
        self.worker.on_snapshot(make_snapshot(timestamp=105))

        self.assertEqual(self.worker.cache.get("945629").timestamp, 105)
        status = self.worker.session_statuses()[0]
        self.assertEqual(status.snapshots, 2)
        self.assertEqual(status.last_snapshot_ts, 105)

    def test_quote_view_marks_freshness(self):
        snapshot = make_snapshot(timestamp=100)

        fresh = self.worker.quote_view(snapshot, now=105)
        stale = self.worker.quote_view(snapshot, now=111)
        future = self.worker.quote_view(snapshot, now=90)

        self.assertEqual(fresh["state"], "HEALTHY")
        self.assertEqual(fresh["freshness_sec"], 5.0)
        self.assertEqual(fresh["instrument_id"], "945629")
        self.assertEqual(fresh["turnover_numeric"], 21503)
        self.assertEqual(stale["state"], "STALE")
        self.assertEqual(future["freshness_sec"], 0.0)

    def test_session_state_tracks_phase_and_close_reason(self):
        self.worker.sync_session_state(instrument_id="945629", phase=SessionPhase.STREAMING)
        self.assertEqual(self.worker.metrics(now=0)["sessions_streaming"], 1)

        result = SessionResult(instrument_id="945629", reason=CloseReason.END_OF_STREAM, detail="peer closed")
        self.worker.sync_session_state(instrument_id="945629", phase=SessionPhase.CLOSED, result=result)

        status = self.worker.session_statuses()[0]
        self.assertEqual(status.phase, SessionPhase.CLOSED)
        self.assertEqual(status.last_reason, CloseReason.END_OF_STREAM)
        self.assertEqual(status.last_detail, "peer closed")

    def test_statuses_are_copies(self):
        self.worker.sync_session_state(instrument_id="945629", phase=SessionPhase.STREAMING)

        self.worker.session_statuses()[0].phase = SessionPhase.CLOSED

        self.assertEqual(self.worker.session_statuses()[0].phase, SessionPhase.STREAMING)

    def test_metrics(self):
        self.worker.on_snapshot(make_snapshot(timestamp=100))
        self.worker.on_snapshot(make_snapshot(instrument_id="8984", timestamp=80))
        self.worker.sync_session_state(instrument_id="945629", phase=SessionPhase.STREAMING)
        self.worker.sync_session_state(
            instrument_id="8984",
            phase=SessionPhase.CLOSED,
            result=SessionResult(instrument_id="8984", reason=CloseReason.TRANSPORT_ERROR),
        )
        self.worker.sync_reconnect(instrument_id="8984", reconnect_count=2, last_error="ws dropped")

        metrics = self.worker.metrics(now=100)

        self.assertEqual(
            metrics,
            {
                "cached_instruments": 2,
                "stale_instruments": 1,
                "snapshots_received": 2,
                "last_snapshot_ts": 80,
                "sessions_streaming": 1,
                "sessions_closed": 1,
                "reconnect_count": 2,
            },
        )

    def test_reset(self):
        self.worker.on_snapshot(make_snapshot())
        self.worker.sync_reconnect(instrument_id="945629", reconnect_count=1, last_error=None)

        self.worker.reset()

        self.assertEqual(self.worker.session_statuses(), [])
        self.assertEqual(self.worker.metrics(now=0)["snapshots_received"], 0)
        self.assertIsNone(self.worker.cache.get("945629"))


if __name__ == "__main__":
    unittest.main()
