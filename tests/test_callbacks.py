import io
import logging
from unittest.mock import patch

from bgm_exporter.callbacks import LoggingObserver, NoOpObserver, ProcessPhase, TqdmObserver


class TestProcessPhase:
    def test_phase_order(self):
        assert list(ProcessPhase) == [
            ProcessPhase.BEGIN,
            ProcessPhase.READING_INDEX,
            ProcessPhase.HASHING,
            ProcessPhase.COLLECTING,
            ProcessPhase.SAVING_MANIFEST,
            ProcessPhase.EXPORTING,
        ]


class TestNoOpObserver:
    def test_accepts_every_event(self):
        observer = NoOpObserver()
        observer.pre_phase(ProcessPhase.BEGIN)
        observer.process_begin(3)
        observer.process_progress(3, 1, 0, False)
        observer.process_nonfatal_error(1, "boom")
        observer.process_complete(3, 1)
        observer.post_phase(ProcessPhase.BEGIN)


class TestLoggingObserver:
    def test_logs_errors_as_warnings(self, caplog):
        observer = LoggingObserver(logging.getLogger("test.observer"))
        with caplog.at_level(logging.INFO, logger="test.observer"):
            observer.pre_phase(ProcessPhase.HASHING)
            observer.process_progress(2, 1, 5, True)
            observer.process_nonfatal_error(7, "decode failed")

        messages = [r.getMessage() for r in caplog.records]
        assert "Phase hashing started" in messages
        assert "[1/2] item 5 skipped" in messages
        warning = [r for r in caplog.records if r.levelno == logging.WARNING]
        assert warning[0].getMessage() == "Item 7 failed: decode failed"


class TestTqdmObserver:
    def test_bar_tracks_completed_count(self):
        observer = TqdmObserver(file=io.StringIO())
        observer.pre_phase(ProcessPhase.EXPORTING)
        observer.process_begin(3)
        bar = observer._bar
        assert bar.desc.startswith("Exporting tracks")

        observer.process_progress(3, 1, 0, False)
        observer.process_progress(3, 3, 2, True)
        assert bar.n == 3

        observer.process_complete(3, 0)
        assert observer._bar is None

    def test_collects_errors(self):
        observer = TqdmObserver(file=io.StringIO())
        observer.pre_phase(ProcessPhase.HASHING)
        observer.process_begin(2)
        with patch.object(observer._bar, "write") as write:
            observer.process_nonfatal_error(4, "unreadable")
        write.assert_called_once()
        assert observer.errors == [(4, "unreadable")]
