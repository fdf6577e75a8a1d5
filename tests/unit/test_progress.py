from __future__ import annotations

import order_migrator.services.progress as progress_mod
from order_migrator.services.progress import ProgressTracker


def test_no_bar_outside_tty(monkeypatch):
    monkeypatch.setattr(progress_mod, "is_tty_enabled", lambda: False)
    with ProgressTracker(3, description="orders") as tracker:
        tracker.advance()
        tracker.advance()
        tracker.set_postfix(ok=2, err=0)
    assert tracker.pbar is None
    assert tracker.current_row == 2


def test_bar_tracks_rows_on_tty(monkeypatch):
    monkeypatch.setattr(progress_mod, "is_tty_enabled", lambda: True)
    tracker = ProgressTracker(3, description="customers")
    assert tracker.pbar is not None
    tracker.advance(2)
    assert tracker.pbar.n == 2
    tracker.close()
    assert tracker.pbar is None
    assert tracker.current_row == 2
