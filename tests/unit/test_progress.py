from __future__ import annotations

from pathlib import Path
from unittest.mock import MagicMock, patch

from detail_import.services.progress import ProgressTracker, is_tty_enabled


def test_progress_disabled_without_tty():
    with patch("detail_import.services.progress.is_tty_enabled", return_value=False):
        tracker = ProgressTracker(2)
    assert tracker.enabled is False
    assert tracker.pbar is None
    tracker.start_file(Path("a.xlsx"))
    tracker.finish_file(success=False)
    tracker.set_postfix(imported=0)
    tracker.close()
    assert tracker.current_file == 1
    assert tracker.failed_files == 1


def test_progress_updates_bar_with_tty():
    bar = MagicMock()
    with patch("detail_import.services.progress.is_tty_enabled", return_value=True), patch(
        "detail_import.services.progress.tqdm", return_value=bar
    ):
        with ProgressTracker(1, description="Importing") as tracker:
            tracker.start_file(Path("order.xlsx"))
            bar.set_description.assert_called_with("Importing (order.xlsx)")
            tracker.finish_file()
            tracker.set_postfix(imported=2)
    bar.update.assert_called_once_with(1)
    bar.set_postfix.assert_called_once_with(failed=0, imported=2)
    bar.close.assert_called_once()


def test_is_tty_enabled_reflects_stdout():
    with patch("sys.stdout") as out:
        out.isatty.return_value = False
        assert is_tty_enabled() is False
