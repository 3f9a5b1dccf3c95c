"""Unit tests for the console room view and debug log."""

import re

from vadrelay.client.ui import ConsoleRoomView, DebugLog


class TestDebugLog:
    """Test DebugLog."""

    def test_lines_are_timestamped(self) -> None:
        """Lines are stamped HH:MM:SS."""
        log = DebugLog()
        line = log.log("Socket connected")
        assert re.fullmatch(r"\d{2}:\d{2}:\d{2}: Socket connected", line)
        assert log.lines == [line]

    def test_history_is_bounded(self) -> None:
        """Only the most recent lines are kept."""
        log = DebugLog(max_lines=3)
        for i in range(5):
            log.log(f"line {i}")
        assert len(log) == 3
        assert log.lines[0].endswith("line 2")


class TestConsoleRoomView:
    """Test ConsoleRoomView."""

    def test_meter_update(self) -> None:
        """Meter percent and band follow the energy reading."""
        view = ConsoleRoomView()
        view.add_user("a", "Alice")

        view.update_meter("a", -20.0)
        assert view.users["a"].meter_percent == 100.0
        assert view.users["a"].meter_band == "high"

        view.update_meter("a", -55.0)
        assert view.users["a"].meter_percent == 12.5
        assert view.users["a"].meter_band == "low"

    def test_missing_meter_target_skipped(self) -> None:
        """Updates for unknown identities change nothing."""
        view = ConsoleRoomView()
        view.update_meter("ghost", -20.0)
        view.update_meter(None, -20.0)
        assert view.users == {}

    def test_user_list_management(self) -> None:
        """Users are added, removed and cleared."""
        view = ConsoleRoomView()
        view.add_user("a", "Alice")
        view.add_user("b", "Bob")
        view.remove_user("a")
        view.remove_user("missing")
        assert list(view.users) == ["b"]

        view.clear_users()
        assert view.users == {}

    def test_render(self) -> None:
        """Rendering lists speaking users with a marker."""
        view = ConsoleRoomView()
        view.add_user("a", "Alice")
        view.set_speaking("a", True)
        view.update_meter("a", -40.0)

        rendered = view.render()
        assert rendered.startswith("* Alice")
        assert "mid" in rendered
