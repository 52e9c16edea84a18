"""Tests for the CLI entry point (``python -m tickwatch``)."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest

from tickwatch.__main__ import main
from tickwatch.config import Settings
from tickwatch.scheduler.errors import RegistrationError

MODULE = "tickwatch.__main__"


@pytest.fixture()
def settings() -> Settings:
    return Settings(_env_file=None, log_level="WARNING")


class TestNextCommand:
    def test_prints_next_instants(
        self, settings: Settings, capsys: pytest.CaptureFixture[str]
    ) -> None:
        with patch(f"{MODULE}.get_settings", return_value=settings):
            code = main(["next", "0 9 * * 1", "--from", "2024-01-01T10:00:00+00:00", "-n", "2"])

        assert code == 0
        assert capsys.readouterr().out.splitlines() == [
            "2024-01-08T09:00:00+00:00",
            "2024-01-15T09:00:00+00:00",
        ]

    def test_naive_reference_uses_configured_timezone(
        self, capsys: pytest.CaptureFixture[str]
    ) -> None:
        settings = Settings(_env_file=None, timezone="UTC")
        with patch(f"{MODULE}.get_settings", return_value=settings):
            main(["next", "*/15 * * * *", "--from", "2024-01-01T00:07:00", "-n", "1"])

        assert capsys.readouterr().out.strip() == "2024-01-01T00:15:00+00:00"

    def test_invalid_expression_exits_2(self, settings: Settings) -> None:
        with patch(f"{MODULE}.get_settings", return_value=settings):
            assert main(["next", "70 * * * *"]) == 2

    def test_non_ascii_digit_exits_2(self, settings: Settings) -> None:
        with patch(f"{MODULE}.get_settings", return_value=settings):
            assert main(["next", "² * * * *"]) == 2

    def test_unschedulable_expression_exits_2(self, settings: Settings) -> None:
        with patch(f"{MODULE}.get_settings", return_value=settings):
            assert main(["next", "0 0 31 2 *", "--from", "2024-01-01T00:00:00"]) == 2

    def test_count_must_be_positive(self, settings: Settings) -> None:
        with patch(f"{MODULE}.get_settings", return_value=settings):
            with pytest.raises(SystemExit) as exc_info:
                main(["next", "* * * * *", "-n", "0"])
        assert exc_info.value.code == 2

    def test_bad_reference(self, settings: Settings) -> None:
        with patch(f"{MODULE}.get_settings", return_value=settings):
            with pytest.raises(SystemExit) as exc_info:
                main(["next", "* * * * *", "--from", "yesterday"])
        assert exc_info.value.code == 2


class TestServeCommand:
    def test_dispatches_to_serve(self, settings: Settings) -> None:
        with patch(f"{MODULE}.get_settings", return_value=settings):
            with patch("tickwatch.scheduler.runner.serve") as mock_serve:
                assert main(["serve"]) == 0
        mock_serve.assert_called_once_with(settings)

    def test_registration_error_exits_2(self, settings: Settings) -> None:
        failing = MagicMock(side_effect=RegistrationError("Job 'x' is already registered"))
        with patch(f"{MODULE}.get_settings", return_value=settings):
            with patch("tickwatch.scheduler.runner.serve", failing):
                assert main(["serve"]) == 2

    def test_command_required(self) -> None:
        with pytest.raises(SystemExit):
            main([])
