"""
Tests for the command line interface.
"""

from unittest.mock import AsyncMock, MagicMock

from click.testing import CliRunner

import main
import vectorfeed.processing.consumer as consumer_module


class TestConsumeCommand:

    def test_interrupt_stops_cleanly(self, monkeypatch):
        consumer = MagicMock()
        consumer.run_forever = AsyncMock(side_effect=KeyboardInterrupt)
        monkeypatch.setattr(consumer_module, "QueueConsumer", MagicMock(return_value=consumer))

        result = CliRunner().invoke(main.cli, ["consume"])

        assert result.exit_code == 0
        assert "Aborted!" not in result.output
        consumer.run_forever.assert_awaited_once()

    def test_once_processes_single_batch(self, monkeypatch):
        from vectorfeed.processing.pipeline import BatchResult

        consumer = MagicMock()
        consumer.run_once = AsyncMock(return_value=BatchResult())
        monkeypatch.setattr(consumer_module, "QueueConsumer", MagicMock(return_value=consumer))

        result = CliRunner().invoke(main.cli, ["consume", "--once"])

        assert result.exit_code == 0
        consumer.run_once.assert_awaited_once_with(None)
        consumer.run_forever.assert_not_called()
