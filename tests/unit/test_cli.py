"""
Unit tests for CLI commands.

The orchestrator is patched so no command reaches the Anthropic API.
"""
import json
import sys
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from sqlalchemy import inspect

from platewise.cli import analyze, init_db, main
from platewise.database import Base
from platewise.services.analysis_schemas import AnalysisMetadata, NutritionGoal
from platewise.services.tool_invoker import RateLimitError
from tests.factories import JPEG_BYTES, make_result


def patched_orchestrator(side_effect=None):
    orchestrator = MagicMock()
    orchestrator.analyze = AsyncMock(
        return_value=(make_result(), AnalysisMetadata(tool_calls=1)),
        side_effect=side_effect,
    )
    factory = MagicMock()
    factory.with_claude.return_value = orchestrator
    return factory, orchestrator


class TestInitDb:
    def test_creates_tables(self, test_engine):
        Base.metadata.drop_all(test_engine)

        with patch("platewise.cli.engine", test_engine), patch("builtins.print") as mock_print:
            init_db()

        tables = inspect(test_engine).get_table_names()
        assert "analysis_records" in tables
        assert "nutrition_profiles" in tables
        assert "Database initialized" in str(mock_print.call_args)


class TestAnalyze:
    def test_prints_result_json(self):
        factory, orchestrator = patched_orchestrator()

        with patch("platewise.cli.AnalysisOrchestrator", factory), patch(
            "builtins.print"
        ) as mock_print:
            analyze(text="two eggs on toast", goal="muscle_gain")

        request = orchestrator.analyze.call_args.args[0]
        assert request.transcript == "two eggs on toast"
        assert request.user_context.goal is NutritionGoal.MUSCLE_GAIN
        output = json.loads(mock_print.call_args.args[0])
        assert output["result"]["mealName"] == "Grilled Chicken Rice Bowl"
        assert output["metadata"]["toolCalls"] == 1

    def test_reads_image_file(self, tmp_path):
        image_path = tmp_path / "meal.jpg"
        image_path.write_bytes(JPEG_BYTES)
        factory, orchestrator = patched_orchestrator()

        with patch("platewise.cli.AnalysisOrchestrator", factory), patch("builtins.print"):
            analyze(image_path=str(image_path))

        assert orchestrator.analyze.call_args.args[0].image == JPEG_BYTES

    def test_missing_image_file(self, tmp_path):
        with patch("builtins.print") as mock_print, pytest.raises(SystemExit) as exc_info:
            analyze(image_path=str(tmp_path / "missing.jpg"))

        assert exc_info.value.code == 1
        assert "not found" in str(mock_print.call_args)

    def test_analysis_error_exits(self):
        factory, _ = patched_orchestrator(side_effect=RateLimitError("slow down"))

        with patch("platewise.cli.AnalysisOrchestrator", factory), patch(
            "builtins.print"
        ) as mock_print, pytest.raises(SystemExit) as exc_info:
            analyze(text="pizza")

        assert exc_info.value.code == 1
        assert "RateLimitError" in str(mock_print.call_args)


class TestMain:
    def test_analyze_requires_input(self):
        with patch.object(sys, "argv", ["platewise", "analyze"]), patch(
            "builtins.print"
        ) as mock_print, pytest.raises(SystemExit) as exc_info:
            main()

        assert exc_info.value.code == 1
        assert "--image and/or --text" in str(mock_print.call_args)

    def test_dispatches_analyze(self):
        with patch.object(
            sys, "argv", ["platewise", "analyze", "--text", "oatmeal", "--goal", "better_sleep"]
        ), patch("platewise.cli.analyze") as mock_analyze:
            main()

        mock_analyze.assert_called_once_with(None, "oatmeal", "better_sleep")

    def test_dispatches_init_db(self):
        with patch.object(sys, "argv", ["platewise", "init-db"]), patch(
            "platewise.cli.init_db"
        ) as mock_init:
            main()

        mock_init.assert_called_once()

    def test_no_command_prints_help(self):
        with patch.object(sys, "argv", ["platewise"]), pytest.raises(SystemExit) as exc_info:
            main()

        assert exc_info.value.code == 1
