"""Unit tests for pipeline orchestration module."""

import subprocess
from pathlib import Path

import pytest

from fryflow.core.errors import ExecutionError, PreconditionError
from fryflow.core.provenance import ProvenanceRecord
from fryflow.pipeline import (
    PipelineExecutor,
    PipelineLogger,
    RunPlan,
    Stage,
)


class TestStage:
    """Tests for Stage dataclass."""

    def test_create_stage(self):
        """Test creating a basic stage."""
        stage = Stage(
            name="alevin-fry collate",
            stage_id="collate",
            executable="/opt/bin/alevin-fry",
            args=["collate", "-t", 8],
        )
        assert stage.name == "alevin-fry collate"
        assert stage.stage_id == "collate"
        assert stage.executable == Path("/opt/bin/alevin-fry")
        assert stage.args == ("collate", "-t", "8")
        assert stage.inputs == ()

    def test_missing_inputs(self, tmp_path):
        """Test input checking with missing files."""
        stage = Stage(
            name="Test",
            stage_id="test",
            executable="/bin/true",
            inputs=[tmp_path / "nonexistent.fa"],
        )
        assert stage.missing_inputs() == [tmp_path / "nonexistent.fa"]

    def test_missing_inputs_exists(self, tmp_path):
        """Test input checking with existing files."""
        data_file = tmp_path / "ref.fa"
        data_file.write_text(">t1\nACGT\n")

        stage = Stage(name="Test", stage_id="test", executable="/bin/true", inputs=[data_file])
        assert stage.missing_inputs() == []

    def test_missing_outputs(self, tmp_path):
        """Test only the outputs that were not produced are reported."""
        produced = tmp_path / "splici.fa"
        produced.write_text("")
        t2g = tmp_path / "splici_t2g_3col.tsv"
        stage = Stage(name="pyroe make-splici", stage_id="pyroe", executable="/bin/true", outputs=[produced, t2g])
        assert stage.missing_outputs() == [t2g]

    def test_get_command(self):
        """Test command generation."""
        stage = Stage(
            name="Test",
            stage_id="test",
            executable="/opt/bin/piscem",
            args=["build", "-k", "31"],
        )
        assert stage.get_command() == ["/opt/bin/piscem", "build", "-k", "31"]

    def test_command_string_quotes_spaces(self):
        """Test that arguments with spaces are quoted in the command string."""
        stage = Stage(
            name="Test",
            stage_id="test",
            executable="/opt/bin/alevin-fry",
            args=["quant", "-m", "/data/my t2g.tsv"],
        )
        assert stage.command_string() == "/opt/bin/alevin-fry quant -m '/data/my t2g.tsv'"


class TestRunPlan:
    """Tests for RunPlan."""

    def _stage(self, stage_id):
        return Stage(name=stage_id, stage_id=stage_id, executable="/bin/true")

    def test_stage_order(self):
        """Test that stages keep their order."""
        plan = RunPlan.of("quant", "/out", [self._stage("gpl"), self._stage("collate")])
        assert plan.stage_ids() == ["gpl", "collate"]
        assert plan.get_stage("collate").stage_id == "collate"
        assert plan.get_stage("map") is None

    def test_duplicate_stage_ids_rejected(self):
        """Test that a plan cannot contain the same stage twice."""
        with pytest.raises(ValueError, match="Duplicate"):
            RunPlan.of("quant", "/out", [self._stage("gpl"), self._stage("gpl")])

    def test_describe(self):
        """Test plan description lines."""
        plan = RunPlan.of("quant", "/out", [self._stage("gpl")])
        assert plan.describe() == ["gpl: /bin/true"]


class TestPipelineLogger:
    """Tests for PipelineLogger class."""

    def test_init(self, tmp_path):
        """Test logger initialization."""
        logger = PipelineLogger(str(tmp_path / "logs"))
        assert logger.log_dir.exists()
        assert logger.log_file.name.startswith("fryflow_")

    def test_setup_and_close(self, tmp_path):
        """Test handlers are attached by setup and removed by close."""
        logger = PipelineLogger(str(tmp_path / "logs"), log_name="fryflow.test_setup")
        logger.setup()
        assert len(logger.logger.handlers) == 2
        logger.log_stage_start("gpl", "alevin-fry generate-permit-list")
        logger.log_stage_complete("gpl", 1.5)
        logger.close()
        assert logger.logger.handlers == []
        assert "Stage gpl completed successfully in 1.5s" in logger.log_file.read_text()

    def test_context_manager_names_log_after_command(self, tmp_path):
        """Test the log file carries the command name and handlers are detached on exit."""
        with PipelineLogger(tmp_path / "logs", command="quant", log_name="fryflow.test_cm") as run_log:
            run_log.log_plan("quant", ["gpl", "collate", "quant"])
            run_log.log_stage_error("gpl", "Exit code 2")
            run_log.log_run_summary([], 3, 0.4)
        assert run_log.log_file.name.startswith("fryflow_quant_")
        assert run_log.logger.handlers == []
        text = run_log.log_file.read_text()
        assert "gpl -> collate -> quant" in text
        assert "Stage gpl failed: Exit code 2" in text
        assert "0/3 stage(s) completed" in text

    def test_unknown_level(self, tmp_path):
        with pytest.raises(ValueError):
            PipelineLogger(tmp_path / "logs", log_level="chatty")

    def test_format_duration_seconds(self):
        """Test duration formatting for seconds."""
        assert PipelineLogger.format_duration(45.2) == "45.2s"

    def test_format_duration_minutes(self):
        """Test duration formatting for minutes."""
        assert PipelineLogger.format_duration(125) == "2m 5s"

    def test_format_duration_hours(self):
        """Test duration formatting for hours."""
        assert PipelineLogger.format_duration(7300) == "2h 1m"


class TestPipelineExecutor:
    """Tests for PipelineExecutor class."""

    @pytest.fixture
    def record(self, tmp_path) -> ProvenanceRecord:
        return ProvenanceRecord(tmp_path / "log.json")

    def test_init(self):
        """Test executor initialization."""
        executor = PipelineExecutor()
        assert executor.completed_stages == []
        assert executor.runner is subprocess.run

    def test_run_in_order(self, toolbox, record, tmp_path):
        """Test stages run in plan order and are recorded."""
        af = toolbox.paths["alevin_fry"]
        out = tmp_path / "af_quant"
        plan = RunPlan.of(
            "quant",
            tmp_path,
            [
                Stage(name="gpl", stage_id="gpl", executable=af, args=["generate-permit-list", "-o", out]),
                Stage(name="collate", stage_id="collate", executable=af, args=["collate"], inputs=[out]),
            ],
        )
        executor = PipelineExecutor()
        executor.run(plan, record)

        assert executor.completed_stages == ["gpl", "collate"]
        assert [call[1] for call in toolbox.calls()] == ["generate-permit-list", "collate"]
        assert set(record.stages) == {"gpl", "collate"}

    def test_unproduced_output_halts(self, toolbox, record, tmp_path):
        """Test a zero exit without the declared outputs stops the run before the next stage."""
        ref = tmp_path / "ref"
        toolbox.add_outputs("pyroe", ref / "splici_fl86.fa")
        plan = RunPlan.of(
            "index",
            tmp_path,
            [
                Stage(
                    name="pyroe make-splici",
                    stage_id="pyroe",
                    executable=toolbox.paths["pyroe"],
                    args=["make-splici"],
                    outputs=[ref / "splici_fl86.fa", ref / "splici_fl86_t2g_3col.tsv"],
                ),
                Stage(name="salmon index", stage_id="index", executable=toolbox.paths["salmon"], args=["index"]),
            ],
        )
        executor = PipelineExecutor()
        with pytest.raises(PreconditionError, match="did not produce 1 declared output"):
            executor.run(plan, record)

        assert toolbox.called_tools() == ["pyroe"]
        assert executor.completed_stages == []
        assert "pyroe" in record.stages

    def test_halts_on_first_failure(self, toolbox, record, tmp_path):
        """Test that no stage after a failing one is spawned."""
        toolbox.set_exit_status("piscem", 2)
        plan = RunPlan.of(
            "quant",
            tmp_path,
            [
                Stage(name="map", stage_id="map", executable=toolbox.paths["piscem"], args=["map-sc"]),
                Stage(name="gpl", stage_id="gpl", executable=toolbox.paths["alevin_fry"]),
            ],
        )
        executor = PipelineExecutor()
        with pytest.raises(ExecutionError) as excinfo:
            executor.run(plan, record)

        assert excinfo.value.stage == "map"
        assert excinfo.value.exit_status == 2
        assert toolbox.called_tools() == ["piscem"]
        assert "map" in record.stages
        assert executor.completed_stages == []

    def test_missing_input_not_spawned(self, toolbox, record, tmp_path):
        """Test that a stage with a missing input is never spawned."""
        stage = Stage(
            name="collate",
            stage_id="collate",
            executable=toolbox.paths["alevin_fry"],
            inputs=[tmp_path / "absent"],
        )
        with pytest.raises(PreconditionError) as excinfo:
            PipelineExecutor().execute_stage(stage, record)

        assert excinfo.value.stage == "collate"
        assert excinfo.value.missing == [str(tmp_path / "absent")]
        assert toolbox.calls() == []
        assert record.stages == {}

    def test_unstartable_program(self, record, tmp_path):
        """Test a missing executable is an execution error without exit status."""
        stage = Stage(name="ghost", stage_id="ghost", executable=tmp_path / "no-such-tool")
        with pytest.raises(ExecutionError) as excinfo:
            PipelineExecutor().execute_stage(stage, record)
        assert excinfo.value.exit_status is None
        assert "ghost" in record.stages

    def test_custom_runner(self, record):
        """Test that the subprocess runner can be replaced."""
        seen = []

        def runner(cmd, **kwargs):
            seen.append(cmd)
            return subprocess.CompletedProcess(cmd, 0, stdout="", stderr="")

        stage = Stage(name="quant", stage_id="quant", executable="/opt/af", args=["quant"])
        duration = PipelineExecutor(runner=runner).execute_stage(stage, record)
        assert seen == [["/opt/af", "quant"]]
        assert duration >= 0
        assert record.to_dict()["cmd_info"] == {"quant_cmd": "/opt/af quant"}

    def test_failure_reason_from_stderr(self, record):
        """Test the stderr tail is carried on the error."""

        def runner(cmd, **kwargs):
            return subprocess.CompletedProcess(cmd, 1, stdout="", stderr="bad index\n")

        stage = Stage(name="quant", stage_id="quant", executable="/opt/af")
        with pytest.raises(ExecutionError) as excinfo:
            PipelineExecutor(runner=runner).execute_stage(stage, record)
        assert excinfo.value.reason == "bad index"
        assert "Command: /opt/af" in str(excinfo.value)
