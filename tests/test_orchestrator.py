from unittest.mock import MagicMock, patch

from conftest import CountingStep, FakeShell
from so101_toolkit.markers import MASTER_MARKER
from so101_toolkit.models import ExitCode
from so101_toolkit.orchestrator import STEP_CLASSES, Orchestrator, prompt_reboot


def _orchestrator(setup_config, outcomes=None, reboot_at=None, confirm=None):
    shell = FakeShell()
    orch = Orchestrator(setup_config, shell=shell, steps=[], confirm=confirm or MagicMock(return_value=False))
    outcomes = outcomes or {}
    orch.steps = [
        CountingStep(
            setup_config,
            orch.markers,
            shell,
            number=n,
            outcome=outcomes.get(n, "ok"),
            reboot=(n == reboot_at),
        )
        for n in range(1, 5)
    ]
    return orch


# ---------------------------------------------------------------------------
# Sequencing
# ---------------------------------------------------------------------------


def test_default_steps_are_in_setup_order(setup_config):
    orch = Orchestrator(setup_config, shell=FakeShell())
    assert [type(s) for s in orch.steps] == STEP_CLASSES
    assert [s.info.number for s in orch.steps] == [1, 2, 3, 4]
    assert [s.info.marker for s in orch.steps] == [
        ".step_01_complete",
        ".step_02_complete",
        ".step_03_complete",
        ".step_04_complete",
    ]


def test_full_run_creates_all_markers(setup_config):
    orch = _orchestrator(setup_config)
    assert orch.run() == ExitCode.SUCCESS
    assert all(step.performed == 1 for step in orch.steps)
    assert orch.markers.exists(MASTER_MARKER)


def test_failure_aborts_remaining_steps(setup_config):
    orch = _orchestrator(setup_config, outcomes={2: "step_error"})
    assert orch.run() == ExitCode.FAILURE
    assert [s.performed for s in orch.steps] == [1, 1, 0, 0]
    assert not orch.markers.exists(MASTER_MARKER)


def test_rerun_resumes_at_first_step_without_marker(setup_config):
    first = _orchestrator(setup_config, outcomes={3: "command_error"})
    assert first.run() == ExitCode.FAILURE

    second = _orchestrator(setup_config)
    assert second.run() == ExitCode.SUCCESS
    assert [s.performed for s in second.steps] == [0, 0, 1, 1]
    skipped = [r.number for r in second.records if r.skipped]
    assert skipped == [1, 2]


def test_deleted_marker_reruns_only_that_step(setup_config):
    _orchestrator(setup_config).run()
    orch = _orchestrator(setup_config, confirm=MagicMock(return_value=True))
    orch.markers.reset(".step_03_complete")

    assert orch.run() == ExitCode.SUCCESS
    assert [s.performed for s in orch.steps] == [0, 0, 1, 0]


# ---------------------------------------------------------------------------
# Reboot handling
# ---------------------------------------------------------------------------


def test_reboot_required_defers_remaining_steps(setup_config):
    confirm = MagicMock(return_value=False)
    orch = _orchestrator(setup_config, reboot_at=2, confirm=confirm)

    assert orch.run() == ExitCode.REBOOT_REQUIRED
    assert [s.performed for s in orch.steps] == [1, 1, 0, 0]
    assert orch.markers.exists(".step_02_complete")
    assert ["sudo", "reboot"] not in orch.shell.ran
    confirm.assert_called_once()

    resumed = _orchestrator(setup_config, reboot_at=2)
    assert resumed.run() == ExitCode.SUCCESS
    assert [s.performed for s in resumed.steps] == [0, 0, 1, 1]


@patch("so101_toolkit.orchestrator.time.sleep")
def test_prompt_reboot_now_calls_sudo_reboot(mock_sleep):
    shell = FakeShell()
    prompt_reboot(shell, confirm=MagicMock(return_value=True))
    mock_sleep.assert_called_once()
    assert shell.ran == [["sudo", "reboot"]]


# ---------------------------------------------------------------------------
# Master marker
# ---------------------------------------------------------------------------


def test_master_marker_decline_exits_without_running(setup_config):
    orch = _orchestrator(setup_config, confirm=MagicMock(return_value=False))
    orch.markers.create(MASTER_MARKER, "Master setup completed")

    assert orch.run() == ExitCode.SUCCESS
    assert all(step.performed == 0 for step in orch.steps)


def test_all_markers_present_short_circuits(setup_config):
    orch = _orchestrator(setup_config)
    for step in orch.steps:
        orch.markers.create(step.info.marker, "done")

    assert orch.run() == ExitCode.SUCCESS
    assert all(step.performed == 0 for step in orch.steps)
    assert orch.markers.exists(MASTER_MARKER)
