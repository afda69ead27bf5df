# orchestrator.py
# Master setup sequence.
#
# The Orchestrator is the only place that decides what runs next. Steps are
# passive: they run their phases and report an ExitCode. State between
# invocations lives entirely in marker files, so a re-run resumes at the
# first step without one.
#
# Control flow:
#   master marker? → progress → for each step: marker? skip : run
#   → 0/2 continue, 1 abort, 3 reboot prompt and stop
#   → master marker → summary

import time
from collections.abc import Callable

from rich.prompt import Confirm

from so101_toolkit import display
from so101_toolkit.config import SetupConfig
from so101_toolkit.lerobot_env import SetupLerobotStep
from so101_toolkit.markers import MASTER_MARKER, MarkerStore
from so101_toolkit.models import ExitCode, StepRecord
from so101_toolkit.pytorch_env import SetupPytorchStep
from so101_toolkit.rocm import InstallRocmStep
from so101_toolkit.shell import CommandError, Shell
from so101_toolkit.step import SetupStep
from so101_toolkit.system_check import VerifySystemStep

STEP_CLASSES: list[type[SetupStep]] = [
    VerifySystemStep,
    InstallRocmStep,
    SetupPytorchStep,
    SetupLerobotStep,
]

RESUME_COMMAND = "so101-setup"
REBOOT_DELAY_SECONDS = 5


def _confirm(question: str) -> bool:
    return Confirm.ask(question, default=False)


def prompt_reboot(shell: Shell, confirm: Callable[[str], bool] = _confirm, resume_hint: str = RESUME_COMMAND) -> None:
    """
    Ask the operator to reboot now or later.

    Rebooting now waits REBOOT_DELAY_SECONDS (Ctrl+C cancels) and calls
    `sudo reboot`. Either way the caller stops and reports REBOOT_REQUIRED.
    """
    display.reboot_required(resume_hint)
    if not confirm("Do you want to reboot now?"):
        display.info("Reboot deferred")
        display.warning("Remember to reboot and re-run setup!")
        return

    display.info(f"Rebooting in {REBOOT_DELAY_SECONDS} seconds... (Ctrl+C to cancel)")
    time.sleep(REBOOT_DELAY_SECONDS)
    try:
        shell.run(["reboot"], sudo=True)
    except CommandError as exc:
        display.error(f"Reboot failed: {exc}")
        display.warning("Please reboot manually and re-run setup.")


class Orchestrator:
    """
    Runs the setup steps in fixed order.

    Example:
        orchestrator = Orchestrator(SetupConfig())
        exit_code = orchestrator.run()
    """

    def __init__(
        self,
        config: SetupConfig,
        shell: Shell | None = None,
        steps: list[SetupStep] | None = None,
        confirm: Callable[[str], bool] = _confirm,
    ) -> None:
        self.config = config
        self.shell = shell or Shell()
        self.markers = MarkerStore(config.log_dir)
        self.steps = steps if steps is not None else [cls(config, self.markers, self.shell) for cls in STEP_CLASSES]
        self.confirm = confirm
        self.records: list[StepRecord] = []

    # ------------------------------------------------------------------
    # Progress
    # ------------------------------------------------------------------

    def completed_markers(self) -> set[str]:
        return self.markers.completed([step.info.marker for step in self.steps])

    def check_progress(self) -> bool:
        """Print per-step status. True when every step has its marker."""
        done = self.completed_markers()
        display.progress([step.info for step in self.steps], done)
        return len(done) == len(self.steps)

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    def run_step(self, step: SetupStep) -> ExitCode:
        display.step_start(step.info)

        if self.markers.exists(step.info.marker):
            display.step_skipped(step.info)
            self.records.append(
                StepRecord(number=step.info.number, name=step.info.name, exit_code=ExitCode.ALREADY_DONE, skipped=True)
            )
            return ExitCode.ALREADY_DONE

        exit_code = step.run()
        messages = {
            ExitCode.SUCCESS: "completed successfully",
            ExitCode.ALREADY_DONE: "already configured",
            ExitCode.FAILURE: "failed",
            ExitCode.REBOOT_REQUIRED: "completed; reboot required",
        }
        self.records.append(
            StepRecord(
                number=step.info.number,
                name=step.info.name,
                exit_code=exit_code,
                message=messages[exit_code],
            )
        )
        return exit_code

    def summary_lines(self) -> list[str]:
        c = self.config
        return [
            f"Ubuntu {c.ubuntu_release} LTS verified",
            f"ROCm {c.rocm_version} installed",
            f"PyTorch {c.pytorch_version} with ROCm {c.pytorch_rocm} configured",
            f"LeRobot {c.lerobot_version} installed",
        ]

    def finish(self) -> ExitCode:
        if not self.markers.exists(MASTER_MARKER):
            self.markers.create(MASTER_MARKER, "Master setup completed")
        display.run_summary(self.records)
        display.setup_complete(self.summary_lines(), self.markers.log_dir)
        display.next_steps(
            "To start using LeRobot:",
            [
                f"1. conda activate {self.config.conda_env}",
                f"2. cd {self.config.lerobot_checkout}",
                "3. Follow the LeRobot documentation: https://huggingface.co/docs/lerobot/index",
            ],
        )
        return ExitCode.SUCCESS

    def run(self) -> ExitCode:
        if self.markers.exists(MASTER_MARKER):
            display.warning("Master setup already completed!")
            display.info(f"Marker file: {self.markers.path(MASTER_MARKER)}")
            if not self.confirm("Do you want to check progress and continue anyway?"):
                display.info("Nothing to do")
                return ExitCode.SUCCESS

        if self.check_progress():
            display.success("All steps already completed!")
            return self.finish()

        for step in self.steps:
            exit_code = self.run_step(step)

            if exit_code == ExitCode.FAILURE:
                display.run_summary(self.records)
                display.halt(
                    f"Setup failed at Step {step.info.number} ({step.info.name})",
                    remedy="Please fix the issues above and run this command again.",
                )
                return ExitCode.FAILURE

            if exit_code == ExitCode.REBOOT_REQUIRED:
                display.run_summary(self.records)
                prompt_reboot(self.shell, self.confirm)
                return ExitCode.REBOOT_REQUIRED

        return self.finish()
