# step.py
# The setup step contract.
#
# A step owns its phases; SetupStep.run() owns the order:
#   existing? → prerequisites → actions → verification → marker → exit code
#
# Phases signal failure by raising StepError (or letting CommandError from
# the shell escape). run() converts both into ExitCode.FAILURE and never
# writes a marker for a failed attempt.

from so101_toolkit import display
from so101_toolkit.config import SetupConfig
from so101_toolkit.markers import MarkerStore
from so101_toolkit.models import ExitCode, StepInfo
from so101_toolkit.shell import CommandError, Shell


class StepError(Exception):
    """Raised by a step phase to abort the step with a diagnostic."""

    def __init__(self, message: str, remedy: str | None = None) -> None:
        self.remedy = remedy
        super().__init__(message)


class SetupStep:
    """
    Base class for one idempotent unit of setup work.

    Subclasses set `info` and implement the phase hooks. Everything a phase
    does to the machine must be safe to repeat after a partial failure.
    """

    info: StepInfo
    requires_reboot: bool = False

    def __init__(self, config: SetupConfig, markers: MarkerStore, shell: Shell | None = None) -> None:
        self.config = config
        self.markers = markers
        self.shell = shell or Shell()

    # ------------------------------------------------------------------
    # Phase hooks
    # ------------------------------------------------------------------

    def is_satisfied(self) -> bool:
        """Confirm a previously marked step still holds. Default: trust the marker."""
        return True

    def check_prerequisites(self) -> None:
        pass

    def perform(self) -> None:
        raise NotImplementedError

    def verify(self) -> None:
        pass

    def marker_text(self) -> str:
        return f"{self.info.name} completed"

    def marker_extra(self) -> list[str]:
        return []

    def next_hint(self) -> str | None:
        return None

    # ------------------------------------------------------------------
    # Driver
    # ------------------------------------------------------------------

    @property
    def marker_path(self):
        return self.markers.path(self.info.marker)

    def already_done(self) -> bool:
        if not self.markers.exists(self.info.marker):
            return False
        display.warning(f"{self.info.name} marker found: {self.marker_path}")
        if self.is_satisfied():
            return True
        display.warning("Recorded state no longer matches this machine; running the step again.")
        self.markers.reset(self.info.marker)
        return False

    def run(self) -> ExitCode:
        display.header(self.info.name)

        if self.already_done():
            display.step_already_done(self.info, self.marker_path)
            return ExitCode.ALREADY_DONE

        try:
            display.info("Checking prerequisites...")
            self.check_prerequisites()
            self.perform()
            display.info(f"Verifying {self.info.name.lower()}...")
            self.verify()
        except StepError as exc:
            display.step_failed(self.info, str(exc), exc.remedy)
            return ExitCode.FAILURE
        except CommandError as exc:
            display.step_failed(self.info, str(exc), "Check the run log for the command output.")
            return ExitCode.FAILURE

        self.markers.create(self.info.marker, self.marker_text(), self.marker_extra())
        display.step_completed(self.info, self.marker_path)

        hint = self.next_hint()
        if hint:
            display.info(hint)

        if self.requires_reboot:
            return ExitCode.REBOOT_REQUIRED
        return ExitCode.SUCCESS
