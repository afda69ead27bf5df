import subprocess

import pytest

from so101_toolkit.config import SetupConfig
from so101_toolkit.markers import MarkerStore
from so101_toolkit.models import StepInfo
from so101_toolkit.shell import CommandError, Shell
from so101_toolkit.step import SetupStep, StepError


class FakeShell(Shell):
    """
    In-memory stand-in for Shell.

    outputs: {tuple(cmd): stdout} returned by capture(); missing → None
    on_path: executables which() reports as present
    failing: {tuple(cmd)} that run() reports as exit code 1
    """

    def __init__(self, outputs=None, on_path=(), failing=()):
        self.outputs = {tuple(k): v for k, v in (outputs or {}).items()}
        self.on_path = set(on_path)
        self.failing = {tuple(c) for c in failing}
        self.ran: list[list[str]] = []

    def run(self, cmd, *, sudo=False, check=True):
        if sudo:
            cmd = ["sudo", *cmd]
        self.ran.append(list(cmd))
        code = 1 if tuple(cmd) in self.failing else 0
        if check and code:
            raise CommandError(list(cmd), code)
        return subprocess.CompletedProcess(cmd, code, stdout="")

    def capture(self, cmd):
        return self.outputs.get(tuple(cmd))

    def which(self, name):
        return name in self.on_path


class CountingStep(SetupStep):
    """Configurable step that counts how often its action ran."""

    def __init__(self, config, markers, shell=None, number=1, outcome="ok", reboot=False):
        super().__init__(config, markers, shell or FakeShell())
        self.info = StepInfo(number=number, name=f"Dummy {number}", marker=f".step_{number:02d}_complete")
        self.requires_reboot = reboot
        self.outcome = outcome
        self.performed = 0

    def perform(self):
        self.performed += 1
        if self.outcome == "step_error":
            raise StepError("prerequisite missing", remedy="install it")
        if self.outcome == "command_error":
            raise CommandError(["false"], 1)

    def verify(self):
        if self.outcome == "verify_error":
            raise StepError("verification failed")


@pytest.fixture
def setup_config(tmp_path):
    home = tmp_path / "home"
    home.mkdir()
    return SetupConfig(log_dir=tmp_path / "logs", home=home, download_dir=tmp_path)


@pytest.fixture
def markers(setup_config):
    return MarkerStore(setup_config.log_dir)


@pytest.fixture
def fake_shell():
    return FakeShell()


ENV_VARS = (
    "HF_USER",
    "HF_TOKEN",
    "TS_11_REPO",
    "TS_30_REPO",
    "TS_COMBO_REPO",
    "TS_SPLIT",
    "DATASET_11_PATH",
    "DATASET_30_PATH",
    "ARM_CAMERA_DEVICE",
    "ARM_CAMERA_FPS",
    "CAMERA_WIDTH",
    "CAMERA_HEIGHT",
)


@pytest.fixture
def env_file(tmp_path, monkeypatch):
    """Point SO101_ENV_FILE at a (not yet written) .env under tmp_path."""
    # setenv first so values loaded from a .env are rolled back too
    for var in ENV_VARS:
        monkeypatch.setenv(var, "")
        monkeypatch.delenv(var)
    path = tmp_path / ".env"
    monkeypatch.setenv("SO101_ENV_FILE", str(path))
    monkeypatch.setenv("SO101_LOG_DIR", str(tmp_path / "logs"))
    return path
