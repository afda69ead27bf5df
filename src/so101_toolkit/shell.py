# shell.py
# Blocking subprocess wrapper. Every external tool the toolkit drives
# (apt, amdgpu-install, conda, pip, git, v4l2-ctl) goes through Shell.
#
# No timeouts, no retries. Output streams to the console and the run log.

import shutil
import subprocess

from so101_toolkit import display


class CommandError(Exception):
    """Raised when a checked command exits non-zero or cannot be started."""

    def __init__(self, cmd: list[str], returncode: int, output: str = "") -> None:
        self.cmd = cmd
        self.returncode = returncode
        self.output = output
        super().__init__(f"Command failed with exit code {returncode}: {' '.join(cmd)}")


class Shell:
    """
    Thin facade over subprocess.

    run(): execute, echo the command, stream output, raise on failure when check=True
    capture(): execute quietly and return stripped stdout, or None on failure
    which(): PATH lookup
    """

    def run(self, cmd: list[str], *, sudo: bool = False, check: bool = True) -> subprocess.CompletedProcess:
        if sudo:
            cmd = ["sudo", *cmd]
        display.command(cmd)
        try:
            proc = subprocess.Popen(
                cmd,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                bufsize=1,
            )
        except FileNotFoundError as exc:
            raise CommandError(cmd, 127, str(exc)) from exc

        # Long installs (apt, amdgpu-install, pip) stream as they run.
        lines: list[str] = []
        with proc:
            for line in proc.stdout:
                line = line.rstrip("\n")
                lines.append(line)
                display.output(line)
        output = "\n".join(lines)

        if check and proc.returncode != 0:
            raise CommandError(cmd, proc.returncode, output)
        return subprocess.CompletedProcess(cmd, proc.returncode, stdout=output)

    def capture(self, cmd: list[str]) -> str | None:
        try:
            result = subprocess.run(
                cmd,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
            )
        except FileNotFoundError:
            return None
        if result.returncode != 0:
            return None
        return result.stdout.strip()

    def which(self, name: str) -> bool:
        return shutil.which(name) is not None
