# conda.py
# Helpers for running commands inside the named conda environment.
#
# `conda run -n <env>` replaces shell-level activation, so every call is a
# single blocking subprocess.

from so101_toolkit.shell import Shell


def env_exists(shell: Shell, env: str) -> bool:
    listing = shell.capture(["conda", "env", "list"]) or ""
    for line in listing.splitlines():
        if line.startswith("#"):
            continue
        fields = line.split()
        if fields and fields[0] == env:
            return True
    return False


def in_env(env: str, *cmd: str) -> list[str]:
    return ["conda", "run", "--no-capture-output", "-n", env, *cmd]


def python_eval(shell: Shell, env: str, code: str) -> str | None:
    """Run `python -c code` in the env; stripped stdout, or None on failure."""
    return shell.capture(in_env(env, "python", "-c", code))


def pip_version(shell: Shell, env: str, package: str) -> str | None:
    """Version reported by `pip show` inside the env, or None if absent."""
    report = shell.capture(in_env(env, "pip", "show", package))
    for line in (report or "").splitlines():
        key, _, value = line.partition(":")
        if key.strip() == "Version":
            return value.strip()
    return None


def conda_package_version(shell: Shell, env: str, package: str) -> str | None:
    listing = shell.capture(["conda", "list", "-n", env, f"^{package}$"]) or ""
    for line in listing.splitlines():
        fields = line.split()
        if len(fields) >= 2 and fields[0] == package:
            return fields[1]
    return None
