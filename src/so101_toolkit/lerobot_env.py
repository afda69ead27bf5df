# lerobot_env.py
# Step 4: LeRobot checkout, editable install and the Feetech servo SDK.

from so101_toolkit import conda, display
from so101_toolkit.models import StepInfo
from so101_toolkit.step import SetupStep, StepError

PYTORCH_REMEDY = "Run the PyTorch setup step first (so101-setup-pytorch)."


class SetupLerobotStep(SetupStep):
    info = StepInfo(number=4, name="LeRobot Setup", marker=".step_04_complete")

    def installed_version(self) -> str | None:
        return conda.pip_version(self.shell, self.config.conda_env, "lerobot")

    def is_satisfied(self) -> bool:
        if not self.shell.which("conda"):
            return False
        version = self.installed_version()
        display.detail(f"Installed LeRobot version: {version or 'none'}")
        if version == self.config.lerobot_pip_version:
            return True
        display.warning(f"LeRobot version mismatch. Expected {self.config.lerobot_pip_version}, got {version}")
        return False

    # ------------------------------------------------------------------
    # Phases
    # ------------------------------------------------------------------

    def check_prerequisites(self) -> None:
        env = self.config.conda_env
        if not self.shell.which("conda"):
            raise StepError("Conda is not installed", remedy=PYTORCH_REMEDY)
        display.success("Conda is installed")

        if not conda.env_exists(self.shell, env):
            raise StepError(f"Conda environment '{env}' does not exist", remedy=PYTORCH_REMEDY)
        display.success(f"Conda environment '{env}' exists")

        if conda.python_eval(self.shell, env, "import torch") is None:
            raise StepError(f"PyTorch is not installed in '{env}' environment", remedy=PYTORCH_REMEDY)
        display.success("PyTorch is installed")

        if not self.shell.which("git"):
            raise StepError("Git is not installed", remedy="Please install git: sudo apt install git")
        display.success("Git is installed")

    def install_ffmpeg(self) -> None:
        env = self.config.conda_env
        wanted = self.config.ffmpeg_version
        display.info(f"Installing ffmpeg {wanted} via conda-forge...")
        installed = conda.conda_package_version(self.shell, env, "ffmpeg")
        if installed == wanted:
            display.success(f"ffmpeg {wanted} is already installed")
            return
        if installed:
            display.warning(f"ffmpeg version mismatch. Installed: {installed}, Expected: {wanted}")
        self.shell.run(["conda", "install", "-n", env, f"ffmpeg={wanted}", "-c", "conda-forge", "-y"])
        display.success(f"ffmpeg {wanted} installed")

    def clone(self) -> None:
        checkout = self.config.lerobot_checkout
        url = self.config.lerobot_repo_url
        display.info("Cloning LeRobot repository...")

        if checkout.exists():
            display.warning(f"Directory {checkout} already exists")
            if not (checkout / ".git").is_dir():
                raise StepError(
                    "Directory exists but is not a git repository",
                    remedy=f"Please remove {checkout} and try again",
                )
            remote = self.shell.capture(["git", "-C", str(checkout), "remote", "get-url", "origin"]) or ""
            if remote != url:
                raise StepError(
                    f"Repository has different remote URL: {remote} (expected {url})",
                    remedy=f"Please remove {checkout} and try again",
                )
            display.success("Repository already cloned with correct URL")
            return

        self.shell.run(["git", "clone", url, str(checkout)])
        display.success("LeRobot repository cloned")

    def checkout_version(self) -> None:
        tag = self.config.lerobot_version
        repo = str(self.config.lerobot_checkout)
        display.info(f"Checking out LeRobot {tag}...")

        current = self.shell.capture(["git", "-C", repo, "describe", "--tags", "--exact-match"]) or self.shell.capture(
            ["git", "-C", repo, "rev-parse", "--abbrev-ref", "HEAD"]
        )
        display.detail(f"Current ref: {current}")
        if current == tag:
            display.success(f"Already on {tag}")
            return

        self.shell.run(["git", "-C", repo, "fetch", "--tags"])
        tags = (self.shell.capture(["git", "-C", repo, "tag"]) or "").splitlines()
        if tag not in tags:
            raise StepError(f"Tag {tag} does not exist. Latest tags: {', '.join(tags[-10:])}")

        result = self.shell.run(["git", "-C", repo, "checkout", "-b", tag, tag], check=False)
        if result.returncode != 0:
            # The local branch survives from an earlier attempt.
            display.warning("Branch creation failed, trying direct checkout...")
            self.shell.run(["git", "-C", repo, "checkout", tag])
        display.success(f"Checked out {tag}")

    def perform(self) -> None:
        env = self.config.conda_env
        self.install_ffmpeg()
        self.clone()
        self.checkout_version()

        display.info("Installing LeRobot in editable mode...")
        display.warning("This may take several minutes...")
        self.shell.run(conda.in_env(env, "pip", "install", "-e", str(self.config.lerobot_checkout)))
        display.success("LeRobot installed in editable mode")

        display.info("Installing feetech servo SDK for SO-ARM101...")
        self.shell.run(conda.in_env(env, "pip", "install", "lerobot[feetech]"))
        display.success("Feetech servo SDK installed")

    def verify(self) -> None:
        if conda.python_eval(self.shell, self.config.conda_env, "import lerobot") is None:
            raise StepError("Failed to import lerobot")
        display.success("LeRobot import successful")

        version = self.installed_version()
        display.detail(f"LeRobot version: {version}")
        if version != self.config.lerobot_pip_version:
            raise StepError(f"LeRobot version mismatch. Expected {self.config.lerobot_pip_version}, got {version}")
        display.success(f"LeRobot {self.config.lerobot_version} verified")

    def marker_text(self) -> str:
        return f"LeRobot {self.config.lerobot_version} installed"

    def marker_extra(self) -> list[str]:
        return [f"Installation directory: {self.config.lerobot_checkout}"]
