# pytorch_env.py
# Step 3: conda environment with a ROCm build of PyTorch.

import os

from so101_toolkit import conda, display
from so101_toolkit.models import StepInfo
from so101_toolkit.step import SetupStep, StepError

MINICONDA_REMEDY = """\
Please install Miniconda first:
  https://www.anaconda.com/docs/getting-started/miniconda/install

Quick install for Linux:
  mkdir -p ~/miniconda3
  wget https://repo.anaconda.com/miniconda/Miniconda3-latest-Linux-x86_64.sh -O ~/miniconda3/miniconda.sh
  bash ~/miniconda3/miniconda.sh -b -u -p ~/miniconda3
  rm ~/miniconda3/miniconda.sh
  ~/miniconda3/bin/conda init bash
  source ~/.bashrc\
"""

TORCH_VERSION = "import torch; print(torch.__version__)"
CUDA_AVAILABLE = "import torch; print(torch.cuda.is_available())"
DEVICE_NAME = "import torch; print(torch.cuda.get_device_name(0))"


class SetupPytorchStep(SetupStep):
    info = StepInfo(number=3, name="PyTorch Setup", marker=".step_03_complete")

    @property
    def expected_prefix(self) -> str:
        return f"{self.config.pytorch_version}+rocm"

    def torch_version(self) -> str | None:
        return conda.python_eval(self.shell, self.config.conda_env, TORCH_VERSION)

    def is_satisfied(self) -> bool:
        if not self.shell.which("conda") or not conda.env_exists(self.shell, self.config.conda_env):
            return False
        version = self.torch_version()
        display.detail(f"Installed PyTorch version: {version or 'none'}")
        if version and version.startswith(self.expected_prefix):
            return True
        display.warning(f"PyTorch version mismatch. Expected {self.expected_prefix}*, got {version}")
        return False

    # ------------------------------------------------------------------
    # Phases
    # ------------------------------------------------------------------

    def check_prerequisites(self) -> None:
        if not self.shell.which("rocm-smi"):
            raise StepError(
                "ROCm is not installed or not in PATH",
                remedy="Run the ROCm installation step first (so101-install-rocm).",
            )
        display.success("ROCm is installed")

        if not self.shell.which("conda"):
            raise StepError("Conda/Miniconda is not installed", remedy=MINICONDA_REMEDY)
        display.success("Conda is installed")
        display.detail(f"Conda version: {self.shell.capture(['conda', '--version']) or 'unknown'}")

    def setup_hsa_override(self) -> None:
        display.info("Setting up HSA_OVERRIDE_GFX_VERSION for Ryzen AI 300 series...")
        bashrc = self.config.home / ".bashrc"
        export_line = f"export HSA_OVERRIDE_GFX_VERSION={self.config.hsa_override}"
        content = bashrc.read_text(encoding="utf-8") if bashrc.exists() else ""
        os.environ["HSA_OVERRIDE_GFX_VERSION"] = self.config.hsa_override

        if "HSA_OVERRIDE_GFX_VERSION" in content:
            if export_line in content:
                display.success(f"HSA_OVERRIDE_GFX_VERSION is already set to {self.config.hsa_override}")
            else:
                display.warning(f"HSA_OVERRIDE_GFX_VERSION is set in {bashrc} with a different value:")
                for line in content.splitlines():
                    if "HSA_OVERRIDE_GFX_VERSION" in line:
                        display.detail(line)
            return

        with bashrc.open("a", encoding="utf-8") as fh:
            fh.write(
                "\n# Set HSA_OVERRIDE_GFX_VERSION for AMD Ryzen AI 300 series (gfx1100 compatible mode)\n"
                f"{export_line}\n"
            )
        display.success(f"Added HSA_OVERRIDE_GFX_VERSION to {bashrc}")

    def setup_conda_env(self) -> None:
        env = self.config.conda_env
        if conda.env_exists(self.shell, env):
            display.info(f"Conda environment '{env}' already exists")
            return
        display.info(f"Creating conda environment '{env}' with Python {self.config.python_version}...")
        self.shell.run(["conda", "create", "-n", env, f"python={self.config.python_version}", "-y"])
        display.success("Conda environment created")

    def install_pytorch(self) -> None:
        display.info(f"Installing PyTorch {self.config.pytorch_version} with ROCm {self.config.pytorch_rocm}...")
        display.warning("This may take several minutes...")
        self.shell.run(
            conda.in_env(
                self.config.conda_env,
                "pip",
                "install",
                f"torch=={self.config.pytorch_version}",
                f"torchvision=={self.config.torchvision_version}",
                f"torchaudio=={self.config.torchaudio_version}",
                "--index-url",
                self.config.pytorch_index_url,
            )
        )
        display.success("PyTorch installation completed")

    def perform(self) -> None:
        self.setup_hsa_override()
        self.setup_conda_env()
        self.install_pytorch()

    def verify(self) -> None:
        version = self.torch_version()
        if version is None:
            raise StepError("Failed to import PyTorch")
        display.detail(f"PyTorch version: {version}")
        if not version.startswith(self.expected_prefix):
            raise StepError(f"PyTorch version mismatch. Expected {self.expected_prefix}*, got {version}")
        display.success("PyTorch version is correct")

        available = conda.python_eval(self.shell, self.config.conda_env, CUDA_AVAILABLE)
        display.detail(f"CUDA available: {available}")
        if available != "True":
            raise StepError(
                "CUDA is not available: PyTorch cannot detect the AMD GPU via ROCm",
                remedy=(
                    "Possible issues:\n"
                    "  1. HSA_OVERRIDE_GFX_VERSION not set correctly\n"
                    "  2. ROCm not properly installed\n"
                    "  3. System needs reboot after ROCm installation"
                ),
            )
        display.success("CUDA is available (ROCm working)")

        device = conda.python_eval(self.shell, self.config.conda_env, DEVICE_NAME) or ""
        display.detail(f"device name [0]: {device}")
        if "AMD Radeon Graphics" in device:
            display.success("AMD Radeon Graphics detected successfully")
        else:
            display.warning(f"Unexpected device name: {device!r} (expected 'AMD Radeon Graphics')")

    def marker_text(self) -> str:
        return f"PyTorch {self.config.pytorch_version} with ROCm {self.config.pytorch_rocm} installed"

    def next_hint(self) -> str | None:
        return "Next step: LeRobot setup (so101-setup-lerobot)"
