# rocm.py
# Step 2: install the ROCm stack through amdgpu-install.
#
# The step ends with a marker and a reboot request: the amdgpu driver and
# the new group memberships only take effect after a restart.

import platform
import re
from pathlib import Path

import httpx

from so101_toolkit import display
from so101_toolkit.models import StepInfo
from so101_toolkit.step import SetupStep, StepError
from so101_toolkit.system_check import LSB_RELEASE, free_gb, read_lsb_release

DEB_MAGIC = b"!<arch>\ndebian-binary"
ROCM_INFO_VERSION = Path("/opt/rocm/.info/version")


def rocm_version(report: str | None) -> str | None:
    """Extract 'ROCm version: X.Y.Z' from rocm-smi --version output."""
    if not report:
        return None
    match = re.search(r"ROCm version:\s*([0-9.]+)", report)
    return match.group(1) if match else None


def is_debian_package(path: Path) -> bool:
    with path.open("rb") as fh:
        return fh.read(len(DEB_MAGIC)) == DEB_MAGIC


class InstallRocmStep(SetupStep):
    info = StepInfo(number=2, name="ROCm Installation", marker=".step_02_complete")
    requires_reboot = True

    lsb_path: Path = LSB_RELEASE
    rocm_info_path: Path = ROCM_INFO_VERSION

    def installed_version(self) -> str | None:
        """ROCm version from rocm-smi, else from the version file of the install."""
        if self.shell.which("rocm-smi"):
            version = rocm_version(self.shell.capture(["rocm-smi", "--version"]))
            if version:
                return version
        if self.rocm_info_path.is_file():
            match = re.match(r"\d+(?:\.\d+)*", self.rocm_info_path.read_text(encoding="utf-8").strip())
            if match:
                return match.group(0)
        return None

    def is_satisfied(self) -> bool:
        version = self.installed_version()
        if version is None:
            if not self.shell.which("rocm-smi"):
                display.warning("rocm-smi is not available; ROCm does not appear to be installed.")
                return False
            display.warning("Could not determine the installed ROCm version; keeping the existing marker.")
            return True
        display.detail(f"Installed ROCm version: {version}")
        if not version.startswith(self.config.rocm_series):
            display.warning(f"ROCm is installed but version is {version} (expected {self.config.rocm_series}.x)")
            return False
        return True

    # ------------------------------------------------------------------
    # Phases
    # ------------------------------------------------------------------

    def check_prerequisites(self) -> None:
        lsb = read_lsb_release(self.lsb_path)
        if lsb is None:
            raise StepError("Cannot find /etc/lsb-release. Is this Ubuntu?")
        if lsb.get("DISTRIB_RELEASE") != self.config.ubuntu_release:
            raise StepError(
                f"This step requires Ubuntu {self.config.ubuntu_release}. Detected: {lsb.get('DISTRIB_RELEASE')}"
            )
        display.success(f"Ubuntu {self.config.ubuntu_release} confirmed")

        available = free_gb(self.config.download_dir)
        if available < self.config.rocm_min_tmp_gb:
            raise StepError(
                f"Insufficient disk space in {self.config.download_dir}. "
                f"Need {self.config.rocm_min_tmp_gb}GB, have {available}GB"
            )
        display.success("Sufficient disk space available")

        try:
            httpx.head(f"https://{self.config.rocm_repo_host}/", timeout=10, follow_redirects=True)
        except httpx.HTTPError as exc:
            raise StepError(
                f"Cannot reach {self.config.rocm_repo_host}: {exc}",
                remedy="Check the internet connection and re-run.",
            ) from exc
        display.success("Internet connectivity confirmed")

    def update_system(self) -> None:
        display.info("Updating system packages...")
        kernel = platform.release()
        self.shell.run(["apt", "update"], sudo=True)
        display.info("Installing required kernel headers and modules...")
        self.shell.run(
            ["apt", "install", "-y", f"linux-headers-{kernel}", f"linux-modules-extra-{kernel}"],
            sudo=True,
        )
        display.info("Installing Python setuptools and wheel...")
        self.shell.run(["apt", "install", "-y", "python3-setuptools", "python3-wheel"], sudo=True)
        display.success("System packages updated")

    def add_user_to_groups(self) -> None:
        display.info("Adding user to render and video groups...")
        user = self.shell.capture(["whoami"]) or ""
        groups = (self.shell.capture(["id", "-nG"]) or "").split()
        for group in ("render", "video"):
            if group in groups:
                display.info(f"User {user} already in {group} group")
                continue
            self.shell.run(["usermod", "-a", "-G", group, user], sudo=True)
            display.success(f"Added {user} to {group} group")
        display.warning("Group changes take effect after logout/login or reboot")

    def download_installer(self) -> Path:
        display.info("Downloading amdgpu-install package...")
        target = self.config.download_dir / self.config.amdgpu_install_deb
        if target.exists():
            display.info("Removing old download...")
            target.unlink()

        display.detail(f"Downloading from: {self.config.amdgpu_install_url}")
        try:
            with httpx.stream("GET", self.config.amdgpu_install_url, follow_redirects=True, timeout=None) as response:
                response.raise_for_status()
                with target.open("wb") as fh:
                    for chunk in response.iter_bytes():
                        fh.write(chunk)
        except httpx.HTTPError as exc:
            raise StepError(f"Failed to download amdgpu-install package: {exc}") from exc

        if not is_debian_package(target):
            raise StepError("Downloaded file is not a valid Debian package")
        display.success(f"Downloaded {target.name}")
        return target

    def perform(self) -> None:
        self.update_system()
        self.add_user_to_groups()
        deb = self.download_installer()

        display.info("Installing amdgpu-install package...")
        self.shell.run(["apt", "install", "-y", str(deb)], sudo=True)
        display.success("amdgpu-install package installed")

        display.info(f"Installing ROCm {self.config.rocm_series}.x (this may take several minutes)...")
        # amdgpu-install elevates on its own; it must not be wrapped in sudo.
        self.shell.run(["amdgpu-install", "-y", "--usecase=rocm", "--no-dkms"])
        display.success("ROCm installation completed")

    def verify(self) -> None:
        if not self.shell.which("rocm-smi"):
            raise StepError("rocm-smi command not found after installation")
        display.success("rocm-smi command is available")
        if self.shell.capture(["rocm-smi", "--version"]) is None:
            display.warning("rocm-smi returned an error (may be normal before reboot)")
        else:
            display.success("ROCm tools are functional")

    def marker_text(self) -> str:
        return f"ROCm {self.config.rocm_version} installed"

    def next_hint(self) -> str | None:
        return "After rebooting, continue with PyTorch setup (so101-setup-pytorch)"
