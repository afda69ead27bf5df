# system_check.py
# Step 1: verify the workstation before anything is installed.
#
# Hard checks (OS release, kernel major, disk space) fail the step.
# Everything else is informational: the driver, groups and VRAM are
# fixed up by later steps or by the operator in BIOS.

import platform
import shutil
from pathlib import Path

from so101_toolkit import display
from so101_toolkit.models import StepInfo
from so101_toolkit.step import SetupStep, StepError

LSB_RELEASE = Path("/etc/lsb-release")
VRAM_SYSFS = Path("/sys/class/drm/card0/device/mem_info_vram_total")
GIB = 1024**3


def read_lsb_release(path: Path = LSB_RELEASE) -> dict[str, str] | None:
    """Parse KEY=value lines of an lsb-release file. None if it is missing."""
    if not path.is_file():
        return None
    values: dict[str, str] = {}
    for line in path.read_text(encoding="utf-8").splitlines():
        key, sep, value = line.partition("=")
        if sep:
            values[key.strip()] = value.strip().strip('"')
    return values


def parse_kernel_version(release: str) -> tuple[int, int]:
    parts = release.split("-")[0].split(".")
    try:
        return int(parts[0]), int(parts[1]) if len(parts) > 1 else 0
    except ValueError as exc:
        raise StepError(f"Cannot parse kernel version: {release}") from exc


def free_gb(path: Path) -> int:
    return shutil.disk_usage(path).free // GIB


def check_ubuntu(release: str, codename: str, lsb_path: Path = LSB_RELEASE) -> bool:
    display.info("Checking Ubuntu version...")
    lsb = read_lsb_release(lsb_path)
    if lsb is None:
        display.error(f"Cannot find {lsb_path}. Is this Ubuntu?")
        return False

    display.detail(f"Detected: {lsb.get('DISTRIB_DESCRIPTION', 'unknown')}")
    if lsb.get("DISTRIB_ID") != "Ubuntu":
        display.error(f"This toolkit requires Ubuntu. Detected: {lsb.get('DISTRIB_ID')}")
        return False
    if lsb.get("DISTRIB_RELEASE") != release:
        display.error(f"This toolkit requires Ubuntu {release} LTS. Detected: {lsb.get('DISTRIB_RELEASE')}")
        display.error(f"Please install Ubuntu {release} LTS ({codename}) and try again.")
        return False
    if lsb.get("DISTRIB_CODENAME") != codename:
        display.warning(f"Expected codename '{codename}', got '{lsb.get('DISTRIB_CODENAME')}'")

    display.success(f"Ubuntu {release} LTS detected")
    return True


class VerifySystemStep(SetupStep):
    info = StepInfo(number=1, name="System Verification", marker=".step_01_complete")

    lsb_path: Path = LSB_RELEASE
    vram_path: Path = VRAM_SYSFS

    def kernel_release(self) -> str:
        return platform.release()

    # ------------------------------------------------------------------
    # Individual checks: each returns False only on a hard failure
    # ------------------------------------------------------------------

    def check_kernel(self) -> bool:
        display.info("Checking kernel version...")
        release = self.kernel_release()
        display.detail(f"Detected kernel: {release}")
        major, minor = parse_kernel_version(release)
        want_major, want_minor = self.config.min_kernel

        if major < want_major:
            display.error(f"Kernel version too old. Expected {want_major}.{want_minor}+, got {release}")
            display.error("Please update your kernel and try again.")
            return False
        if major == want_major and minor < want_minor:
            display.warning(f"Kernel version is {release}. Recommended: {want_major}.{want_minor}+")
            display.warning("The setup may still work, but a newer kernel is recommended.")
        else:
            display.success(f"Kernel version {release} is compatible")
        return True

    def check_amdgpu_driver(self) -> bool:
        display.info("Checking amdgpu driver...")
        modules = self.shell.capture(["lsmod"]) or ""
        loaded = [line for line in modules.splitlines() if "amdgpu" in line]
        if not loaded:
            display.warning("amdgpu driver is not currently loaded")
            display.warning("This is normal if ROCm has not been installed yet.")
            display.info("The driver is configured and loaded after ROCm installation and a reboot.")
            return True
        display.success("amdgpu driver is already loaded")
        for line in loaded:
            display.detail(line)
        return True

    def check_user_groups(self) -> bool:
        display.info("Checking user groups (render and video)...")
        groups = (self.shell.capture(["id", "-nG"]) or "").split()
        missing = [g for g in ("render", "video") if g not in groups]
        if not missing:
            display.success("Current user is in both render and video groups")
        else:
            display.warning(f"Current user is missing groups: {' '.join(missing)}")
            display.warning("These groups are added during ROCm installation.")
            display.warning("You will need to log out and back in after installation.")
        return True

    def check_vram(self) -> bool:
        display.info("Checking VRAM allocation (informational)...")
        if self.shell.which("rocm-smi"):
            report = self.shell.capture(["rocm-smi", "--showmeminfo", "vram"])
            for line in (report or "").splitlines():
                display.detail(line)
            return True

        if not self.vram_path.is_file():
            display.warning("Cannot determine VRAM allocation (rocm-smi not installed and sysfs not available)")
            display.warning(f"Please ensure VRAM is set to {self.config.recommended_vram_gb}GB+ in BIOS settings")
            return True

        vram_gb = int(self.vram_path.read_text().strip()) // GIB
        display.info(f"Detected VRAM: {vram_gb}GB")
        if vram_gb < self.config.recommended_vram_gb:
            display.warning(f"VRAM is less than {self.config.recommended_vram_gb}GB (detected: {vram_gb}GB)")
            display.warning("For optimal performance raise it in BIOS:")
            display.warning("  Advanced => GFX Configuration => UMA Frame buffer Size")
            display.warning("  OR Advanced => AMD CBS => NBIO Common Options => GFX Configuration => Dedicated Graphics Memory")
        else:
            display.success(f"VRAM allocation is {vram_gb}GB")
        return True

    def check_disk_space(self) -> bool:
        display.info("Checking available disk space...")
        available = free_gb(self.config.home)
        display.detail(f"Available space in {self.config.home}: {available}GB")
        if available < self.config.min_disk_gb:
            display.error(f"Insufficient disk space. Need at least {self.config.min_disk_gb}GB, have {available}GB")
            return False
        if available < self.config.recommended_disk_gb:
            display.warning(f"Low disk space: {available}GB available")
            display.warning(f"Recommended: {self.config.recommended_disk_gb}GB+ for comfortable development")
        else:
            display.success(f"Sufficient disk space available: {available}GB")
        return True

    # ------------------------------------------------------------------
    # Phases
    # ------------------------------------------------------------------

    def perform(self) -> None:
        hard_checks = [
            lambda: check_ubuntu(self.config.ubuntu_release, self.config.ubuntu_codename, self.lsb_path),
            self.check_kernel,
            self.check_disk_space,
        ]
        informational = [self.check_amdgpu_driver, self.check_user_groups, self.check_vram]

        failed = sum(1 for check in hard_checks if not check())
        for check in informational:
            check()

        if failed:
            raise StepError(
                f"Failed {failed} critical check(s)",
                remedy=(
                    "Common fixes:\n"
                    f"  - Ensure you're running Ubuntu {self.config.ubuntu_release} LTS\n"
                    "  - Update your kernel if needed\n"
                    "  - Free up disk space if needed"
                ),
            )
        display.success("All critical checks passed!")

    def marker_text(self) -> str:
        return "System verification passed"

    def next_hint(self) -> str | None:
        return "Next step: ROCm installation (so101-install-rocm)"
