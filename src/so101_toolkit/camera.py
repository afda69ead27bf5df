# camera.py
# Arm-camera V4L2 tuning for stable teleoperation and recording.
#
# Fixed exposure, white balance and gain stop the flicker and colour drift
# that auto modes cause under workshop lighting. Controls differ between
# UVC cameras, so a rejected control is a warning, not a failure.

from pathlib import Path

from so101_toolkit import display
from so101_toolkit.config import CameraConfig
from so101_toolkit.models import ExitCode
from so101_toolkit.shell import CommandError, Shell

SETTINGS_FILTER = ("Width", "Height", "Pixel Format", "Frames per second", "Brightness", "Contrast", "Saturation", "Exposure")

# (description, [(control, value), ...]) applied in order
CONTROL_GROUPS: list[tuple[str, list[tuple[str, int]]]] = [
    ("Configuring exposure settings...", [("exposure_auto", 1), ("exposure_absolute", 156)]),
    ("Configuring white balance...", [("white_balance_temperature_auto", 0), ("white_balance_temperature", 4600)]),
    ("Configuring gain...", [("gain_automatic", 0), ("gain", 100)]),
    ("Disabling power line frequency compensation...", [("power_line_frequency", 0)]),
    (
        "Setting image quality parameters...",
        [("brightness", 128), ("contrast", 128), ("saturation", 128), ("sharpness", 128)],
    ),
    ("Disabling backlight compensation...", [("backlight_compensation", 0)]),
]

TIPS = [
    "1. Run this before starting teleoperation or recording",
    "2. If flickering persists, try lowering ARM_CAMERA_FPS in .env",
    "3. Put the arm camera on a separate USB controller from other cameras",
    "4. Use 'lsusb -t' to check USB bus topology",
]


class CameraConfigurator:
    def __init__(self, config: CameraConfig, shell: Shell | None = None) -> None:
        self.config = config
        self.shell = shell or Shell()

    def _v4l2(self, *args: str) -> list[str]:
        return ["v4l2-ctl", "-d", self.config.device, *args]

    def show_settings(self, title: str) -> None:
        display.info(title)
        report = self.shell.capture(self._v4l2("--all")) or ""
        for line in report.splitlines():
            if any(key in line for key in SETTINGS_FILTER):
                display.detail(line.strip())

    def try_run(self, cmd: list[str]) -> bool:
        return self.shell.run(cmd, check=False).returncode == 0

    def ensure_v4l2_ctl(self) -> None:
        if self.shell.which("v4l2-ctl"):
            display.success("v4l2-ctl is available")
            return
        display.warning("v4l2-ctl not found")
        display.info("Installing v4l-utils...")
        self.shell.run(["apt", "update"], sudo=True)
        self.shell.run(["apt", "install", "-y", "v4l-utils"], sudo=True)
        display.success("v4l2-ctl is available")

    def set_format(self) -> None:
        c = self.config
        display.info("Setting pixel format to MJPEG...")
        if self.try_run(self._v4l2(f"--set-fmt-video=width={c.width},height={c.height},pixelformat=MJPG")):
            return
        display.warning("MJPEG not supported, trying YUYV...")
        if not self.try_run(self._v4l2(f"--set-fmt-video=width={c.width},height={c.height},pixelformat=YUYV")):
            display.warning("Could not set pixel format; keeping the camera default")

    def apply_controls(self) -> list[str]:
        """Apply CONTROL_GROUPS; returns the controls the camera rejected."""
        rejected: list[str] = []
        for description, controls in CONTROL_GROUPS:
            display.info(description)
            for control, value in controls:
                if not self.try_run(self._v4l2(f"--set-ctrl={control}={value}")):
                    rejected.append(control)
        return rejected

    def configure(self) -> ExitCode:
        display.header("Configure Arm Camera for Stability")
        try:
            self.ensure_v4l2_ctl()
        except CommandError as exc:
            display.halt(f"Could not install v4l-utils: {exc}", remedy="sudo apt install -y v4l-utils")
            return ExitCode.FAILURE

        if not Path(self.config.device).exists():
            display.halt(
                f"Arm camera not found: {self.config.device}",
                remedy="Set ARM_CAMERA_DEVICE in .env (list devices with: v4l2-ctl --list-devices)",
            )
            return ExitCode.FAILURE

        display.info(f"Configuring arm camera: {self.config.device}")
        self.show_settings("Current camera settings:")

        display.info("Applying optimized settings...")
        self.set_format()
        display.info(f"Setting frame rate to {self.config.fps} fps...")
        if not self.try_run(self._v4l2(f"--set-parm={self.config.fps}")):
            display.warning(f"Camera rejected {self.config.fps} fps")

        rejected = self.apply_controls()
        if rejected:
            display.warning(f"Controls not supported by this camera: {', '.join(rejected)}")

        display.success("Camera configuration complete!")
        self.show_settings("New camera settings:")
        display.next_steps("Tips for best results:", TIPS)
        return ExitCode.SUCCESS
