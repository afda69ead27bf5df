# run.py
# Console-script entry points. Config and wiring only; no logic lives here.
#
# Every entry point takes no flags, reads .env / the environment, opens one
# run log, and returns an ExitCode as the process exit status.

from so101_toolkit import display
from so101_toolkit.camera import CameraConfigurator
from so101_toolkit.config import (
    CameraConfig,
    CombineConfig,
    ConfigError,
    HubConfig,
    PrepareConfig,
    SetupConfig,
    load_env,
    log_dir_path,
    tag_targets,
)
from so101_toolkit.dataset_tasks import combine_datasets, prepare_for_cloud_training, tag_codebase_versions
from so101_toolkit.lerobot_env import SetupLerobotStep
from so101_toolkit.markers import MarkerStore
from so101_toolkit.models import ExitCode
from so101_toolkit.orchestrator import RESUME_COMMAND, Orchestrator, prompt_reboot
from so101_toolkit.pytorch_env import SetupPytorchStep
from so101_toolkit.rocm import InstallRocmStep
from so101_toolkit.runlog import close_run_log, open_run_log
from so101_toolkit.step import SetupStep
from so101_toolkit.system_check import VerifySystemStep


def _start(script: str, title: str, subtitle: str) -> None:
    load_env()
    log_file = open_run_log(log_dir_path(), script)
    display.banner(title, subtitle, log_file)


# ---------------------------------------------------------------------------
# Workstation setup
# ---------------------------------------------------------------------------


def setup_main() -> int:
    _start("master_setup", "LeRobot Setup for AMD Ryzen AI PC with ROCm", "Master setup: automated installation")
    config = SetupConfig()
    try:
        return int(Orchestrator(config).run())
    finally:
        close_run_log()


def _run_single(step_cls: type[SetupStep], script: str) -> int:
    _start(script, step_cls.info.name, f"Setup step {step_cls.info.number}")
    config = SetupConfig()
    try:
        step = step_cls(config, MarkerStore(config.log_dir))
        exit_code = step.run()
        if exit_code == ExitCode.REBOOT_REQUIRED:
            prompt_reboot(step.shell, resume_hint=RESUME_COMMAND)
        return int(exit_code)
    finally:
        close_run_log()


def verify_system_main() -> int:
    return _run_single(VerifySystemStep, "verify_system")


def install_rocm_main() -> int:
    return _run_single(InstallRocmStep, "install_rocm")


def setup_pytorch_main() -> int:
    return _run_single(SetupPytorchStep, "setup_pytorch")


def setup_lerobot_main() -> int:
    return _run_single(SetupLerobotStep, "setup_lerobot")


# ---------------------------------------------------------------------------
# Camera
# ---------------------------------------------------------------------------


def configure_camera_main() -> int:
    _start("configure_arm_camera", "Configure Arm Camera", "Fixed exposure, white balance and gain for V4L2")
    try:
        try:
            config = CameraConfig.from_env()
        except ConfigError as exc:
            display.halt(str(exc), exc.remedy)
            return int(ExitCode.FAILURE)
        display.info(f"Camera: {config.device} @ {config.width}x{config.height} {config.fps}fps")
        return int(CameraConfigurator(config).configure())
    finally:
        close_run_log()


# ---------------------------------------------------------------------------
# Dataset utilities
# ---------------------------------------------------------------------------


def _hub_config() -> HubConfig | None:
    try:
        hub_config = HubConfig.from_env()
    except ConfigError as exc:
        display.halt(str(exc), exc.remedy)
        return None
    display.success(f"Loaded configuration; HuggingFace user: {hub_config.hf_user}")
    return hub_config


def combine_datasets_main() -> int:
    _start("combine_datasets", "Combine Datasets", "Concatenate two Hub datasets into one combo dataset")
    try:
        hub_config = _hub_config()
        if hub_config is None:
            return int(ExitCode.FAILURE)
        return int(combine_datasets(hub_config, CombineConfig.from_env(hub_config)))
    finally:
        close_run_log()


def prepare_datasets_main() -> int:
    _start(
        "prepare_datasets_for_cloud_training",
        "Prepare Datasets for Cloud Training",
        "Patch meta/info.json · re-upload · build the combined dataset",
    )
    try:
        hub_config = _hub_config()
        if hub_config is None:
            return int(ExitCode.FAILURE)
        return int(prepare_for_cloud_training(hub_config, PrepareConfig.from_env(hub_config)))
    finally:
        close_run_log()


def tag_datasets_main() -> int:
    _start("tag_hf_datasets", "Tag HF Datasets", "Ensure each dataset has a tag matching its codebase_version")
    try:
        hub_config = _hub_config()
        if hub_config is None:
            return int(ExitCode.FAILURE)
        exit_code, _ = tag_codebase_versions(hub_config, tag_targets(hub_config))
        return int(exit_code)
    finally:
        close_run_log()


if __name__ == "__main__":
    raise SystemExit(setup_main())
