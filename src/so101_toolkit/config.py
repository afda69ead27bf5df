# config.py
# Configuration for setup steps and dataset utilities.
#
# Values come from the process environment, optionally seeded from a .env
# file via python-dotenv. Pinned versions from the supported workstation
# recipe live here as Field defaults.

import os
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, Field

PLACEHOLDER_USER = "your_huggingface_username"
PLACEHOLDER_TOKEN = "your_huggingface_token_here"


class ConfigError(Exception):
    """Raised when required configuration is missing or still a template value."""

    def __init__(self, message: str, remedy: str | None = None) -> None:
        self.remedy = remedy
        super().__init__(message)


# ---------------------------------------------------------------------------
# Paths
# ---------------------------------------------------------------------------


def env_file_path() -> Path:
    return Path(os.getenv("SO101_ENV_FILE", ".env")).expanduser()


def log_dir_path() -> Path:
    return Path(os.getenv("SO101_LOG_DIR", "logs")).expanduser()


def load_env(required: bool = False) -> Path:
    """
    Load the .env file into os.environ without overriding exported values.

    Raises ConfigError if `required` and the file does not exist.
    """
    path = env_file_path()
    if not path.is_file():
        if required:
            raise ConfigError(
                f"Missing .env at {path.resolve()}",
                remedy=(
                    "Create it from the template:\n"
                    f"  cp .env.example {path}\n"
                    "  # then edit it to set HF_USER, HF_TOKEN, etc."
                ),
            )
        return path
    load_dotenv(path, override=False)
    return path


# ---------------------------------------------------------------------------
# Workstation setup
# ---------------------------------------------------------------------------


class SetupConfig(BaseModel):
    """Pinned versions and locations for the four setup steps."""

    log_dir: Path = Field(default_factory=log_dir_path)
    home: Path = Field(default_factory=Path.home)

    # Step 1
    ubuntu_release: str = "24.04"
    ubuntu_codename: str = "noble"
    min_kernel: tuple[int, int] = (6, 14)
    min_disk_gb: int = 20
    recommended_disk_gb: int = 50
    recommended_vram_gb: int = 16

    # Step 2
    rocm_version: str = "6.3.4"
    rocm_build: str = "6.3.60304-1"
    rocm_min_tmp_gb: int = 10
    rocm_repo_host: str = "repo.radeon.com"
    download_dir: Path = Path("/tmp")

    # Step 3
    conda_env: str = "lerobot"
    python_version: str = "3.10"
    pytorch_version: str = "2.7.1"
    torchvision_version: str = "0.22.1"
    torchaudio_version: str = "2.7.1"
    pytorch_rocm: str = "6.3"
    hsa_override: str = "11.0.0"

    # Step 4
    lerobot_version: str = "v0.4.1"
    lerobot_repo_url: str = "https://github.com/huggingface/lerobot.git"
    lerobot_dir: Path | None = None
    ffmpeg_version: str = "7.1.1"

    @property
    def amdgpu_install_deb(self) -> str:
        return f"amdgpu-install_{self.rocm_build}_all.deb"

    @property
    def amdgpu_install_url(self) -> str:
        return (
            f"https://{self.rocm_repo_host}/amdgpu-install/{self.rocm_version}"
            f"/ubuntu/{self.ubuntu_codename}/{self.amdgpu_install_deb}"
        )

    @property
    def rocm_series(self) -> str:
        return ".".join(self.rocm_version.split(".")[:2])

    @property
    def pytorch_index_url(self) -> str:
        return f"https://download.pytorch.org/whl/rocm{self.pytorch_rocm}"

    @property
    def lerobot_checkout(self) -> Path:
        return self.lerobot_dir or self.home / "lerobot"

    @property
    def lerobot_pip_version(self) -> str:
        return self.lerobot_version.lstrip("v")


# ---------------------------------------------------------------------------
# Camera
# ---------------------------------------------------------------------------


class CameraConfig(BaseModel):
    device: str = "/dev/video0"
    width: int = 640
    height: int = 480
    fps: int = 30

    @classmethod
    def from_env(cls) -> "CameraConfig":
        path = load_env()
        defaults = cls()
        return cls(
            device=os.getenv("ARM_CAMERA_DEVICE", defaults.device),
            width=_env_int("CAMERA_WIDTH", defaults.width, path),
            height=_env_int("CAMERA_HEIGHT", defaults.height, path),
            fps=_env_int("ARM_CAMERA_FPS", defaults.fps, path),
        )


def _env_int(name: str, default: int, env_path: Path) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        value = 0
    if value <= 0:
        raise ConfigError(
            f"{name} must be a positive integer, got {raw!r}",
            remedy=f"Edit {env_path} and set {name} to a whole number (e.g. {default}).",
        )
    return value


# ---------------------------------------------------------------------------
# HuggingFace Hub
# ---------------------------------------------------------------------------


class HubConfig(BaseModel):
    hf_user: str = Field(..., min_length=1)
    hf_token: str = Field(..., min_length=1)

    @classmethod
    def from_env(cls) -> "HubConfig":
        """Load .env (required) and validate HF_USER / HF_TOKEN."""
        path = load_env(required=True)
        user = os.getenv("HF_USER", "")
        token = os.getenv("HF_TOKEN", "")
        if not user or user == PLACEHOLDER_USER:
            raise ConfigError(
                "HF_USER is not set correctly in .env",
                remedy=f"Edit {path} and set HF_USER to your HuggingFace username.",
            )
        if not token or token == PLACEHOLDER_TOKEN:
            raise ConfigError(
                "HF_TOKEN is not set correctly in .env",
                remedy=f"Edit {path} and set HF_TOKEN to your real HuggingFace token.",
            )
        return cls(hf_user=user, hf_token=token)


class CombineConfig(BaseModel):
    """Two source datasets concatenated into one combo dataset."""

    sources: list[str] = Field(..., min_length=2)
    target: str
    split: str = "train"
    seed: int = 42

    @classmethod
    def from_env(cls, hub: HubConfig) -> "CombineConfig":
        return cls(
            sources=[
                os.getenv("TS_11_REPO", f"{hub.hf_user}/trash_sorting_11ep"),
                os.getenv("TS_30_REPO", f"{hub.hf_user}/trash_sorting_30ep"),
            ],
            target=os.getenv("TS_COMBO_REPO", f"{hub.hf_user}/trash_sorting_41ep_combo"),
            split=os.getenv("TS_SPLIT", "train"),
        )


class LocalDataset(BaseModel):
    path: Path
    repo_id: str
    total_episodes: int = Field(..., ge=0)


class PrepareConfig(BaseModel):
    """Local recordings to patch and re-upload before combining."""

    datasets: list[LocalDataset]
    combine: CombineConfig

    @classmethod
    def from_env(cls, hub: HubConfig) -> "PrepareConfig":
        combine = CombineConfig.from_env(hub)
        return cls(
            datasets=[
                LocalDataset(
                    path=Path(os.getenv("DATASET_11_PATH", "~/so101_datasets/trash_sorting_40ep_v5")).expanduser(),
                    repo_id=combine.sources[0],
                    total_episodes=11,
                ),
                LocalDataset(
                    path=Path(os.getenv("DATASET_30_PATH", "~/so101_datasets/trash_sorting_40ep_v8")).expanduser(),
                    repo_id=combine.sources[1],
                    total_episodes=30,
                ),
            ],
            combine=combine,
        )


def tag_targets(hub: HubConfig) -> list[str]:
    """Datasets whose codebase_version tag is checked by the tagging utility."""
    combine = CombineConfig.from_env(hub)
    return list(combine.sources)
