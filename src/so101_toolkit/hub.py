# hub.py
# HuggingFace Hub and local dataset primitives.
#
# Each function does one thing against one dataset and raises HubError on
# failure. Flow control (what to do next, exit codes) lives in
# dataset_tasks.py.

import json
from importlib.metadata import PackageNotFoundError, version
from pathlib import Path

import httpx
from datasets import Dataset, concatenate_datasets, load_dataset
from huggingface_hub import HfApi, hf_hub_download, login
from huggingface_hub.errors import EntryNotFoundError, HfHubHTTPError, RepositoryNotFoundError

from so101_toolkit import display

INFO_PATH = "meta/info.json"
DEFAULT_CODEBASE_VERSION = "v3.0"

# load_dataset / push_to_hub: unknown split (ValueError), missing or gated
# repo (DatasetNotFoundError is a FileNotFoundError), transport failures.
DATASETS_ERRORS = (ValueError, OSError, HfHubHTTPError, httpx.HTTPError)


class HubError(Exception):
    """Raised when a Hub or local dataset operation cannot be completed."""

    def __init__(self, message: str, remedy: str | None = None) -> None:
        self.remedy = remedy
        super().__init__(message)


# ---------------------------------------------------------------------------
# Local metadata
# ---------------------------------------------------------------------------


def local_codebase_version() -> str:
    """`lerobot_<version>` for the installed LeRobot, or `lerobot_unknown`."""
    try:
        return f"lerobot_{version('lerobot')}"
    except PackageNotFoundError:
        return "lerobot_unknown"


def ensure_meta(path: Path, total_episodes: int) -> dict | None:
    """
    Make sure <path>/meta/info.json carries codebase_version and total_episodes.

    Keys already present are kept. An unparsable file is replaced. Returns
    the written info, or None when the dataset directory does not exist.
    """
    if not path.exists():
        display.warning(f"Dataset path does not exist, skipping meta patch: {path}")
        return None

    info_path = path / INFO_PATH
    info_path.parent.mkdir(parents=True, exist_ok=True)

    info: dict = {}
    if info_path.exists():
        try:
            info = json.loads(info_path.read_text(encoding="utf-8"))
            display.info(f"Loaded existing info.json from {info_path}")
        except json.JSONDecodeError as exc:
            display.warning(f"Could not parse existing info.json at {info_path}: {exc}")
            info = {}
        if not isinstance(info, dict):
            display.warning(f"Existing info.json at {info_path} is not a JSON object, replacing it")
            info = {}

    info.setdefault("codebase_version", local_codebase_version())
    info.setdefault("total_episodes", total_episodes)
    info_path.write_text(json.dumps(info, indent=2), encoding="utf-8")
    display.success(
        f"Wrote {info_path} with codebase_version={info['codebase_version']} "
        f"total_episodes={info['total_episodes']}"
    )
    return info


# ---------------------------------------------------------------------------
# Authentication
# ---------------------------------------------------------------------------


def ensure_login(api: HfApi, token: str) -> str:
    """Return the logged-in user name, logging in with `token` if needed."""
    try:
        return api.whoami()["name"]
    except (HfHubHTTPError, OSError):
        display.warning("Not logged in to HuggingFace Hub, logging in with HF_TOKEN...")

    try:
        login(token=token, add_to_git_credential=False)
        return api.whoami(token=token)["name"]
    except (HfHubHTTPError, ValueError) as exc:
        raise HubError(
            f"HuggingFace login failed: {exc}",
            remedy="Check HF_TOKEN in .env (https://huggingface.co/settings/tokens)",
        ) from exc


# ---------------------------------------------------------------------------
# Repositories
# ---------------------------------------------------------------------------


def check_dataset_exists(api: HfApi, repo_id: str) -> None:
    try:
        info = api.repo_info(repo_id, repo_type="dataset")
    except RepositoryNotFoundError as exc:
        raise HubError(f"Could not find dataset {repo_id} on the Hub") from exc
    display.success(f"Found dataset on HF: {info.id}")


def upload_dataset(api: HfApi, local_path: Path, repo_id: str) -> None:
    """Create the dataset repo if needed and upload the local folder."""
    if not local_path.is_dir():
        raise HubError(f"Local dataset not found: {local_path}")
    display.info(f"Uploading {local_path} -> {repo_id}")
    try:
        api.create_repo(repo_id=repo_id, repo_type="dataset", exist_ok=True)
        api.upload_folder(
            repo_id=repo_id,
            folder_path=local_path,
            repo_type="dataset",
            commit_message=f"Upload {local_path.name}",
        )
    except HfHubHTTPError as exc:
        raise HubError(f"Upload to {repo_id} failed: {exc}") from exc
    display.success(f"Uploaded {repo_id}")


def combine(sources: list[str], target: str, split: str, seed: int, token: str) -> Dataset:
    """Concatenate the split of each source, shuffle, and push to `target`."""
    display.info(f"Loading source datasets with split='{split}'...")
    parts = []
    for repo_id in sources:
        try:
            ds = load_dataset(repo_id, split=split, token=token)
        except DATASETS_ERRORS as exc:
            raise HubError(
                f"Could not load split '{split}' of {repo_id}: {exc}",
                remedy="Check the repo id, its access rights, and TS_SPLIT in .env.",
            ) from exc
        display.detail(f"{repo_id}: {len(ds)} rows")
        parts.append(ds)
    display.detail(f"Column names: {parts[0].column_names}")

    display.info("Concatenating datasets...")
    try:
        combined = concatenate_datasets(parts)
    except ValueError as exc:
        raise HubError(
            f"Source datasets cannot be concatenated: {exc}",
            remedy="Both datasets must share the same features (columns and types).",
        ) from exc
    display.detail(f"Combined dataset size: {len(combined)}")

    display.info(f"Shuffling combined dataset (seed={seed})...")
    combined = combined.shuffle(seed=seed)

    display.info(f"Pushing combined dataset to: {target}")
    try:
        combined.push_to_hub(target, token=token)
    except DATASETS_ERRORS as exc:
        raise HubError(
            f"Push to {target} failed: {exc}",
            remedy="Check that HF_TOKEN has write access to the target repo.",
        ) from exc
    display.success("Successfully pushed combined dataset.")
    return combined


# ---------------------------------------------------------------------------
# Version tags
# ---------------------------------------------------------------------------


def read_codebase_version(repo_id: str, token: str) -> str:
    """codebase_version from the Hub copy of meta/info.json (default v3.0)."""
    try:
        info_path = hf_hub_download(repo_id=repo_id, filename=INFO_PATH, repo_type="dataset", token=token)
    except (RepositoryNotFoundError, EntryNotFoundError) as exc:
        raise HubError(f"Cannot read {INFO_PATH} from {repo_id}: {exc}") from exc

    try:
        with open(info_path, encoding="utf-8") as f:
            info = json.load(f)
    except json.JSONDecodeError as exc:
        raise HubError(f"{INFO_PATH} on {repo_id} is not valid JSON: {exc}") from exc
    if not isinstance(info, dict):
        raise HubError(f"{INFO_PATH} on {repo_id} is not a JSON object")

    found = info.get("codebase_version")
    if not found:
        display.warning(f"No codebase_version in info.json, defaulting to {DEFAULT_CODEBASE_VERSION}")
        return DEFAULT_CODEBASE_VERSION
    display.info(f"Found codebase_version in info.json: {found}")
    return found


def existing_tags(api: HfApi, repo_id: str) -> list[str]:
    refs = api.list_repo_refs(repo_id=repo_id, repo_type="dataset")
    return [tag.name for tag in (refs.tags or [])]


def ensure_tag(api: HfApi, repo_id: str, tag: str) -> bool:
    """Create `tag` unless it already exists. True if a tag was created."""
    if tag in existing_tags(api, repo_id):
        display.success(f"Tag '{tag}' already exists on {repo_id}")
        return False
    display.info(f"Creating tag '{tag}' on {repo_id}...")
    api.create_tag(repo_id=repo_id, tag=tag, repo_type="dataset")
    display.success(f"Successfully created tag '{tag}' on {repo_id}")
    return True
