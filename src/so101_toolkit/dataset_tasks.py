# dataset_tasks.py
# Standalone dataset utilities: combine, prepare for cloud training, tag.
#
# These are invoked by hand, never by the orchestrator. Each one assumes
# credentials are configured and stops at the first failed stage.

import httpx
from huggingface_hub import HfApi
from huggingface_hub.errors import HfHubHTTPError

from so101_toolkit import display, hub
from so101_toolkit.config import CombineConfig, HubConfig, PrepareConfig
from so101_toolkit.hub import HubError
from so101_toolkit.models import ExitCode, TagResult


def combine_datasets(hub_config: HubConfig, config: CombineConfig, api: HfApi | None = None) -> ExitCode:
    api = api or HfApi(token=hub_config.hf_token)
    display.header(f"Combine Datasets ({' + '.join(config.sources)} -> {config.target})")
    display.info(f"Using HuggingFace account: {hub_config.hf_user}")
    for repo_id in config.sources:
        display.detail(f"Source : {repo_id} (split={config.split})")
    display.detail(f"Target : {config.target}")

    try:
        display.info("Verifying source datasets exist...")
        for repo_id in config.sources:
            hub.check_dataset_exists(api, repo_id)
        hub.combine(config.sources, config.target, config.split, config.seed, hub_config.hf_token)
    except HubError as exc:
        display.halt(str(exc), exc.remedy)
        return ExitCode.FAILURE
    except (HfHubHTTPError, httpx.HTTPError, OSError) as exc:
        display.halt(f"HuggingFace Hub request failed: {exc}", remedy="Check the network connection and HF_TOKEN, then re-run.")
        return ExitCode.FAILURE

    display.done(f"Combined dataset created and pushed: {config.target}")
    return ExitCode.SUCCESS


def prepare_for_cloud_training(hub_config: HubConfig, config: PrepareConfig, api: HfApi | None = None) -> ExitCode:
    """
    Patch local metadata, re-upload each local dataset, then build the combo.

    Stages run in order and the first failure stops the run; completed
    uploads are not rolled back.
    """
    api = api or HfApi(token=hub_config.hf_token)
    display.header("Prepare Datasets for Cloud Training")

    display.info("Ensuring meta/info.json exists for local datasets...")
    for local in config.datasets:
        hub.ensure_meta(local.path, local.total_episodes)

    try:
        display.info("Verifying HuggingFace login...")
        user = hub.ensure_login(api, hub_config.hf_token)
        display.success(f"Logged in to HuggingFace Hub as {user}")

        for local in config.datasets:
            display.info(f"Re-uploading {local.total_episodes}-episode dataset...")
            hub.upload_dataset(api, local.path, local.repo_id)
    except HubError as exc:
        display.halt(str(exc), exc.remedy)
        return ExitCode.FAILURE
    except (HfHubHTTPError, httpx.HTTPError, OSError) as exc:
        display.halt(f"HuggingFace Hub request failed: {exc}", remedy="Check the network connection and HF_TOKEN, then re-run.")
        return ExitCode.FAILURE

    display.info("Creating combined dataset on Hugging Face...")
    if combine_datasets(hub_config, config.combine, api) != ExitCode.SUCCESS:
        return ExitCode.FAILURE

    display.next_steps(
        "Next steps (on your cloud training machine):",
        [
            "1) Open the training notebook",
            "2) Point the dataset list at:",
            *[f"     - {repo_id}" for repo_id in [*config.combine.sources, config.combine.target]],
            "3) Verify the datasets load with LeRobot",
            "4) Launch SmolVLA training on each dataset",
        ],
    )
    display.done("Local datasets are patched, uploaded, and combined.")
    return ExitCode.SUCCESS


def tag_codebase_versions(
    hub_config: HubConfig, repo_ids: list[str], api: HfApi | None = None
) -> tuple[ExitCode, list[TagResult]]:
    """
    Ensure each dataset carries a tag named after its codebase_version.

    A failing repo is reported and the rest are still processed. Tags that
    already exist are never re-created.
    """
    api = api or HfApi(token=hub_config.hf_token)
    display.header("Tag HF datasets with codebase_version from meta/info.json")

    results: list[TagResult] = []
    for repo_id in repo_ids:
        display.info(f"--- {repo_id} ---")
        result = TagResult(repo_id=repo_id)
        try:
            result.version = hub.read_codebase_version(repo_id, hub_config.hf_token)
            result.created = hub.ensure_tag(api, repo_id, result.version)
        except Exception as exc:  # one bad repo must not stop the others
            display.error(f"Error processing {repo_id}: {exc}")
            result.error = str(exc)
        results.append(result)

    display.tag_summary(results)
    if any(r.error for r in results):
        display.halt("Some datasets could not be tagged.", remedy="Fix the errors above and re-run; existing tags are kept.")
        return ExitCode.FAILURE, results

    display.done("Datasets are tagged with their codebase_version.")
    return ExitCode.SUCCESS, results
