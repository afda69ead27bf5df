import json
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest

from so101_toolkit import hub
from so101_toolkit.config import CombineConfig, HubConfig, LocalDataset, PrepareConfig
from so101_toolkit.dataset_tasks import combine_datasets, prepare_for_cloud_training, tag_codebase_versions
from so101_toolkit.hub import HubError
from so101_toolkit.models import ExitCode


@pytest.fixture
def hub_config():
    return HubConfig(hf_user="alice", hf_token="hf_test")


@pytest.fixture
def combine_config():
    return CombineConfig(sources=["alice/ts_11", "alice/ts_30"], target="alice/ts_combo")


def _refs(*names):
    return SimpleNamespace(tags=[SimpleNamespace(name=n) for n in names])


# ---------------------------------------------------------------------------
# Local metadata
# ---------------------------------------------------------------------------


def test_ensure_meta_skips_missing_dataset(tmp_path):
    assert hub.ensure_meta(tmp_path / "nope", 11) is None
    assert not (tmp_path / "nope").exists()


@patch("so101_toolkit.hub.local_codebase_version", return_value="lerobot_0.4.1")
def test_ensure_meta_creates_info(mock_version, tmp_path):
    info = hub.ensure_meta(tmp_path, 11)
    assert info == {"codebase_version": "lerobot_0.4.1", "total_episodes": 11}
    assert json.loads((tmp_path / "meta" / "info.json").read_text()) == info


@patch("so101_toolkit.hub.local_codebase_version", return_value="lerobot_0.4.1")
def test_ensure_meta_keeps_existing_keys(mock_version, tmp_path):
    (tmp_path / "meta").mkdir()
    (tmp_path / "meta" / "info.json").write_text(json.dumps({"codebase_version": "v3.0", "fps": 30}))

    info = hub.ensure_meta(tmp_path, 30)
    assert info == {"codebase_version": "v3.0", "fps": 30, "total_episodes": 30}


@patch("so101_toolkit.hub.local_codebase_version", return_value="lerobot_0.4.1")
def test_ensure_meta_replaces_unparsable_file(mock_version, tmp_path):
    (tmp_path / "meta").mkdir()
    (tmp_path / "meta" / "info.json").write_text("{not json")

    info = hub.ensure_meta(tmp_path, 30)
    assert info["codebase_version"] == "lerobot_0.4.1"
    assert info["total_episodes"] == 30


# ---------------------------------------------------------------------------
# Authentication
# ---------------------------------------------------------------------------


@patch("so101_toolkit.hub.login")
def test_ensure_login_reuses_session(mock_login):
    api = MagicMock()
    api.whoami.return_value = {"name": "alice"}
    assert hub.ensure_login(api, "hf_test") == "alice"
    mock_login.assert_not_called()


@patch("so101_toolkit.hub.login")
def test_ensure_login_with_token(mock_login):
    api = MagicMock()
    api.whoami.side_effect = [OSError("no token"), {"name": "alice"}]
    assert hub.ensure_login(api, "hf_test") == "alice"
    mock_login.assert_called_once_with(token="hf_test", add_to_git_credential=False)


@patch("so101_toolkit.hub.login", side_effect=ValueError("Invalid token"))
def test_ensure_login_failure_raises(mock_login):
    api = MagicMock()
    api.whoami.side_effect = OSError("no token")
    with pytest.raises(HubError, match="login failed"):
        hub.ensure_login(api, "bad")


# ---------------------------------------------------------------------------
# Combine
# ---------------------------------------------------------------------------


@patch("so101_toolkit.hub.concatenate_datasets")
@patch("so101_toolkit.hub.load_dataset")
def test_combine_concatenates_shuffles_and_pushes(mock_load, mock_concat):
    parts = [MagicMock(column_names=["action"]), MagicMock(column_names=["action"])]
    mock_load.side_effect = parts
    combined = mock_concat.return_value

    result = hub.combine(["a/one", "a/two"], "a/combo", "train", 42, "hf_test")

    assert mock_load.call_count == 2
    mock_load.assert_any_call("a/two", split="train", token="hf_test")
    mock_concat.assert_called_once_with(parts)
    combined.shuffle.assert_called_once_with(seed=42)
    combined.shuffle.return_value.push_to_hub.assert_called_once_with("a/combo", token="hf_test")
    assert result is combined.shuffle.return_value


@patch("so101_toolkit.hub.combine")
def test_combine_datasets_checks_sources_first(mock_combine, hub_config, combine_config):
    api = MagicMock()
    assert combine_datasets(hub_config, combine_config, api) == ExitCode.SUCCESS
    assert api.repo_info.call_count == 2
    mock_combine.assert_called_once_with(["alice/ts_11", "alice/ts_30"], "alice/ts_combo", "train", 42, "hf_test")


@patch("so101_toolkit.hub.combine", side_effect=HubError("push rejected"))
def test_combine_datasets_failure(mock_combine, hub_config, combine_config):
    assert combine_datasets(hub_config, combine_config, MagicMock()) == ExitCode.FAILURE


# ---------------------------------------------------------------------------
# Prepare for cloud training
# ---------------------------------------------------------------------------


@patch("so101_toolkit.hub.combine")
@patch("so101_toolkit.hub.local_codebase_version", return_value="lerobot_0.4.1")
def test_prepare_patches_uploads_and_combines(mock_version, mock_combine, tmp_path, hub_config, combine_config):
    ds11, ds30 = tmp_path / "v5", tmp_path / "v8"
    ds11.mkdir()
    ds30.mkdir()
    config = PrepareConfig(
        datasets=[
            LocalDataset(path=ds11, repo_id="alice/ts_11", total_episodes=11),
            LocalDataset(path=ds30, repo_id="alice/ts_30", total_episodes=30),
        ],
        combine=combine_config,
    )
    api = MagicMock()
    api.whoami.return_value = {"name": "alice"}

    assert prepare_for_cloud_training(hub_config, config, api) == ExitCode.SUCCESS
    assert json.loads((ds30 / "meta" / "info.json").read_text())["total_episodes"] == 30
    api.create_repo.assert_any_call(repo_id="alice/ts_11", repo_type="dataset", exist_ok=True)
    assert api.upload_folder.call_count == 2
    mock_combine.assert_called_once()


@patch("so101_toolkit.hub.combine")
def test_prepare_stops_when_local_dataset_missing(mock_combine, tmp_path, hub_config, combine_config):
    config = PrepareConfig(
        datasets=[LocalDataset(path=tmp_path / "missing", repo_id="alice/ts_11", total_episodes=11)],
        combine=combine_config,
    )
    api = MagicMock()
    api.whoami.return_value = {"name": "alice"}

    assert prepare_for_cloud_training(hub_config, config, api) == ExitCode.FAILURE
    api.upload_folder.assert_not_called()
    mock_combine.assert_not_called()


# ---------------------------------------------------------------------------
# Version tags
# ---------------------------------------------------------------------------


@patch("so101_toolkit.hub.hf_hub_download")
def test_read_codebase_version(mock_download, tmp_path):
    info = tmp_path / "info.json"
    info.write_text(json.dumps({"codebase_version": "v2.1"}))
    mock_download.return_value = str(info)
    assert hub.read_codebase_version("alice/ts_11", "hf_test") == "v2.1"

    info.write_text(json.dumps({"fps": 30}))
    assert hub.read_codebase_version("alice/ts_11", "hf_test") == hub.DEFAULT_CODEBASE_VERSION


@patch("so101_toolkit.hub.read_codebase_version", return_value="v3.0")
def test_tagging_twice_creates_tag_once(mock_read, hub_config):
    api = MagicMock()
    api.list_repo_refs.return_value = _refs()

    code, results = tag_codebase_versions(hub_config, ["alice/ts_11"], api)
    assert code == ExitCode.SUCCESS
    assert results[0].created is True
    api.create_tag.assert_called_once_with(repo_id="alice/ts_11", tag="v3.0", repo_type="dataset")

    api.list_repo_refs.return_value = _refs("v3.0")
    code, results = tag_codebase_versions(hub_config, ["alice/ts_11"], api)
    assert code == ExitCode.SUCCESS
    assert results[0].created is False
    assert api.create_tag.call_count == 1


@patch("so101_toolkit.hub.read_codebase_version", side_effect=[HubError("info.json missing"), "v3.0"])
def test_tagging_continues_after_repo_error(mock_read, hub_config):
    api = MagicMock()
    api.list_repo_refs.return_value = _refs("v2.1")

    code, results = tag_codebase_versions(hub_config, ["alice/broken", "alice/ts_30"], api)

    assert code == ExitCode.FAILURE
    assert results[0].error == "info.json missing"
    assert results[1].error is None
    assert results[1].created is True
    api.create_tag.assert_called_once_with(repo_id="alice/ts_30", tag="v3.0", repo_type="dataset")


@patch("so101_toolkit.hub.hf_hub_download")
def test_tagging_continues_after_malformed_info(mock_download, tmp_path, hub_config):
    broken = tmp_path / "broken.json"
    broken.write_text("{not json")
    good = tmp_path / "good.json"
    good.write_text(json.dumps({"codebase_version": "v3.0"}))
    mock_download.side_effect = [str(broken), str(good)]
    api = MagicMock()
    api.list_repo_refs.return_value = _refs()

    code, results = tag_codebase_versions(hub_config, ["alice/broken", "alice/ts_30"], api)

    assert code == ExitCode.FAILURE
    assert "not valid JSON" in results[0].error
    assert results[1].created is True
    api.create_tag.assert_called_once_with(repo_id="alice/ts_30", tag="v3.0", repo_type="dataset")


@patch("so101_toolkit.hub.read_codebase_version", return_value="v3.0")
def test_tag_listing_failure_skips_tag_creation(mock_read, hub_config):
    api = MagicMock()
    api.list_repo_refs.side_effect = [ConnectionError("reset"), _refs()]

    code, results = tag_codebase_versions(hub_config, ["alice/ts_11", "alice/ts_30"], api)

    assert code == ExitCode.FAILURE
    assert results[0].error == "reset"
    assert results[0].created is False
    assert results[1].created is True
    api.create_tag.assert_called_once_with(repo_id="alice/ts_30", tag="v3.0", repo_type="dataset")


@pytest.mark.parametrize(
    "error",
    [ValueError('Unknown split "train". Should be one of ["test"].'), FileNotFoundError("alice/ts_11 not found")],
)
@patch("so101_toolkit.hub.load_dataset")
def test_combine_load_failure_halts(mock_load, hub_config, combine_config, error):
    mock_load.side_effect = error
    api = MagicMock()

    assert combine_datasets(hub_config, combine_config, api) == ExitCode.FAILURE


@patch("so101_toolkit.hub.concatenate_datasets", side_effect=ValueError("features differ"))
@patch("so101_toolkit.hub.load_dataset")
def test_combine_raises_hub_error_on_mismatched_features(mock_load, mock_concat):
    with pytest.raises(HubError, match="cannot be concatenated") as exc_info:
        hub.combine(["a/one", "a/two"], "a/combo", "train", 42, "hf_test")
    assert exc_info.value.remedy
