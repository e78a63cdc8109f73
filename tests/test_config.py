from pathlib import Path

import pytest
from bgm_exporter.config import load_yaml, merge_dicts, resolve_config
from bgm_exporter.errors import InvalidConfigurationError
from bgm_exporter.models import DEFAULT_KNOWN_SKIPS, BGMExportConfig


def test_default_config_loads():
    """Test default.yaml loads without errors."""
    config = resolve_config()
    assert isinstance(config, BGMExportConfig)
    assert config.processing.worker_count == 4
    assert config.archive.sheet == "bgm.csv"
    assert config.archive.known_skips == DEFAULT_KNOWN_SKIPS
    assert config.manifest.save_file is None
    assert config.export.mode is None
    assert config.export.fade_max_s == 30.0
    assert config.export.fade_fraction == 0.05


def test_models_match_default_yaml():
    """Test the YAML defaults agree with the model defaults."""
    assert resolve_config() == BGMExportConfig()


def test_cli_override_workers():
    config = resolve_config({"workers": 8})
    assert config.processing.worker_count == 8


def test_cli_override_manifest_paths():
    config = resolve_config({"save": "new.json", "compare": "old.json"})
    assert config.manifest.save_file == "new.json"
    assert config.manifest.compare_file == "old.json"


def test_cli_export_flags_set_mode_and_directory():
    config = resolve_config({"export_mp3": "out/mp3"})
    assert config.export.mode == "mp3"
    assert config.export.output_dir == "out/mp3"

    config = resolve_config({"export_ogg": "out/ogg", "archive": "/data/game"})
    assert config.export.mode == "ogg"
    assert config.archive.root == "/data/game"


def test_zero_workers_rejected():
    with pytest.raises(InvalidConfigurationError):
        resolve_config({"workers": 0})


def test_local_overrides_default(tmp_path):
    """Test layering: default < local < CLI."""
    default = tmp_path / "default.yaml"
    local = tmp_path / "local.yaml"
    default.write_text("processing:\n  worker_count: 2\nexport:\n  output_dir: a\n")
    local.write_text("export:\n  output_dir: b\n  mode: ogg\n")

    config = resolve_config({}, default_path=default, local_path=local)
    assert config.processing.worker_count == 2
    assert config.export.output_dir == "b"
    assert config.export.mode == "ogg"

    config = resolve_config({"workers": 6}, default_path=default, local_path=local)
    assert config.processing.worker_count == 6


def test_unknown_mode_rejected(tmp_path):
    local = tmp_path / "local.yaml"
    local.write_text("export:\n  mode: flac\n")
    with pytest.raises(InvalidConfigurationError):
        resolve_config(local_path=local)


def test_missing_yaml_returns_empty_dict():
    """Test graceful handling of missing config files."""
    assert load_yaml(Path("nonexistent.yaml")) == {}


def test_merge_dicts_is_recursive():
    base = {"a": {"x": 1, "y": 2}, "b": 1}
    merged = merge_dicts(base, {"a": {"y": 3}, "c": 4})
    assert merged == {"a": {"x": 1, "y": 3}, "b": 1, "c": 4}
    assert base["a"]["y"] == 2
