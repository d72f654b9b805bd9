from pathlib import Path

import pytest

from weighted_hierarchy.core.config.engine_config import (
    DEFAULT,
    ConfigError,
    load_and_merge,
    load_config_file,
    merged_config,
)

EXAMPLES = Path(__file__).resolve().parents[1] / "examples"


def test_defaults():
    config = load_and_merge(None)
    assert config == DEFAULT
    assert config.max_grade == 5
    assert config.progress_bands["on_track"] == 75


def test_file_overrides_merge_per_band():
    config = load_and_merge(str(EXAMPLES / "engine-config.yaml"))
    assert config.weight_tolerance == 0.001
    assert config.progress_bands == {"on_track": 80, "progressing": 50, "slow": 25}


def test_merge_does_not_mutate_defaults():
    merged_config({"progress_bands": {"slow": 10}})
    assert DEFAULT.progress_bands["slow"] == 25
    assert merged_config().progress_bands["slow"] == 25


@pytest.mark.parametrize(
    "text",
    [
        "- a\n",
        "unknown_key: 1\n",
        "weight_tolerance: fast\n",
        "progress_bands: 3\n",
        "progress_bands: {great: 90}\n",
        "grade_step: 0\n",
    ],
)
def test_invalid_config(tmp_path, text):
    p = tmp_path / "config.yaml"
    p.write_text(text, encoding="utf-8")
    with pytest.raises(ConfigError):
        load_config_file(p)


def test_empty_file_is_no_overrides(tmp_path):
    p = tmp_path / "config.yaml"
    p.write_text("", encoding="utf-8")
    assert load_config_file(p) == {}


def test_missing_file():
    with pytest.raises(FileNotFoundError):
        load_and_merge(str(EXAMPLES / "nope.yaml"))
