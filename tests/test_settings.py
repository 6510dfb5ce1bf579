import json
import os

import pytest

from backend.texture_classes import MappingRule
from settings import load_config, _as_bool, _as_int


@pytest.fixture(autouse=True)
def project_dir(tmp_path, monkeypatch):
    (tmp_path / "src").mkdir()
    monkeypatch.chdir(tmp_path)
    return tmp_path


def _write_config(tmp_path, data) -> str:
    path = tmp_path / "config.json"
    path.write_text(json.dumps(data) if not isinstance(data, str) else data, encoding="utf-8")
    return str(path)


def _base_config(**overrides):
    data = {
        "sourcePath": "src/",
        "destPath": "out",
        "mapping": [
            {"source": "_ao", "dest": "ORM", "size": 512, "channel": 0},
            {"source": "_albedo", "dest": "Color", "size": 1024},
        ],
    }
    data.update(overrides)
    return data


def test_load_config_keeps_rule_order_and_defaults(tmp_path):
    config = load_config(_write_config(tmp_path, _base_config()))

    assert config.source_path == os.path.abspath("src")
    assert config.dest_path == os.path.abspath("out")
    assert config.mapping == [
        MappingRule(source="_ao", dest="ORM", size=512, channel=0),
        MappingRule(source="_albedo", dest="Color", size=1024, channel=None),
    ]
    assert config.stability_threshold == 1.0
    assert config.poll_interval == 0.1
    assert config.show_details is False


def test_load_config_reads_optional_timings(tmp_path):
    config = load_config(_write_config(tmp_path, _base_config(stabilityThreshold=250, pollInterval=50, showDetails="yes")))

    assert config.stability_threshold == 0.25
    assert config.poll_interval == 0.05
    assert config.show_details is True


def test_invalid_timings_fall_back_to_defaults(tmp_path, capsys):
    config = load_config(_write_config(tmp_path, _base_config(pollInterval=0)))

    assert config.poll_interval == 0.1
    assert "stabilityThreshold/pollInterval" in capsys.readouterr().out


def test_missing_config_file_aborts(tmp_path, capsys):
    with pytest.raises(SystemExit) as exit_info:
        load_config(str(tmp_path / "missing.json"))
    assert exit_info.value.code == 1
    assert "config file not found" in capsys.readouterr().out


def test_unparsable_config_aborts(tmp_path):
    with pytest.raises(SystemExit):
        load_config(_write_config(tmp_path, "{ not json"))


@pytest.mark.parametrize("overrides", [
    {"sourcePath": ""},
    {"destPath": None},
    {"mapping": {"source": "_ao"}},
    {"mapping": [{"dest": "ORM", "size": 64}]},
    {"mapping": [{"source": "_ao", "size": 64}]},
    {"mapping": [{"source": "_ao", "dest": "ORM", "size": 0}]},
    {"mapping": [{"source": "_ao", "dest": "ORM", "size": "big"}]},
    {"mapping": [{"source": "_ao", "dest": "ORM", "size": 64, "channel": "red"}]},
])
def test_invalid_fields_abort(tmp_path, overrides):
    with pytest.raises(SystemExit):
        load_config(_write_config(tmp_path, _base_config(**overrides)))


def test_out_of_range_channel_is_kept_with_warning(tmp_path, capsys):
    config = load_config(_write_config(tmp_path, _base_config(mapping=[{"source": "_ao", "dest": "ORM", "size": 64, "channel": 3}])))

    assert config.mapping[0].channel == 3
    assert "will be ignored" in capsys.readouterr().out


def test_loose_value_coercion():
    assert _as_bool("False") is False
    assert _as_bool("on") is True
    assert _as_bool(0) is False
    assert _as_int("12") == 12
    assert _as_int(64.0) == 64
    assert _as_int(True) is None
    assert _as_int(1.5) is None


def test_missing_source_folder_aborts(tmp_path, capsys):
    with pytest.raises(SystemExit) as exit_info:
        load_config(_write_config(tmp_path, _base_config(sourcePath=str(tmp_path / "missing"))))
    assert exit_info.value.code == 1
    assert "'sourcePath' is not an existing directory" in capsys.readouterr().out


def test_source_path_must_be_a_folder(tmp_path):
    (tmp_path / "file.png").write_bytes(b"x")

    with pytest.raises(SystemExit):
        load_config(_write_config(tmp_path, _base_config(sourcePath=str(tmp_path / "file.png"))))


def test_dest_folder_may_not_exist_yet(tmp_path):
    config = load_config(_write_config(tmp_path, _base_config(destPath=str(tmp_path / "new" / "out"))))

    assert config.dest_path == str(tmp_path / "new" / "out")
