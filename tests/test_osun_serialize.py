import pytest

from osun.osun_serialize import detect_format, load_variables, to_value


def test_detect_format():
    assert detect_format("seed.json") == 'json'
    assert detect_format("seed.YAML") == 'yaml'
    assert detect_format("seed.yml") == 'yaml'
    assert detect_format("seed.txt") is None


def test_load_yaml(tmp_path):
    p = tmp_path / "seed.yaml"
    p.write_text("who: world\ncount: 3\nratio: 0.5\nenabled: true\nmissing:\nsince: 2024-01-02\n")
    assert load_variables(p) == {
        "who": "world",
        "count": 3.0,
        "ratio": 0.5,
        "enabled": True,
        "missing": None,
        "since": "2024-01-02",
    }


def test_load_json(tmp_path):
    p = tmp_path / "seed.json"
    p.write_text('{"port": 8080, "host": "localhost"}')
    vars_ = load_variables(str(p))
    assert vars_ == {"port": 8080.0, "host": "localhost"}
    assert isinstance(vars_["port"], float)


def test_empty_yaml_is_no_variables(tmp_path):
    p = tmp_path / "empty.yml"
    p.write_text("")
    assert load_variables(p) == {}


def test_containers_are_rejected(tmp_path):
    p = tmp_path / "seed.yaml"
    p.write_text("items:\n  - 1\n  - 2\n")
    with pytest.raises(ValueError, match="seed value 'items' must be a scalar"):
        load_variables(p)


def test_top_level_must_be_a_mapping(tmp_path):
    p = tmp_path / "seed.json"
    p.write_text("[1, 2]")
    with pytest.raises(ValueError, match="mapping"):
        load_variables(p)


def test_unsupported_extension(tmp_path):
    p = tmp_path / "seed.toml"
    p.write_text("a = 1")
    with pytest.raises(ValueError, match="unsupported seed file format"):
        load_variables(p)


def test_invalid_yaml_is_a_value_error(tmp_path):
    p = tmp_path / "seed.yaml"
    p.write_text("a: [unclosed\n")
    with pytest.raises(ValueError, match="invalid YAML"):
        load_variables(p)


def test_to_value_keeps_bools():
    assert to_value(True, "flag") is True
    assert to_value(2, "n") == 2.0
