import pytest

from horust.config import HorustConfig


def test_load_and_merge_rejects_invalid_toml(tmp_path):
    config_path = tmp_path / "config.toml"
    config_path.write_text("Not a toml file :( ")
    config = HorustConfig(unsuccessful_exit_finished_failed=True)
    with pytest.raises(ValueError):
        HorustConfig.load_and_merge(config, config_path)


def test_missing_file_uses_command_line(tmp_path):
    path = tmp_path / "absent.toml"
    merged = HorustConfig.load_and_merge(HorustConfig(True), path)
    assert merged == HorustConfig(True)
    merged = HorustConfig.load_and_merge(HorustConfig(), path)
    assert merged == HorustConfig(False)


@pytest.mark.parametrize(
    ("cmd_line", "in_file", "expected"),
    [
        (False, False, False),
        (True, False, True),
        (False, True, True),
        (True, True, True),
    ],
)
def test_merge_is_an_or(tmp_path, cmd_line, in_file, expected):
    path = tmp_path / "config.toml"
    path.write_text(f"unsuccessful_exit_finished_failed = {str(in_file).lower()}\n")
    merged = HorustConfig.load_and_merge(HorustConfig(cmd_line), path)
    assert merged.unsuccessful_exit_finished_failed is expected


def test_missing_key_is_an_error(tmp_path):
    path = tmp_path / "config.toml"
    path.write_text("other = 1\n")
    with pytest.raises(ValueError, match="missing field"):
        HorustConfig.load_and_merge(HorustConfig(), path)


def test_wrong_type_is_an_error(tmp_path):
    path = tmp_path / "config.toml"
    path.write_text('unsuccessful_exit_finished_failed = "yes"\n')
    with pytest.raises(ValueError):
        HorustConfig.load_and_merge(HorustConfig(), path)