import pytest

from common.config.env import get_env_bool, get_env_float, get_env_int, get_env_str


def test_get_env_str_default_and_required(monkeypatch):
    monkeypatch.delenv("FOREST_TEST_VALUE", raising=False)

    assert get_env_str("FOREST_TEST_VALUE", "fallback") == "fallback"
    with pytest.raises(KeyError, match="FOREST_TEST_VALUE"):
        get_env_str("FOREST_TEST_VALUE", required=True)


def test_get_env_int_parses_and_rejects(monkeypatch):
    monkeypatch.setenv("FOREST_TEST_VALUE", " 42 ")
    assert get_env_int("FOREST_TEST_VALUE") == 42

    monkeypatch.setenv("FOREST_TEST_VALUE", "forty-two")
    with pytest.raises(ValueError, match="must be an integer"):
        get_env_int("FOREST_TEST_VALUE")


def test_get_env_float(monkeypatch):
    monkeypatch.setenv("FOREST_TEST_VALUE", "0.25")
    assert get_env_float("FOREST_TEST_VALUE") == 0.25


@pytest.mark.parametrize(
    "raw, expected",
    [("true", True), ("YES", True), ("1", True), ("off", False), ("", False), ("0", False)],
)
def test_get_env_bool_values(monkeypatch, raw, expected):
    monkeypatch.setenv("FOREST_TEST_VALUE", raw)
    assert get_env_bool("FOREST_TEST_VALUE") is expected


def test_get_env_bool_rejects_unknown(monkeypatch):
    monkeypatch.setenv("FOREST_TEST_VALUE", "maybe")
    with pytest.raises(ValueError, match="must be a boolean"):
        get_env_bool("FOREST_TEST_VALUE")
