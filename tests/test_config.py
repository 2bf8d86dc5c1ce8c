import json
from datetime import datetime, timezone

from rocketdriver.config.loader import camel_to_snake, load_config, save_config, snake_to_camel
from rocketdriver.config.schema import DriverConfig
from rocketdriver.utils.helpers import ensure_protocol, parse_date, strip_protocol


def test_defaults():
    config = DriverConfig()
    assert config.host == "localhost:3000"
    assert config.timeout == 20000
    assert config.rooms == ["GENERAL"]
    assert config.room_cache_max_age == 300000
    assert config.dm_cache_max_age == 100000


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("ROCKETCHAT_HOST", "chat.example.com")
    monkeypatch.setenv("ROCKETCHAT_USE_SSL", "true")
    monkeypatch.setenv("ROCKETCHAT_ROOMS", '["dev"]')

    config = DriverConfig()

    assert config.host == "chat.example.com"
    assert config.use_ssl is True
    assert config.rooms == ["dev"]


def test_merged_accepts_camel_case_and_skips_none():
    config = DriverConfig(dm=False)

    merged = config.merged(allPublic=True, dm=None, useSsl=True, bogus=1)

    assert merged.all_public is True
    assert merged.use_ssl is True
    assert merged.dm is False
    assert config.all_public is False


def test_safe_dump_masks_password():
    assert DriverConfig(password="secret").safe_dump()["password"] == "******"


def test_load_and_save_round_trip(tmp_path):
    path = tmp_path / "config.json"
    save_config(DriverConfig(host="chat.example.com", room_cache_max_size=3), path)

    raw = json.loads(path.read_text())
    assert raw["roomCacheMaxSize"] == 3
    assert load_config(path).room_cache_max_size == 3


def test_load_config_with_invalid_file_uses_defaults(tmp_path):
    path = tmp_path / "config.json"
    path.write_text("{not json")

    assert load_config(path).host == "localhost:3000"


def test_key_conversion():
    assert camel_to_snake("dmCacheMaxAge") == "dm_cache_max_age"
    assert snake_to_camel("all_public") == "allPublic"


def test_strip_protocol():
    assert strip_protocol("https://chat.example.com") == "chat.example.com"
    assert strip_protocol("//localhost:3000") == "localhost:3000"
    assert strip_protocol("localhost:3000") == "localhost:3000"


def test_ensure_protocol():
    assert ensure_protocol("localhost:3000") == "http://localhost:3000"
    assert ensure_protocol("chat.example.com", use_ssl=True) == "https://chat.example.com"
    assert ensure_protocol("https://chat.example.com/") == "https://chat.example.com"


def test_parse_date_formats():
    expected = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
    millis = int(expected.timestamp() * 1000)

    assert parse_date({"$date": millis}) == expected
    assert parse_date(millis) == expected
    assert parse_date("2024-05-01T12:00:00Z") == expected
    assert parse_date(datetime(2024, 5, 1, 12, 0)) == expected
    assert parse_date("not a date") is None
    assert parse_date(None) is None
