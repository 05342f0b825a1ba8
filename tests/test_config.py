# FILE: tests/test_config.py
# ------------------------------------------------------------------------------
import pydantic
import pytest

from helloserver.config import Config, load_config, redact_config
from helloserver.errors.fatal import ConfigError

_ENV_KEYS = (
    "PORT",
    "HOST",
    "TARGET_COUNT",
    "CHUNK_SIZE_MB",
    "INTERVAL_SECS",
    "CUSTOM_MESSAGE",
    "OTEL_SERVICE_NAME",
    "OTEL_EXPORTER_OTLP_HEADERS",
    "DEBUG",
    "LOG_LEVEL",
    "LOG_FORMAT",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    for key in _ENV_KEYS:
        monkeypatch.delenv(key, raising=False)


def test_defaults():
    conf = load_config()
    assert conf.port == 8080
    assert conf.target_count == 7
    assert conf.chunk_size_mb == 1
    assert conf.chunk_size_bytes == 1024 * 1024
    assert conf.interval_secs == 5
    assert conf.custom_message == "Hello 7 objects"
    assert conf.effective_log_level == "INFO"


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("PORT", "9090")
    monkeypatch.setenv("TARGET_COUNT", "3")
    monkeypatch.setenv("CHUNK_SIZE_MB", "2")
    monkeypatch.setenv("OTEL_SERVICE_NAME", "demo")
    monkeypatch.setenv("DEBUG", "true")
    conf = load_config()
    assert conf.port == 9090
    assert conf.target_count == 3
    assert conf.chunk_size_bytes == 2 * 1024 * 1024
    assert conf.service_name == "demo"
    assert conf.effective_log_level == "DEBUG"


def test_explicit_overrides_win(monkeypatch):
    monkeypatch.setenv("PORT", "9090")
    assert load_config(port=7000).port == 7000
    assert load_config(port=None).port == 9090


def test_dotenv_file_is_read(tmp_path):
    (tmp_path / ".env").write_text("CUSTOM_MESSAGE=from dotenv\n", encoding="utf-8")
    assert load_config().custom_message == "from dotenv"


@pytest.mark.parametrize(
    "key,value,field",
    [
        ("TARGET_COUNT", "-1", "target_count"),
        ("INTERVAL_SECS", "0", "interval_secs"),
        ("PORT", "not-a-port", "port"),
        ("LOG_FORMAT", "xml", "log_format"),
    ],
)
def test_invalid_values_raise_config_error(monkeypatch, key, value, field):
    monkeypatch.setenv(key, value)
    with pytest.raises(ConfigError) as excinfo:
        load_config()
    assert any(field in err["field"] for err in excinfo.value.context["errors"])


def test_config_is_frozen():
    conf = load_config()
    with pytest.raises(pydantic.ValidationError):
        conf.port = 1


def test_otlp_header_map():
    conf = Config(OTEL_EXPORTER_OTLP_HEADERS="authorization=abc, x-team = ops,")
    assert conf.otlp_header_map() == {"authorization": "abc", "x-team": "ops"}
    assert Config().otlp_header_map() == {}


def test_malformed_otlp_header_raises():
    with pytest.raises(ConfigError):
        Config(OTEL_EXPORTER_OTLP_HEADERS="no-equals-sign").otlp_header_map()


def test_redact_config_masks_secrets():
    values = {"otlp_headers": "authorization=abc", "api_token": None, "port": 8080}
    assert redact_config(values) == {"otlp_headers": "****", "api_token": None, "port": 8080}
