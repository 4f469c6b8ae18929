import pytest

from agrivoice import config

ENV_VARS = (
    "AGRIVOICE_GENERATOR_MODE",
    "OPENROUTER_API_KEY",
    "OPENROUTER_MODEL",
    "AGRIVOICE_ALLOWED_ORIGINS",
    "AGRIVOICE_SERVER_URL",
    "PORT",
)


@pytest.fixture(autouse=True)
def isolated_config(tmp_path, monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    cfg_path = tmp_path / "config.json"
    monkeypatch.setattr(config, "CONFIG_PATH", cfg_path)
    return cfg_path
