# pyright: reportUnknownMemberType=false
import dataclasses
from pathlib import Path

import pytest

from relay.networking.config import (
    DecodeSettings,
    EncodeSettings,
    ReportMode,
    ServerConfig,
    StandardChallenge,
    StandardResponse,
    TransportSettings,
)


def test_config_defaults_are_stable():
    config = ServerConfig(base="https://api.example.com")

    assert config.timeout == 60.0
    assert dict(config.headers) == {}
    assert dict(config.query) == {}
    assert config.session == TransportSettings()
    assert config.challenge == StandardChallenge()
    assert config.request is None
    assert config.response == StandardResponse()
    assert config.encoder == EncodeSettings()
    assert config.decoder == DecodeSettings()
    assert config.catcher is None
    assert config.reports == ReportMode.none()


def test_config_headers_are_immutable():
    config = ServerConfig(
        base="https://api.example.com", headers={"X-Test": "1"}
    )

    with pytest.raises(TypeError):
        config.headers["X-Test"] = "2"  # type: ignore[index]


def test_config_copies_external_mappings():
    headers = {"X-Test": "1"}
    query = {"lang": "en"}
    config = ServerConfig(
        base="https://api.example.com", headers=headers, query=query
    )
    headers["X-Test"] = "2"
    query["lang"] = "de"

    assert config.headers["X-Test"] == "1"
    assert config.query["lang"] == "en"


def test_config_is_frozen():
    config = ServerConfig(base="https://api.example.com")

    with pytest.raises(dataclasses.FrozenInstanceError):
        config.timeout = 5  # type: ignore[misc]


def test_config_replace_produces_new_value():
    config = ServerConfig(base="https://api.example.com")
    changed = dataclasses.replace(
        config, headers={"Authorization": "Bearer x"}
    )

    assert dict(config.headers) == {}
    assert changed.headers["Authorization"] == "Bearer x"
    assert changed.base == config.base


def test_config_rejects_non_positive_timeout():
    with pytest.raises(ValueError):
        ServerConfig(base="https://api.example.com", timeout=0)
    with pytest.raises(ValueError):
        ServerConfig(base="https://api.example.com", timeout=-1)


@pytest.mark.parametrize("base", ["api.example.com/v1", "/relative", ""])
def test_config_rejects_non_absolute_base(base):
    with pytest.raises(ValueError):
        ServerConfig(base=base)


def test_config_rejects_unparseable_base():
    with pytest.raises(ValueError):
        ServerConfig(base="https://api.example.com:notaport")


def test_transport_settings_reject_non_positive_connect_timeout():
    with pytest.raises(ValueError):
        TransportSettings(connect_timeout_seconds=0)


def test_report_modes(tmp_path: Path):
    assert not ReportMode.none().enabled
    assert ReportMode.logs_only().logs
    assert ReportMode.logs_only().folder is None
    dumps = ReportMode(logs=False, folder=tmp_path)
    full = ReportMode(logs=True, folder=tmp_path)
    assert ReportMode.dumps(tmp_path) == dumps
    assert ReportMode.full(str(tmp_path)) == full


def test_config_rejects_report_folder_that_is_a_file(tmp_path: Path):
    target = tmp_path / "file.txt"
    target.write_text("x")

    with pytest.raises(ValueError):
        ServerConfig(
            base="https://api.example.com", reports=ReportMode.dumps(target)
        )
