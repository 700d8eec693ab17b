from __future__ import annotations

import pytest

from stackops.domain.config import ConfigKey, ConfigValue, config_from_wire, config_to_wire


def test_config_key_accepts_legacy_form() -> None:
    assert ConfigKey.parse("aws:config:region") == ConfigKey("aws", "region")
    assert str(ConfigKey.parse("aws:region")) == "aws:region"


@pytest.mark.parametrize("text", ["region", ":region", "aws:", "a:b:c"])
def test_config_key_rejects_malformed_keys(text: str) -> None:
    with pytest.raises(ValueError):
        ConfigKey.parse(text)


def test_config_from_wire_keeps_secret_ciphertext_opaque() -> None:
    cfg = config_from_wire(
        {
            "aws:region": {"string": "us-west-2", "secret": False},
            "app:dbPassword": {"string": "AAABBBCCC==", "secret": True},
        }
    )
    assert cfg[ConfigKey("aws", "region")] == ConfigValue("us-west-2")
    assert cfg[ConfigKey("app", "dbPassword")] == ConfigValue("AAABBBCCC==", secret=True)


def test_config_to_wire_uses_string_secret_shape() -> None:
    wire = config_to_wire({ConfigKey("app", "token"): ConfigValue("cipher", secret=True)})
    assert wire == {"app:token": {"string": "cipher", "secret": True}}
