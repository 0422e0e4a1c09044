"""Tests for settings loading and validation."""

import pytest

from config import DEFAULTS, SettingsError, load_settings_conf, validate_settings


def write_conf(tmp_path, text):
    (tmp_path / 'settings.conf').write_text(text)
    return str(tmp_path)


def test_missing_file_uses_defaults(tmp_path):
    assert load_settings_conf(str(tmp_path)) == DEFAULTS


def test_file_overrides_defaults(tmp_path):
    path = write_conf(tmp_path, "[DEFAULT]\nstore_backend = memory\nescrow_assignment = round_robin\n")
    settings = validate_settings(load_settings_conf(path))
    assert settings['store_backend'] == 'memory'
    assert settings['escrow_assignment'] == 'round_robin'
    assert settings['max_page_size'] == 100
    assert settings['jwt_secret']


def test_settings_dir_from_environment(tmp_path, monkeypatch):
    write_conf(tmp_path, "[DEFAULT]\ndefault_currency = USDC\n")
    monkeypatch.setenv('MARKET_SETTINGS_DIR', str(tmp_path))
    assert load_settings_conf()['default_currency'] == 'USDC'


def test_missing_default_section(tmp_path):
    path = write_conf(tmp_path, "[market]\nstore_backend = memory\n")
    with pytest.raises(SettingsError, match=r"\[DEFAULT\]"):
        load_settings_conf(path)


def test_configured_secret_is_kept():
    assert validate_settings({**DEFAULTS, 'jwt_secret': 's3cret'})['jwt_secret'] == 's3cret'


@pytest.mark.parametrize("overrides,message", [
    ({'max_page_size': 'many'}, 'max_page_size'),
    ({'session_expiry_days': '0'}, 'session_expiry_days'),
    ({'default_page_size': '500'}, 'default_page_size'),
    ({'store_backend': 'sqlite'}, 'store_backend'),
    ({'escrow_assignment': 'random'}, 'escrow_assignment'),
    ({'db_url': ''}, 'db_url'),
])
def test_invalid_settings(overrides, message):
    with pytest.raises(SettingsError, match=message):
        validate_settings({**DEFAULTS, **overrides})
