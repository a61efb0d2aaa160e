from __future__ import annotations

import pytest
from pydantic import ValidationError

from fhemarket.core.config import Settings


def test_defaults_target_testnet():
    settings = Settings(_env_file=None)

    assert settings.chain_id == 11155111
    assert settings.gateway_chain_id == 55815
    assert settings.decryption_duration_days == 10
    assert settings.relayer_base_url == "https://relayer.testnet.zama.cloud"
    assert settings.relayer_retry_backoff_schedule == (1.0, 2.0, 4.0)


def test_addresses_are_checksummed():
    settings = Settings(_env_file=None, contract_address="0x70997970c51812dc3a010c7d01b50e0d17dc79c8")

    assert settings.contract_address == "0x70997970C51812dc3A010C7d01b50e0d17dc79C8"


def test_invalid_address_is_rejected():
    with pytest.raises(ValidationError):
        Settings(_env_file=None, contract_address="0x1234")


def test_private_key_is_normalized():
    raw = "59c6995e998f97a5a0044966f0945389dc9e86dae88c7a8412f4603b6b78690d"

    assert Settings(_env_file=None, private_key=raw).private_key == "0x" + raw
    assert Settings(_env_file=None, private_key="   ").private_key is None
    with pytest.raises(ValidationError):
        Settings(_env_file=None, private_key="0xdeadbeef")


def test_backend_name_is_validated():
    assert Settings(_env_file=None, fhe_backend=" MOCK ").fhe_backend == "mock"
    with pytest.raises(ValidationError):
        Settings(_env_file=None, fhe_backend="tfhe")


def test_retry_backoff_parsing():
    settings = Settings(_env_file=None, relayer_retry_backoff_seconds="0.5, 1.5")

    assert settings.relayer_retry_backoff_schedule == (0.5, 1.5)
    with pytest.raises(ValidationError):
        Settings(_env_file=None, relayer_retry_backoff_seconds="fast")


def test_settings_read_from_environment(monkeypatch):
    monkeypatch.setenv("FHE_BACKEND", "mock")
    monkeypatch.setenv("EVENT_FETCH_CONCURRENCY", "3")
    monkeypatch.setenv("RELAYER_URL", "https://relay.example.org/")

    settings = Settings(_env_file=None)

    assert settings.fhe_backend == "mock"
    assert settings.event_fetch_concurrency == 3
    assert settings.relayer_base_url == "https://relay.example.org"


def test_retry_backoff_accepts_sequences_and_rejects_non_positive():
    assert Settings(_env_file=None, relayer_retry_backoff_seconds=[2, 3]).relayer_retry_backoff_schedule == (2.0, 3.0)
    assert Settings(_env_file=None, relayer_retry_backoff_seconds="").relayer_retry_backoff_schedule == (1.0, 2.0, 4.0)
    with pytest.raises(ValidationError):
        Settings(_env_file=None, relayer_retry_backoff_seconds="1, 0")


def test_settings_only_declare_fields_the_client_reads():
    assert "environment" not in Settings.model_fields
