from functools import lru_cache
from typing import Any

from pydantic import AnyUrl, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from web3 import Web3


_ADDRESS_FIELDS = (
    "contract_address",
    "acl_contract_address",
    "kms_contract_address",
    "input_verifier_contract_address",
    "verifying_contract_address_decryption",
    "verifying_contract_address_input_verification",
)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    rpc_url: AnyUrl | str = Field(
        default="http://localhost:8545",
        description="JSON-RPC endpoint of the chain hosting the prediction market",
    )
    chain_id: int = Field(
        default=11155111,
        description="Chain id used when signing ledger transactions",
    )
    contract_address: str = Field(
        default="0x42B0C00B90cCdbB6Ccb1392a5Db313DdA7EF7CFc",
        description="Deployed PredictionMarket contract address",
    )
    private_key: str | None = Field(
        default=None,
        description="Hex private key of the wallet used to sign transactions and decryption requests",
    )
    fhe_backend: str = Field(
        default="relayer",
        description="Encryption backend implementation (relayer|mock)",
    )
    relayer_url: AnyUrl | str = Field(
        default="https://relayer.testnet.zama.cloud",
        description="Base URL of the decryption relay",
    )
    relayer_keyurl_path: str = Field(
        default="/v1/keyurl",
        description="Relative path publishing the network FHE key material",
    )
    encryptor_url: AnyUrl | str = Field(
        default="http://127.0.0.1:8787",
        description="Base URL of the local encryption sidecar that builds ciphertexts and input proofs",
    )
    encryptor_encrypt_path: str = Field(
        default="/v1/encrypt",
        description="Relative path of the encrypted-input endpoint on the sidecar",
    )
    relayer_user_decrypt_path: str = Field(
        default="/v1/user-decrypt",
        description="Relative path of the user-decryption endpoint",
    )
    relayer_timeout_seconds: float = Field(
        default=30.0,
        description="HTTP timeout applied to every relay request",
        gt=0,
    )
    relayer_retry_backoff_seconds: tuple[float, ...] | str = Field(
        default=(1.0, 2.0, 4.0),
        description="Comma-separated delays between relay decryption retries (CLI decrypt commands and retry_unavailable)",
    )
    gateway_chain_id: int = Field(
        default=55815,
        description="Chain id of the decryption gateway used in the EIP-712 domain",
    )
    acl_contract_address: str = Field(
        default="0x687820221192C5B662b25367F70076A37bc79b6c",
        description="ACL contract enforcing ciphertext access control",
    )
    kms_contract_address: str = Field(
        default="0x1364cBBf2cDF5032C47d8226a6f6FBD2AFCDacAC",
        description="KMS verifier contract address",
    )
    input_verifier_contract_address: str = Field(
        default="0xbc91f3daD1A5F19F8390c400196e58073B6a0BC4",
        description="Input verifier contract address",
    )
    verifying_contract_address_decryption: str = Field(
        default="0xb6E160B1ff80D67Bfe90A85eE06Ce0A2613607D1",
        description="Verifying contract of the user-decryption EIP-712 domain",
    )
    verifying_contract_address_input_verification: str = Field(
        default="0x7048C39f048125eDa9d678AEbaDfB22F7900a29F",
        description="Verifying contract of the input-verification EIP-712 domain",
    )
    decryption_duration_days: int = Field(
        default=10,
        description="Validity window, in days, requested for user-decryption authorizations",
        ge=1,
        le=365,
    )
    event_fetch_concurrency: int = Field(
        default=8,
        description="Maximum number of concurrent ledger reads while loading events",
        ge=1,
    )
    tx_receipt_timeout_seconds: float = Field(
        default=120.0,
        description="Seconds to wait for a transaction receipt",
        gt=0,
    )
    tx_gas_limit: int | None = Field(
        default=None,
        description="Optional fixed gas limit; estimated by the node when unset",
    )
    bet_logs_from_block: int = Field(
        default=0,
        description="First block scanned when attaching BetPlaced log metadata to user bets",
        ge=0,
    )

    @field_validator(*_ADDRESS_FIELDS)
    @classmethod
    def _checksum_address(cls, value: str) -> str:
        if not Web3.is_address(value):
            raise ValueError(f"{value!r} is not a valid EVM address")
        return Web3.to_checksum_address(value)

    @field_validator("fhe_backend")
    @classmethod
    def _validate_backend(cls, value: str) -> str:
        normalized = value.strip().lower()
        if normalized not in {"relayer", "mock"}:
            raise ValueError("FHE_BACKEND must be 'relayer' or 'mock'")
        return normalized

    @field_validator("private_key")
    @classmethod
    def _normalize_private_key(cls, value: str | None) -> str | None:
        if value is None:
            return None
        candidate = value.strip()
        if not candidate:
            return None
        if not candidate.startswith("0x"):
            candidate = "0x" + candidate
        if len(candidate) != 66:
            raise ValueError("PRIVATE_KEY must be a 32-byte hex string")
        return candidate

    @field_validator("relayer_retry_backoff_seconds", mode="before")
    @classmethod
    def _parse_retry_backoff(cls, value: Any) -> tuple[float, ...]:
        if value in (None, "", [], ()):
            return (1.0, 2.0, 4.0)
        items = value.split(",") if isinstance(value, str) else value
        try:
            delays = tuple(float(item) for item in items if str(item).strip())
        except (TypeError, ValueError) as exc:
            raise ValueError("RELAYER_RETRY_BACKOFF_SECONDS entries must be numeric") from exc
        if not delays or min(delays) <= 0:
            raise ValueError("RELAYER_RETRY_BACKOFF_SECONDS needs at least one positive delay")
        return delays

    @property
    def relayer_base_url(self) -> str:
        return str(self.relayer_url).rstrip("/")

    @property
    def encryptor_base_url(self) -> str:
        return str(self.encryptor_url).rstrip("/")

    @property
    def relayer_retry_backoff_schedule(self) -> tuple[float, ...]:
        return tuple(self.relayer_retry_backoff_seconds)


@lru_cache
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
