"""
Configuration management and loading.

Builds the immutable SpotAlert configuration from a YAML file or from
environment variables. Nothing else in the package reads the environment.
"""

import os
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Dict, Mapping, Optional

import yaml

from spot_alert.core.pricing import (
    DEFAULT_PLAN_CEILINGS,
    DEFAULT_UNIT_COSTS,
    Channel,
    PlanTable,
    PricingTable,
)


@dataclass(frozen=True)
class AwsConfig:
    """Region and resource names for the AWS collaborators."""
    region: str = "us-east-1"
    bucket: str = "spotalert"
    collection_id: str = "SpotAlertCollection"


@dataclass(frozen=True)
class EmailConfig:
    """Sender, default recipient and subjects for outbound mail."""
    from_address: str = "alerts@spotalert.live"
    operator_address: str = "admin@spotalert.live"
    alert_subject: str = "[SpotAlert] Unknown Face Detected"
    topup_subject: str = "[SpotAlert] Top-Up Needed"


@dataclass(frozen=True)
class FaceMatchConfig:
    """Face search parameters."""
    threshold: float = 90.0
    max_faces: int = 5

    def __post_init__(self):
        """Validate search parameters."""
        if not 0 < self.threshold <= 100:
            raise ValueError("face_match.threshold must be in (0, 100]")
        if self.max_faces < 1:
            raise ValueError("face_match.max_faces must be >= 1")


@dataclass(frozen=True)
class StorageConfig:
    """Local database and object key settings."""
    db_path: str = "spotalert.db"
    key_prefix: str = "uploads/"
    unique_keys: bool = False


@dataclass(frozen=True)
class SpotAlertConfig:
    """Complete SpotAlert configuration."""
    aws: AwsConfig = field(default_factory=AwsConfig)
    email: EmailConfig = field(default_factory=EmailConfig)
    face_match: FaceMatchConfig = field(default_factory=FaceMatchConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    pricing: PricingTable = field(default_factory=lambda: PricingTable(dict(DEFAULT_UNIT_COSTS)))
    plans: PlanTable = field(default_factory=lambda: PlanTable(dict(DEFAULT_PLAN_CEILINGS)))
    log_level: str = "INFO"


_SECTION_KEYS = {
    "aws": {"region", "bucket", "collection_id"},
    "email": {"from_address", "operator_address", "alert_subject", "topup_subject"},
    "face_match": {"threshold", "max_faces"},
    "storage": {"db_path", "key_prefix", "unique_keys"},
}
_TOP_LEVEL_KEYS = set(_SECTION_KEYS) | {"pricing", "plans", "log_level"}
_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


def load_config(path: str) -> SpotAlertConfig:
    """Load and validate SpotAlert configuration from a YAML file.

    Every section is optional; omitted values fall back to the defaults of
    the corresponding dataclass. Unknown keys are rejected at every level.

    Args:
        path: Path to YAML configuration file

    Returns:
        Validated SpotAlertConfig object

    Raises:
        FileNotFoundError: If config file doesn't exist
        yaml.YAMLError: If YAML is invalid
        ValueError: If configuration is invalid
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"SpotAlert config file not found: {path}")

    with open(config_path, 'r', encoding='utf-8') as f:
        try:
            raw_config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise yaml.YAMLError(f"Invalid YAML in config file {path}: {e}")

    if not raw_config:
        raise ValueError("Configuration file is empty")
    if not isinstance(raw_config, dict):
        raise ValueError("Configuration root must be a dictionary")

    unknown_keys = set(raw_config.keys()) - _TOP_LEVEL_KEYS
    if unknown_keys:
        raise ValueError(f"Unknown configuration keys: {unknown_keys}")

    sections = {
        name: _section(raw_config, name)
        for name in _SECTION_KEYS
    }

    aws = AwsConfig(**{k: str(v) for k, v in sections["aws"].items()})
    email = EmailConfig(**{k: str(v) for k, v in sections["email"].items()})

    face_data = sections["face_match"]
    face_match = FaceMatchConfig(
        threshold=_number(face_data.get("threshold", 90.0), "face_match.threshold"),
        max_faces=_integer(face_data.get("max_faces", 5), "face_match.max_faces"),
    )

    storage_data = sections["storage"]
    unique_keys = storage_data.get("unique_keys", False)
    if not isinstance(unique_keys, bool):
        raise ValueError("'storage.unique_keys' must be a boolean")
    storage = StorageConfig(
        db_path=str(storage_data.get("db_path", StorageConfig.db_path)),
        key_prefix=str(storage_data.get("key_prefix", StorageConfig.key_prefix)),
        unique_keys=unique_keys,
    )

    pricing = _parse_pricing(raw_config.get("pricing"))
    plans = _parse_plans(raw_config.get("plans"))
    log_level = _parse_log_level(raw_config.get("log_level", "INFO"))

    return SpotAlertConfig(
        aws=aws,
        email=email,
        face_match=face_match,
        storage=storage,
        pricing=pricing,
        plans=plans,
        log_level=log_level,
    )


def load_config_from_env(environ: Optional[Mapping[str, str]] = None) -> SpotAlertConfig:
    """Build configuration from environment variables.

    Reads the variables the SpotAlert deployment scripts export. Pricing and
    plan ceilings are not environment-configurable and keep their defaults.

    Args:
        environ: Mapping to read from (defaults to ``os.environ``)

    Returns:
        SpotAlertConfig with environment values applied over defaults
    """
    env = os.environ if environ is None else environ

    aws = AwsConfig(
        region=env.get("AWS_REGION", AwsConfig.region),
        bucket=env.get("S3_BUCKET", AwsConfig.bucket),
        collection_id=env.get("REKOG_COLLECTION_ID", AwsConfig.collection_id),
    )
    email = EmailConfig(
        from_address=env.get("SES_FROM_EMAIL", EmailConfig.from_address),
        operator_address=env.get("SES_TO_EMAIL", EmailConfig.operator_address),
        alert_subject=env.get("ALERT_SUBJECT", EmailConfig.alert_subject),
    )
    storage = StorageConfig(db_path=env.get("SPOTALERT_DB", StorageConfig.db_path))
    log_level = _parse_log_level(env.get("SPOTALERT_LOG_LEVEL", "INFO"))

    return SpotAlertConfig(aws=aws, email=email, storage=storage, log_level=log_level)


def _section(raw_config: Dict, name: str) -> Dict:
    """Return a validated section dictionary, empty when omitted."""
    data = raw_config.get(name) or {}
    if not isinstance(data, dict):
        raise ValueError(f"'{name}' must be a dictionary")

    unknown_keys = set(data.keys()) - _SECTION_KEYS[name]
    if unknown_keys:
        raise ValueError(f"Unknown keys in {name}: {unknown_keys}")
    return data


def _number(value, path: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"'{path}' must be a number")
    return float(value)


def _integer(value, path: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"'{path}' must be an integer")
    return value


def _money(value, path: str) -> Decimal:
    """Parse a non-negative currency amount without float rounding."""
    if isinstance(value, bool):
        raise ValueError(f"'{path}' must be a number")
    try:
        amount = Decimal(str(value))
    except InvalidOperation:
        raise ValueError(f"'{path}' must be a number")
    if not amount.is_finite() or amount < 0:
        raise ValueError(f"'{path}' must be >= 0")
    return amount


def _parse_pricing(data: Optional[Dict]) -> PricingTable:
    """Parse channel unit costs.

    Raises:
        ValueError: If a channel is unknown, missing or negatively priced
    """
    if data is None:
        return PricingTable(dict(DEFAULT_UNIT_COSTS))
    if not isinstance(data, dict):
        raise ValueError("'pricing' must be a dictionary")

    valid_channels = {channel.value for channel in Channel}
    unknown = set(data.keys()) - valid_channels
    if unknown:
        raise ValueError(f"Unknown channels in pricing: {unknown}")
    missing = valid_channels - set(data.keys())
    if missing:
        raise ValueError(f"Missing channel prices: {sorted(missing)}")

    return PricingTable({
        Channel(name): _money(cost, f"pricing.{name}")
        for name, cost in data.items()
    })


def _parse_plans(data: Optional[Dict]) -> PlanTable:
    """Parse plan ceilings. A ``Free`` plan is mandatory."""
    if data is None:
        return PlanTable(dict(DEFAULT_PLAN_CEILINGS))
    if not isinstance(data, dict):
        raise ValueError("'plans' must be a dictionary")
    if "Free" not in data:
        raise ValueError("'plans' must define a 'Free' plan")

    return PlanTable({
        str(name): _money(ceiling, f"plans.{name}")
        for name, ceiling in data.items()
    })


def _parse_log_level(value) -> str:
    level = str(value).upper()
    if level not in _LOG_LEVELS:
        raise ValueError(f"'log_level' must be one of: {sorted(_LOG_LEVELS)}")
    return level
