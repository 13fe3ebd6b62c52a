"""
tokensale Configuration Manager

Centralized configuration management supporting:
- Environment-based configs (development/testnet/production)
- Config file loading (YAML/JSON)
- Command-line override support
- Environment variable support (TOKENSALE_*)
- Config validation
"""

import json
import os
from dataclasses import asdict, dataclass, fields
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml
from dotenv import load_dotenv

DEFAULT_CONFIG_DIR = Path(__file__).resolve().parent / "config"
ENV_PREFIX = "TOKENSALE_"

DAY = 24 * 3600


class Environment(Enum):
    """Environment types"""
    DEVELOPMENT = "development"
    TESTNET = "testnet"
    PRODUCTION = "production"


@dataclass
class SaleLimitsConfig:
    """Protocol-wide bounds on sale periods (seconds)."""
    min_refund_period: int = 3600
    max_refund_period: int = 14 * DAY
    min_sale_period: int = 3600
    max_sale_period: int = 90 * DAY
    min_prefund_period: int = 3600
    max_prefund_period: int = 90 * DAY
    min_prefund_allocation_period: int = 3600
    max_prefund_allocation_period: int = 14 * DAY
    max_vesting_duration: int = 10 * 365 * DAY

    def validate(self):
        """Validate sale limits"""
        pairs = [
            ("refund_period", self.min_refund_period, self.max_refund_period),
            ("sale_period", self.min_sale_period, self.max_sale_period),
            ("prefund_period", self.min_prefund_period, self.max_prefund_period),
            (
                "prefund_allocation_period",
                self.min_prefund_allocation_period,
                self.max_prefund_allocation_period,
            ),
        ]
        for name, low, high in pairs:
            if low < 0:
                raise ValueError(f"Invalid min_{name}: {low}. Must be >= 0")
            if high < low:
                raise ValueError(f"Invalid max_{name}: {high}. Must be >= min_{name} ({low})")
        if self.max_vesting_duration <= 0:
            raise ValueError(f"Invalid max_vesting_duration: {self.max_vesting_duration}. Must be > 0")


@dataclass
class FeeConfig:
    """Protocol fees in basis points."""
    capital_fee_bps: int = 250
    token_fee_bps: int = 100
    max_fee_bps: int = 10_000

    def validate(self):
        """Validate fee configuration"""
        if not 0 < self.max_fee_bps <= 10_000:
            raise ValueError(f"Invalid max_fee_bps: {self.max_fee_bps}. Must be between 1-10000")
        for name in ("capital_fee_bps", "token_fee_bps"):
            value = getattr(self, name)
            if not 0 <= value <= self.max_fee_bps:
                raise ValueError(f"Invalid {name}: {value}. Must be between 0-{self.max_fee_bps}")


@dataclass
class LoggingConfig:
    """Logging configuration settings"""
    level: str = "INFO"
    json_format: bool = True
    log_file: str = ""

    def validate(self):
        """Validate logging configuration"""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if self.level.upper() not in valid_levels:
            raise ValueError(f"Invalid log level: {self.level}. Must be one of {valid_levels}")


def _build_section(section_cls, values: Dict[str, Any]):
    known = {f.name for f in fields(section_cls)}
    unknown = set(values) - known
    if unknown:
        raise ValueError(f"Unknown {section_cls.__name__} keys: {sorted(unknown)}")
    return section_cls(**values)


class ConfigManager:
    """
    Configuration Manager for tokensale

    Sources, highest priority first:
    1. Command-line overrides
    2. Environment variables (TOKENSALE_SECTION_KEY)
    3. Environment-specific config file
    4. Default config file
    5. Built-in dataclass defaults
    """

    def __init__(self,
                 environment: Optional[str] = None,
                 config_dir: Optional[str] = None,
                 cli_overrides: Optional[Dict[str, Any]] = None):
        load_dotenv()

        self.environment = self._determine_environment(environment)
        self.config_dir = Path(config_dir).resolve() if config_dir else DEFAULT_CONFIG_DIR
        self.cli_overrides = cli_overrides or {}

        self.sale_limits: SaleLimitsConfig = SaleLimitsConfig()
        self.fees: FeeConfig = FeeConfig()
        self.logging: LoggingConfig = LoggingConfig()

        self._raw_config: Dict[str, Any] = {}
        self._load_configuration()

    def _determine_environment(self, environment: Optional[str]) -> Environment:
        env_str = (environment or os.getenv(f"{ENV_PREFIX}ENVIRONMENT", "development")).lower()
        env_mapping = {
            "dev": Environment.DEVELOPMENT,
            "development": Environment.DEVELOPMENT,
            "test": Environment.TESTNET,
            "testnet": Environment.TESTNET,
            "prod": Environment.PRODUCTION,
            "production": Environment.PRODUCTION,
        }
        return env_mapping.get(env_str, Environment.DEVELOPMENT)

    def _load_configuration(self):
        """Load configuration from all sources with proper precedence"""
        merged_config = self._merge_configs(
            self._load_config_file("default"),
            self._load_config_file(self.environment.value),
        )
        merged_config = self._apply_env_variables(merged_config)
        merged_config = self._apply_cli_overrides(merged_config)

        self._raw_config = merged_config
        self._parse_configuration(merged_config)
        self._validate_configuration()

    def _load_config_file(self, filename: str) -> Dict[str, Any]:
        yaml_path = self.config_dir / f"{filename}.yaml"
        if yaml_path.exists():
            with open(yaml_path, "r") as f:
                return yaml.safe_load(f) or {}

        json_path = self.config_dir / f"{filename}.json"
        if json_path.exists():
            with open(json_path, "r") as f:
                return json.load(f)

        return {}

    def _merge_configs(self, base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
        """Deep merge two configuration dictionaries"""
        result = dict(base)
        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._merge_configs(result[key], value)
            else:
                result[key] = value
        return result

    def _apply_env_variables(self, config: Dict[str, Any]) -> Dict[str, Any]:
        """
        Apply environment variable overrides.

        TOKENSALE_FEES_CAPITAL_FEE_BPS=300 sets fees.capital_fee_bps. Sections
        may contain underscores, so the longest matching section name wins.
        """
        result = {key: dict(value) if isinstance(value, dict) else value for key, value in config.items()}
        sections = sorted(("sale_limits", "fees", "logging"), key=len, reverse=True)

        for key, value in os.environ.items():
            if not key.startswith(ENV_PREFIX) or key == f"{ENV_PREFIX}ENVIRONMENT":
                continue
            remainder = key[len(ENV_PREFIX):].lower()
            for section in sections:
                if remainder.startswith(section + "_"):
                    config_key = remainder[len(section) + 1:]
                    result.setdefault(section, {})
                    result[section][config_key] = self._parse_env_value(value)
                    break

        return result

    def _parse_env_value(self, value: str) -> Union[str, int, float, bool]:
        if value.lower() in ("true", "yes", "on"):
            return True
        if value.lower() in ("false", "no", "off"):
            return False
        try:
            return int(value)
        except ValueError:
            pass
        try:
            return float(value)
        except ValueError:
            pass
        return value

    def _apply_cli_overrides(self, config: Dict[str, Any]) -> Dict[str, Any]:
        result = dict(config)
        for key, value in self.cli_overrides.items():
            parts = key.split(".")
            if len(parts) == 1:
                result[key] = value
            elif len(parts) == 2:
                section, config_key = parts
                result[section] = dict(result.get(section) or {})
                result[section][config_key] = value
        return result

    def _parse_configuration(self, config: Dict[str, Any]):
        self.sale_limits = _build_section(SaleLimitsConfig, config.get("sale_limits") or {})
        self.fees = _build_section(FeeConfig, config.get("fees") or {})
        self.logging = _build_section(LoggingConfig, config.get("logging") or {})

    def _validate_configuration(self):
        self.sale_limits.validate()
        self.fees.validate()
        self.logging.validate()

    def get(self, key: str, default: Any = None) -> Any:
        """Get configuration value by dot-notation key, e.g. "fees.capital_fee_bps"."""
        value: Any = self.to_dict()
        for part in key.split("."):
            if isinstance(value, dict) and part in value:
                value = value[part]
            else:
                return default
        return value

    def get_section(self, section: str) -> Optional[Dict[str, Any]]:
        return self.to_dict().get(section)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "environment": self.environment.value,
            "sale_limits": asdict(self.sale_limits),
            "fees": asdict(self.fees),
            "logging": asdict(self.logging),
        }

    def reload(self):
        """Reload configuration from files"""
        self._load_configuration()

    def __repr__(self) -> str:
        return f"ConfigManager(environment={self.environment.value})"


_config_manager: Optional[ConfigManager] = None


def get_config_manager(
    environment: Optional[str] = None,
    config_dir: Optional[str] = None,
    cli_overrides: Optional[Dict[str, Any]] = None,
    force_reload: bool = False,
) -> ConfigManager:
    """Get or create the ConfigManager singleton instance"""
    global _config_manager

    if _config_manager is None or force_reload:
        _config_manager = ConfigManager(
            environment=environment,
            config_dir=config_dir,
            cli_overrides=cli_overrides,
        )
    return _config_manager
