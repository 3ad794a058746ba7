import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

logger = logging.getLogger(__name__)


class ConfigError(ValueError):
    """Raised when a configuration file cannot be used"""
    pass


@dataclass
class AuditoriumConfig:
    host_id: str = "0"
    ip: str = "127.0.0.1"
    port: int = 9700
    trust_store_dir: Path = field(default_factory=lambda: Path("keys/auditorium"))
    log_file: Optional[Path] = None
    peers: List[str] = field(default_factory=list)

    def __post_init__(self):
        self.host_id = str(self.host_id)
        self.trust_store_dir = Path(self.trust_store_dir)
        if self.log_file is not None:
            self.log_file = Path(self.log_file)
        self.peers = [str(peer) for peer in self.peers]
        if not 0 <= int(self.port) <= 65535:
            raise ConfigError(f"Port {self.port} out of range")
        self.port = int(self.port)


@dataclass
class CryptoConfig:
    system: str = "exponential-elgamal"
    threshold: int = 2
    num_shares: int = 3
    key_dir: Path = field(default_factory=lambda: Path("keys/adder"))
    allowed_values: List[int] = field(default_factory=lambda: [0, 1])
    max_workers: Optional[int] = None

    def __post_init__(self):
        self.key_dir = Path(self.key_dir)
        self.allowed_values = [int(v) for v in self.allowed_values]
        if self.threshold < 1:
            raise ConfigError(f"Threshold must be at least 1, got {self.threshold}")
        if self.threshold > self.num_shares:
            raise ConfigError(f"Threshold {self.threshold} exceeds share count {self.num_shares}")

    @property
    def public_key_file(self) -> Path:
        return self.key_dir / "public.key"

    def share_file(self, index: int) -> Path:
        return self.key_dir / f"share{index}.key"


@dataclass
class SystemConfig:
    election_id: str = "election"
    auditorium: AuditoriumConfig = field(default_factory=AuditoriumConfig)
    crypto: CryptoConfig = field(default_factory=CryptoConfig)

    log_dir: Path = field(default_factory=lambda: Path("logs"))
    results_dir: Path = field(default_factory=lambda: Path("results"))
    log_level: str = "INFO"

    def __post_init__(self):
        self.log_dir = Path(self.log_dir)
        self.results_dir = Path(self.results_dir)
        self.log_level = str(self.log_level)
        if not isinstance(logging.getLevelName(self.log_level.upper()), int):
            raise ConfigError(f"Unknown log level '{self.log_level}'")


def _section(data: Dict[str, Any], name: str) -> Dict[str, Any]:
    section = data.get(name) or {}
    if not isinstance(section, dict):
        raise ConfigError(f"Section '{name}' must be a mapping")
    return section


def config_from_dict(config_data: Dict[str, Any]) -> SystemConfig:
    """Build a SystemConfig from a parsed mapping, defaulting missing keys"""
    try:
        auditorium_data = _section(config_data, 'auditorium')
        auditorium = AuditoriumConfig(
            host_id=auditorium_data.get('host_id', "0"),
            ip=auditorium_data.get('ip', "127.0.0.1"),
            port=auditorium_data.get('port', 9700),
            trust_store_dir=Path(auditorium_data.get('trust_store_dir', 'keys/auditorium')),
            log_file=auditorium_data.get('log_file'),
            peers=auditorium_data.get('peers', [])
        )

        crypto_data = _section(config_data, 'crypto')
        crypto = CryptoConfig(
            system=crypto_data.get('system', 'exponential-elgamal'),
            threshold=crypto_data.get('threshold', 2),
            num_shares=crypto_data.get('num_shares', 3),
            key_dir=Path(crypto_data.get('key_dir', 'keys/adder')),
            allowed_values=crypto_data.get('allowed_values', [0, 1]),
            max_workers=crypto_data.get('max_workers')
        )

        return SystemConfig(
            election_id=str(config_data.get('election_id', 'election')),
            auditorium=auditorium,
            crypto=crypto,
            log_dir=Path(config_data.get('log_dir', 'logs')),
            results_dir=Path(config_data.get('results_dir', 'results')),
            log_level=config_data.get('log_level', 'INFO')
        )
    except ConfigError:
        raise
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid configuration value: {e}") from e


def load_config(config_path: Optional[Path] = None) -> SystemConfig:
    """Load configuration from file or return default"""
    if config_path is None:
        config_path = Path("config.yaml")
    config_path = Path(config_path)

    if not config_path.exists():
        logger.info(f"No config file at {config_path}, using defaults")
        return SystemConfig()

    try:
        with open(config_path, 'r') as f:
            config_data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Could not parse config file {config_path}: {e}") from e

    if config_data is None:
        return SystemConfig()
    if not isinstance(config_data, dict):
        raise ConfigError(f"Config file {config_path} must contain a mapping")

    config = config_from_dict(config_data)
    logger.info(f"Loaded configuration for election {config.election_id} from {config_path}")
    return config


def save_config(config: SystemConfig, config_path: Optional[Path] = None):
    """Save configuration to YAML file"""
    if config_path is None:
        config_path = Path("config.yaml")
    config_path = Path(config_path)
    config_path.parent.mkdir(parents=True, exist_ok=True)

    config_data = {
        'election_id': config.election_id,
        'auditorium': {
            'host_id': config.auditorium.host_id,
            'ip': config.auditorium.ip,
            'port': config.auditorium.port,
            'trust_store_dir': str(config.auditorium.trust_store_dir),
            'log_file': str(config.auditorium.log_file) if config.auditorium.log_file else None,
            'peers': list(config.auditorium.peers)
        },
        'crypto': {
            'system': config.crypto.system,
            'threshold': config.crypto.threshold,
            'num_shares': config.crypto.num_shares,
            'key_dir': str(config.crypto.key_dir),
            'allowed_values': list(config.crypto.allowed_values),
            'max_workers': config.crypto.max_workers
        },
        'log_dir': str(config.log_dir),
        'results_dir': str(config.results_dir),
        'log_level': config.log_level
    }

    with open(config_path, 'w') as f:
        yaml.dump(config_data, f, default_flow_style=False)
