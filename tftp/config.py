"""
Configuration Management

Handles loading configuration from environment variables and config files.

Design Decision: Injected Protocol Settings
===========================================

Options Considered:
1. Module-level constants (BLOCK_SIZE, TIMEOUT, ...)
   - Simple, but every component silently depends on them
   - Tests cannot shrink timeouts or block sizes

2. One settings object passed to each component at construction
   - Explicit, tests can use tiny blocks and short timeouts
   - Slightly more plumbing

Decision: TransferSettings (frozen dataclass) handed to the codec, client,
workers and server. Config holds everything else (ports, directories, logging)
and produces a TransferSettings on demand.
"""

import os
import json
from pathlib import Path
from dataclasses import dataclass, field
from typing import Optional

from dotenv import load_dotenv


# RFC 1350 defaults
DEFAULT_PORT = 69
DEFAULT_BLOCK_SIZE = 512
DEFAULT_MAX_ATTEMPTS = 5
DEFAULT_TIMEOUT_MS = 1000

# Two-byte block field
MAX_BLOCKS = 65535

TRANSFER_MODE = 'octet'


@dataclass(frozen=True)
class TransferSettings:
    """
    Protocol tunables shared by both sides of a transfer.

    Attributes:
        block_size: Payload bytes per Data packet
        max_attempts: Consecutive timeouts tolerated before giving up
        timeout_ms: How long to wait for the peer before retransmitting
        max_blocks: Largest number of full blocks a served file may span
        mode: Transfer mode sent in read requests
    """
    block_size: int = DEFAULT_BLOCK_SIZE
    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    timeout_ms: int = DEFAULT_TIMEOUT_MS
    max_blocks: int = MAX_BLOCKS
    mode: str = TRANSFER_MODE

    def __post_init__(self):
        if self.block_size <= 0:
            raise ValueError(f"block_size must be positive, got {self.block_size}")
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be at least 1, got {self.max_attempts}")
        if self.timeout_ms <= 0:
            raise ValueError(f"timeout_ms must be positive, got {self.timeout_ms}")
        if not 0 < self.max_blocks <= MAX_BLOCKS:
            raise ValueError(f"max_blocks must be in 1..{MAX_BLOCKS}, got {self.max_blocks}")
        if not self.mode:
            raise ValueError("mode must not be empty")
        # Modes compare case-insensitively on the wire
        object.__setattr__(self, 'mode', self.mode.lower())

    @property
    def timeout(self) -> float:
        """Receive timeout in seconds."""
        return self.timeout_ms / 1000.0

    @property
    def max_bytes(self) -> int:
        """Largest file size the server will serve."""
        return self.max_blocks * self.block_size


@dataclass
class Config:
    """
    TFTP Configuration.

    Configuration priority (highest to lowest):
    1. Environment variables (TFTP_*)
    2. Config file (config.json)
    3. Default values
    """
    # Network
    host: str = '0.0.0.0'
    port: int = DEFAULT_PORT

    # Directories
    root_dir: Path = field(default_factory=lambda: Path('./server'))
    output_dir: Path = field(default_factory=lambda: Path('./downloads'))

    # Protocol
    block_size: int = DEFAULT_BLOCK_SIZE
    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    timeout_ms: int = DEFAULT_TIMEOUT_MS

    # Server
    max_sessions: int = 64

    # Client
    keep_partial: bool = True

    # Logging
    log_level: str = 'INFO'

    @classmethod
    def from_env(cls) -> 'Config':
        """Load configuration from environment variables."""
        load_dotenv()

        config = cls()

        # Network
        config.host = os.getenv('TFTP_HOST', config.host)
        config.port = int(os.getenv('TFTP_PORT', config.port))

        # Directories
        root_dir = os.getenv('TFTP_ROOT')
        if root_dir:
            config.root_dir = Path(root_dir)
        output_dir = os.getenv('TFTP_OUTPUT_DIR')
        if output_dir:
            config.output_dir = Path(output_dir)

        # Protocol
        config.block_size = int(os.getenv('TFTP_BLOCK_SIZE', config.block_size))
        config.max_attempts = int(os.getenv('TFTP_MAX_ATTEMPTS', config.max_attempts))
        config.timeout_ms = int(os.getenv('TFTP_TIMEOUT_MS', config.timeout_ms))

        config.max_sessions = int(os.getenv('TFTP_MAX_SESSIONS', config.max_sessions))
        config.keep_partial = os.getenv('TFTP_KEEP_PARTIAL', 'true').lower() == 'true'

        # Logging
        config.log_level = os.getenv('TFTP_LOG_LEVEL', config.log_level)

        return config

    @classmethod
    def from_file(cls, path: Path) -> 'Config':
        """Load configuration from a JSON file."""
        if not path.exists():
            return cls()

        with open(path) as f:
            data = json.load(f)

        config = cls()

        config.host = data.get('host', config.host)
        config.port = data.get('port', config.port)

        if 'root_dir' in data:
            config.root_dir = Path(data['root_dir'])
        if 'output_dir' in data:
            config.output_dir = Path(data['output_dir'])

        config.block_size = data.get('block_size', config.block_size)
        config.max_attempts = data.get('max_attempts', config.max_attempts)
        config.timeout_ms = data.get('timeout_ms', config.timeout_ms)

        config.max_sessions = data.get('max_sessions', config.max_sessions)
        config.keep_partial = data.get('keep_partial', config.keep_partial)

        config.log_level = data.get('log_level', config.log_level)

        return config

    def transfer_settings(self) -> TransferSettings:
        """Build the protocol settings handed to clients and workers."""
        return TransferSettings(
            block_size=self.block_size,
            max_attempts=self.max_attempts,
            timeout_ms=self.timeout_ms,
        )

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            'host': self.host,
            'port': self.port,
            'root_dir': str(self.root_dir),
            'output_dir': str(self.output_dir),
            'block_size': self.block_size,
            'max_attempts': self.max_attempts,
            'timeout_ms': self.timeout_ms,
            'max_sessions': self.max_sessions,
            'keep_partial': self.keep_partial,
            'log_level': self.log_level,
        }

    def save(self, path: Path):
        """Save configuration to a JSON file."""
        with open(path, 'w') as f:
            json.dump(self.to_dict(), f, indent=2)


def load_config(config_path: Optional[Path] = None) -> Config:
    """
    Load configuration from file and environment.

    Environment variables override file settings.
    """
    config = Config()

    if config_path and config_path.exists():
        config = Config.from_file(config_path)

    env_config = Config.from_env()

    # Merge (env takes precedence for non-default values)
    defaults = Config()
    for key in ['host', 'port', 'root_dir', 'output_dir', 'block_size',
                'max_attempts', 'timeout_ms', 'max_sessions', 'keep_partial',
                'log_level']:
        env_val = getattr(env_config, key)
        if env_val != getattr(defaults, key):
            setattr(config, key, env_val)

    return config


# Example config file template
EXAMPLE_CONFIG = """
{
  "host": "0.0.0.0",
  "port": 69,
  "root_dir": "./server",
  "output_dir": "./downloads",
  "block_size": 512,
  "max_attempts": 5,
  "timeout_ms": 1000,
  "max_sessions": 64,
  "keep_partial": true,
  "log_level": "INFO"
}
"""
