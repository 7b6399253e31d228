"""
Configuration management for docbridge
"""

import os
import yaml
from typing import Dict, Any, Optional, List
from dataclasses import dataclass, field
from pathlib import Path

MIB = 1024 * 1024


@dataclass
class PackagerConfig:
    """Bulk insert packaging configuration"""
    limit_bytes: int = 15 * MIB


@dataclass
class StreamConfig:
    """Chunked import reader configuration"""
    read_chunk_size: int = 10 * MIB
    progress_interval: int = 1000  # documents between export progress events
    encoding: str = "utf-8"


@dataclass
class ExportConfig:
    """Export file configuration"""
    export_dir: str = "./cache"
    line_terminator: str = "\n"
    write_buffer_size: int = 64 * 1024


@dataclass
class StoreConfig:
    """Document store connection configuration"""
    uri: str = "mongodb://localhost:27017"
    database: str = "test"
    server_selection_timeout_ms: int = 5000


@dataclass
class DocBridgeConfig:
    """Main docbridge configuration"""
    log_level: str = "INFO"
    log_file: Optional[str] = None

    # Component configurations
    packager: PackagerConfig = field(default_factory=PackagerConfig)
    stream: StreamConfig = field(default_factory=StreamConfig)
    export: ExportConfig = field(default_factory=ExportConfig)
    store: StoreConfig = field(default_factory=StoreConfig)

    @classmethod
    def from_file(cls, config_path: str) -> 'DocBridgeConfig':
        """Load configuration from YAML file"""
        config_path = Path(config_path)
        if not config_path.exists():
            return cls()

        with open(config_path, 'r') as f:
            data = yaml.safe_load(f)

        return cls.from_dict(data or {})

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'DocBridgeConfig':
        """Create config from dictionary"""
        config = cls()

        for key, value in data.items():
            if hasattr(config, key):
                attr = getattr(config, key)
                if hasattr(attr, '__dict__'):  # It's a dataclass
                    if isinstance(value, dict):
                        for sub_key, sub_value in value.items():
                            if hasattr(attr, sub_key):
                                setattr(attr, sub_key, sub_value)
                else:
                    setattr(config, key, value)

        return config

    @classmethod
    def from_env(cls) -> 'DocBridgeConfig':
        """Load configuration from environment variables"""
        config = cls()

        config.log_level = os.getenv('DOCBRIDGE_LOG_LEVEL', config.log_level)
        config.log_file = os.getenv('DOCBRIDGE_LOG_FILE', config.log_file)

        # Store settings
        config.store.uri = os.getenv('DOCBRIDGE_URI', config.store.uri)
        config.store.database = os.getenv('DOCBRIDGE_DATABASE', config.store.database)

        # Packaging and streaming
        config.packager.limit_bytes = int(
            os.getenv('DOCBRIDGE_PACKAGE_LIMIT', config.packager.limit_bytes)
        )
        config.stream.read_chunk_size = int(
            os.getenv('DOCBRIDGE_CHUNK_SIZE', config.stream.read_chunk_size)
        )

        config.export.export_dir = os.getenv('DOCBRIDGE_EXPORT_DIR', config.export.export_dir)

        return config

    def to_dict(self) -> Dict[str, Any]:
        """Convert config to dictionary"""
        result = {}
        for key, value in self.__dict__.items():
            if hasattr(value, '__dict__'):  # It's a dataclass
                result[key] = {k: v for k, v in value.__dict__.items()}
            else:
                result[key] = value
        return result

    def save_to_file(self, config_path: str):
        """Save configuration to YAML file"""
        config_path = Path(config_path)
        config_path.parent.mkdir(parents=True, exist_ok=True)

        with open(config_path, 'w') as f:
            yaml.dump(self.to_dict(), f, default_flow_style=False, indent=2)

    def validate(self) -> List[str]:
        """Validate configuration and return any errors"""
        errors = []

        if self.packager.limit_bytes <= 0:
            errors.append("packager.limit_bytes must be positive")

        if self.stream.read_chunk_size <= 0:
            errors.append("stream.read_chunk_size must be positive")

        if self.stream.progress_interval <= 0:
            errors.append("stream.progress_interval must be positive")

        if self.export.line_terminator not in ['\n', '\r\n', '\r']:
            errors.append(f"Invalid line terminator: {self.export.line_terminator!r}")

        if not self.store.database:
            errors.append("store.database is required")

        return errors
