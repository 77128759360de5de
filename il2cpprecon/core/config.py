# -*- coding: utf-8 -*-
"""
il2cpprecon/core/config.py - Configuration Management

Centralized management of il2cpprecon configuration items.
"""

from dataclasses import dataclass, field, fields
from typing import Optional, List
from pathlib import Path
import os

import yaml

from .exceptions import ConfigLoadError


@dataclass
class Il2CppReconConfig:
    """il2cpprecon configuration"""

    # ==========================================================================
    # Dump Handling
    # ==========================================================================

    force_dump: bool = False               # Treat the binary as a memory dump even if CheckDump() says no
    no_redirected_pointer: bool = False    # Do not reload segment layout after a dump base is supplied

    # ==========================================================================
    # Version Handling
    # ==========================================================================

    force_il2cpp_version: bool = False     # Ignore the metadata version when configuring the image
    force_version: float = 24.3            # Version used when force_il2cpp_version is set

    # ==========================================================================
    # Registration Search
    # ==========================================================================

    host_platform: Optional[str] = None    # Host OS name for platform carve-outs (None = platform.system())

    # ==========================================================================
    # Assembly Synthesis
    # ==========================================================================

    module_extension: str = ".dll"         # Extension every synthesized module name must carry

    # ==========================================================================
    # Output Configuration
    # ==========================================================================

    output_dir: Path = field(default_factory=lambda: Path.cwd())
    output_report: bool = True             # Write the JSON recovery report

    # ==========================================================================
    # Logging Configuration
    # ==========================================================================

    log_level: str = "INFO"
    log_file: Optional[Path] = None

    def __post_init__(self):
        self._apply_env_overrides()

        if not isinstance(self.output_dir, Path):
            self.output_dir = Path(self.output_dir)
        if self.log_file is not None and not isinstance(self.log_file, Path):
            self.log_file = Path(self.log_file)

    def _apply_env_overrides(self):
        """
        Read configuration overrides from environment variables.

        Environment variable naming rule: IL2CPPRECON_<FIELD_NAME>
        Example:
            - IL2CPPRECON_FORCE_DUMP=1
            - IL2CPPRECON_FORCE_VERSION=27.1
            - IL2CPPRECON_LOG_LEVEL=DEBUG
        """
        overridable = {
            # Dump Handling
            'force_dump': self._parse_bool,
            'no_redirected_pointer': self._parse_bool,
            # Version Handling
            'force_il2cpp_version': self._parse_bool,
            'force_version': float,
            # Registration Search
            'host_platform': str,
            # Assembly Synthesis
            'module_extension': str,
            # Output Configuration
            'output_dir': Path,
            'output_report': self._parse_bool,
            # Logging
            'log_level': str,
            'log_file': self._parse_path,
        }

        for name, converter in overridable.items():
            env_name = f"IL2CPPRECON_{name.upper()}"
            env_value = os.environ.get(env_name)
            if env_value is not None:
                try:
                    setattr(self, name, converter(env_value))
                except (ValueError, TypeError):
                    # Invalid values keep the default
                    pass

    @staticmethod
    def _parse_bool(value: str) -> bool:
        """Parse boolean environment variables"""
        return value.lower() in ('true', '1', 'yes', 'on')

    @staticmethod
    def _parse_path(value: str) -> Optional[Path]:
        """Parse path environment variables"""
        if not value or value.lower() in ('none', 'null', ''):
            return None
        return Path(value)

    @property
    def effective_platform(self) -> str:
        """Host platform name used for platform-specific recovery paths"""
        if self.host_platform:
            return self.host_platform
        import platform
        return platform.system()

    @classmethod
    def from_dict(cls, data: dict) -> 'Il2CppReconConfig':
        """Create configuration from dictionary, ignoring unknown keys"""
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known})

    @classmethod
    def from_yaml(cls, path: str) -> 'Il2CppReconConfig':
        """Load configuration from a YAML file"""
        try:
            with open(path, 'r', encoding='utf-8') as f:
                data = yaml.safe_load(f)
        except FileNotFoundError:
            raise ConfigLoadError(f"Configuration file not found: {path}", config_path=str(path))
        except yaml.YAMLError as e:
            raise ConfigLoadError(f"Invalid YAML in {path}: {e}", config_path=str(path))
        if data is not None and not isinstance(data, dict):
            raise ConfigLoadError(f"Configuration root must be a mapping: {path}", config_path=str(path))
        return cls.from_dict(data or {})

    def to_dict(self) -> dict:
        """Convert to complete dictionary"""
        return {
            # Dump Handling
            'force_dump': self.force_dump,
            'no_redirected_pointer': self.no_redirected_pointer,
            # Version Handling
            'force_il2cpp_version': self.force_il2cpp_version,
            'force_version': self.force_version,
            # Registration Search
            'host_platform': self.host_platform,
            # Assembly Synthesis
            'module_extension': self.module_extension,
            # Output Configuration
            'output_dir': str(self.output_dir),
            'output_report': self.output_report,
            # Logging
            'log_level': self.log_level,
            'log_file': str(self.log_file) if self.log_file else None,
        }

    def to_yaml(self, path: str) -> None:
        """Save configuration to a YAML file"""
        with open(path, 'w', encoding='utf-8') as f:
            yaml.dump(self.to_dict(), f, default_flow_style=False, allow_unicode=True)

    def validate(self) -> List[str]:
        """
        Validate the configuration for correctness.

        Returns:
            List of error messages (Empty list if valid)
        """
        errors = []

        if not 16 <= self.force_version <= 31:
            errors.append(f"force_version ({self.force_version}) must be between 16 and 31")

        if not self.module_extension.startswith("."):
            errors.append(f"module_extension ({self.module_extension}) must start with '.'")

        valid_log_levels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
        if self.log_level.upper() not in valid_log_levels:
            errors.append(f"log_level ({self.log_level}) is invalid, should be one of: {valid_log_levels}")

        return errors


def _load_default_config() -> Il2CppReconConfig:
    """Automatically load the default configuration file"""
    from .logging import get_logger
    log = get_logger("core.config")
    search_paths = [
        "il2cpprecon.yaml",
        ".il2cpprecon.yaml",
        os.path.expanduser("~/.il2cpprecon.yaml"),
        os.path.expanduser("~/il2cpprecon.yaml"),
    ]
    for path in search_paths:
        if os.path.exists(path):
            try:
                config = Il2CppReconConfig.from_yaml(path)
            except ConfigLoadError as e:
                log.warning(f"Failed to load config from {path}: {e}")
                continue
            log.debug(f"Loaded config from: {path}")
            return config
    return Il2CppReconConfig()


default_config = _load_default_config()


def load_config(path: Optional[str] = None) -> Il2CppReconConfig:
    """
    Load configuration (supports YAML and environment variables).

    Args:
        path: Configuration file path (optional)

    Returns:
        Configuration instance
    """
    if path:
        return Il2CppReconConfig.from_yaml(path)
    return Il2CppReconConfig()
