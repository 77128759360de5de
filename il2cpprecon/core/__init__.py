# -*- coding: utf-8 -*-
"""
il2cpprecon/core - 核心模块

各子包共享的基础设施，提供:
    - 配置管理
    - 异常层次结构
    - 日志
    - 地址解析与特征搜索
"""

# =============================================================================
# 配置
# =============================================================================

from .config import (
    Il2CppReconConfig,
    default_config,
    load_config,
)

# =============================================================================
# 异常
# =============================================================================

from .exceptions import (
    Il2CppReconError,
    FormatError,
    UnsupportedFormatError,
    FormatContractError,
    ImageAccessError,
    ImageStateError,
    MetadataError,
    InvalidMetadataError,
    UnsupportedMetadataVersionError,
    RecoveryError,
    UnsupportedRecoveryPathError,
    InvalidAddressError,
    NoResponseError,
    SessionFailure,
    ConfigError,
    ConfigValidationError,
    ConfigLoadError,
    format_exception,
)

# =============================================================================
# 日志
# =============================================================================

from .logging import (
    Il2CppReconLogger,
    get_logger,
    setup_logging,
    setup_logging_from_config,
)

# =============================================================================
# 工具函数
# =============================================================================

from .utils import (
    parse_address,
    format_address,
    search_pattern,
)

# =============================================================================
# 导出列表
# =============================================================================

__all__ = [
    # 配置
    'Il2CppReconConfig',
    'default_config',
    'load_config',
    # 异常
    'Il2CppReconError',
    'FormatError',
    'UnsupportedFormatError',
    'FormatContractError',
    'ImageAccessError',
    'ImageStateError',
    'MetadataError',
    'InvalidMetadataError',
    'UnsupportedMetadataVersionError',
    'RecoveryError',
    'UnsupportedRecoveryPathError',
    'InvalidAddressError',
    'NoResponseError',
    'SessionFailure',
    'ConfigError',
    'ConfigValidationError',
    'ConfigLoadError',
    'format_exception',
    # 日志
    'Il2CppReconLogger',
    'get_logger',
    'setup_logging',
    'setup_logging_from_config',
    # 工具函数
    'parse_address',
    'format_address',
    'search_pattern',
]
