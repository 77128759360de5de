# -*- coding: utf-8 -*-
"""
il2cpprecon/core/exceptions.py - 统一异常处理

il2cpprecon 项目的自定义异常类层次结构
"""

from typing import Optional, Dict, Any


class Il2CppReconError(Exception):
    """
    il2cpprecon 基础异常类

    所有 il2cpprecon 自定义异常的基类
    """

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


# =============================================================================
# 二进制格式异常
# =============================================================================

class FormatError(Il2CppReconError):
    """可执行文件容器处理基础异常"""
    pass


class UnsupportedFormatError(FormatError):
    """文件头魔数不属于任何支持的容器格式"""

    def __init__(self, message: str, magic: int = None, **kwargs) -> None:
        super().__init__(message, kwargs)
        self.magic = magic


class FormatContractError(FormatError):
    """容器结构不符合其格式约定"""

    def __init__(self, message: str, container: str = None, **kwargs) -> None:
        super().__init__(message, kwargs)
        self.container = container


class ImageAccessError(FormatError):
    """地址未被映射，或读取越过数据末尾"""

    def __init__(self, message: str, address: int = None, **kwargs) -> None:
        super().__init__(message, kwargs)
        self.address = address


class ImageStateError(FormatError):
    """镜像操作的调用顺序错误"""
    pass


# =============================================================================
# 元数据异常
# =============================================================================

class MetadataError(Il2CppReconError):
    """global-metadata 处理基础异常"""
    pass


class InvalidMetadataError(MetadataError):
    """不是 global-metadata 文件，或文件被截断"""
    pass


class UnsupportedMetadataVersionError(MetadataError):
    """元数据版本超出支持范围"""

    def __init__(self, message: str, version: float = None, **kwargs) -> None:
        super().__init__(message, kwargs)
        self.version = version


# =============================================================================
# 注册结构恢复异常
# =============================================================================

class RecoveryError(Il2CppReconError):
    """注册结构恢复流程基础异常"""
    pass


class UnsupportedRecoveryPathError(RecoveryError):
    """需要平台专用加载器，但当前不可用"""

    def __init__(self, message: str, platform: str = None, container: str = None, **kwargs) -> None:
        super().__init__(message, kwargs)
        self.platform = platform
        self.container = container


class InvalidAddressError(RecoveryError):
    """用户输入的不是十六进制地址"""

    def __init__(self, message: str, text: str = None, **kwargs) -> None:
        super().__init__(message, kwargs)
        self.text = text


class NoResponseError(RecoveryError):
    """发出了输入请求，但没有可用的应答"""

    def __init__(self, message: str, request_key: str = None, **kwargs) -> None:
        super().__init__(message, kwargs)
        self.request_key = request_key


class SessionFailure(RecoveryError):
    """恢复会话的搜索/链接阶段失败"""

    def __init__(self, message: str, cause: BaseException = None, **kwargs) -> None:
        super().__init__(message, kwargs)
        self.cause = cause


# =============================================================================
# 配置异常
# =============================================================================

class ConfigError(Il2CppReconError):
    """配置异常"""
    pass


class ConfigValidationError(ConfigError):
    """配置验证异常"""

    def __init__(self, message: str, field: str = None, value: Any = None, **kwargs) -> None:
        super().__init__(message, kwargs)
        self.field = field
        self.value = value


class ConfigLoadError(ConfigError):
    """配置加载异常"""

    def __init__(self, message: str, config_path: str = None, **kwargs) -> None:
        super().__init__(message, kwargs)
        self.config_path = config_path


# =============================================================================
# 辅助函数
# =============================================================================

def format_exception(exc: BaseException, include_traceback: bool = False) -> str:
    """
    格式化异常信息

    Args:
        exc: 异常对象
        include_traceback: 是否附加完整堆栈

    Returns:
        格式化后的异常字符串
    """
    if isinstance(exc, Il2CppReconError):
        result = f"[{exc.__class__.__name__}] {exc.message}"
        if exc.details:
            result += f"\n  Details: {exc.details}"
    else:
        result = f"[{exc.__class__.__name__}] {str(exc)}"

    if isinstance(exc, SessionFailure) and exc.cause is not None:
        result += f"\n  Caused by: {format_exception(exc.cause)}"

    if include_traceback:
        import traceback
        result += "\n  Traceback:\n" + "".join(
            traceback.format_exception(type(exc), exc, exc.__traceback__)
        )

    return result
