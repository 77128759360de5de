# -*- coding: utf-8 -*-
"""
il2cpprecon/core/utils.py - 通用工具函数

提供项目中共享的地址解析与字节特征搜索。
"""

from typing import Iterator, List, Optional, Union
import re

from .exceptions import InvalidAddressError

_HEX_RE = re.compile(r"^(?:0[xX])?([0-9a-fA-F]+)$")


def parse_address(addr_input: Union[str, int]) -> int:
    """
    统一的地址解析函数

    用户输入一律按十六进制解析:
    - 十六进制字符串: "0x1234", "0X1234"
    - 无前缀字符串: "1234" (按 0x1234 解析)
    - 整数: 原样返回

    Args:
        addr_input: 地址输入 (字符串或整数)

    Returns:
        解析后的整数地址

    Raises:
        InvalidAddressError: 地址格式无效

    Examples:
        >>> parse_address("0x1000")
        4096
        >>> parse_address(" 1000 ")
        4096
    """
    if isinstance(addr_input, int):
        if addr_input < 0:
            raise InvalidAddressError(f"Negative address: {addr_input}", text=str(addr_input))
        return addr_input

    if not isinstance(addr_input, str):
        raise InvalidAddressError(f"Unsupported address input: {addr_input!r}", text=repr(addr_input))

    text = addr_input.strip()
    match = _HEX_RE.match(text)
    if not match:
        raise InvalidAddressError(f"Invalid hexadecimal address: {addr_input!r}", text=addr_input)
    return int(match.group(1), 16)


def format_address(value: Optional[int], width: int = 0) -> str:
    """按日志输出的格式打印地址"""
    if value is None:
        return "None"
    if width:
        return f"0x{value:0{width}X}"
    return f"0x{value:X}"


def _compile_pattern(pattern: str) -> List[Optional[int]]:
    tokens = []
    for token in pattern.split():
        if token in ("?", "??"):
            tokens.append(None)
        else:
            tokens.append(int(token, 16))
    return tokens


def search_pattern(data: Union[bytes, bytearray, memoryview], pattern: str,
                   start: int = 0, end: Optional[int] = None) -> Iterator[int]:
    """
    搜索带通配符的字节特征

    Args:
        data: 待搜索的缓冲区
        pattern: 空格分隔的十六进制字节，"?" 匹配任意字节
                 (如 "? 10 ? E7 ? 00 ? E0")
        start: 起始偏移
        end: 结束偏移 (不含)

    Yields:
        按升序返回每个匹配的偏移
    """
    tokens = _compile_pattern(pattern)
    if not tokens:
        return
    if end is None or end > len(data):
        end = len(data)

    # 以第一个确定字节为锚点
    anchor = next((i for i, b in enumerate(tokens) if b is not None), None)
    size = len(tokens)
    buf = bytes(data[start:end])

    if anchor is None:
        for offset in range(0, len(buf) - size + 1):
            yield start + offset
        return

    anchor_byte = bytes([tokens[anchor]])
    pos = buf.find(anchor_byte, anchor)
    while pos != -1:
        offset = pos - anchor
        if offset + size > len(buf):
            break
        if all(b is None or buf[offset + i] == b for i, b in enumerate(tokens)):
            yield start + offset
        pos = buf.find(anchor_byte, pos + 1)
