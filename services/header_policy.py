"""
响应头策略
白名单方式选择转发给客户端的上游响应头
"""
from typing import List, Mapping, Optional, Tuple

import httpx

# 始终转发的响应头
ALWAYS_FORWARDED_HEADERS = (
    "Content-Type",
    "Content-Disposition",
    "Accept-Ranges",
    "Content-Range",
)

# 仅在 200/206 时转发的校验头
VALIDATOR_HEADERS = (
    "ETag",
    "Last-Modified",
)

VALIDATOR_STATUS_CODES = (200, 206)


def _first_value(headers: Mapping[str, str], name: str) -> Optional[str]:
    """重复出现的响应头只取第一个值"""
    if isinstance(headers, httpx.Headers):
        values = headers.get_list(name)
        return values[0] if values else None
    return headers.get(name)


def select_headers(upstream_headers: Mapping[str, str], status_code: int) -> List[Tuple[str, str]]:
    """
    选择转发给客户端的响应头

    白名单之外的上游响应头全部丢弃，空值不转发。

    Args:
        upstream_headers: 上游响应头（大小写不敏感的映射，例如 httpx.Headers）
        status_code: 上游响应状态码

    Returns:
        List[Tuple[str, str]]: 按白名单顺序排列的 (名称, 值) 列表
    """
    allowed = list(ALWAYS_FORWARDED_HEADERS)
    if status_code in VALIDATOR_STATUS_CODES:
        allowed.extend(VALIDATOR_HEADERS)

    selected = []
    for name in allowed:
        value = _first_value(upstream_headers, name)
        if value:
            selected.append((name, value))
    return selected
