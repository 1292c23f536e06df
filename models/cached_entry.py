"""
缓存条目模型
代理响应在 Redis 中的存储格式
"""
import base64
import json
from dataclasses import dataclass, field
from typing import Dict, List, Tuple, Union


@dataclass
class CachedEntry:
    """
    缓存的完整响应：状态码、响应头（名称 -> 值列表）、响应体

    存储格式为 JSON：
        {"status_code": 200, "headers": {"Content-Type": ["..."]}, "body": "<base64>"}
    """
    status_code: int
    headers: Dict[str, List[str]] = field(default_factory=dict)
    body: bytes = b""

    @classmethod
    def from_response_parts(cls, status_code: int, header_items: List[Tuple[str, str]], body: bytes) -> "CachedEntry":
        """由已发送给客户端的状态码、响应头列表和响应体构建缓存条目"""
        headers: Dict[str, List[str]] = {}
        for name, value in header_items:
            headers.setdefault(name, []).append(value)
        return cls(status_code=status_code, headers=headers, body=body)

    def header_items(self) -> List[Tuple[str, str]]:
        """展开为 (名称, 值) 列表"""
        return [(name, value) for name, values in self.headers.items() for value in values]

    def to_json(self) -> str:
        return json.dumps({
            "status_code": self.status_code,
            "headers": self.headers,
            "body": base64.b64encode(self.body).decode("ascii"),
        })

    @classmethod
    def from_json(cls, raw: Union[str, bytes]) -> "CachedEntry":
        """
        反序列化缓存条目

        Raises:
            ValueError: 数据结构不合法
        """
        data = json.loads(raw)
        if not isinstance(data, dict):
            raise ValueError("cached entry is not an object")

        status_code = data.get("status_code")
        if not isinstance(status_code, int) or isinstance(status_code, bool):
            raise ValueError(f"invalid status_code: {status_code!r}")

        headers = data.get("headers") or {}
        if not isinstance(headers, dict):
            raise ValueError("invalid headers")
        for name, values in headers.items():
            if not isinstance(values, list) or not all(isinstance(v, str) for v in values):
                raise ValueError(f"invalid header values for {name!r}")

        body = data.get("body") or ""
        if not isinstance(body, str):
            raise ValueError("invalid body")
        try:
            decoded_body = base64.b64decode(body, validate=True)
        except (ValueError, TypeError) as e:
            raise ValueError(f"invalid body encoding: {e}") from e

        return cls(status_code=status_code, headers=headers, body=decoded_body)
