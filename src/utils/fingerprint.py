"""内容指纹：文章去重 / 缓存的唯一键。"""
from __future__ import annotations

import hashlib


def content_fingerprint(content: str) -> str:
    """返回正文 UTF-8 字节的 SHA-256 十六进制摘要（64 位小写）。

    只看正文，标题等元数据不参与计算。
    """
    return hashlib.sha256((content or "").encode("utf-8")).hexdigest()


def short_fingerprint(fingerprint: str, length: int = 8) -> str:
    """文件名里使用的指纹前缀。"""
    return (fingerprint or "")[: max(1, int(length))]
