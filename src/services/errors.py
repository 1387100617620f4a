from __future__ import annotations


class NarrationError(RuntimeError):
    """朗读服务（文章 -> 音频）的统一异常。"""


class ValidationError(NarrationError):
    """标题或正文缺失。"""


class ConflictError(NarrationError):
    """同一正文的合成正在进行中，稍后重试。"""

    def __init__(self, message: str = "audio is currently processing", article_id: int | None = None):
        super().__init__(message)
        self.article_id = article_id
