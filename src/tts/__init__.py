"""TTS Provider Layer

说明：
- 封装 MiniMax 异步长文本合成（提交 -> 轮询 -> 下载 tar 包 -> 解出音频）。
- 上层只依赖 `MinimaxT2AClient.synthesize_result()` 与统一异常 `TtsError`。
"""

from .types import (
    SynthesisResult,
    TimelineSegment,
    TtsError,
    TtsExtractionError,
    TtsForbiddenError,
    TtsPollError,
    TtsRemoteError,
    TtsTaskFailedError,
)
from .archive import extract_archive
from .minimax_provider import MinimaxT2AClient

__all__ = [
    "MinimaxT2AClient",
    "SynthesisResult",
    "TimelineSegment",
    "TtsError",
    "TtsExtractionError",
    "TtsForbiddenError",
    "TtsPollError",
    "TtsRemoteError",
    "TtsTaskFailedError",
    "extract_archive",
]
