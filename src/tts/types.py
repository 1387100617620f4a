from __future__ import annotations

from dataclasses import dataclass, field
from typing import List


class TtsError(RuntimeError):
    """TTS 合成失败的统一异常。"""


class TtsForbiddenError(TtsError):
    """服务端拒绝（常见 401/403/风控）。"""


class TtsRemoteError(TtsError):
    """服务商返回 base_resp.status_code 非 0。"""

    def __init__(self, status_code: int, status_msg: str = "", phase: str = ""):
        self.status_code = int(status_code or 0)
        self.status_msg = str(status_msg or "")
        self.phase = str(phase or "")
        super().__init__(f"MiniMax {self.phase or 'API'} 错误：{self.status_msg} (Code: {self.status_code})")


class TtsTaskFailedError(TtsRemoteError):
    """服务端报告任务状态 Failed / Expired。"""


class TtsPollError(TtsError):
    """轮询拿不到终态：超出次数/时限、网络失败或 Success 缺少 file_id。"""


class TtsExtractionError(TtsError):
    """下载的音频包无法解析或不含音频文件。"""


@dataclass
class TimelineSegment:
    """字幕时间轴中的一句（毫秒）。"""
    text: str
    start_ms: int
    end_ms: int


@dataclass
class SynthesisResult:
    audio: bytes
    segments: List[TimelineSegment] = field(default_factory=list)
    task_id: str = ""
    file_id: str = ""
