"""MiniMax 异步合成结果包解析

服务端返回的是 tar 包（不是裸音频），内容通常为：
- xxx.mp3    合成音频
- xxx.title  字幕时间轴 JSON（可选）：[{"text", "time_begin", "time_end"}, ...]

全部在内存中完成，不落临时文件。
"""
from __future__ import annotations

import io
import json
import logging
import tarfile
from typing import Any, List, Optional, Tuple

from .types import TimelineSegment, TtsExtractionError

logger = logging.getLogger(__name__)

TIMELINE_SUFFIXES = (".title", ".json")


def _to_ms(value: Any) -> int:
    try:
        return max(0, int(round(float(value))))
    except (TypeError, ValueError):
        return 0


def parse_timeline(raw: bytes) -> List[TimelineSegment]:
    """解析字幕时间轴；格式不对时返回空列表（时间轴是可选数据）。"""
    try:
        payload = json.loads(raw.decode("utf-8-sig"))
    except (UnicodeDecodeError, ValueError) as e:
        logger.warning(f"字幕时间轴不是合法 JSON，已忽略：{e}")
        return []

    # 兼容 {"subtitles": [...]} 之类的包裹
    if isinstance(payload, dict):
        for key in ("subtitles", "data", "sentences"):
            if isinstance(payload.get(key), list):
                payload = payload[key]
                break

    if not isinstance(payload, list):
        logger.warning("字幕时间轴不是列表，已忽略")
        return []

    segments: List[TimelineSegment] = []
    for item in payload:
        if not isinstance(item, dict):
            continue
        text = str(item.get("text") or "").strip()
        if not text:
            continue
        start = _to_ms(item.get("time_begin", item.get("start_time")))
        end = _to_ms(item.get("time_end", item.get("end_time")))
        segments.append(TimelineSegment(text=text, start_ms=start, end_ms=max(start, end)))
    return segments


def extract_archive(data: bytes, audio_ext: str = "mp3") -> Tuple[bytes, List[TimelineSegment]]:
    """从 tar 包中取出第一个音频文件（按扩展名匹配）以及可选的字幕时间轴。

    Raises:
        TtsExtractionError: 不是可读的归档，或其中没有匹配扩展名的文件
    """
    suffix = "." + (audio_ext or "mp3").lstrip(".").lower()
    audio: Optional[bytes] = None
    timeline_raw: Optional[bytes] = None

    try:
        with tarfile.open(fileobj=io.BytesIO(data or b""), mode="r:*") as tar:
            for member in tar:
                if not member.isfile():
                    continue
                name = member.name.lower()
                if audio is None and name.endswith(suffix):
                    handle = tar.extractfile(member)
                    if handle is not None:
                        audio = handle.read()
                elif timeline_raw is None and name.endswith(TIMELINE_SUFFIXES):
                    handle = tar.extractfile(member)
                    if handle is not None:
                        timeline_raw = handle.read()
    except tarfile.TarError as e:
        raise TtsExtractionError(f"音频包解析失败：{e}") from e

    if not audio:
        raise TtsExtractionError(f"音频包中没有可用的 {suffix} 文件")

    segments = parse_timeline(timeline_raw) if timeline_raw else []
    return audio, segments
