from __future__ import annotations

import io
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional, Tuple

import requests

import config
from utils.network import get_session

from .archive import extract_archive
from .types import (
    SynthesisResult,
    TtsError,
    TtsForbiddenError,
    TtsPollError,
    TtsRemoteError,
    TtsTaskFailedError,
)

logger = logging.getLogger(__name__)

SUBMIT_PATH = "/v1/t2a_async_v2"
QUERY_PATH = "/v1/query/t2a_async_query_v2"
RETRIEVE_PATH = "/v1/files/retrieve"

STATUS_SUCCESS = "Success"
FAILED_STATUSES = ("Failed", "Expired")


def _check_base_resp(data: Dict[str, Any], phase: str) -> None:
    """所有响应都带 base_resp{status_code, status_msg}，非 0 即失败。"""
    base = data.get("base_resp") or {}
    if not isinstance(base, dict):
        base = {}
    code = base.get("status_code", 0)
    try:
        code = int(code or 0)
    except (TypeError, ValueError):
        code = -1
    if code != 0:
        raise TtsRemoteError(code, base.get("status_msg") or "", phase)


@dataclass
class MinimaxT2AClient:
    """MiniMax 异步长文本合成（t2a_async_v2）。

    流程：提交任务 -> 轮询状态 -> 换取下载链接 -> 下载 tar 包并解出音频。
    客户端本身无状态，同一段文本调用两次就是两次独立的远端任务，缓存由上层负责。
    """

    api_key: str
    base_url: str = "https://api.minimaxi.com"
    model: str = "speech-02-hd"
    voice_id: str = "Chinese (Mandarin)_Warm_Bestie"
    speed: float = 0.8
    vol: float = 1.0
    pitch: int = 0
    sample_rate: int = 32000
    bitrate: int = 128000
    audio_format: str = "mp3"
    channel: int = 1
    request_timeout: float = 30.0
    download_timeout: float = 120.0
    poll_interval: float = 2.0
    poll_max_attempts: int = 300
    poll_timeout: float = 900.0
    session: Any = field(default_factory=get_session)
    sleep: Callable[[float], None] = time.sleep
    clock: Callable[[], float] = time.monotonic

    @classmethod
    def from_config(cls, **overrides) -> "MinimaxT2AClient":
        params = dict(
            api_key=config.get_minimax_api_key(),
            base_url=getattr(config, "MINIMAX_BASE_URL", "https://api.minimaxi.com"),
            model=getattr(config, "MINIMAX_MODEL", "speech-02-hd"),
            voice_id=getattr(config, "MINIMAX_VOICE_ID", "Chinese (Mandarin)_Warm_Bestie"),
            speed=float(getattr(config, "MINIMAX_SPEED", 0.8)),
            vol=float(getattr(config, "MINIMAX_VOL", 1.0)),
            pitch=int(getattr(config, "MINIMAX_PITCH", 0)),
            sample_rate=int(getattr(config, "MINIMAX_SAMPLE_RATE", 32000)),
            bitrate=int(getattr(config, "MINIMAX_BITRATE", 128000)),
            audio_format=getattr(config, "MINIMAX_FORMAT", "mp3"),
            channel=int(getattr(config, "MINIMAX_CHANNEL", 1)),
            request_timeout=float(getattr(config, "MINIMAX_REQUEST_TIMEOUT_SEC", 30.0)),
            download_timeout=float(getattr(config, "MINIMAX_DOWNLOAD_TIMEOUT_SEC", 120.0)),
            poll_interval=float(getattr(config, "MINIMAX_POLL_INTERVAL_SEC", 2.0)),
            poll_max_attempts=int(getattr(config, "MINIMAX_POLL_MAX_ATTEMPTS", 300)),
            poll_timeout=float(getattr(config, "MINIMAX_POLL_TIMEOUT_SEC", 900.0)),
        )
        params.update(overrides)
        return cls(**params)

    # ------------------------------------------------------------------
    # 对外接口
    # ------------------------------------------------------------------
    def synthesize(self, text: str) -> bytes:
        """合成并直接返回音频二进制。"""
        return self.synthesize_result(text).audio

    def synthesize_result(self, text: str) -> SynthesisResult:
        """合成音频，同时带回 tar 包里的字幕时间轴（如有）。"""
        task_id = self.submit_task(text)
        logger.info(f"MiniMax 任务已提交：task_id={task_id}")

        file_id = self.wait_for_file(task_id)
        logger.info(f"MiniMax 任务完成：task_id={task_id}, file_id={file_id}")

        download_url = self.retrieve_download_url(file_id)
        archive = self.download(download_url)
        audio, segments = extract_archive(archive, self.audio_format)
        logger.info(f"音频包解析完成：{len(audio)} bytes, {len(segments)} 句时间轴")
        return SynthesisResult(audio=audio, segments=segments, task_id=str(task_id), file_id=str(file_id))

    # ------------------------------------------------------------------
    # 三个阶段
    # ------------------------------------------------------------------
    def build_payload(self, text: str) -> Dict[str, Any]:
        return {
            "model": self.model,
            "text": text,
            "voice_setting": {
                "voice_id": self.voice_id,
                "speed": float(self.speed),
                "vol": float(self.vol),
                "pitch": int(self.pitch),
            },
            "audio_setting": {
                "audio_sample_rate": int(self.sample_rate),
                "bitrate": int(self.bitrate),
                "format": self.audio_format,
                "channel": int(self.channel),
            },
        }

    def submit_task(self, text: str) -> str:
        if not (self.api_key or "").strip():
            raise TtsError("缺少 MINIMAX_API_KEY")
        if not (text or "").strip():
            raise TtsError("合成文本为空")

        data = self._request_json(
            "POST",
            self._url(SUBMIT_PATH),
            phase="submit",
            json=self.build_payload(text),
            headers={"Content-Type": "application/json"},
        )
        task_id = data.get("task_id")
        if not task_id:
            raise TtsError(f"MiniMax submit 未返回 task_id：{str(data)[:200]}")
        return str(task_id)

    def query_task(self, task_id: str) -> Tuple[str, str]:
        """查询一次任务状态，返回 (status, file_id)。"""
        data = self._request_json(
            "GET", self._url(QUERY_PATH), phase="query", params={"task_id": str(task_id)}
        )
        status = str(data.get("status") or "")
        file_id = data.get("file_id")
        return status, ("" if file_id in (None, 0, "0", "") else str(file_id))

    def wait_for_file(self, task_id: str) -> str:
        """固定间隔轮询，直到 Success / Failed，或超出次数与时限。"""
        deadline = self.clock() + float(self.poll_timeout)
        attempts = max(1, int(self.poll_max_attempts))
        status = ""

        for attempt in range(1, attempts + 1):
            try:
                status, file_id = self.query_task(task_id)
            except TtsRemoteError:
                raise
            except TtsError as e:
                raise TtsPollError(f"轮询任务 {task_id} 失败：{e}") from e

            logger.debug(f"MiniMax 任务 {task_id} 第 {attempt} 次轮询：{status}")

            if status == STATUS_SUCCESS:
                if not file_id:
                    raise TtsPollError(f"任务 {task_id} 状态为 Success 但缺少 file_id")
                return file_id
            if status in FAILED_STATUSES:
                raise TtsTaskFailedError(0, f"任务状态 {status}", "query")

            if attempt >= attempts:
                break
            if self.clock() + self.poll_interval > deadline:
                raise TtsPollError(f"任务 {task_id} 轮询超时（{self.poll_timeout:.0f}s），最后状态：{status or '-'}")
            self.sleep(self.poll_interval)

        raise TtsPollError(f"任务 {task_id} 轮询 {attempts} 次仍未完成，最后状态：{status or '-'}")

    def retrieve_download_url(self, file_id: str) -> str:
        data = self._request_json(
            "GET", self._url(RETRIEVE_PATH), phase="retrieve", params={"file_id": str(file_id)}
        )
        file_info = data.get("file") or {}
        url = file_info.get("download_url") if isinstance(file_info, dict) else ""
        if not url:
            raise TtsError(f"MiniMax retrieve 未返回 download_url：file_id={file_id}")
        return str(url)

    def download(self, url: str) -> bytes:
        """下载结果包（临时签名链接，不带鉴权头）。"""
        buffer = io.BytesIO()
        try:
            with self.session.get(url, stream=True, timeout=self.download_timeout) as resp:
                if resp.status_code != 200:
                    raise TtsError(f"音频包下载失败 HTTP {resp.status_code}")
                for chunk in resp.iter_content(chunk_size=8192):
                    if chunk:
                        buffer.write(chunk)
        except requests.RequestException as e:
            raise TtsError(f"音频包下载失败：{e}") from e
        return buffer.getvalue()

    # ------------------------------------------------------------------
    # 内部工具
    # ------------------------------------------------------------------
    def _url(self, path: str) -> str:
        return (self.base_url or "").rstrip("/") + path

    def _request_json(self, method: str, url: str, phase: str, headers: Optional[dict] = None, **kwargs) -> Dict[str, Any]:
        all_headers = {"Authorization": f"Bearer {self.api_key}"}
        all_headers.update(headers or {})

        try:
            resp = self.session.request(method, url, headers=all_headers, timeout=self.request_timeout, **kwargs)
        except requests.RequestException as e:
            raise TtsError(f"MiniMax {phase} 请求失败：{e}") from e

        if resp.status_code in (401, 403):
            raise TtsForbiddenError(f"{resp.status_code}：{resp.text[:200]}")
        if resp.status_code != 200:
            raise TtsError(f"MiniMax {phase} HTTP {resp.status_code}：{resp.text[:200]}")

        try:
            data = resp.json()
        except ValueError as e:
            raise TtsError(f"MiniMax {phase} 返回非 JSON：{e}; body={resp.text[:200]}") from e
        if not isinstance(data, dict):
            raise TtsError(f"MiniMax {phase} 返回格式异常：{str(data)[:200]}")

        _check_base_resp(data, phase)
        return data
