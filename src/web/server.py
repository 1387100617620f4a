"""
HTTP 服务（Delivery Surface）
- /api/v1/articles           文章列表 / 提交文章
- /api/v1/articles/<id>      文章详情（含句子时间轴）
- /audio/<file>              托管音频静态文件（支持 Range，拖动播放需要）
"""
import json
import logging
import mimetypes
import re
import threading
import urllib.parse
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path
from typing import Optional, Tuple

from pydantic import ValidationError as PydanticValidationError

from services.errors import ConflictError, ValidationError
from web.schemas import ArticleCreate, format_validation_error

logger = logging.getLogger(__name__)

_ARTICLES_RE = re.compile(r"^/api/v1/articles/?$")
_ARTICLE_RE = re.compile(r"^/api/v1/articles/(?P<id>[^/]+)/?$")
_AUDIO_RE = re.compile(r"^/audio/(?P<name>[^/]+)$")
_RANGE_RE = re.compile(r"^bytes=(\d*)-(\d*)$")

MAX_BODY_BYTES = 5 * 1024 * 1024


def parse_range(header: str, size: int) -> Optional[Tuple[int, int]]:
    """解析单段 Range 头，返回闭区间 (start, end)；无法满足时返回 None。"""
    m = _RANGE_RE.match((header or "").strip())
    if not m or size <= 0:
        return None
    start_s, end_s = m.groups()
    if not start_s and not end_s:
        return None
    if not start_s:
        length = int(end_s)
        if length <= 0:
            return None
        return max(0, size - length), size - 1
    start = int(start_s)
    end = int(end_s) if end_s else size - 1
    if start >= size or end < start:
        return None
    return start, min(end, size - 1)


class VoicePaperRequestHandler(BaseHTTPRequestHandler):
    server_version = "VoicePaper/1.0"
    protocol_version = "HTTP/1.1"

    def log_message(self, format: str, *args) -> None:
        logger.info(f"[{self.command}] {self.path} {self.client_address[0]} - {format % args}")

    # ------------------------------------------------------------------
    # 响应工具
    # ------------------------------------------------------------------
    def _send_cors_headers(self) -> None:
        self.send_header("Access-Control-Allow-Origin", self.server.cors_origin)
        self.send_header("Access-Control-Allow-Methods", "GET, POST, OPTIONS")
        self.send_header("Access-Control-Allow-Headers", "Content-Type, Range")
        self.send_header("Access-Control-Expose-Headers", "Content-Length, Content-Range, Accept-Ranges")

    def _json_response(self, status: int, payload) -> None:
        body = json.dumps(payload, ensure_ascii=False).encode("utf-8")
        self.send_response(status)
        self.send_header("Content-Type", "application/json; charset=utf-8")
        self.send_header("Content-Length", str(len(body)))
        self._send_cors_headers()
        self.end_headers()
        self.wfile.write(body)

    def _error(self, status: int, message: str) -> None:
        self._json_response(status, {"error": message})

    # ------------------------------------------------------------------
    # 路由
    # ------------------------------------------------------------------
    def do_OPTIONS(self) -> None:
        self.send_response(200)
        self.send_header("Content-Length", "0")
        self._send_cors_headers()
        self.end_headers()

    def do_GET(self) -> None:
        path = urllib.parse.urlsplit(self.path).path
        if path == "/health":
            self._json_response(200, {"status": "ok", "in_flight": len(self.server.service.in_flight())})
            return
        if _ARTICLES_RE.match(path):
            self._json_response(200, self.server.repository.list_summaries())
            return
        m = _ARTICLE_RE.match(path)
        if m:
            self._handle_get_article(m.group("id"))
            return
        m = _AUDIO_RE.match(path)
        if m:
            self._handle_audio(urllib.parse.unquote(m.group("name")))
            return
        self._error(404, "not found")

    def do_POST(self) -> None:
        path = urllib.parse.urlsplit(self.path).path
        if not _ARTICLES_RE.match(path):
            self._error(404, "not found")
            return

        try:
            length = int(self.headers.get("Content-Length", 0) or 0)
        except ValueError:
            length = -1
        if length < 0 or length > MAX_BODY_BYTES:
            self._error(400, "invalid Content-Length")
            return

        body = self.rfile.read(length) if length else b""
        try:
            data = json.loads(body.decode("utf-8") or "{}")
        except (UnicodeDecodeError, json.JSONDecodeError):
            self._error(400, "invalid json")
            return
        if not isinstance(data, dict):
            self._error(400, "invalid json")
            return

        self._handle_create_article(data)

    # ------------------------------------------------------------------
    # handlers
    # ------------------------------------------------------------------
    def _handle_get_article(self, raw_id: str) -> None:
        try:
            article_id = int(raw_id)
        except ValueError:
            self._error(400, "Invalid ID")
            return
        article = self.server.repository.find_by_id(article_id)
        if article is None:
            self._error(404, "Article not found")
            return
        self._json_response(200, article.to_dict(include_sentences=True))

    def _handle_create_article(self, data: dict) -> None:
        try:
            req = ArticleCreate.model_validate(data)
        except PydanticValidationError as e:
            self._error(400, format_validation_error(e))
            return

        try:
            article = self.server.service.resolve(req.title, req.content)
        except ValidationError as e:
            self._error(400, str(e))
            return
        except ConflictError as e:
            self._error(409, str(e))
            return
        except Exception as e:
            logger.exception(f"提交文章失败：{e}")
            self._error(500, str(e))
            return

        self._json_response(200, article.to_dict(include_sentences=False))

    def _handle_audio(self, name: str) -> None:
        audio_dir = self.server.audio_dir
        # 只允许目录内的文件名，拒绝 ../ 之类的穿越
        if not name or Path(name).name != name or name.startswith("."):
            self._error(404, "not found")
            return
        file_path = audio_dir / name
        if not file_path.is_file():
            self._error(404, "not found")
            return

        size = file_path.stat().st_size
        ctype = mimetypes.guess_type(name)[0] or "application/octet-stream"
        if name.lower().endswith(".mp3"):
            ctype = "audio/mpeg"

        range_header = self.headers.get("Range")
        if range_header:
            byte_range = parse_range(range_header, size)
            if byte_range is None:
                self.send_response(416)
                self.send_header("Content-Range", f"bytes */{size}")
                self.send_header("Content-Length", "0")
                self._send_cors_headers()
                self.end_headers()
                return
            start, end = byte_range
            self.send_response(206)
            self.send_header("Content-Range", f"bytes {start}-{end}/{size}")
        else:
            start, end = 0, size - 1
            self.send_response(200)

        length = max(0, end - start + 1)
        self.send_header("Content-Type", ctype)
        self.send_header("Content-Length", str(length))
        self.send_header("Accept-Ranges", "bytes")
        self._send_cors_headers()
        self.end_headers()

        with open(file_path, "rb") as f:
            f.seek(start)
            remaining = length
            while remaining > 0:
                chunk = f.read(min(64 * 1024, remaining))
                if not chunk:
                    break
                self.wfile.write(chunk)
                remaining -= len(chunk)


class _VoicePaperHTTPServer(ThreadingHTTPServer):
    allow_reuse_address = True
    daemon_threads = True

    def __init__(self, address, handler, service, repository, audio_dir, cors_origin="*"):
        super().__init__(address, handler)
        self.service = service
        self.repository = repository
        self.audio_dir = Path(audio_dir)
        self.cors_origin = cors_origin or "*"


class VoicePaperServer:
    """HTTP 服务封装：后台线程运行，可启动/停止"""

    def __init__(self, service, repository, audio_dir, host: str = "0.0.0.0", port: int = 8080, cors_origin: str = "*"):
        self.service = service
        self.repository = repository
        self.audio_dir = Path(audio_dir)
        self.host = host
        self.port = int(port)
        self.cors_origin = cors_origin
        self.httpd = None
        self.thread = None
        self.running = False

    def start(self) -> bool:
        """启动 HTTP 服务器（后台线程）"""
        if self.running:
            logger.warning("HTTP 服务已在运行")
            return False

        self.audio_dir.mkdir(parents=True, exist_ok=True)
        self.httpd = _VoicePaperHTTPServer(
            (self.host, self.port),
            VoicePaperRequestHandler,
            service=self.service,
            repository=self.repository,
            audio_dir=self.audio_dir,
            cors_origin=self.cors_origin,
        )
        # port=0 时由系统分配
        self.port = self.httpd.server_address[1]

        self.thread = threading.Thread(target=self.httpd.serve_forever, name="http-server", daemon=True)
        self.thread.start()
        self.running = True
        logger.info(f"[SERVER] VoicePaper Backend running on {self.get_url()}")
        return True

    def stop(self) -> None:
        """停止服务器"""
        if not self.running:
            return
        if self.httpd:
            self.httpd.shutdown()
            self.httpd.server_close()
            self.httpd = None
        if self.thread:
            self.thread.join(timeout=5)
            self.thread = None
        self.running = False
        logger.info("[SERVER] HTTP 服务已停止")

    def get_url(self) -> Optional[str]:
        """返回访问地址"""
        if not self.running:
            return None
        host = "127.0.0.1" if self.host in ("", "0.0.0.0") else self.host
        return f"http://{host}:{self.port}"
