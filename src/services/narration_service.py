"""朗读生成服务（核心逻辑）

检查数据库 -> 检查本地文件 -> (需要时) 把 MiniMax 合成丢进后台任务池。

并发约定：
- 同一进程内，同一指纹同时只会有一个在跑的合成任务（single-flight）。
- 跨进程依靠 content_hash 唯一约束 + claim_for_processing 的 CAS 更新。
- 崩溃遗留的 processing 记录不会自动恢复，仍返回冲突。
"""
from __future__ import annotations

import logging
import os
import shutil
import threading
from pathlib import Path
from typing import Dict, FrozenSet, Optional

from db.article_repository import ArticleRepository
from db.models import Article, ArticleStatus
from utils.fingerprint import content_fingerprint, short_fingerprint
from workers.task_queue import TaskManager

from .errors import ConflictError, ValidationError

logger = logging.getLogger(__name__)


class NarrationService:
    """Generation Orchestrator：resolve(title, content) -> Article"""

    def __init__(
        self,
        repository: ArticleRepository,
        client,
        task_manager: TaskManager,
        audio_dir,
        audio_ext: str = "mp3",
    ):
        self.repository = repository
        self.client = client
        self.task_manager = task_manager
        self.audio_dir = Path(audio_dir)
        self.audio_ext = (audio_ext or "mp3").lstrip(".")
        self._lock = threading.Lock()
        self._in_flight: Dict[str, str] = {}  # fingerprint -> task id

    # ------------------------------------------------------------------
    # 对外接口
    # ------------------------------------------------------------------
    def resolve(self, title: str, content: str) -> Article:
        """按正文指纹取音频；缓存命中直接返回，否则后台合成并立即返回当前记录。

        Raises:
            ValidationError: 标题或正文为空
            ConflictError: 该正文正在合成中
        """
        title, content = _validate(title, content)
        fingerprint = content_fingerprint(content)
        article, created = self.repository.find_or_create(title, content, fingerprint)

        with self._lock:
            if fingerprint in self._in_flight:
                if article.status == ArticleStatus.PROCESSING.value:
                    raise ConflictError(article_id=article.id)
                logger.info(f"合成任务已在排队，合并请求：{title} ({short_fingerprint(fingerprint)})")
                return article

            if not created and not self._needs_generation(article):
                logger.info(f"✅ Cache hit: Serving local audio for {title}")
                return article

            # 先占位再提交：任务收尾时要拿同一把锁才能移除占位
            self._in_flight[fingerprint] = ""
            try:
                task_id = self.task_manager.submit(
                    self._generate,
                    f"tts:{short_fingerprint(fingerprint)}",
                    article.id,
                    fingerprint,
                    article.content,
                    article.title,
                )
            except Exception:
                # 提交失败时不能留下占位
                self._in_flight.pop(fingerprint, None)
                raise
            self._in_flight[fingerprint] = task_id

        logger.info(f"已提交合成任务 {task_id}：{title}（状态 {article.status}）")
        return article

    def import_existing(self, title: str, content: str, audio_file) -> Article:
        """把已有音频文件登记为某段正文的合成结果（旧数据导入用）。"""
        title, content = _validate(title, content)
        audio_file = Path(audio_file)
        fingerprint = content_fingerprint(content)
        article, _ = self.repository.find_or_create(title, content, fingerprint)

        if article.status == ArticleStatus.COMPLETED.value and _file_exists(article.audio_path):
            return article

        with self._lock:
            if fingerprint in self._in_flight:
                logger.info(f"{title} 正在合成，跳过旧音频导入")
                return article
            if article.status == ArticleStatus.PROCESSING.value:
                raise ConflictError(article_id=article.id)

            target = self.audio_dir / f"legacy_{audio_file.name}"
            target.parent.mkdir(parents=True, exist_ok=True)
            shutil.copyfile(audio_file, target)
            self.repository.update_status(article.id, ArticleStatus.COMPLETED.value, str(target))

        logger.info(f"✅ Linked legacy audio for {title}: {target}")
        return self.repository.find_by_id(article.id) or article

    def audio_path_for(self, article_id: int, fingerprint: str) -> Path:
        """音频文件名由记录 ID + 指纹前缀决定，避免重名。"""
        return self.audio_dir / f"audio_{article_id}_{short_fingerprint(fingerprint)}.{self.audio_ext}"

    def in_flight(self) -> FrozenSet[str]:
        with self._lock:
            return frozenset(self._in_flight)

    # ------------------------------------------------------------------
    # 内部
    # ------------------------------------------------------------------
    def _needs_generation(self, article: Article) -> bool:
        status = article.status
        if status == ArticleStatus.COMPLETED.value and article.audio_path:
            if _file_exists(article.audio_path):
                return False
            logger.warning(f"⚠️  Record exists but file missing, regenerating... {article.title}")
            return True
        if status == ArticleStatus.PROCESSING.value:
            raise ConflictError(article_id=article.id)
        return True

    def _generate(self, article_id: int, fingerprint: str, content: str, title: str = "") -> Optional[str]:
        """后台任务：合成 -> 写文件 -> 更新状态。失败只记日志并标记 failed，不自动重试。"""
        try:
            try:
                if not self.repository.claim_for_processing(article_id):
                    logger.warning(f"文章 {article_id} 已被其它合成任务占用，本次跳过")
                    return None

                logger.info(f"🚀 Starting TTS generation for: {title or article_id}")
                result = self.client.synthesize_result(content)
                save_path = self.audio_path_for(article_id, fingerprint)
                _write_atomic(save_path, result.audio)
                self.repository.replace_sentences(article_id, result.segments)
                self.repository.update_status(article_id, ArticleStatus.COMPLETED.value, str(save_path))
            except Exception as e:
                logger.error(f"❌ TTS Generation failed for {title or article_id}: {e}")
                self.repository.update_status(article_id, ArticleStatus.FAILED.value, "")
                return None

            logger.info(f"✅ TTS completed and saved to: {save_path}")
            return str(save_path)
        finally:
            with self._lock:
                self._in_flight.pop(fingerprint, None)


def _validate(title: str, content: str):
    title = (title or "").strip()
    if not title:
        raise ValidationError("title is required")
    if not (content or "").strip():
        raise ValidationError("content is required")
    # 指纹按 UTF-8 计算，孤立代理项之类的文本无法编码
    for field_name, value in (("title", title), ("content", content)):
        try:
            value.encode("utf-8")
        except UnicodeEncodeError:
            raise ValidationError(f"{field_name} is not valid UTF-8 text") from None
    return title, content


def _file_exists(path) -> bool:
    return bool(path) and Path(path).is_file()


def _write_atomic(path: Path, data: bytes) -> None:
    """先写 .part 再原子替换，避免半截文件被当作缓存命中。"""
    path.parent.mkdir(parents=True, exist_ok=True)
    part_path = path.with_name(path.name + ".part")
    part_path.write_bytes(data)
    os.replace(part_path, path)
