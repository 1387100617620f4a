"""
文章仓储：封装 articles / sentences 表的全部读写
由入口创建并注入到 service 与 HTTP 层，不依赖模块级全局连接。
"""
from __future__ import annotations

import logging
from typing import Iterable, List, Optional, Tuple

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import lazyload, load_only, sessionmaker

from db.models import Article, ArticleStatus, Sentence

logger = logging.getLogger(__name__)


class ArticleRepository:
    """Artifact Store：按指纹查找、创建、状态更新、列表摘要。"""

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    # ------------------------------------------------------------------
    # 查询
    # ------------------------------------------------------------------
    def find_by_hash(self, content_hash: str) -> Optional[Article]:
        with self.session_factory() as session:
            stmt = select(Article).where(Article.content_hash == content_hash).order_by(Article.id).limit(1)
            return session.scalars(stmt).first()

    def find_by_id(self, article_id: int) -> Optional[Article]:
        with self.session_factory() as session:
            return session.get(Article, int(article_id))

    def list_summaries(self) -> List[dict]:
        """文章列表（不带正文）"""
        with self.session_factory() as session:
            stmt = (
                select(Article)
                .options(load_only(Article.id, Article.title, Article.status, Article.created_at), lazyload(Article.sentences))
                .order_by(Article.id)
            )
            return [a.to_summary() for a in session.scalars(stmt)]

    # ------------------------------------------------------------------
    # 写入
    # ------------------------------------------------------------------
    def create(self, title: str, content: str, content_hash: str) -> Article:
        article = Article(
            title=title,
            content=content,
            content_hash=content_hash,
            status=ArticleStatus.PENDING.value,
            audio_path="",
            sentences=[],
        )
        with self.session_factory() as session:
            session.add(article)
            session.commit()
        return article

    def find_or_create(self, title: str, content: str, content_hash: str) -> Tuple[Article, bool]:
        """原子的“按指纹查找，不存在则创建”。

        content_hash 有唯一约束：并发插入时输的一方捕获 IntegrityError 后回读赢家。

        Returns:
            (article, created)
        """
        existing = self.find_by_hash(content_hash)
        if existing is not None:
            return existing, False
        try:
            return self.create(title, content, content_hash), True
        except IntegrityError:
            logger.info(f"[DB] 指纹 {content_hash[:8]} 已被并发请求创建，读取已有记录")
            winner = self.find_by_hash(content_hash)
            if winner is None:
                raise
            return winner, False

    def update_status(self, article_id: int, status: str, audio_path: str = "") -> bool:
        status = ArticleStatus(status).value
        with self.session_factory() as session:
            result = session.execute(
                update(Article)
                .where(Article.id == int(article_id))
                .values(status=status, audio_path=audio_path or "")
            )
            session.commit()
            return result.rowcount == 1

    def claim_for_processing(self, article_id: int) -> bool:
        """CAS：仅当当前状态不是 processing 时切到 processing 并清空音频路径。

        返回 False 表示已有其它合成任务占用了这条记录。
        """
        with self.session_factory() as session:
            result = session.execute(
                update(Article)
                .where(Article.id == int(article_id))
                .where(Article.status != ArticleStatus.PROCESSING.value)
                .values(status=ArticleStatus.PROCESSING.value, audio_path="")
            )
            session.commit()
            return result.rowcount == 1

    def replace_sentences(self, article_id: int, segments: Iterable) -> int:
        """整体替换句子时间轴；segments 元素需有 text/start_ms/end_ms。"""
        with self.session_factory() as session:
            article = session.get(Article, int(article_id))
            if article is None:
                return 0
            article.sentences = [
                Sentence(text=seg.text, start_time=int(seg.start_ms), end_time=int(seg.end_ms), order=idx)
                for idx, seg in enumerate(segments or [])
            ]
            session.commit()
            return len(article.sentences)
