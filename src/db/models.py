import datetime
from enum import Enum
from pathlib import Path

from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship

from db.core import Base


class ArticleStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


def _utcnow():
    return datetime.datetime.now(datetime.timezone.utc).replace(tzinfo=None)


def _isoformat(value):
    return value.isoformat() if value else None


class Article(Base):
    """
    文章表
    一条记录对应一段正文（按 content_hash 去重），以及它合成出的音频。
    """
    __tablename__ = "articles"
    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'processing', 'completed', 'failed')",
            name="ck_articles_status",
        ),
        CheckConstraint(
            "status != 'completed' OR (audio_path IS NOT NULL AND audio_path != '')",
            name="ck_articles_completed_audio",
        ),
    )

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(255), nullable=False)
    content = Column(Text, nullable=False)  # Markdown 原文
    content_hash = Column(String(64), unique=True, nullable=False, index=True)
    status = Column(String(50), nullable=False, default=ArticleStatus.PENDING.value, index=True)
    audio_path = Column(String(255), nullable=False, default="")
    created_at = Column(DateTime, default=_utcnow)
    updated_at = Column(DateTime, default=_utcnow, onupdate=_utcnow)

    sentences = relationship(
        "Sentence",
        back_populates="article",
        order_by="Sentence.order",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    @property
    def audio_url(self) -> str:
        """Delivery Surface 的静态音频地址（/audio/<文件名>）。"""
        if not self.audio_path:
            return ""
        return f"/audio/{Path(self.audio_path).name}"

    def to_summary(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "status": self.status,
            "created_at": _isoformat(self.created_at),
        }

    def to_dict(self, include_sentences: bool = True) -> dict:
        data = {
            "id": self.id,
            "title": self.title,
            "content": self.content,
            "content_hash": self.content_hash,
            "status": self.status,
            "audio_path": self.audio_path or "",
            "audio_url": self.audio_url,
            "created_at": _isoformat(self.created_at),
            "updated_at": _isoformat(self.updated_at),
        }
        if include_sentences:
            data["sentences"] = [s.to_dict() for s in self.sentences]
        return data


class Sentence(Base):
    """
    句子时间轴（用于朗读高亮）
    """
    __tablename__ = "sentences"

    id = Column(Integer, primary_key=True, index=True)
    article_id = Column(Integer, ForeignKey("articles.id", ondelete="CASCADE"), nullable=False, index=True)
    text = Column(Text, nullable=False)
    start_time = Column(Integer, default=0)  # 毫秒
    end_time = Column(Integer, default=0)  # 毫秒
    order = Column(Integer, default=0)

    article = relationship("Article", back_populates="sentences")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "text": self.text,
            "start_time": self.start_time,
            "end_time": self.end_time,
            "order": self.order,
        }
