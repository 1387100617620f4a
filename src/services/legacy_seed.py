"""
旧版数据导入
读取旧前端使用的 manifest.json，把其中的文章登记进数据库；
已有音频的直接复制到托管目录，避免重复调用付费合成接口。
"""
import json
import logging
from pathlib import Path
from typing import Any, Dict

from services.errors import NarrationError

logger = logging.getLogger(__name__)


def seed_legacy_manifest(service, manifest_path) -> Dict[str, Any]:
    """导入 manifest：{"articles": [{"id", "title", "markdown", "audio"}]}

    markdown / audio 路径相对于 manifest 所在目录。单条失败只记日志并跳过。

    Returns:
        {"linked": n, "queued": n, "cached": n, "skipped": n}
    """
    summary = {"linked": 0, "queued": 0, "cached": 0, "skipped": 0}
    manifest_path = Path(manifest_path)

    try:
        manifest = json.loads(manifest_path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        logger.warning(f"⚠️  No manifest found at {manifest_path}, skipping seed.")
        return summary
    except (OSError, ValueError) as e:
        logger.error(f"❌ Failed to parse manifest: {e}")
        return summary

    base_dir = manifest_path.parent
    items = manifest.get("articles") if isinstance(manifest, dict) else None
    for item in items or []:
        if not isinstance(item, dict):
            summary["skipped"] += 1
            continue

        title = str(item.get("title") or item.get("id") or "").strip()
        md_path = base_dir / str(item.get("markdown") or "")
        try:
            content = md_path.read_text(encoding="utf-8")
        except OSError as e:
            logger.error(f"❌ Failed to read markdown {md_path}: {e}")
            summary["skipped"] += 1
            continue

        logger.info(f"📦 Seeding article: {title}")
        audio_name = str(item.get("audio") or "").strip()
        audio_path = base_dir / audio_name if audio_name else None

        try:
            if audio_path is not None and audio_path.is_file():
                service.import_existing(title, content, audio_path)
                summary["linked"] += 1
            else:
                article = service.resolve(title, content)
                if article.status == "completed":
                    summary["cached"] += 1
                else:
                    summary["queued"] += 1
        except (NarrationError, OSError) as e:
            logger.error(f"❌ Failed to seed article {title}: {e}")
            summary["skipped"] += 1

    logger.info(f"旧数据导入完成：{summary}")
    return summary
