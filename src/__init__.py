"""
VoicePaper Narration Backend
"""
from __future__ import annotations

import sys
from pathlib import Path

# 兼容两种启动方式：
# 1) `python src/main.py`（sys.path 已含 src 目录）
# 2) `python -m src.main`（sys.path 默认含项目根目录，但不含 src 目录）
#
# 项目使用扁平导入（例如 `from db.models import ...`），因此需要确保
# `src/` 在 sys.path 中。
_SRC_DIR = str(Path(__file__).resolve().parent)
if _SRC_DIR not in sys.path:
	sys.path.insert(0, _SRC_DIR)

__version__ = "0.1.0"
__description__ = "Content-addressed article narration backed by MiniMax async TTS"
