# -*- coding: utf-8 -*-
"""
script2storyboard/core/local_store.py

本地 key-value 字符串存储（每个 key 一个文件）。

规则：
- 单个 key 软上限 5MB，只用 90%；超过就跳过写入并打 warning。
- 磁盘写失败（OSError，例如空间不足）同样只 warning，不抛出。
- 内存里的数据不受影响：这里只是“尽量落盘”的快照。
"""

from __future__ import annotations

import json
import logging
import re
from pathlib import Path
from typing import List, Optional

from .schemas.project import Project

logger = logging.getLogger(__name__)

MAX_BYTES_PER_KEY = 5 * 1024 * 1024
USABLE_RATIO = 0.9

PROJECTS_KEY = "storyboard_projects"
CURRENT_PROJECT_KEY = "storyboard_current_project_id"

_SAFE_KEY_RE = re.compile(r"[^A-Za-z0-9_.-]")


class LocalStore:
	def __init__(self, root: str | Path, max_bytes: int = MAX_BYTES_PER_KEY):
		self.root = Path(root)
		self.max_bytes = max_bytes

	def _path(self, key: str) -> Path:
		return self.root / (_SAFE_KEY_RE.sub("_", key) + ".txt")

	@property
	def usable_bytes(self) -> int:
		return int(self.max_bytes * USABLE_RATIO)

	def get_item(self, key: str) -> Optional[str]:
		p = self._path(key)
		if not p.exists():
			return None
		return p.read_text(encoding="utf-8")

	def set_item(self, key: str, value: str) -> bool:
		"""写成功返回 True；超限或磁盘错误返回 False。"""
		size = len(value.encode("utf-8"))
		if size > self.usable_bytes:
			logger.warning(
				"local store: skip %s, %.2f MB exceeds %.2f MB",
				key, size / 1024 / 1024, self.usable_bytes / 1024 / 1024,
			)
			return False

		try:
			self.root.mkdir(parents=True, exist_ok=True)
			self._path(key).write_text(value, encoding="utf-8")
		except OSError as e:
			logger.warning("local store: write %s failed: %s", key, e)
			return False
		return True

	def remove_item(self, key: str) -> None:
		p = self._path(key)
		if p.exists():
			p.unlink()


def save_projects(store: LocalStore, projects: List[Project]) -> bool:
	return store.set_item(PROJECTS_KEY, json.dumps([p.to_dict() for p in projects], ensure_ascii=False))


def load_projects(store: LocalStore) -> List[Project]:
	raw = store.get_item(PROJECTS_KEY)
	if not raw:
		return []
	try:
		data = json.loads(raw)
	except json.JSONDecodeError as e:
		logger.warning("local store: projects snapshot unreadable: %s", e)
		return []
	return [Project.from_dict(d) for d in data if isinstance(d, dict)]


def set_current_project_id(store: LocalStore, project_id: Optional[str]) -> None:
	if project_id:
		store.set_item(CURRENT_PROJECT_KEY, project_id)
	else:
		store.remove_item(CURRENT_PROJECT_KEY)


def get_current_project_id(store: LocalStore) -> Optional[str]:
	return store.get_item(CURRENT_PROJECT_KEY)
