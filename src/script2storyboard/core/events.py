# -*- coding: utf-8 -*-
"""
script2storyboard/core/events.py

显式的事件注册/分发，组件之间的通知都走这里（“图片生成好了”“批量完成了”）。

监听器抛异常只记日志，不影响发事件的一方和其他监听器。
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List

logger = logging.getLogger(__name__)

GRID_GENERATED = "grid_generated"
BATCH_COMPLETE = "batch_complete"
GRID_RESOLVED = "grid_resolved"
STAGE_PROGRESS = "stage_progress"
STAGE_DONE = "stage_done"
SHEET_GENERATED = "sheet_generated"

Listener = Callable[..., Any]


class EventEmitter:
	def __init__(self) -> None:
		self._listeners: Dict[str, List[Listener]] = {}

	def on(self, event: str, fn: Listener) -> Callable[[], None]:
		"""注册监听器，返回取消注册的函数。"""
		self._listeners.setdefault(event, []).append(fn)
		return lambda: self.off(event, fn)

	def off(self, event: str, fn: Listener) -> None:
		fns = self._listeners.get(event, [])
		if fn in fns:
			fns.remove(fn)

	def emit(self, event: str, **payload: Any) -> None:
		for fn in list(self._listeners.get(event, [])):
			try:
				fn(**payload)
			except Exception:
				logger.exception("listener for %s failed", event)
