# -*- coding: utf-8 -*-
"""
grid/resume.py

目的：
- 选中某一集时，把“已经提交但结果还没写回镜头表”的九宫格任务找回来。
- 任务编码在创建后立刻写进了镜头的 storyboard_grid_generation_meta，
  所以中途退出/重启也不会丢。

流程（resume）：
1) 已应用的九宫格（任一镜头有 storyboard_grid_url）整张跳过
2) 收集所有镜头上的任务指针，按 grid_index 去重，留 task_created_at 最新的
   （解析不了的时间戳输给任何能解析的）
3) 按 grid_index 从小到大逐个处理：先 check_once，没结束再 poll_until_done
4) SUCCESS 写入 results[grid_index]；FAILED 记日志留空；异常记日志继续

取消：
- CancellationGuard 每次 begin() 令牌 +1；切换剧集也会让旧令牌失效。
- 每次远程调用前后都检查，失效就直接返回，不再写任何结果。
  进行中的 HTTP 请求不取消，结果丢弃即可。

整个扫描永远不会抛异常（AuthorizationError 也只记日志）。
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional, Sequence, Set, Union

from script2storyboard.core.events import GRID_RESOLVED, EventEmitter
from script2storyboard.core.grid import grid_index_of, total_grids
from script2storyboard.core.schemas.project import SheetGenerationMeta
from script2storyboard.core.schemas.shot import GridTaskMeta, Shot
from script2storyboard.providers.image.task_client import ImageTaskClient, TaskStatus

logger = logging.getLogger(__name__)

_MS_DIGITS = 12

TaskPointer = Union[GridTaskMeta, SheetGenerationMeta]


@dataclass(frozen=True)
class GuardTicket:
	token: int
	episode_id: str


class CancellationGuard:
	def __init__(self) -> None:
		self.latest_token = 0
		self.selected_episode_id: Optional[str] = None

	def select(self, episode_id: Optional[str]) -> None:
		if episode_id != self.selected_episode_id:
			self.latest_token += 1
		self.selected_episode_id = episode_id

	def begin(self, episode_id: str) -> GuardTicket:
		self.latest_token += 1
		self.selected_episode_id = episode_id
		return GuardTicket(self.latest_token, episode_id)

	def is_current(self, ticket: GuardTicket) -> bool:
		return ticket.token == self.latest_token and ticket.episode_id == self.selected_episode_id


def applied_grid_indices(shots: Sequence[Shot]) -> Set[int]:
	return {grid_index_of(i) for i, s in enumerate(shots) if s.storyboard_grid_url}


def parse_task_time(value: str) -> Optional[float]:
	"""ISO 字符串或数字时间戳 -> epoch 秒；解析不了返回 None。

	数字时间戳 12 位及以上按毫秒，否则按秒。
	"""
	v = (value or "").strip()
	if not v:
		return None
	if v.isdigit():
		return int(v) / 1000.0 if len(v) >= _MS_DIGITS else float(v)
	try:
		dt = datetime.fromisoformat(v.replace("Z", "+00:00"))
	except ValueError:
		return None
	if dt.tzinfo is None:
		dt = dt.replace(tzinfo=timezone.utc)
	return dt.timestamp()


def newer_task(candidate: TaskPointer, current: TaskPointer) -> bool:
	"""比较两份任务指针的 task_created_at；解析不了的输给能解析的。"""
	a = parse_task_time(candidate.task_created_at)
	b = parse_task_time(current.task_created_at)
	if a is None:
		return False
	if b is None:
		return True
	return a > b


def collect_pending_tasks(shots: Sequence[Shot]) -> Dict[int, GridTaskMeta]:
	"""同一 grid_index 的多份任务指针只留最新的一份；时间相同保留先出现的。"""
	latest: Dict[int, GridTaskMeta] = {}
	for s in shots:
		meta = s.storyboard_grid_generation_meta
		if meta is None or not meta.task_code:
			continue
		cur = latest.get(meta.grid_index)
		if cur is None or newer_task(meta, cur):
			latest[meta.grid_index] = meta
	return latest


def clear_stale_metadata(shots: Sequence[Shot]) -> List[Shot]:
	"""已应用九宫格上残留的任务指针清掉（只返回新列表，不改原对象）。"""
	applied = applied_grid_indices(shots)
	out: List[Shot] = []
	for i, s in enumerate(shots):
		if s.storyboard_grid_generation_meta is not None and grid_index_of(i) in applied:
			s = replace(s, storyboard_grid_generation_meta=None)
		out.append(s)
	return out


@dataclass
class ResumeOutcome:
	results: List[str]
	resolved: List[int] = field(default_factory=list)
	failed: List[int] = field(default_factory=list)
	pending: List[int] = field(default_factory=list)
	errors: Dict[int, str] = field(default_factory=dict)
	stale_grids: List[int] = field(default_factory=list)
	aborted: bool = False


class ResumeCoordinator:
	def __init__(
		self,
		client: ImageTaskClient,
		guard: Optional[CancellationGuard] = None,
		on_result: Optional[Callable[[int, str], None]] = None,
		events: Optional[EventEmitter] = None,
	):
		self.client = client
		self.guard = guard or CancellationGuard()
		self.on_result = on_result
		self.events = events

	async def resume(self, episode_id: str, shots: Sequence[Shot], results: Sequence[str] = ()) -> List[str]:
		outcome = await self.scan(episode_id, shots, results)
		return outcome.results

	async def scan(self, episode_id: str, shots: Sequence[Shot], results: Sequence[str] = ()) -> ResumeOutcome:
		ticket = self.guard.begin(episode_id)
		n = total_grids(len(shots))
		outcome = ResumeOutcome(results=list(results) + [""] * max(0, n - len(results)))

		applied = applied_grid_indices(shots)
		pending = collect_pending_tasks(shots)
		outcome.stale_grids = sorted(gi for gi in pending if gi in applied)

		todo = sorted(gi for gi in pending if gi not in applied)
		if not todo:
			return outcome
		logger.info("resume %s: %d pending grid task(s): %s", episode_id, len(todo), todo)

		for gi in todo:
			meta = pending[gi]
			if not self.guard.is_current(ticket):
				outcome.aborted = True
				return outcome

			try:
				result = await self.client.check_once(meta.task_code)
				if not self.guard.is_current(ticket):
					outcome.aborted = True
					return outcome

				if not result.is_terminal:
					result = await self.client.poll_until_done(meta.task_code)
					if not self.guard.is_current(ticket):
						outcome.aborted = True
						return outcome
			except Exception as e:
				logger.warning("resume grid %d (task %s) failed: %s", gi, meta.task_code, e)
				outcome.errors[gi] = str(e)
				continue

			if result.status == TaskStatus.SUCCESS and result.first_url:
				outcome.results = _with_slot(outcome.results, gi, result.first_url)
				outcome.resolved.append(gi)
				if self.on_result is not None:
					try:
						self.on_result(gi, result.first_url)
					except Exception:
						logger.exception("on_result for grid %d failed", gi)
				if self.events is not None:
					self.events.emit(GRID_RESOLVED, episode_id=episode_id, grid_index=gi, url=result.first_url)
			elif result.status == TaskStatus.FAILED:
				logger.warning("grid %d task %s failed: %s", gi, meta.task_code, result.failure_reason or "unknown")
				outcome.failed.append(gi)
			else:
				logger.info("grid %d task %s still pending", gi, meta.task_code)
				outcome.pending.append(gi)

		return outcome


def _with_slot(results: List[str], index: int, url: str) -> List[str]:
	out = list(results)
	if len(out) <= index:
		out.extend([""] * (index + 1 - len(out)))
	out[index] = url
	return out
