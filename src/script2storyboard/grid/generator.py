# -*- coding: utf-8 -*-
"""
grid/generator.py

这个文件做什么：
- 按 9 个镜头一组生成九宫格分镜图。
- 单张流程（generate_one）：
  1) 拼提示词
  2) create_task；拿到任务编码后立刻把 GridTaskMeta 写到这一组的每个镜头上并持久化
     （先落盘再轮询，中途退出也能在 resume 时找回）
  3) poll_until_done，成功后发 grid_generated 事件
- 批量（generate_all）：逐张串行；单张失败留空继续；abort 触发后停止剩余的；
  鉴权失败直接抛出（后面的也不可能成功）。

注意：
- 这里只负责“生成”，不把结果写进镜头表；写回由 grid/apply.py 完成。
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Callable, List, Optional, Sequence, Tuple

import httpx

from script2storyboard.core.events import BATCH_COMPLETE, GRID_GENERATED, EventEmitter
from script2storyboard.core.grid import grid_range, total_grids
from script2storyboard.core.schemas.project import CharacterRef, SceneRef
from script2storyboard.core.schemas.shot import GridTaskMeta, Shot
from script2storyboard.errors import StoryboardError, TaskAborted, TaskApiError
from script2storyboard.providers.image.task_client import (
	ImageGenerationRequest,
	ImageTaskClient,
	TaskResult,
	TaskStatus,
)

from .prompt import StoryboardStyle, build_nine_grid_prompt

logger = logging.getLogger(__name__)

PersistShots = Callable[[List[Shot]], Any]


def now_iso() -> str:
	return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def attach_task_meta(shots: Sequence[Shot], grid_index: int, task_code: str, created_at: str) -> List[Shot]:
	start, end = grid_range(grid_index, len(shots))
	meta = GridTaskMeta(task_code=task_code, task_created_at=created_at, grid_index=grid_index)
	return [
		replace(s, storyboard_grid_generation_meta=meta) if start <= i < end else s
		for i, s in enumerate(shots)
	]


@dataclass
class GridRun:
	shots: List[Shot]
	results: List[str]
	failed: List[int] = field(default_factory=list)
	pending: List[int] = field(default_factory=list)
	aborted: bool = False


class GridGenerator:
	def __init__(
		self,
		client: ImageTaskClient,
		persist_shots: Optional[PersistShots] = None,
		events: Optional[EventEmitter] = None,
		style: Optional[StoryboardStyle] = None,
		characters: Sequence[CharacterRef] = (),
		scenes: Sequence[SceneRef] = (),
		episode_number: Optional[int] = None,
	):
		self.client = client
		self.persist_shots = persist_shots
		self.events = events or EventEmitter()
		self.style = style
		self.characters = list(characters)
		self.scenes = list(scenes)
		self.episode_number = episode_number

	def prompt_for(self, shots: Sequence[Shot], grid_index: int) -> str:
		start, end = grid_range(grid_index, len(shots))
		return build_nine_grid_prompt(
			shots[start:end],
			page_num=grid_index + 1,
			total_pages=total_grids(len(shots)),
			style=self.style,
			characters=self.characters,
			episode_number=self.episode_number,
			scenes=self.scenes,
		)

	async def _persist(self, shots: List[Shot]) -> None:
		if self.persist_shots is None:
			return
		try:
			r = self.persist_shots(shots)
			if inspect.isawaitable(r):
				await r
		except (httpx.HTTPError, OSError, StoryboardError) as e:
			logger.warning("persist task metadata failed (task continues): %s", e)

	async def generate_one(
		self,
		shots: Sequence[Shot],
		grid_index: int,
		abort: Optional[asyncio.Event] = None,
	) -> Tuple[List[Shot], TaskResult]:
		"""返回 (带任务指针的新镜头列表, 轮询结果)。"""
		prompt = self.prompt_for(shots, grid_index)
		holder = {"shots": list(shots)}

		async def on_task_code(code: str) -> None:
			holder["shots"] = attach_task_meta(holder["shots"], grid_index, code, now_iso())
			await self._persist(holder["shots"])

		code = await self.client.create_task(ImageGenerationRequest(prompt=prompt), on_task_code=on_task_code, abort=abort)
		try:
			result = await self.client.poll_until_done(code, abort=abort)
		except (TaskApiError, httpx.HTTPError) as e:
			# 任务已经提交并落盘，结果未知，留给 resume
			logger.warning("grid %d polling task %s failed: %s", grid_index, code, e)
			return holder["shots"], TaskResult(task_code=code, status=TaskStatus.PENDING, failure_reason=str(e))

		if result.status == TaskStatus.SUCCESS and result.first_url:
			logger.info("grid %d done: %s", grid_index, result.first_url)
			self.events.emit(GRID_GENERATED, grid_index=grid_index, url=result.first_url)
		elif result.timed_out:
			logger.warning("grid %d task %s timed out; resume later", grid_index, code)
		else:
			logger.warning("grid %d task %s failed: %s", grid_index, code, result.failure_reason or "unknown")
		return holder["shots"], result

	async def generate_all(
		self,
		shots: Sequence[Shot],
		grid_indices: Optional[Sequence[int]] = None,
		results: Sequence[str] = (),
		abort: Optional[asyncio.Event] = None,
	) -> GridRun:
		n = total_grids(len(shots))
		todo = list(grid_indices) if grid_indices is not None else list(range(n))
		run = GridRun(shots=list(shots), results=list(results) + [""] * max(0, n - len(results)))

		for gi in todo:
			if abort is not None and abort.is_set():
				run.aborted = True
				break
			try:
				run.shots, result = await self.generate_one(run.shots, gi, abort=abort)
			except TaskAborted:
				logger.info("grid generation aborted at grid %d", gi)
				run.aborted = True
				break
			except (TaskApiError, httpx.HTTPError) as e:
				logger.warning("grid %d failed: %s", gi, e)
				run.failed.append(gi)
				continue

			if result.status == TaskStatus.SUCCESS and result.first_url:
				run.results[gi] = result.first_url
			elif result.status == TaskStatus.FAILED:
				run.failed.append(gi)
			else:
				run.pending.append(gi)

		self.events.emit(
			BATCH_COMPLETE,
			total=len(todo),
			succeeded=sum(1 for gi in todo if gi < len(run.results) and run.results[gi]),
			failed=list(run.failed),
			aborted=run.aborted,
		)
		return run
