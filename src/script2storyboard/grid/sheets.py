# -*- coding: utf-8 -*-
"""
grid/sheets.py

这个文件做什么：
- 角色设定图：16:9 一行四格（正面全身、侧面全身、背面全身、面部特写）
- 场景设定图：16:9 2×2 四格（全景、左 3/4、右 3/4、关键细节特写）

单张流程（generate_one），和九宫格一样“先落盘再轮询”：
1) create_task；拿到任务编码立刻把 SheetGenerationMeta 写到角色/场景上并持久化
   - generated_at 留空，表示还没写回结果
   - 已有的 image_sheet_url 不清空，生成失败也不会变成空白
2) poll_until_done；成功后写 image_sheet_url、generated_at，再持久化一次

恢复（resume_pending）：
- 有 task_code 但 generated_at 为空的条目视为未完成；同一个角色/场景只留 task_created_at 最新的
- 先 check_once，没结束再 poll_until_done；每个任务编码在同一个生成器里只尝试一次
- 单个失败只记日志，不抛异常
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Dict, List, Optional, Sequence, Set, Union

import httpx

from script2storyboard.core.events import SHEET_GENERATED, EventEmitter
from script2storyboard.core.schemas.project import CharacterRef, Project, SceneRef, SheetGenerationMeta
from script2storyboard.errors import StoryboardError, TaskAborted, TaskApiError
from script2storyboard.providers.image.task_client import (
	ImageGenerationRequest,
	ImageTaskClient,
	TaskResult,
	TaskStatus,
)

from .generator import now_iso
from .prompt import StoryboardStyle
from .resume import newer_task

logger = logging.getLogger(__name__)

KIND_CHARACTER = "character"
KIND_SCENE = "scene"
KINDS = (KIND_CHARACTER, KIND_SCENE)

SheetRef = Union[CharacterRef, SceneRef]
PersistProject = Callable[[Project], Any]

SHEET_NEGATIVE_PROMPT = (
	"watermark, signature, logo, text, typography, letters, numbers, digits, "
	"caption, subtitle, label, annotations, UI overlay"
)

NO_TEXT = "NO text, NO labels, NO numbers, NO watermark, NO logo."


def _joined(parts: List[str], sep: str) -> str:
	return sep.join(p for p in parts if p)


def build_character_sheet_prompt(c: CharacterRef, visual_style: str = "", style: Optional[StoryboardStyle] = None) -> str:
	info = _joined([
		"角色设定图",
		f"角色：{c.name}",
		f"外观：{c.appearance}" if c.appearance else "",
		f"性别：{c.gender}" if c.gender and c.gender != "未知" else "",
		f"年龄段：{c.age_group}" if c.age_group else "",
		f"项目视觉风格：{visual_style}" if visual_style else "",
	], "；")
	return _joined([
		info,
		"16:9 canvas, 1x4 horizontal grid layout with 4 equal panels, edge-to-edge, clean background, "
		"consistent character, consistent outfit, consistent face.",
		"Panels from left to right: (1) front full-body standing, (2) side profile full-body, "
		"(3) back full-body, (4) face close-up portrait.",
		NO_TEXT,
		style.prompt_suffix if style else "",
	], " ")


def build_scene_sheet_prompt(s: SceneRef, visual_style: str = "", style: Optional[StoryboardStyle] = None) -> str:
	info = _joined([
		"场景设定图",
		f"场景：{s.name}",
		f"描述：{s.description}" if s.description else "",
		f"中文视觉提示词：{s.visual_prompt_cn}" if s.visual_prompt_cn else "",
		f"氛围：{s.atmosphere}" if s.atmosphere else "",
		f"项目视觉风格：{visual_style}" if visual_style else "",
	], "；")
	return _joined([
		info,
		"16:9 canvas, 2x2 grid layout with 4 equal panels, edge-to-edge.",
		"Panels: (1) wide establishing shot, (2) second angle (left 3/4 view), "
		"(3) third angle (right 3/4 view), (4) key detail close-up.",
		NO_TEXT,
		style.prompt_suffix if style else "",
	], " ")


def is_pending(ref: SheetRef) -> bool:
	meta = ref.image_generation_meta
	return meta is not None and bool(meta.task_code) and not meta.generated_at


@dataclass
class PendingSheet:
	kind: str
	ref_id: str
	name: str
	meta: SheetGenerationMeta

	@property
	def key(self) -> str:
		return f"{self.kind}:{self.ref_id}"


def collect_pending_sheets(project: Project) -> List[PendingSheet]:
	"""角色在前、场景在后；同 id 重复出现时只留 task_created_at 最新的一份。"""
	latest: Dict[str, PendingSheet] = {}
	for kind, refs in ((KIND_CHARACTER, project.characters), (KIND_SCENE, project.scenes)):
		for r in refs:
			if not is_pending(r):
				continue
			p = PendingSheet(kind, r.id, r.name, r.image_generation_meta)
			cur = latest.get(p.key)
			if cur is None or newer_task(p.meta, cur.meta):
				latest[p.key] = p
	return list(latest.values())


@dataclass
class SheetRun:
	generated: List[str] = field(default_factory=list)
	failed: List[str] = field(default_factory=list)
	pending: List[str] = field(default_factory=list)
	errors: Dict[str, str] = field(default_factory=dict)
	aborted: bool = False


class SheetGenerator:
	def __init__(
		self,
		client: ImageTaskClient,
		project: Project,
		persist: Optional[PersistProject] = None,
		events: Optional[EventEmitter] = None,
		style: Optional[StoryboardStyle] = None,
		model_name: str = "",
	):
		self.client = client
		self.project = project
		self.persist = persist
		self.events = events or EventEmitter()
		self.style = style
		self.model_name = model_name
		self.attempted_task_codes: Set[str] = set()

	@property
	def style_name(self) -> str:
		return self.style.name if self.style else "未知风格"

	def _refs(self, kind: str) -> List[Any]:
		if kind == KIND_CHARACTER:
			return self.project.characters
		if kind == KIND_SCENE:
			return self.project.scenes
		raise ValueError(f"unknown sheet kind: {kind}")

	def find(self, kind: str, ref_id: str) -> SheetRef:
		for r in self._refs(kind):
			if r.id == ref_id:
				return r
		raise ValueError(f"{kind} {ref_id} not in project")

	def _update(self, kind: str, ref_id: str, **changes: Any) -> SheetRef:
		refs = self._refs(kind)
		for i, r in enumerate(refs):
			if r.id == ref_id:
				refs[i] = replace(r, **changes)
				return refs[i]
		raise ValueError(f"{kind} {ref_id} not in project")

	def prompt_for(self, kind: str, ref: SheetRef) -> str:
		visual_style = self.project.settings.visual_style
		if kind == KIND_CHARACTER:
			return build_character_sheet_prompt(ref, visual_style, self.style)
		return build_scene_sheet_prompt(ref, visual_style, self.style)

	async def _persist(self) -> None:
		if self.persist is None:
			return
		try:
			r = self.persist(self.project)
			if inspect.isawaitable(r):
				await r
		except (httpx.HTTPError, OSError, StoryboardError) as e:
			logger.warning("persist sheet metadata failed (task continues): %s", e)

	async def _write_back(self, kind: str, ref_id: str, task_code: str, url: str) -> None:
		ref = self.find(kind, ref_id)
		meta = ref.image_generation_meta or SheetGenerationMeta(
			model_name=self.model_name,
			style_name=self.style_name,
			task_code=task_code,
			task_created_at=now_iso(),
		)
		self._update(kind, ref_id, image_sheet_url=url, image_generation_meta=replace(meta, generated_at=now_iso()))
		await self._persist()
		logger.info("%s sheet for %s done: %s", kind, ref.name, url)
		self.events.emit(SHEET_GENERATED, kind=kind, ref_id=ref_id, url=url)

	def _record(self, run: SheetRun, key: str, result: TaskResult) -> bool:
		if result.status == TaskStatus.SUCCESS and result.first_url:
			run.generated.append(key)
			return True
		if result.status == TaskStatus.FAILED:
			logger.warning("sheet %s task %s failed: %s", key, result.task_code, result.failure_reason or "unknown")
			run.failed.append(key)
		else:
			run.pending.append(key)
		return False

	async def generate_one(self, kind: str, ref_id: str, abort: Optional[asyncio.Event] = None) -> TaskResult:
		ref = self.find(kind, ref_id)
		prompt = self.prompt_for(kind, ref)

		async def on_task_code(code: str) -> None:
			now = now_iso()
			meta = SheetGenerationMeta(
				model_name=self.model_name,
				style_name=self.style_name,
				task_code=code,
				task_created_at=now,
			)
			self._update(kind, ref_id, image_generation_meta=meta)
			await self._persist()

		req = ImageGenerationRequest(prompt=prompt, model_name=self.model_name, negative_prompt=SHEET_NEGATIVE_PROMPT)
		code = await self.client.create_task(req, on_task_code=on_task_code, abort=abort)
		self.attempted_task_codes.add(code)
		try:
			result = await self.client.poll_until_done(code, abort=abort)
		except (TaskApiError, httpx.HTTPError) as e:
			logger.warning("%s sheet %s polling task %s failed: %s", kind, ref.name, code, e)
			return TaskResult(task_code=code, status=TaskStatus.PENDING, failure_reason=str(e))

		if result.status == TaskStatus.SUCCESS and result.first_url:
			await self._write_back(kind, ref_id, code, result.first_url)
		elif result.timed_out:
			logger.warning("%s sheet %s task %s timed out; resume later", kind, ref.name, code)
		return result

	async def generate_missing(self, kinds: Sequence[str] = KINDS, abort: Optional[asyncio.Event] = None) -> SheetRun:
		"""没有设定图、也没有进行中任务的角色/场景逐个生成。鉴权失败直接抛出。"""
		run = SheetRun()
		todo = [
			(kind, r.id)
			for kind in kinds
			for r in self._refs(kind)
			if not r.image_sheet_url and not is_pending(r)
		]
		for kind, ref_id in todo:
			key = f"{kind}:{ref_id}"
			if abort is not None and abort.is_set():
				run.aborted = True
				break
			try:
				result = await self.generate_one(kind, ref_id, abort=abort)
			except TaskAborted:
				run.aborted = True
				break
			except (TaskApiError, httpx.HTTPError) as e:
				logger.warning("sheet %s failed: %s", key, e)
				run.failed.append(key)
				run.errors[key] = str(e)
				continue
			self._record(run, key, result)
		return run

	async def resume_pending(self, abort: Optional[asyncio.Event] = None) -> SheetRun:
		run = SheetRun()
		for p in collect_pending_sheets(self.project):
			code = p.meta.task_code
			if code in self.attempted_task_codes:
				continue
			if abort is not None and abort.is_set():
				run.aborted = True
				break
			self.attempted_task_codes.add(code)
			logger.info("resume %s sheet for %s (task %s)", p.kind, p.name, code)

			try:
				result = await self.client.check_once(code, abort=abort)
				if not result.is_terminal:
					result = await self.client.poll_until_done(code, abort=abort)
			except TaskAborted:
				run.aborted = True
				break
			except Exception as e:
				logger.warning("resume sheet %s (task %s) failed: %s", p.key, code, e)
				run.errors[p.key] = str(e)
				continue

			if self._record(run, p.key, result):
				await self._write_back(p.kind, p.ref_id, code, result.first_url)
		return run
