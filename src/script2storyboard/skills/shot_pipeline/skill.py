# -*- coding: utf-8 -*-
"""
shot_pipeline/skill.py

这个文件做什么：
- 把五阶段思维链封装成一个 skill：
  1) 剧本分析 -> ScriptAnalysis
  2) 视觉策略 -> VisualStrategy
  3) 镜头规划 -> ShotPlanning
  4) 逐镜设计（shotList 按 6 个一批）-> 原始设计 dict 列表
  5) 质量自检 -> QualityCheck（只记警告，不改镜头）
- 每个阶段：调用 + 解析 + 校验整体放进 with_retry（3 次，间隔 2 秒）；
  鉴权错误不重试；重试耗尽抛 StageFailedError（带最后一次原文）。
- 上一阶段没有结果时，下一阶段不会被调用（异常直接向上抛）。
- cot_dir 不为空时，每阶段结果写到 cot/stageN.json，便于排查和断点续跑。

注意：
- 阶段5失败不影响镜头表，只记警告（镜头已经有了）。
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, TypeVar

import httpx

from script2storyboard.core.events import STAGE_DONE, STAGE_PROGRESS, EventEmitter
from script2storyboard.core.project_file import write_json
from script2storyboard.core.retry import with_retry
from script2storyboard.core.schemas.shot import Shot
from script2storyboard.errors import StageFailedError
from script2storyboard.skills.llm import LLMClient, ask

from .converter import designs_to_shots, normalize_prompts
from .parser import parse_stage1, parse_stage2, parse_stage3, parse_stage4_batch, parse_stage5
from .prompt import (
	build_stage1_prompt,
	build_stage2_prompt,
	build_stage3_prompt,
	build_stage4_prompt,
	build_stage5_prompt,
)
from .schema import QualityCheck, ScriptAnalysis, ShotPlanning, VisualStrategy

logger = logging.getLogger(__name__)

T = TypeVar("T")

BATCH_SIZE = 6


@dataclass
class ShotPipelineResult:
	analysis: ScriptAnalysis
	strategy: VisualStrategy
	planning: ShotPlanning
	designs: List[Dict[str, Any]]
	shots: List[Shot]
	quality: Optional[QualityCheck] = None
	warnings: List[str] = field(default_factory=list)


class ShotPipelineSkill:
	def __init__(
		self,
		llm: LLMClient,
		cot_dir: Optional[Path] = None,
		log_path: Optional[Path] = None,
		model: Optional[str] = None,
		events: Optional[EventEmitter] = None,
		batch_size: int = BATCH_SIZE,
		max_attempts: int = 3,
		retry_delay_s: float = 2.0,
	):
		self.llm = llm
		self.cot_dir = cot_dir
		self.log_path = log_path
		self.model = model
		self.events = events or EventEmitter()
		self.batch_size = batch_size
		self.max_attempts = max_attempts
		self.retry_delay_s = retry_delay_s

	async def _stage(self, stage: str, prompt: str, parse: Callable[[str], T]) -> T:
		last_text = [""]

		async def attempt() -> T:
			text = await ask(self.llm, prompt, stage, self.log_path, self.model)
			last_text[0] = text
			return parse(text)

		try:
			return await with_retry(attempt, self.max_attempts, self.retry_delay_s, label=stage)
		except (ValueError, httpx.HTTPError) as e:
			# OutputParseError 也是 ValueError
			raise StageFailedError(stage, str(e)[:500], raw_text=getattr(e, "raw_text", "") or last_text[0]) from e

	def _save(self, n: int, data: Any) -> None:
		if self.cot_dir is None:
			return
		self.cot_dir.mkdir(parents=True, exist_ok=True)
		write_json(self.cot_dir / f"stage{n}.json", data)

	def _done(self, stage: str, **payload: Any) -> None:
		logger.info("%s done", stage)
		self.events.emit(STAGE_DONE, stage=stage, **payload)

	async def analyze(self, script: str, constraints: str = "") -> ScriptAnalysis:
		a = await self._stage("stage1", build_stage1_prompt(script, constraints), parse_stage1)
		self._save(1, a.to_json_dict())
		self._done("stage1", scenes=len(a.scenes))
		return a

	async def plan_visuals(self, analysis: ScriptAnalysis, constraints: str = "") -> VisualStrategy:
		s = await self._stage("stage2", build_stage2_prompt(analysis, constraints), parse_stage2)
		self._save(2, s.to_json_dict())
		self._done("stage2")
		return s

	async def plan_shots(self, script: str, analysis: ScriptAnalysis, strategy: VisualStrategy) -> ShotPlanning:
		p = await self._stage("stage3", build_stage3_prompt(script, analysis, strategy), parse_stage3)
		if not p.shot_list:
			raise StageFailedError("stage3", "empty shotList")
		self._save(3, p.to_json_dict())
		self._done("stage3", shots=len(p.shot_list))
		return p

	async def design_shots(
		self,
		script: str,
		analysis: ScriptAnalysis,
		strategy: VisualStrategy,
		planning: ShotPlanning,
	) -> List[Dict[str, Any]]:
		items = planning.shot_list
		total_batches = (len(items) + self.batch_size - 1) // self.batch_size
		designs: List[Dict[str, Any]] = []

		for b in range(total_batches):
			batch = items[b * self.batch_size:(b + 1) * self.batch_size]
			prompt = build_stage4_prompt(script, analysis, strategy, planning, batch)
			got = await self._stage(f"stage4.batch{b + 1}", prompt, parse_stage4_batch)
			if len(got) != len(batch):
				logger.warning("stage4 batch %d: expected %d shots, got %d", b + 1, len(batch), len(got))
			designs.extend(got)
			self.events.emit(STAGE_PROGRESS, stage="stage4", batch=b + 1, total=total_batches, shots=len(designs))

		self._save(4, {"shots": designs})
		self._done("stage4", shots=len(designs))
		return designs

	async def review_quality(
		self,
		analysis: ScriptAnalysis,
		strategy: VisualStrategy,
		designs: List[Dict[str, Any]],
	) -> QualityCheck:
		q = await self._stage("stage5", build_stage5_prompt(analysis, strategy, designs), parse_stage5)
		self._save(5, q.to_json_dict())
		for issue in q.all_issues():
			logger.warning("quality check: %s", issue)
		self._done("stage5", score=q.overall_score)
		return q

	async def run(self, script: str, constraints: str = "") -> ShotPipelineResult:
		analysis = await self.analyze(script, constraints)
		strategy = await self.plan_visuals(analysis, constraints)
		planning = await self.plan_shots(script, analysis, strategy)
		designs = await self.design_shots(script, analysis, strategy, planning)

		plan = [s.to_json_dict() for s in planning.shot_list]
		shots = normalize_prompts(designs_to_shots(designs, plan))

		result = ShotPipelineResult(analysis, strategy, planning, designs, shots)
		try:
			result.quality = await self.review_quality(analysis, strategy, designs)
		except StageFailedError as e:
			logger.warning("quality check skipped: %s", e)
			result.warnings.append(str(e))

		logger.info("shot pipeline: %d shots", len(shots))
		return result
