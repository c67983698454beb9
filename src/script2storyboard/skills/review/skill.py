# -*- coding: utf-8 -*-
"""
review/skill.py

这个文件做什么：
- review(shots)：规则检查 + LLM 审核，返回建议列表 [{shotNumber|"GLOBAL", suggestion, reason}]
  - 少于 24 个镜头时记警告（prompt 里也会要求模型第一条指出）
  - LLM 输出解析失败返回 []，不阻断流水线
- optimize_shots(shots, suggestions)：让 LLM 按建议改镜头，按 shotNumber 合并回原镜头表
  - 原镜头的 id 和九宫格字段（url/cell_index/generation_meta）永远保留
  - 模型漏掉的镜头保持原样；模型新增的镜头追加到末尾
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from pydantic import TypeAdapter, ValidationError

from script2storyboard.core.jsonrepair import parse_llm_json
from script2storyboard.core.schemas.shot import Shot, normalize_shot_number
from script2storyboard.errors import OutputParseError
from script2storyboard.skills.llm import LLMClient, ask

from .prompt import DEFAULT_CRITERIA, MIN_SHOTS, build_optimize_prompt, build_review_prompt
from .rules import RuleViolation, check_shot_rules
from .schema import ReviewSuggestion

logger = logging.getLogger(__name__)

_suggestions_adapter = TypeAdapter(List[ReviewSuggestion])

GRID_KEYS = ("storyboardGridUrl", "storyboardGridCellIndex", "storyboardGridGenerationMeta")


@dataclass
class ReviewResult:
	suggestions: List[ReviewSuggestion] = field(default_factory=list)
	violations: List[RuleViolation] = field(default_factory=list)
	warnings: List[str] = field(default_factory=list)

	def to_dict(self) -> Dict[str, Any]:
		return {
			"suggestions": [s.to_json_dict() for s in self.suggestions],
			"violations": [v.to_dict() for v in self.violations],
			"warnings": list(self.warnings),
		}


def shots_for_llm(shots: Sequence[Shot]) -> List[Dict[str, Any]]:
	out = []
	for s in shots:
		d = s.to_dict()
		for k in GRID_KEYS:
			d.pop(k, None)
		out.append(d)
	return out


def merge_optimized(shots: Sequence[Shot], optimized: Sequence[Dict[str, Any]]) -> List[Shot]:
	by_number: Dict[str, Dict[str, Any]] = {}
	for d in optimized:
		n = normalize_shot_number(d.get("shotNumber"))
		if n:
			by_number[n] = d

	out: List[Shot] = []
	seen = set()
	for s in shots:
		n = normalize_shot_number(s.shot_number)
		upd = by_number.get(n)
		if upd is None:
			out.append(s)
			continue
		seen.add(n)
		merged = Shot.from_dict({**s.to_dict(), **{k: v for k, v in upd.items() if k not in GRID_KEYS}})
		out.append(replace(
			merged,
			id=s.id,
			shot_number=s.shot_number,
			storyboard_grid_url=s.storyboard_grid_url,
			storyboard_grid_cell_index=s.storyboard_grid_cell_index,
			storyboard_grid_generation_meta=s.storyboard_grid_generation_meta,
		))

	for n, d in by_number.items():
		if n in seen:
			continue
		new = Shot.from_dict({k: v for k, v in d.items() if k not in GRID_KEYS})
		out.append(replace(new, shot_number=n, id=new.id or f"shot-opt-{n}"))
		logger.info("optimize added shot #%s", n)

	return out


class ReviewSkill:
	def __init__(self, llm: LLMClient, log_path: Optional[Path] = None, model: Optional[str] = None):
		self.llm = llm
		self.log_path = log_path
		self.model = model

	async def review(self, shots: Sequence[Shot], criteria: Optional[str] = None) -> ReviewResult:
		result = ReviewResult(violations=check_shot_rules(shots))
		if len(shots) < MIN_SHOTS:
			msg = f"only {len(shots)} shots, fewer than {MIN_SHOTS}"
			logger.warning(msg)
			result.warnings.append(msg)

		prompt = build_review_prompt(shots_for_llm(shots), criteria or DEFAULT_CRITERIA)
		text = await ask(self.llm, prompt, "review", self.log_path, self.model)
		try:
			data = parse_llm_json(text, want=list)
			result.suggestions = [s for s in _suggestions_adapter.validate_python(data) if s.suggestion]
		except (OutputParseError, ValidationError) as e:
			logger.warning("review output not parseable: %s", str(e)[:200])
			return result

		logger.info("review: %d suggestions, %d rule violations", len(result.suggestions), len(result.violations))
		return result

	async def optimize_shots(self, shots: Sequence[Shot], suggestions: Sequence[ReviewSuggestion]) -> List[Shot]:
		if not suggestions:
			return list(shots)
		text = await ask(self.llm, build_optimize_prompt(shots_for_llm(shots), suggestions), "optimize", self.log_path, self.model)
		data = parse_llm_json(text, want=list)
		return merge_optimized(shots, [d for d in data if isinstance(d, dict)])
