# -*- coding: utf-8 -*-
"""
shot_pipeline/schema.py

五个阶段输出的结构。

原则：
- 只把“后续阶段真的要读”的字段声明出来，其余原样保留（extra="allow"）。
- 必需字段缺失 = 校验失败 = 这一阶段重试。
- LLM 经常把数字写成字符串（"28"、"8.5分"），这里统一在 before 校验里转掉。
"""

from __future__ import annotations

import re
from typing import Any, Dict, List, Optional

from pydantic import Field, field_validator

from script2storyboard.skills.models import CamelModel

_NUM_RE = re.compile(r"-?\d+(?:\.\d+)?")


def _to_number(v: Any) -> Any:
	if isinstance(v, str):
		m = _NUM_RE.search(v)
		if m:
			return float(m.group(0))
	return v


def _to_text(v: Any) -> str:
	if v is None:
		return ""
	if isinstance(v, dict):
		return v.get("description") or v.get("event") or "；".join(str(x) for x in v.values() if x)
	return str(v)


# ========== 阶段1：剧本分析 ==========

class BasicInfo(CamelModel):
	location: str = ""
	characters: List[str] = Field(default_factory=list)
	timespan: str = ""
	key_events: List[str] = Field(default_factory=list)

	@field_validator("characters", "key_events", mode="before")
	@classmethod
	def _str_list(cls, v):
		if isinstance(v, str):
			return [x.strip() for x in re.split(r"[、,，]", v) if x.strip()]
		return [_to_text(x) for x in (v or [])]


class EmotionPoint(CamelModel):
	event: str = ""
	emotion: str = ""
	intensity: float = 5

	@field_validator("intensity", mode="before")
	@classmethod
	def _intensity(cls, v):
		v = _to_number(v)
		return 5 if v is None or v == "" else v


class Conflict(CamelModel):
	type: str = ""
	description: str = ""


class SceneSegment(CamelModel):
	id: str = ""
	description: str = ""
	duration: str = ""
	mood: str = ""

	@field_validator("id", "duration", mode="before")
	@classmethod
	def _as_str(cls, v):
		return "" if v is None else str(v)


class ScriptAnalysis(CamelModel):
	basic_info: BasicInfo
	emotion_arc: List[EmotionPoint]
	climax: str
	conflict: Conflict
	scenes: List[SceneSegment]

	@field_validator("climax", mode="before")
	@classmethod
	def _climax(cls, v):
		return _to_text(v)

	@field_validator("conflict", mode="before")
	@classmethod
	def _conflict(cls, v):
		if isinstance(v, str):
			return {"description": v}
		return v


# ========== 阶段2：视觉策略 ==========

class VisualStrategy(CamelModel):
	overall_style: Dict[str, Any]
	camera_strategy: Dict[str, Any]
	spatial_continuity: Dict[str, Any]
	rhythm_control: Dict[str, Any]


# ========== 阶段3：镜头规划 ==========

class ShotListItem(CamelModel):
	shot_number: str = ""
	scene_id: str = ""
	brief_description: str = ""
	duration: Optional[float] = None
	shot_size: str = ""
	camera_move: str = ""
	purpose: str = ""

	@field_validator("shot_number", "scene_id", mode="before")
	@classmethod
	def _as_str(cls, v):
		return "" if v is None else str(v)

	@field_validator("duration", mode="before")
	@classmethod
	def _duration(cls, v):
		return _to_number(v)


class ShotPlanning(CamelModel):
	shot_count: int
	shot_distribution: Any
	pacing_curve: Any
	shot_list: List[ShotListItem]

	@field_validator("shot_count", mode="before")
	@classmethod
	def _count(cls, v):
		v = _to_number(v)
		return int(v) if isinstance(v, float) else v


# ========== 阶段5：质量自检 ==========

class CheckSection(CamelModel):
	score: Optional[float] = None
	issues: List[Any] = Field(default_factory=list)

	@field_validator("score", mode="before")
	@classmethod
	def _score(cls, v):
		return _to_number(v)


class QualityCheck(CamelModel):
	overall_score: float
	rating: str = ""
	category_scores: Dict[str, Any] = Field(default_factory=dict)
	issues: List[Any] = Field(default_factory=list)
	perspective_check: CheckSection = Field(default_factory=CheckSection)
	angle_check: CheckSection = Field(default_factory=CheckSection)
	continuity_check: CheckSection = Field(default_factory=CheckSection)
	emotion_check: CheckSection = Field(default_factory=CheckSection)

	@field_validator("overall_score", mode="before")
	@classmethod
	def _score(cls, v):
		return _to_number(v)

	def all_issues(self) -> List[str]:
		out = [_to_text(x) for x in self.issues]
		for name in ("perspective_check", "angle_check", "continuity_check", "emotion_check"):
			out.extend(_to_text(x) for x in getattr(self, name).issues)
		return [x for x in out if x]
