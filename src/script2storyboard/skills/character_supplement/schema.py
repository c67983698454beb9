# -*- coding: utf-8 -*-
"""
character_supplement/schema.py

角色补充各阶段输出的结构。

- 阶段1：剧本分析（时代、性别年龄、性格、定位、剧本类型、场景季节、剧本原文外貌、时间线）
- 阶段2：视觉标签
- 阶段3：外貌设计（整段描述 + 结构化 appearanceConfig）
- 阶段4：服装设计（分层描述 + 结构化 costumeConfig）
- 阶段5：角色事实（台词、能力、身份演变）
- 形态：FormSummary（只含元数据）-> FormDetail（完整描述）
"""

from __future__ import annotations

import re
from typing import Any, List, Optional

from pydantic import Field, field_validator

from script2storyboard.skills.models import CamelModel

CHANGE_TYPES = ("costume", "makeup", "damage", "transformation")

_INT_RE = re.compile(r"\d+")


def _to_int(v: Any) -> Optional[int]:
	if isinstance(v, bool):
		return None
	if isinstance(v, (int, float)):
		return int(v) if v > 0 else None
	m = _INT_RE.search(str(v or ""))
	return int(m.group(0)) if m and int(m.group(0)) > 0 else None


def _str_list(v: Any) -> List[str]:
	if v is None:
		return []
	if isinstance(v, str):
		return [x.strip() for x in re.split(r"[、,，;；]", v) if x.strip()]
	return [str(x).strip() for x in v if str(x).strip()]


def _text(v: Any) -> str:
	return "" if v is None else str(v).strip()


# ========== 阶段1：剧本分析 ==========

class CharacterBasicInfo(CamelModel):
	era: str = ""
	gender: str = ""
	age_group: str = ""
	specific_age: Optional[int] = None
	occupation: str = ""

	@field_validator("specific_age", mode="before")
	@classmethod
	def _age(cls, v):
		return _to_int(v)


class BehaviorAnalysis(CamelModel):
	key_behaviors: List[str] = Field(default_factory=list)
	personality_traits: List[str] = Field(default_factory=list)

	@field_validator("key_behaviors", "personality_traits", mode="before")
	@classmethod
	def _lists(cls, v):
		return _str_list(v)


class CharacterPosition(CamelModel):
	role: str = ""
	social_class: str = ""


class ScriptType(CamelModel):
	category: str = ""
	genre: str = ""
	aesthetic_direction: str = ""
	reasoning: str = ""


class SceneInfo(CamelModel):
	main_scene: str = ""
	specific_scenes: List[str] = Field(default_factory=list)

	@field_validator("specific_scenes", mode="before")
	@classmethod
	def _lists(cls, v):
		return _str_list(v)


class AestheticStyle(CamelModel):
	style: str = ""


class SeasonInfo(CamelModel):
	season: str = ""


class ScriptAppearance(CamelModel):
	"""剧本原文里写到的外貌/服饰（没写就是空）。"""
	costume_description: str = ""
	hair_description: str = ""
	makeup_description: str = ""
	other_description: str = ""

	@field_validator("*", mode="before")
	@classmethod
	def _texts(cls, v):
		return _text(v)

	def has_appearance(self) -> bool:
		return bool(self.hair_description or self.makeup_description or self.other_description)

	def has_any(self) -> bool:
		return bool(self.costume_description or self.has_appearance())


class TimelinePhase(CamelModel):
	label: str = ""
	estimated_age: Optional[int] = None
	era: str = ""
	identity_state: str = ""
	markers: List[str] = Field(default_factory=list)

	@field_validator("estimated_age", mode="before")
	@classmethod
	def _age(cls, v):
		return _to_int(v)

	@field_validator("markers", mode="before")
	@classmethod
	def _lists(cls, v):
		return _str_list(v)


class CharacterAnalysis(CamelModel):
	basic_info: CharacterBasicInfo
	behavior_analysis: BehaviorAnalysis = Field(default_factory=BehaviorAnalysis)
	character_position: CharacterPosition = Field(default_factory=CharacterPosition)
	script_type: ScriptType = Field(default_factory=ScriptType)
	scene_info: SceneInfo = Field(default_factory=SceneInfo)
	aesthetic_style: AestheticStyle = Field(default_factory=AestheticStyle)
	season_info: SeasonInfo = Field(default_factory=SeasonInfo)
	script_appearance_description: ScriptAppearance = Field(default_factory=ScriptAppearance)
	timeline_phases: List[TimelinePhase] = Field(default_factory=list)

	@field_validator("timeline_phases", mode="before")
	@classmethod
	def _phases(cls, v):
		return [p for p in (v or []) if isinstance(p, dict)]


# ========== 阶段2：视觉标签 ==========

class VisualTag(CamelModel):
	tag: str
	description: str = ""
	meaning: str = ""


class VisualTags(CamelModel):
	visual_tags: List[VisualTag] = Field(default_factory=list)


# ========== 阶段3：外貌设计 ==========

class HairConfig(CamelModel):
	style: str = ""
	length: str = ""
	texture: str = ""
	accessories: str = ""


class BodyConfig(CamelModel):
	proportion: str = ""
	body_type: str = ""
	posture: str = ""


class AppearanceConfig(CamelModel):
	face_shape: str = ""
	eyes: str = ""
	brows: str = ""
	nose: str = ""
	lips: str = ""
	skin: str = ""
	hair: HairConfig = Field(default_factory=HairConfig)
	body: BodyConfig = Field(default_factory=BodyConfig)
	unique_marks: List[str] = Field(default_factory=list)

	@field_validator("unique_marks", mode="before")
	@classmethod
	def _lists(cls, v):
		return _str_list(v)


class AppearanceSections(CamelModel):
	main_character: str = ""
	facial_features: str


class AppearanceDesign(CamelModel):
	hair_design: str = ""
	eyes_design: str = ""
	facial_design: str = ""
	makeup_design: str = ""
	unique_feature: str = ""
	final_description: AppearanceSections
	appearance_config: Optional[AppearanceConfig] = None


# ========== 阶段4：服装设计 ==========

class CostumeLayer(CamelModel):
	material: str = ""
	cut: str = ""
	color: str = ""
	pattern: str = ""
	details: str = ""
	worn_state: str = ""


class CostumeAccessories(CamelModel):
	jewelry: str = ""
	belt: str = ""
	bag: str = ""
	props: str = ""


class CostumeConfig(CamelModel):
	inner: Optional[CostumeLayer] = None
	middle: Optional[CostumeLayer] = None
	outer: Optional[CostumeLayer] = None
	bottom: Optional[CostumeLayer] = None
	shoes: Optional[CostumeLayer] = None
	accessories: CostumeAccessories = Field(default_factory=CostumeAccessories)


class CostumeDesign(CamelModel):
	top: str = ""
	bottom: str = ""
	headwear: str = ""
	jewelry: str = ""
	props: str = ""
	final_description: str
	costume_config: Optional[CostumeConfig] = None

	@field_validator("final_description", mode="before")
	@classmethod
	def _flatten(cls, v):
		# 偶尔会按层给成对象
		if isinstance(v, dict):
			return "；".join(f"【{k}】{x}" for k, x in v.items() if x)
		return _text(v)


# ========== 阶段5：角色事实 ==========

class CharacterFacts(CamelModel):
	quote: Optional[str] = None
	quote_source: str = ""
	abilities: Optional[List[str]] = None
	identity_evolution: Optional[str] = None

	@field_validator("abilities", mode="before")
	@classmethod
	def _abilities(cls, v):
		return _str_list(v) if v is not None else None

	@field_validator("quote", "identity_evolution", mode="before")
	@classmethod
	def _null_text(cls, v):
		t = _text(v)
		return None if t in ("", "null", "None") else t


# ========== 形态 ==========

class FormSummary(CamelModel):
	name: str
	change_type: str
	episode_range: str = ""
	trigger_event: str = ""
	source_quote: str = ""
	timeline_phase: Optional[str] = None
	estimated_age: Optional[int] = None

	@field_validator("change_type", mode="before")
	@classmethod
	def _change_type(cls, v):
		v = _text(v).lower()
		if v not in CHANGE_TYPES:
			raise ValueError(f"invalid changeType: {v}")
		return v

	@field_validator("source_quote", mode="before")
	@classmethod
	def _quote(cls, v):
		return _text(v)[:100]

	@field_validator("timeline_phase", mode="before")
	@classmethod
	def _phase(cls, v):
		t = _text(v)
		return None if t in ("", "null") else t

	@field_validator("estimated_age", mode="before")
	@classmethod
	def _age(cls, v):
		return _to_int(v)


class FormDetail(CamelModel):
	description: str
	visual_prompt_cn: str = ""
	visual_prompt_en: str = ""
	note: str = ""
