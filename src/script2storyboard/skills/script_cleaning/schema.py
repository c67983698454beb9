# -*- coding: utf-8 -*-
"""
script_cleaning/schema.py

剧本清洗结果的结构：把“画面内容”和“非画面信息”（音效、BGM、时间码、镜头建议）分开，
并提取设定约束和场景权重，供后面的分镜阶段使用。
"""

from __future__ import annotations

from typing import List, Literal, Optional

from pydantic import Field, field_validator

from script2storyboard.skills.models import CamelModel


class CleanedScene(CamelModel):
	id: str = ""
	original_text: str = ""
	visual_content: str = ""
	dialogues: List[str] = Field(default_factory=list)
	ui_elements: List[str] = Field(default_factory=list)
	mood_tags: List[str] = Field(default_factory=list)

	@field_validator("id", mode="before")
	@classmethod
	def _id_str(cls, v):
		return "" if v is None else str(v)


class Constraint(CamelModel):
	rule: str
	implication: str = ""
	source: str = ""


class SceneWeight(CamelModel):
	scene_id: str
	weight: Literal["high", "medium", "low"] = "medium"
	suggested_shots: int = 0
	reason: str = ""

	@field_validator("scene_id", mode="before")
	@classmethod
	def _scene_id_str(cls, v):
		return "" if v is None else str(v)

	@field_validator("weight", mode="before")
	@classmethod
	def _weight_lower(cls, v):
		v = str(v or "medium").strip().lower()
		return v if v in ("high", "medium", "low") else "medium"


class CleaningResult(CamelModel):
	cleaned_scenes: List[CleanedScene] = Field(default_factory=list)
	audio_effects: List[str] = Field(default_factory=list)
	music_cues: List[str] = Field(default_factory=list)
	time_codes: List[str] = Field(default_factory=list)
	camera_suggestions: List[str] = Field(default_factory=list)
	constraints: List[Constraint] = Field(default_factory=list)
	scene_weights: List[SceneWeight] = Field(default_factory=list)

	original_script: str = ""
	raw_output: Optional[str] = None
	parse_error: bool = False

	def constraints_text(self) -> str:
		return "\n".join(f"【约束】{c.rule}: {c.implication}" for c in self.constraints)
