# -*- coding: utf-8 -*-
"""
extraction/schema.py
"""

from __future__ import annotations

from typing import List

from pydantic import Field, field_validator

from script2storyboard.skills.models import CamelModel


class ExtractedCharacter(CamelModel):
	name: str
	gender: str = "未知"
	appearance: str = ""

	@field_validator("gender", mode="before")
	@classmethod
	def _gender(cls, v):
		v = str(v or "").strip()
		return v if v in ("男", "女") else "未知"


class ExtractedScene(CamelModel):
	name: str
	description: str = ""
	atmosphere: str = ""
	appears_in_episodes: List[int] = Field(default_factory=list)

	@field_validator("appears_in_episodes", mode="before")
	@classmethod
	def _episodes(cls, v):
		if not isinstance(v, list):
			return []
		return [int(x) for x in v if str(x).strip().isdigit()]


class SceneExtraction(CamelModel):
	new_scenes: List[ExtractedScene] = Field(default_factory=list)
