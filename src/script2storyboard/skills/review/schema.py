# -*- coding: utf-8 -*-
"""
review/schema.py
"""

from __future__ import annotations

from pydantic import field_validator

from script2storyboard.core.schemas.shot import normalize_shot_number
from script2storyboard.skills.models import CamelModel

GLOBAL = "GLOBAL"


class ReviewSuggestion(CamelModel):
	shot_number: str = GLOBAL
	suggestion: str
	reason: str = ""

	@field_validator("shot_number", mode="before")
	@classmethod
	def _shot_number(cls, v):
		if v is None or v == "":
			return GLOBAL
		s = normalize_shot_number(v)
		return GLOBAL if s.upper() == GLOBAL else s
