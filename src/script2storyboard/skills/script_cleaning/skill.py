# -*- coding: utf-8 -*-
"""
script_cleaning/skill.py

这个文件做什么：
- 调一次 LLM 清洗剧本，解析成 CleaningResult。
- 解析失败不抛异常：返回空结果 + raw_output + parse_error=True，
  让用户能看到原文，流水线继续（后面的分镜阶段只是少了约束）。
- 网络/鉴权错误照常抛出，由调用方决定。
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable, Optional

from script2storyboard.core.jsonrepair import parse_llm_json
from script2storyboard.errors import OutputParseError
from script2storyboard.skills.llm import LLMClient, ask
from script2storyboard.skills.models import parse_model

from .prompt import build_cleaning_prompt
from .schema import CleaningResult

logger = logging.getLogger(__name__)


class ScriptCleaningSkill:
	def __init__(self, llm: LLMClient, log_path: Optional[Path] = None, model: Optional[str] = None):
		self.llm = llm
		self.log_path = log_path
		self.model = model

	async def run(self, script: str, on_chunk: Optional[Callable[[str], None]] = None) -> CleaningResult:
		text = await ask(self.llm, build_cleaning_prompt(script), "clean", self.log_path, self.model, on_chunk)

		try:
			data = parse_llm_json(text, required=("cleanedScenes",))
			result = parse_model(CleaningResult, data, raw_text=text)
		except OutputParseError as e:
			logger.warning("cleaning output not parseable, keeping raw text: %s", str(e)[:200])
			return CleaningResult(original_script=script, raw_output=text, parse_error=True)

		result.original_script = script
		logger.info(
			"cleaned: %d scenes, %d constraints, %d scene weights",
			len(result.cleaned_scenes), len(result.constraints), len(result.scene_weights),
		)
		return result
