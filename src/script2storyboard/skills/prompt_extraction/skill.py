# -*- coding: utf-8 -*-
"""
prompt_extraction/skill.py

这个文件做什么：
- 调 LLM 为每个镜头生成生图/视频提示词，按 shotNumber 写回镜头：
  imagePromptCn/En、endImagePromptCn/En、videoGenPrompt
- 写回前去掉美术风格词（strip_style_words），最后统一 normalize_prompts
- 模型漏掉的镜头保持原样（日志里记一条）

注意：
- 镜头多时分批调用（默认 12 个一批），一批失败整体失败，由 stage 层决定是否重跑。
"""

from __future__ import annotations

import logging
import re
from dataclasses import replace
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from script2storyboard.core.jsonrepair import parse_llm_json
from script2storyboard.core.schemas.shot import Shot, normalize_shot_number
from script2storyboard.skills.llm import LLMClient, ask
from script2storyboard.skills.shot_pipeline.converter import normalize_prompts

from .prompt import build_extract_prompt

logger = logging.getLogger(__name__)

BATCH_SIZE = 12

STYLE_WORDS = (
	"ink sketch", "ink wash", "pencil drawing", "pencil sketch", "watercolor", "anime style",
	"manga style", "comic style", "charcoal", "line art",
	"线稿", "水墨", "素描", "漫画风格", "动漫风格", "水彩",
)

_STYLE_RE = re.compile("|".join(re.escape(w) for w in STYLE_WORDS), re.IGNORECASE)
_SEP_RE = re.compile(r"\s*([,，、])\s*(?:[,，、]\s*)+")


def strip_style_words(text: str) -> str:
	if not text:
		return ""
	s = _STYLE_RE.sub("", text)
	s = _SEP_RE.sub(r"\1 ", s)
	return s.strip(" ,，、")


def apply_extracted_prompts(shots: Sequence[Shot], items: Sequence[Dict[str, Any]]) -> List[Shot]:
	by_number = {normalize_shot_number(d.get("shotNumber")): d for d in items if isinstance(d, dict)}
	out: List[Shot] = []
	for s in shots:
		d = by_number.get(normalize_shot_number(s.shot_number))
		if d is None:
			logger.info("no extracted prompt for shot #%s", s.shot_number)
			out.append(s)
			continue
		out.append(replace(
			s,
			image_prompt_cn=strip_style_words(str(d.get("imagePromptCn") or "")) or s.image_prompt_cn,
			image_prompt_en=strip_style_words(str(d.get("imagePromptEn") or "")) or s.image_prompt_en,
			end_image_prompt_cn=strip_style_words(str(d.get("endImagePromptCn") or "")) or s.end_image_prompt_cn,
			end_image_prompt_en=strip_style_words(str(d.get("endImagePromptEn") or "")) or s.end_image_prompt_en,
			video_gen_prompt=strip_style_words(str(d.get("videoGenPrompt") or "")) or s.video_gen_prompt,
		))
	return normalize_prompts(out)


class PromptExtractionSkill:
	def __init__(
		self,
		llm: LLMClient,
		log_path: Optional[Path] = None,
		model: Optional[str] = None,
		batch_size: int = BATCH_SIZE,
	):
		self.llm = llm
		self.log_path = log_path
		self.model = model
		self.batch_size = batch_size

	async def run(self, shots: Sequence[Shot]) -> List[Shot]:
		items: List[Dict[str, Any]] = []
		for i in range(0, len(shots), self.batch_size):
			batch = shots[i:i + self.batch_size]
			text = await ask(self.llm, build_extract_prompt(batch), "extract_prompts", self.log_path, self.model)
			data = parse_llm_json(text, want=list)
			items.extend(d for d in data if isinstance(d, dict))
		logger.info("prompt extraction: %d/%d shots", len(items), len(shots))
		return apply_extracted_prompts(shots, items)
