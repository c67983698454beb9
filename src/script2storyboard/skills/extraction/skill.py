# -*- coding: utf-8 -*-
"""
extraction/skill.py

这个文件做什么：
- extract_characters(script) -> [ExtractedCharacter]
- extract_scenes(scripts, existing) -> [ExtractedScene]（已去重）
- merge_extracted_characters / merge_extracted_scenes：按名字并入项目

去重规则（场景）：
- 名字完全相同跳过
- 与已有场景名字相似度 >= 0.8（编辑距离）跳过
- 本次结果内部重名只留第一个

角色合并：
- 同名角色按字段覆盖（空值不覆盖），新角色追加
"""

from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

from pydantic import TypeAdapter, ValidationError

from script2storyboard.core.jsonrepair import parse_llm_json
from script2storyboard.core.schemas.project import CharacterRef, Project, SceneRef, merge_character_fields
from script2storyboard.errors import OutputParseError
from script2storyboard.skills.llm import LLMClient, ask
from script2storyboard.skills.models import parse_model

from .prompt import build_character_prompt, build_scene_prompt
from .schema import ExtractedCharacter, ExtractedScene, SceneExtraction

logger = logging.getLogger(__name__)

SIMILARITY_THRESHOLD = 0.8

_characters_adapter = TypeAdapter(List[ExtractedCharacter])


def levenshtein(a: str, b: str) -> int:
	prev = list(range(len(b) + 1))
	for i, ca in enumerate(a, 1):
		cur = [i]
		for j, cb in enumerate(b, 1):
			cur.append(min(prev[j - 1] + (ca != cb), prev[j] + 1, cur[j - 1] + 1))
		prev = cur
	return prev[-1]


def similarity(a: str, b: str) -> float:
	s1 = a.lower().strip()
	s2 = b.lower().strip()
	if s1 == s2:
		return 1.0
	if not s1 or not s2:
		return 0.0
	return 1 - levenshtein(s1, s2) / max(len(s1), len(s2))


def dedupe_scenes(found: Sequence[ExtractedScene], existing_names: Sequence[str]) -> List[ExtractedScene]:
	out: List[ExtractedScene] = []
	for s in found:
		if not s.name or not s.description:
			continue
		if s.name in existing_names:
			logger.debug("scene %s already exists, skip", s.name)
			continue
		similar = next((n for n in existing_names if similarity(s.name, n) >= SIMILARITY_THRESHOLD), None)
		if similar:
			logger.debug("scene %s similar to %s, skip", s.name, similar)
			continue
		if any(o.name == s.name for o in out):
			continue
		out.append(s)
	return out


def merge_extracted_characters(project: Project, found: Sequence[ExtractedCharacter]) -> Project:
	"""返回新的角色列表已合并的项目对象（原对象的角色列表不动）。"""
	chars = list(project.characters)
	for c in found:
		idx = next((i for i, x in enumerate(chars) if x.name == c.name), None)
		if idx is None:
			chars.append(CharacterRef(
				id=f"char-{int(time.time() * 1000)}-{len(chars)}",
				name=c.name,
				gender=c.gender,
				appearance=c.appearance,
			))
		else:
			chars[idx] = merge_character_fields(chars[idx], {"gender": c.gender if c.gender != "未知" else "", "appearance": c.appearance})
	project.characters = chars
	return project


def merge_extracted_scenes(project: Project, found: Sequence[ExtractedScene]) -> Project:
	scenes = list(project.scenes)
	for s in dedupe_scenes(found, [x.name for x in scenes]):
		scenes.append(SceneRef(
			id=f"scene-extracted-{int(time.time() * 1000)}-{len(scenes)}",
			name=s.name,
			description=s.description,
			atmosphere=s.atmosphere,
			appears_in_episodes=list(s.appears_in_episodes),
		))
	project.scenes = scenes
	return project


class ExtractionSkill:
	def __init__(self, llm: LLMClient, log_path: Optional[Path] = None, model: Optional[str] = None):
		self.llm = llm
		self.log_path = log_path
		self.model = model

	async def extract_characters(self, script: str) -> List[ExtractedCharacter]:
		text = await ask(self.llm, build_character_prompt(script), "extract_characters", self.log_path, self.model)
		try:
			data = parse_llm_json(text, want=list)
			return _characters_adapter.validate_python(data)
		except (OutputParseError, ValidationError) as e:
			# 提取失败不影响后续阶段，角色可以手动补
			logger.warning("character extraction failed: %s", str(e)[:200])
			return []

	async def extract_scenes(
		self,
		scripts: Sequence[Tuple[int, str]],
		existing_names: Sequence[str] = (),
	) -> List[ExtractedScene]:
		text = await ask(self.llm, build_scene_prompt(scripts, existing_names), "extract_scenes", self.log_path, self.model)
		data = parse_llm_json(text, required=("newScenes",))
		result = parse_model(SceneExtraction, data, raw_text=text)
		scenes = dedupe_scenes(result.new_scenes, existing_names)
		logger.info("scene extraction: %d new, %d skipped", len(scenes), len(result.new_scenes) - len(scenes))
		return scenes
