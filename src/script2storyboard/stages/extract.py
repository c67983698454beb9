# -*- coding: utf-8 -*-
"""
script2storyboard/stages/extract.py

角色和场景提取，并入 project.json。

流程：
1) 提取角色（失败返回空列表，不阻断）
2) 提取场景（和已有场景去重）
3) 配了参考表目录时，有缺失字段的角色逐个走角色补充（外貌、服装、台词能力、形态）
   三张参考表各自可缺，缺哪张那一阶段就不带参考资料
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from script2storyboard.core.io import EpisodePaths
from script2storyboard.core.project_file import save_project
from script2storyboard.skills.character_reference.appearance import APPEARANCE_FILE, AppearanceReference
from script2storyboard.skills.character_reference.costume import COSTUME_FILE, CostumeReference
from script2storyboard.skills.character_reference.temperament import TEMPERAMENT_FILE, TemperamentReference
from script2storyboard.skills.character_supplement.skill import CharacterSupplementSkill, missing_fields
from script2storyboard.skills.extraction.skill import ExtractionSkill, merge_extracted_characters, merge_extracted_scenes
from script2storyboard.skills.llm import LLMClient
from script2storyboard.stages.base import StageContext, advance, load_episode, require_llm, script_text

logger = logging.getLogger(__name__)


def load_supplement(llm: LLMClient, reference_dir: str, log_path: Optional[Path] = None, model: Optional[str] = None) -> CharacterSupplementSkill:
	root = Path(reference_dir)
	refs = {}
	for key, filename, cls in (
		("appearance", APPEARANCE_FILE, AppearanceReference),
		("costume", COSTUME_FILE, CostumeReference),
		("temperament", TEMPERAMENT_FILE, TemperamentReference),
	):
		path = root / filename
		if path.exists():
			refs[key] = cls.load(path)
		else:
			logger.warning("%s reference not found: %s", key, path)
	return CharacterSupplementSkill(llm, log_path=log_path, model=model, **refs)


class ExtractStage:
	name = "extract"

	async def run(self, paths: EpisodePaths, ctx: StageContext) -> None:
		llm = require_llm(ctx, self.name)
		script = script_text(paths)
		project, ep = load_episode(paths, ctx)

		skill = ExtractionSkill(llm, log_path=paths.llm_log, model=ctx.llm_model)
		chars = await skill.extract_characters(script)
		merge_extracted_characters(project, chars)

		scripts = [(ep.episode_number, script)]
		scenes = await skill.extract_scenes(scripts, [s.name for s in project.scenes])
		merge_extracted_scenes(project, scenes)
		logger.info("extract: %d characters, %d new scenes", len(chars), len(scenes))

		if ctx.reference_dir:
			supplement = load_supplement(llm, ctx.reference_dir, log_path=paths.llm_log, model=ctx.llm_model)
			for i, c in enumerate(project.characters):
				if missing_fields(c):
					project.characters[i] = await supplement.run(c, scripts, project.settings.genre)

		save_project(paths.project_file, project)
		advance(paths, self.name, "extracted", num_characters=len(project.characters), num_scenes=len(project.scenes))
