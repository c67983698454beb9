# -*- coding: utf-8 -*-
"""
script2storyboard/stages/prompts.py

为每个镜头补生图/视频提示词，写回 shots.json 和 project.json。
"""

from __future__ import annotations

from script2storyboard.core.io import EpisodePaths
from script2storyboard.core.project_file import load_shots, save_project, save_shots
from script2storyboard.skills.prompt_extraction.skill import PromptExtractionSkill
from script2storyboard.stages.base import StageContext, advance, load_episode, require_llm


class PromptsStage:
	name = "prompts"

	async def run(self, paths: EpisodePaths, ctx: StageContext) -> None:
		shots = load_shots(paths.shots)
		if not shots:
			raise FileNotFoundError(f"no shots in {paths.shots} (先运行 shots)")

		skill = PromptExtractionSkill(require_llm(ctx, self.name), log_path=paths.llm_log, model=ctx.llm_model)
		shots = await skill.run(shots)
		save_shots(paths.shots, shots)

		project, ep = load_episode(paths, ctx)
		ep.shots = list(shots)
		save_project(paths.project_file, project)

		advance(paths, self.name, "prompts_done")
