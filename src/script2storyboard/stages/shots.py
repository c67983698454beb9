# -*- coding: utf-8 -*-
"""
script2storyboard/stages/shots.py

五阶段思维链 -> shots.json。

输入：
- script.txt
- cleaning.json（可选；有约束就带进阶段1/2）

输出：
- cot/stage1..5.json
- shots.json，project.json 里本集的 shots；剧集状态 -> generated
- manifest：stage=shots_done，counts.num_shots/num_grids
"""

from __future__ import annotations

import logging

from script2storyboard.core.grid import total_grids
from script2storyboard.core.io import EpisodePaths
from script2storyboard.core.project_file import read_json, save_project, save_shots
from script2storyboard.skills.script_cleaning.schema import CleaningResult
from script2storyboard.skills.shot_pipeline.skill import ShotPipelineSkill
from script2storyboard.stages.base import StageContext, advance, load_episode, require_llm, script_text

logger = logging.getLogger(__name__)


def _constraints(paths: EpisodePaths) -> str:
	if not paths.cleaning.exists():
		return ""
	return CleaningResult.model_validate(read_json(paths.cleaning)).constraints_text()


class ShotsStage:
	name = "shots"

	async def run(self, paths: EpisodePaths, ctx: StageContext) -> None:
		skill = ShotPipelineSkill(
			require_llm(ctx, self.name),
			cot_dir=paths.cot_dir,
			log_path=paths.llm_log,
			model=ctx.llm_model,
			events=ctx.events,
		)
		result = await skill.run(script_text(paths), _constraints(paths))
		save_shots(paths.shots, result.shots)

		project, ep = load_episode(paths, ctx)
		ep.shots = list(result.shots)
		ep.set_status("generated")
		save_project(paths.project_file, project)

		n = len(result.shots)
		advance(paths, self.name, "shots_done", num_shots=n, num_grids=total_grids(n))
