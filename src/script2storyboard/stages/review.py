# -*- coding: utf-8 -*-
"""
script2storyboard/stages/review.py

规则检查 + LLM 审核 -> review.json；ctx.optimize=True 时按建议改一遍镜头再写回 shots.json。
剧集状态 -> reviewed
"""

from __future__ import annotations

from script2storyboard.core.io import EpisodePaths
from script2storyboard.core.project_file import load_shots, save_project, save_shots, write_json
from script2storyboard.skills.review.skill import ReviewSkill
from script2storyboard.stages.base import StageContext, advance, load_episode, require_llm


class ReviewStage:
	name = "review"

	async def run(self, paths: EpisodePaths, ctx: StageContext) -> None:
		shots = load_shots(paths.shots)
		if not shots:
			raise FileNotFoundError(f"no shots in {paths.shots} (先运行 shots)")

		skill = ReviewSkill(require_llm(ctx, self.name), log_path=paths.llm_log, model=ctx.llm_model)
		result = await skill.review(shots, ctx.review_criteria)
		write_json(paths.review, result.to_dict())

		if ctx.optimize and result.suggestions:
			shots = await skill.optimize_shots(shots, result.suggestions)
			save_shots(paths.shots, shots)

		project, ep = load_episode(paths, ctx)
		ep.shots = list(shots)
		ep.set_status("reviewed")
		save_project(paths.project_file, project)

		advance(
			paths, self.name, "reviewed",
			num_shots=len(shots),
			num_suggestions=len(result.suggestions),
			num_violations=len(result.violations),
		)
