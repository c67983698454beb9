# -*- coding: utf-8 -*-
"""
script2storyboard/stages/clean.py

剧本清洗：script.txt -> cleaning.json，并写回 project.json 的 cleaningResult。

- 解析失败也算完成（parse_error=True，原文保留），后面的分镜阶段只是少了约束。
- 剧集状态：draft -> cleaned
"""

from __future__ import annotations

from script2storyboard.core.io import EpisodePaths
from script2storyboard.core.project_file import save_project, write_json
from script2storyboard.skills.script_cleaning.skill import ScriptCleaningSkill
from script2storyboard.stages.base import StageContext, advance, load_episode, require_llm, script_text


class CleanStage:
	name = "clean"

	async def run(self, paths: EpisodePaths, ctx: StageContext) -> None:
		skill = ScriptCleaningSkill(require_llm(ctx, self.name), log_path=paths.llm_log, model=ctx.llm_model)
		result = await skill.run(script_text(paths))
		data = result.to_json_dict()
		write_json(paths.cleaning, data)

		project, ep = load_episode(paths, ctx)
		ep.cleaning_result = data
		if ep.status == "draft":
			ep.set_status("cleaned")
		save_project(paths.project_file, project)

		advance(paths, self.name, "cleaned")
