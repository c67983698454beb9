# -*- coding: utf-8 -*-
"""
script2storyboard/stages/grids.py

九宫格生成阶段。

输入：
- shots.json
- grids.json（已有结果的格子跳过；已应用到镜头上的格子也跳过）

输出：
- shots.json / project.json：拿到任务编码后立刻写入 GridTaskMeta（远端配置了就同时 PATCH）
- grids.json：按 gridIndex 存图片 URL，没出图的位置为空字符串

注意：
- 全部格子都有结果才推进到 grids_done；超时/失败的格子留给 resume 或下次重跑。
- 中止（abort）时已落盘的任务指针保留，resume 能找回。
"""

from __future__ import annotations

import logging
from typing import List

from script2storyboard.core.grid import total_grids
from script2storyboard.core.io import EpisodePaths
from script2storyboard.core.project_file import load_grid_results, load_shots, save_grid_results, save_project, save_shots
from script2storyboard.core.schemas.shot import Shot
from script2storyboard.errors import TaskAborted
from script2storyboard.grid.generator import GridGenerator
from script2storyboard.grid.prompt import get_style
from script2storyboard.grid.resume import applied_grid_indices
from script2storyboard.stages.base import StageContext, advance, load_episode

logger = logging.getLogger(__name__)


def shot_persister(paths: EpisodePaths, ctx: StageContext):
	async def persist(shots: List[Shot]) -> None:
		save_shots(paths.shots, shots)
		project, ep = load_episode(paths, ctx)
		ep.shots = list(shots)
		save_project(paths.project_file, project)
		if ctx.episode_store is not None:
			await ctx.episode_store.patch_episode(ep.id, {"shots": shots})

	return persist


class GridsStage:
	name = "grids"

	async def run(self, paths: EpisodePaths, ctx: StageContext) -> None:
		if ctx.image_client is None:
			raise ValueError("stage grids needs an image task client (IMAGE_ACCESS_TOKEN)")

		shots = load_shots(paths.shots)
		if not shots:
			raise FileNotFoundError(f"no shots in {paths.shots} (先运行 shots)")

		project, ep = load_episode(paths, ctx)
		n = total_grids(len(shots))
		results = load_grid_results(paths.grids)
		applied = applied_grid_indices(shots)
		todo = [gi for gi in range(n) if gi not in applied and not (gi < len(results) and results[gi])]

		gen = GridGenerator(
			ctx.image_client,
			persist_shots=shot_persister(paths, ctx),
			events=ctx.events,
			style=get_style(ctx.style_id),
			characters=project.characters,
			scenes=project.scenes,
			episode_number=ep.episode_number,
		)
		run = await gen.generate_all(shots, grid_indices=todo, results=results, abort=ctx.abort)
		save_grid_results(paths.grids, run.results)

		if run.aborted:
			raise TaskAborted(f"grid generation aborted; {len(run.pending) + len(run.failed)} grid(s) unfinished")

		missing = [gi for gi in range(n) if gi not in applied and not run.results[gi]]
		if missing:
			logger.warning("grids not finished: %s (failed=%s, pending=%s); run resume or grids again", missing, run.failed, run.pending)
			return

		advance(paths, self.name, "grids_done", num_grids=n)
