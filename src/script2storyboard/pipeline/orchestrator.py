# -*- coding: utf-8 -*-
"""
script2storyboard/pipeline/orchestrator.py

目的：
- 作为“阶段调度器”：按固定顺序执行各个 stage。
- 支持 `run_until(..., until="shots")`：跑到指定阶段停止。
- CLI 不直接调用 stage，统一走 orchestrator。

断点续跑：
- manifest.status.done 里已有的 stage 默认跳过（force=True 时全部重跑）。
- 某个 stage 抛异常：记进 manifest.failed/last_error，然后原样抛给 CLI。

注意：
- orchestrator 不关心任何具体业务（怎么调模型、怎么出图）。
- orchestrator 只负责：创建 paths、按顺序调用 stage、记录失败、打印状态。
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Dict

from script2storyboard.core.io import EpisodePaths, episode_paths
from script2storyboard.core.manifest import load_manifest, save_manifest
from script2storyboard.stages.base import Stage, StageContext
from script2storyboard.stages.clean import CleanStage
from script2storyboard.stages.extract import ExtractStage
from script2storyboard.stages.grids import GridsStage
from script2storyboard.stages.ingest import IngestStage
from script2storyboard.stages.prompts import PromptsStage
from script2storyboard.stages.review import ReviewStage
from script2storyboard.stages.shots import ShotsStage


STAGE_ORDER = [
	"ingest",
	"clean",
	"extract",
	"shots",
	"review",
	"prompts",
	"grids",
]


def build_stages() -> Dict[str, Stage]:
	return {
		"ingest": IngestStage(),
		"clean": CleanStage(),
		"extract": ExtractStage(),
		"shots": ShotsStage(),
		"review": ReviewStage(),
		"prompts": PromptsStage(),
		"grids": GridsStage(),
	}


def _note_providers(paths: EpisodePaths, ctx: StageContext) -> None:
	if not paths.manifest.exists():
		return
	m = load_manifest(paths.manifest)
	if ctx.llm is not None:
		m.note_provider("llm", model=ctx.llm_model or getattr(ctx.llm, "model", ""))
	if ctx.image_client is not None:
		cfg = getattr(ctx.image_client, "cfg", None)
		m.note_provider("image", model=getattr(cfg, "model", ""), style=ctx.style_id)
	save_manifest(paths.manifest, m)


async def run_until_async(project_dir: str | Path, ctx: StageContext, until: str, force: bool = False) -> None:
	if until not in STAGE_ORDER:
		raise ValueError(f"unknown stage: {until}")

	paths = episode_paths(project_dir, ctx.episode_number)
	paths.ensure_dirs()
	stages = build_stages()

	for name in STAGE_ORDER:
		done = load_manifest(paths.manifest).done if paths.manifest.exists() else []
		if name in done and not force:
			print(f"[INFO] stage={name} already done, skip")
		else:
			print(f"[RUN] stage={name}")
			try:
				await stages[name].run(paths, ctx)
			except Exception as e:
				if paths.manifest.exists():
					m = load_manifest(paths.manifest)
					m.fail(name, f"{type(e).__name__}: {e}")
					save_manifest(paths.manifest, m)
				raise
			_note_providers(paths, ctx)

		if name == until:
			break

	# 当前检查点
	if paths.manifest.exists():
		m = load_manifest(paths.manifest)
		print(f"[OK] current stage = {m.stage}")


def run_until(project_dir: str | Path, ctx: StageContext, until: str, force: bool = False) -> None:
	asyncio.run(run_until_async(project_dir, ctx, until, force=force))
