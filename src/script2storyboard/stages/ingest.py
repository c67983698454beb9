# -*- coding: utf-8 -*-
"""
script2storyboard/stages/ingest.py

目的：
- “输入准备阶段”：确保剧集目录存在、script.txt 和 manifest 就位，并把 manifest 置为 ingested。

输入：
- project.json 里第 N 集的 script（import 命令写进去的）

输出：
- episodes/ep_NNN/script.txt（已存在则不覆盖，允许手动改剧本后重跑）
- episodes/ep_NNN/manifest.json（stage=ingested）
"""

from __future__ import annotations

import logging

from script2storyboard.core.io import EpisodePaths
from script2storyboard.core.manifest import save_manifest
from script2storyboard.stages.base import StageContext, advance, load_episode, read_manifest

logger = logging.getLogger(__name__)


class IngestStage:
	name = "ingest"

	async def run(self, paths: EpisodePaths, ctx: StageContext) -> None:
		paths.ensure_dirs()
		project, ep = load_episode(paths, ctx)

		if not paths.manifest.exists():
			save_manifest(paths.manifest, read_manifest(paths, project, ep))

		if not paths.script.exists():
			if not ep.script.strip():
				raise ValueError(f"episode {ep.episode_number} has no script")
			paths.script.write_text(ep.script, encoding="utf-8")
			logger.info("script written: %s (%d chars)", paths.script, len(ep.script))

		advance(paths, self.name, "ingested")
