# -*- coding: utf-8 -*-
"""
grid/apply.py

把内存里的九宫格结果（按 grid_index 排的 URL 列表）写进镜头表：
- 有 URL 的九宫格：覆盖的 9 个镜头设置 grid_url / cell_index，清掉任务指针
- 没有 URL 的九宫格：镜头原样不动
然后 patch 到远端；远端失败时本地结果保留，只给出警告。

mirror_grid_images：可选，把临时图片 URL 转存到自己的对象存储再应用。
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, replace
from typing import List, Optional, Sequence

import httpx
from botocore.exceptions import BotoCoreError, ClientError

from script2storyboard.core.grid import GRID_SIZE, cell_index_of, grid_index_of
from script2storyboard.core.schemas.shot import Shot
from script2storyboard.errors import StoryboardError
from script2storyboard.providers.storage.episode_store import EpisodeStore
from script2storyboard.providers.storage.object_store import ObjectStore, generate_object_path

logger = logging.getLogger(__name__)

NO_REMOTE_WARNING = "未配置云端存储，仅保存在本地"


def apply_grids_to_shots(shots: Sequence[Shot], grid_urls: Sequence[str]) -> List[Shot]:
	out: List[Shot] = []
	for i, s in enumerate(shots):
		gi = grid_index_of(i)
		url = grid_urls[gi] if gi < len(grid_urls) else ""
		if url:
			s = replace(
				s,
				storyboard_grid_url=url,
				storyboard_grid_cell_index=cell_index_of(i),
				storyboard_grid_generation_meta=None,
			)
		out.append(s)
	return out


@dataclass
class ApplyOutcome:
	shots: List[Shot]
	applied_grids: List[int]
	synced: bool
	warning: str = ""


class ApplyGridsStep:
	def __init__(self, store: Optional[EpisodeStore] = None):
		self.store = store

	async def commit(self, episode_id: str, shots: Sequence[Shot], grid_urls: Sequence[str]) -> ApplyOutcome:
		updated = apply_grids_to_shots(shots, grid_urls)
		applied = [gi for gi, url in enumerate(grid_urls) if url and gi * GRID_SIZE < len(shots)]
		logger.info("applied %d grid(s) to %s: %s", len(applied), episode_id, applied)

		if self.store is None:
			return ApplyOutcome(updated, applied, synced=False, warning=NO_REMOTE_WARNING)

		try:
			await self.store.patch_episode(episode_id, {"shots": updated})
		except (httpx.HTTPError, StoryboardError) as e:
			logger.warning("sync shots of %s failed, keeping local result: %s", episode_id, e)
			return ApplyOutcome(updated, applied, synced=False, warning=f"云端同步失败，已保存在本地: {e}")

		return ApplyOutcome(updated, applied, synced=True)


async def mirror_grid_images(
	grid_urls: Sequence[str],
	object_store: ObjectStore,
	project_id: str,
	episode_number: int,
	transport: Optional[httpx.AsyncBaseTransport] = None,
) -> List[str]:
	"""
	把图片接口给的临时 URL 转存到自己的对象存储，返回新的 URL 列表。
	单张下载/上传失败保留原 URL。
	"""
	out = list(grid_urls)
	async with httpx.AsyncClient(timeout=60.0, transport=transport, follow_redirects=True) as client:
		for gi, url in enumerate(grid_urls):
			if not url or url.startswith(object_store.public_url_for("")):
				continue
			try:
				r = await client.get(url)
				r.raise_for_status()
				path = generate_object_path(project_id, f"ep{episode_number:03d}_grid{gi + 1:02d}", "grid", "png")
				out[gi] = await asyncio.to_thread(object_store.upload, r.content, path, r.headers.get("content-type", "image/png"))
			except (httpx.HTTPError, BotoCoreError, ClientError) as e:
				logger.warning("mirror grid %d failed, keep original url: %s", gi, e)
	return out
