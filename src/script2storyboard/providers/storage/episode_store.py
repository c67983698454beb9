# -*- coding: utf-8 -*-
"""
providers/storage/episode_store.py

这个文件做什么：
- 远端剧集存储的异步 client（JSON over HTTPS，header 带 accessToken）：
  - save_episode(project_id, episode)      POST  /api/episodes
  - patch_episode(episode_id, partial)     PATCH /api/episodes/{id}
  - get_episode(episode_id) -> Episode|None GET  /api/episodes/{id}
- patch 支持只更新 shots，不需要整集数据。

重试约定：
- 只对超时/网络错误重试，指数退避 1s、2s、4s…，最多 5s 一次。
- 带 shots 的 patch 数据量大：超时 60s、最多 5 次；其他请求 30s、3 次。
- 4xx/5xx 的业务错误直接抛出。
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Union

import httpx

from script2storyboard.config import load_settings, require
from script2storyboard.core.retry import with_retry
from script2storyboard.core.schemas.project import Episode
from script2storyboard.core.schemas.shot import Shot
from script2storyboard.errors import AuthorizationError, StoryboardError

logger = logging.getLogger(__name__)

# 上传时保留的核心字段，九宫格相关字段必须保留
TRANSFER_FIELDS = [
	"id", "shotNumber", "duration", "shotType", "sceneId", "videoMode",
	"storyBeat", "dialogue", "shotSize", "angleDirection", "angleHeight", "dutchAngle",
	"foreground", "midground", "background", "lighting",
	"cameraMove", "cameraMoveDetail", "motionPath",
	"storyboardGridUrl", "storyboardGridCellIndex", "storyboardGridGenerationMeta",
	"status",
]

# 有值才带上
OPTIONAL_TRANSFER_FIELDS = [
	"startFrame", "endFrame", "theory", "directorNote", "technicalNote",
	"assignedCharacterIds", "imagePromptEn", "videoPromptCn",
]

LARGE_PAYLOAD_BYTES = 90 * 1024


def optimize_shots_for_transfer(shots: Sequence[Union[Shot, Dict[str, Any]]]) -> List[Dict[str, Any]]:
	out: List[Dict[str, Any]] = []
	for s in shots:
		d = s.to_dict() if isinstance(s, Shot) else dict(s)
		slim = {k: d[k] for k in TRANSFER_FIELDS if k in d}
		for k in OPTIONAL_TRANSFER_FIELDS:
			if d.get(k):
				slim[k] = d[k]
		out.append(slim)
	return out


def _is_transient(exc: BaseException) -> bool:
	return isinstance(exc, httpx.TransportError)


@dataclass
class EpisodeApiConfig:
	base_url: str
	access_token: str


class EpisodeStore:
	def __init__(self, cfg: EpisodeApiConfig, transport: Optional[httpx.AsyncBaseTransport] = None):
		self.cfg = cfg
		self._client = httpx.AsyncClient(
			base_url=cfg.base_url,
			headers={
				"Content-Type": "application/json",
				"accessToken": cfg.access_token,
			},
			transport=transport,
		)

	async def aclose(self) -> None:
		await self._client.aclose()

	async def _request(
		self,
		method: str,
		endpoint: str,
		body: Optional[Dict[str, Any]] = None,
		attempts: int = 3,
		timeout_s: float = 30.0,
	) -> Any:
		async def once() -> Any:
			r = await self._client.request(method, endpoint, json=body, timeout=timeout_s)
			if r.status_code in (401, 403):
				raise AuthorizationError(f"{method} {endpoint}: HTTP {r.status_code}")
			if r.status_code < 200 or r.status_code >= 300:
				try:
					err = r.json().get("error") or f"HTTP {r.status_code}"
				except ValueError:
					err = f"HTTP {r.status_code}"
				raise StoryboardError(f"{method} {endpoint}: {err}")
			if not r.content:
				return None
			return r.json()

		return await with_retry(
			once,
			max_attempts=attempts,
			delay_s=1.0,
			backoff=2.0,
			max_delay_s=5.0,
			is_retryable=_is_transient,
			label=f"{method} {endpoint}",
		)

	async def save_episode(self, project_id: str, episode: Episode) -> None:
		d = episode.to_dict()
		d["shots"] = optimize_shots_for_transfer(episode.shots)
		d["projectId"] = project_id

		await self._request("POST", "/api/episodes", body=d, attempts=5 if episode.shots else 3, timeout_s=60.0 if episode.shots else 30.0)
		logger.info("episode saved: %s (第%d集)", episode.id, episode.episode_number)

	async def patch_episode(self, episode_id: str, patch: Dict[str, Any]) -> None:
		body = dict(patch)
		shots = body.get("shots")
		has_shots = bool(shots)

		if has_shots:
			body["shots"] = optimize_shots_for_transfer(shots)
			size = len(json.dumps(body["shots"], ensure_ascii=False).encode("utf-8"))
			logger.debug("patch %s: %d shots, %.2f KB", episode_id, len(shots), size / 1024)
			if size > LARGE_PAYLOAD_BYTES:
				logger.warning("patch %s: shots payload still large (%.2f KB)", episode_id, size / 1024)

		await self._request(
			"PATCH",
			f"/api/episodes/{episode_id}",
			body=body,
			attempts=5 if has_shots else 3,
			timeout_s=60.0 if has_shots else 30.0,
		)
		logger.info("episode patched: %s (%s)", episode_id, ", ".join(patch.keys()))

	async def get_episode(self, episode_id: str) -> Optional[Episode]:
		try:
			data = await self._request("GET", f"/api/episodes/{episode_id}")
		except (httpx.HTTPError, StoryboardError) as e:
			logger.warning("get episode %s failed: %s", episode_id, e)
			return None
		if not isinstance(data, dict):
			return None
		return Episode.from_dict(data)


def load_episode_store(
	project_root: Optional[str] = None,
	base_url: Optional[str] = None,
	access_token: Optional[str] = None,
	transport: Optional[httpx.AsyncBaseTransport] = None,
) -> EpisodeStore:
	s = load_settings(project_root).episodes
	cfg = EpisodeApiConfig(
		base_url=require((base_url or s.base_url).strip(), "EPISODE_API_BASE_URL"),
		access_token=(access_token or s.access_token).strip(),
	)
	return EpisodeStore(cfg, transport=transport)
