# -*- coding: utf-8 -*-
"""
script2storyboard/stages/base.py

目的：
- 定义 Stage 的“接口形状”和运行上下文 StageContext。
- 让每个阶段都遵循同一种调用方式：await run(paths, ctx)。
- 放几个各 stage 共用的小工具（读项目/剧集、推进 manifest）。

约定：
- orchestrator 只按顺序调度 stage，不碰 stage 内部。
- 外部依赖（LLM、图片接口、剧集存储）都通过 ctx 注入，测试时换成假对象。
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional, Protocol, Tuple

from script2storyboard.core.events import EventEmitter
from script2storyboard.core.io import EpisodePaths
from script2storyboard.core.manifest import Manifest, load_manifest, new_manifest, save_manifest
from script2storyboard.core.project_file import load_project
from script2storyboard.core.schemas.project import Episode, Project
from script2storyboard.skills.llm import LLMClient


@dataclass
class StageContext:
	"""
	运行上下文：
	- episode_number：第几集（决定剧集目录 ep_001 ...）
	- llm / image_client / episode_store：外部服务，不需要的阶段可以为空
	- style_id：九宫格画风
	- reference_dir：参考表目录（外貌/服装/气质）；为空则跳过角色补充
	- optimize：review 之后是否按建议自动改镜头
	"""
	episode_number: int
	llm: Optional[LLMClient] = None
	llm_model: Optional[str] = None
	image_client: Any = None
	episode_store: Any = None
	events: EventEmitter = field(default_factory=EventEmitter)
	style_id: str = "rough_sketch"
	reference_dir: str = ""
	review_criteria: Optional[str] = None
	optimize: bool = False
	abort: Optional[asyncio.Event] = None


class Stage(Protocol):
	"""
	Stage 接口（协议）：
	- name：阶段名
	- run：执行该阶段，负责读写剧集目录内的文件
	"""
	name: str

	async def run(self, paths: EpisodePaths, ctx: StageContext) -> None:
		...


def require_llm(ctx: StageContext, stage: str) -> LLMClient:
	if ctx.llm is None:
		raise ValueError(f"stage {stage} needs an LLM client (OPENROUTER_API_KEY)")
	return ctx.llm


def load_episode(paths: EpisodePaths, ctx: StageContext) -> Tuple[Project, Episode]:
	project = load_project(paths.project_file)
	ep = project.episode_by_number(ctx.episode_number)
	if ep is None:
		raise ValueError(f"episode {ctx.episode_number} not in {paths.project_file} (先运行 import)")
	return project, ep


def read_manifest(paths: EpisodePaths, project: Project, ep: Episode) -> Manifest:
	if paths.manifest.exists():
		return load_manifest(paths.manifest)
	return new_manifest(project.id, ep.id, ep.episode_number)


def advance(paths: EpisodePaths, stage_name: str, reached: str, **counts: Any) -> None:
	m = load_manifest(paths.manifest)
	m.complete(stage_name, reached, **counts)
	save_manifest(paths.manifest, m)


def script_text(paths: EpisodePaths) -> str:
	if not paths.script.exists():
		raise FileNotFoundError(f"missing {paths.script} (先运行 ingest)")
	return Path(paths.script).read_text(encoding="utf-8")
