# -*- coding: utf-8 -*-
"""
script2storyboard/core/io.py

目的：
- 统一管理项目目录和剧集目录的路径约定（哪些文件放哪里）。
- 统一创建目录骨架（ensure_dirs）。

各 stage 只通过 EpisodePaths 拿路径，不手写路径字符串。

约定（v0.1）：
- <project_dir>/project.json                      : 项目、角色、场景、剧集列表
- <project_dir>/episodes/ep_001/script.txt        : 本集剧本原文
- <project_dir>/episodes/ep_001/manifest.json     : 阶段状态与断点续跑信息
- <project_dir>/episodes/ep_001/cleaning.json     : 剧本清洗结果
- <project_dir>/episodes/ep_001/cot/stage1.json   : 思维链各阶段解析结果
- <project_dir>/episodes/ep_001/shots.json        : 镜头表
- <project_dir>/episodes/ep_001/review.json       : 审核建议
- <project_dir>/episodes/ep_001/grids.json        : 九宫格结果（按 gridIndex）
- <project_dir>/episodes/ep_001/logs/llm.jsonl    : LLM 调用日志
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class EpisodePaths:
	"""
	把剧集目录内部常用文件路径集中在一个结构体里。

	注意：
	- 只存路径，不做读写。
	- ensure_dirs() 负责创建目录骨架。
	"""
	root: Path
	project_file: Path
	script: Path
	manifest: Path
	cleaning: Path
	cot_dir: Path
	shots: Path
	review: Path
	grids: Path
	logs_dir: Path

	@property
	def llm_log(self) -> Path:
		return self.logs_dir / "llm.jsonl"

	def stage_output(self, n: int) -> Path:
		return self.cot_dir / f"stage{n}.json"

	def ensure_dirs(self) -> None:
		"""
		原则：
		- 只 mkdir，不写任何业务文件。
		- 重复执行必须安全（exist_ok=True）。
		"""
		for d in (self.root, self.cot_dir, self.logs_dir):
			d.mkdir(parents=True, exist_ok=True)


def episode_dir_name(episode_number: int) -> str:
	return f"ep_{episode_number:03d}"


def project_file(project_dir: str | Path) -> Path:
	return Path(project_dir) / "project.json"


def episode_paths(project_dir: str | Path, episode_number: int) -> EpisodePaths:
	"""
	根据项目目录和集数生成 EpisodePaths。

	注意：
	- 这里不创建目录；目录创建由 ensure_dirs() 做。
	"""
	proj = Path(project_dir)
	root = proj / "episodes" / episode_dir_name(episode_number)

	return EpisodePaths(
		root=root,
		project_file=project_file(proj),
		script=root / "script.txt",
		manifest=root / "manifest.json",
		cleaning=root / "cleaning.json",
		cot_dir=root / "cot",
		shots=root / "shots.json",
		review=root / "review.json",
		grids=root / "grids.json",
		logs_dir=root / "logs",
	)
