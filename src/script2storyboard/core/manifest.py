# -*- coding: utf-8 -*-
"""
script2storyboard/core/manifest.py

剧集目录下 manifest.json：一集分镜流水线的断点状态。

字段：
- status.stage       : 已到达的检查点（empty -> ingested -> ... -> grids_done），只前进
- status.done        : 跑完的 stage 名（orchestrator 据此跳过）
- status.failed      : 最近失败、还没重跑成功的 stage
- status.last_error  : 最近一次错误（"ValueError: ..."）
- finished_at        : stage -> 完成时间（ISO，UTC）
- providers          : 实际用到的模型，{"llm": {"model": ...}, "image": {...}}
- counts             : 镜头数、九宫格数、审核建议数……各 stage 自己往里写

读文件时缺字段一律补默认值；不认识的字段原样写回。
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List

SCHEMA_VERSION = "storyboard.manifest.v1"

STAGES = [
	"empty",
	"ingested",
	"cleaned",
	"extracted",
	"shots_done",
	"reviewed",
	"prompts_done",
	"grids_done",
]


def _utc_now() -> str:
	return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def _default_status() -> Dict[str, Any]:
	return {"stage": "empty", "done": [], "failed": [], "last_error": ""}


@dataclass
class Manifest:
	meta: Dict[str, Any]
	status: Dict[str, Any] = field(default_factory=_default_status)
	finished_at: Dict[str, str] = field(default_factory=dict)
	providers: Dict[str, Any] = field(default_factory=dict)
	counts: Dict[str, Any] = field(default_factory=dict)
	schema_version: str = SCHEMA_VERSION
	extra: Dict[str, Any] = field(default_factory=dict)

	@property
	def stage(self) -> str:
		return self.status.get("stage", "empty")

	@property
	def done(self) -> List[str]:
		return self.status.setdefault("done", [])

	@property
	def failed(self) -> List[str]:
		return self.status.setdefault("failed", [])

	def reached(self, checkpoint: str) -> bool:
		return STAGES.index(self.stage) >= STAGES.index(checkpoint)

	def set_stage(self, checkpoint: str) -> None:
		if checkpoint not in STAGES:
			raise ValueError(f"invalid stage: {checkpoint}")
		self.status["stage"] = checkpoint

	def complete(self, stage_name: str, checkpoint: str, **counts: Any) -> None:
		"""stage 成功：检查点只前进不后退，done 追加，failed 里去掉。"""
		if not self.reached(checkpoint):
			self.set_stage(checkpoint)
		if stage_name not in self.done:
			self.done.append(stage_name)
		if stage_name in self.failed:
			self.failed.remove(stage_name)
		self.finished_at[stage_name] = _utc_now()
		self.counts.update(counts)

	def fail(self, stage_name: str, err: str) -> None:
		if stage_name not in self.failed:
			self.failed.append(stage_name)
		self.status["last_error"] = err

	def note_provider(self, kind: str, **info: Any) -> None:
		self.providers.setdefault(kind, {}).update({k: v for k, v in info.items() if v})

	def to_dict(self) -> Dict[str, Any]:
		out = dict(self.extra)
		out.update({
			"schema_version": self.schema_version,
			"meta": self.meta,
			"status": self.status,
			"finished_at": self.finished_at,
			"providers": self.providers,
			"counts": self.counts,
		})
		return out

	@classmethod
	def from_dict(cls, data: Dict[str, Any]) -> "Manifest":
		known = ("schema_version", "meta", "status", "finished_at", "providers", "counts")
		status = _default_status()
		status.update(data.get("status") or {})
		return cls(
			meta=data.get("meta") or {},
			status=status,
			finished_at=data.get("finished_at") or {},
			providers=data.get("providers") or {},
			counts=data.get("counts") or {},
			schema_version=data.get("schema_version") or SCHEMA_VERSION,
			extra={k: v for k, v in data.items() if k not in known},
		)


def new_manifest(project_id: str, episode_id: str, episode_number: int) -> Manifest:
	return Manifest(
		meta={
			"project_id": project_id,
			"episode_id": episode_id,
			"episode_number": episode_number,
			"created_at": _utc_now(),
		},
		counts={"num_shots": 0, "num_grids": 0},
	)


def load_manifest(path: Path) -> Manifest:
	return Manifest.from_dict(json.loads(Path(path).read_text(encoding="utf-8")))


def save_manifest(path: Path, m: Manifest) -> None:
	Path(path).write_text(json.dumps(m.to_dict(), ensure_ascii=False, indent=2), encoding="utf-8")
