# -*- coding: utf-8 -*-
"""
script2storyboard/core/project_file.py

project.json 和各阶段 JSON 产物的读写。
- 统一 utf-8 + ensure_ascii=False + indent=2，人能直接打开看。
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, List

from .schemas.project import Project
from .schemas.shot import Shot, shots_from_list, shots_to_list


def read_json(path: Path) -> Any:
	return json.loads(path.read_text(encoding="utf-8"))


def write_json(path: Path, data: Any) -> None:
	path.parent.mkdir(parents=True, exist_ok=True)
	path.write_text(json.dumps(data, ensure_ascii=False, indent=2), encoding="utf-8")


def load_project(path: Path) -> Project:
	if not path.exists():
		raise FileNotFoundError(f"missing {path} (先运行 init 创建项目)")
	return Project.from_dict(read_json(path))


def save_project(path: Path, project: Project) -> None:
	write_json(path, project.to_dict())


def load_shots(path: Path) -> List[Shot]:
	if not path.exists():
		return []
	data = read_json(path)
	if isinstance(data, dict):
		data = data.get("shots", [])
	return shots_from_list(data)


def save_shots(path: Path, shots: List[Shot]) -> None:
	write_json(path, {"shots": shots_to_list(shots)})


def load_grid_results(path: Path) -> List[str]:
	if not path.exists():
		return []
	data = read_json(path)
	return [str(x or "") for x in data.get("results", [])]


def save_grid_results(path: Path, results: List[str]) -> None:
	write_json(path, {"results": list(results)})


def append_jsonl(path: Path, record: Dict[str, Any]) -> None:
	path.parent.mkdir(parents=True, exist_ok=True)
	with path.open("a", encoding="utf-8") as f:
		f.write(json.dumps(record, ensure_ascii=False) + "\n")
