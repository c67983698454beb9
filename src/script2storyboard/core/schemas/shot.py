# -*- coding: utf-8 -*-
"""
script2storyboard/core/schemas/shot.py

Shot：分镜单元的基础数据结构，整个流水线的共享契约。
- core 定义，skills / grid / providers 使用。
- 不依赖任何业务层（LLM、图片接口等）。
- 落盘和远端接口都用 camelCase 键名；Python 侧用 snake_case 属性，
  to_dict/from_dict 负责转换，未知字段原样保留在 extra 里。
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field, fields
from typing import Any, Dict, List, Optional


SHOT_TYPE_STATIC = "静态"
SHOT_TYPE_MOTION = "运动"


def to_camel(name: str) -> str:
	head, *rest = name.split("_")
	return head + "".join(p[:1].upper() + p[1:] for p in rest)


def to_snake(name: str) -> str:
	return re.sub(r"(?<!^)([A-Z])", r"_\1", name).lower()


def normalize_shot_number(v: Any) -> str:
	"""'#5' / 5 / '05' -> '05'；非数字编号原样返回。"""
	s = str(v or "").replace("#", "").strip()
	return s.zfill(2) if s.isdigit() else s


@dataclass
class GridTaskMeta:
	"""
	未完成的九宫格生成任务指针。

	task_created_at：ISO 时间字符串；解析不了的值在去重时视为“最旧”。
	"""
	task_code: str
	task_created_at: str
	grid_index: int

	def to_dict(self) -> Dict[str, Any]:
		return {
			"taskCode": self.task_code,
			"taskCreatedAt": self.task_created_at,
			"gridIndex": self.grid_index,
		}

	@classmethod
	def from_dict(cls, data: Dict[str, Any]) -> "GridTaskMeta":
		return cls(
			task_code=str(data.get("taskCode", "")),
			task_created_at=str(data.get("taskCreatedAt", "")),
			grid_index=int(data.get("gridIndex", 0)),
		)


@dataclass
class Shot:
	"""
	一个镜头（分镜单位）。

	shot_type：
	- 静态 / 运动；运动镜头在九宫格里要画首帧和尾帧

	storyboard_grid_*：
	- grid_url/cell_index：九宫格结果已经“应用”到这个镜头
	- generation_meta：还没应用的任务指针，应用后必须清掉
	"""
	id: str = ""
	shot_number: str = ""
	duration: str = ""
	shot_type: str = SHOT_TYPE_STATIC
	scene_id: str = ""
	video_mode: str = ""
	story_beat: str = ""
	dialogue: str = ""
	shot_size: str = ""
	angle_direction: str = ""
	angle_height: str = ""
	dutch_angle: str = ""
	foreground: str = ""
	midground: str = ""
	background: str = ""
	lighting: str = ""
	camera_move: str = ""
	camera_move_detail: str = ""
	motion_path: str = ""
	start_frame: str = ""
	end_frame: str = ""
	prompt_cn: str = ""
	prompt_en: str = ""
	end_frame_prompt_cn: str = ""
	end_frame_prompt_en: str = ""
	image_prompt_cn: str = ""
	image_prompt_en: str = ""
	end_image_prompt_cn: str = ""
	end_image_prompt_en: str = ""
	video_gen_prompt: str = ""
	video_prompt: str = ""
	video_prompt_cn: str = ""
	theory: str = ""
	director_note: str = ""
	technical_note: str = ""
	status: str = "pending"
	assigned_character_ids: List[str] = field(default_factory=list)
	storyboard_grid_url: Optional[str] = None
	storyboard_grid_cell_index: Optional[int] = None
	storyboard_grid_generation_meta: Optional[GridTaskMeta] = None
	extra: Dict[str, Any] = field(default_factory=dict)

	@property
	def is_motion(self) -> bool:
		return self.shot_type == SHOT_TYPE_MOTION

	def to_dict(self) -> Dict[str, Any]:
		out: Dict[str, Any] = dict(self.extra)
		for f in fields(self):
			if f.name == "extra":
				continue
			v = getattr(self, f.name)
			# None 表示“没有这个字段”，落盘时直接省略
			if v is None:
				continue
			if isinstance(v, GridTaskMeta):
				v = v.to_dict()
			elif isinstance(v, list):
				v = list(v)
			out[to_camel(f.name)] = v
		return out

	@classmethod
	def from_dict(cls, data: Dict[str, Any]) -> "Shot":
		known = {to_camel(f.name): f.name for f in fields(cls) if f.name != "extra"}
		kwargs: Dict[str, Any] = {}
		extra: Dict[str, Any] = {}

		for k, v in data.items():
			name = known.get(k)
			if name is None:
				extra[k] = v
				continue
			if v is None:
				continue
			if name == "storyboard_grid_generation_meta":
				v = GridTaskMeta.from_dict(v) if isinstance(v, dict) else None
			elif name == "storyboard_grid_cell_index":
				v = int(v)
			elif name == "assigned_character_ids":
				v = [str(x) for x in v] if isinstance(v, list) else []
			elif isinstance(v, (int, float)) and not isinstance(v, bool):
				v = str(v)
			elif isinstance(v, dict):
				# storyBeat 之类偶尔是对象，取 event 文本
				v = str(v.get("event") or v.get("text") or "")
			kwargs[name] = v

		return cls(extra=extra, **kwargs)


def shots_to_list(shots: List[Shot]) -> List[Dict[str, Any]]:
	return [s.to_dict() for s in shots]


def shots_from_list(data: List[Dict[str, Any]]) -> List[Shot]:
	return [Shot.from_dict(d) for d in data if isinstance(d, dict)]
