# -*- coding: utf-8 -*-
"""
script2storyboard/core/schemas/project.py

Project / Episode / CharacterRef / SceneRef 的数据结构与 JSON 读写。

所有权：
- Project 独占 episodes、characters、scenes。
- Episode 通过 id 弱引用角色（Shot.assigned_character_ids），不持有角色对象。

注意：
- 这里只管“形状”和转换，不做任何 IO；落盘在 core/project_file.py。
"""

from __future__ import annotations

import re
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .shot import Shot, shots_from_list, shots_to_list


EPISODE_STATUSES = ["draft", "cleaned", "generated", "reviewed", "exported"]

GENDERS = ("男", "女", "未知")


def _now_ms() -> int:
	return int(time.time() * 1000)


@dataclass
class ProjectSettings:
	genre: str = ""
	world_view: str = ""
	visual_style: str = ""
	key_terms: List[str] = field(default_factory=list)
	media_type: str = ""

	def to_dict(self) -> Dict[str, Any]:
		return {
			"genre": self.genre,
			"worldView": self.world_view,
			"visualStyle": self.visual_style,
			"keyTerms": list(self.key_terms),
			"mediaType": self.media_type,
		}

	@classmethod
	def from_dict(cls, d: Dict[str, Any]) -> "ProjectSettings":
		return cls(
			genre=d.get("genre", "") or "",
			world_view=d.get("worldView", "") or "",
			visual_style=d.get("visualStyle", "") or "",
			key_terms=list(d.get("keyTerms") or []),
			media_type=d.get("mediaType", "") or "",
		)


@dataclass
class CharacterForm:
	"""
	角色的另一种状态（受伤、伪装、变身……）。

	episode_range：
	- "3" 或 "1-5" 这样的集数范围，九宫格提示词按集数挑形态
	"""
	id: str
	name: str
	episode_range: str = ""
	description: str = ""
	note: str = ""
	visual_prompt_cn: str = ""
	visual_prompt_en: str = ""

	def covers_episode(self, episode_number: int) -> bool:
		m = re.match(r"^\s*(\d+)\s*(?:[-~至到]\s*(\d+))?\s*$", self.episode_range or "")
		if not m:
			return False
		lo = int(m.group(1))
		hi = int(m.group(2)) if m.group(2) else lo
		return lo <= episode_number <= hi

	def to_dict(self) -> Dict[str, Any]:
		return {
			"id": self.id,
			"name": self.name,
			"episodeRange": self.episode_range,
			"description": self.description,
			"note": self.note,
			"visualPromptCn": self.visual_prompt_cn,
			"visualPromptEn": self.visual_prompt_en,
		}

	@classmethod
	def from_dict(cls, d: Dict[str, Any]) -> "CharacterForm":
		return cls(
			id=str(d.get("id", "")),
			name=d.get("name", "") or "",
			episode_range=str(d.get("episodeRange", "") or ""),
			description=d.get("description", "") or "",
			note=d.get("note", "") or "",
			visual_prompt_cn=d.get("visualPromptCn", "") or "",
			visual_prompt_en=d.get("visualPromptEn", "") or "",
		)


@dataclass
class SheetGenerationMeta:
	"""
	设定图生成任务指针。

	- 任务创建后立刻写入 task_code/task_created_at，出图前重启也能找回
	- generated_at 为空表示结果还没写回；写回后记写回时间
	"""
	model_name: str = ""
	style_name: str = ""
	generated_at: str = ""
	task_code: str = ""
	task_created_at: str = ""

	def to_dict(self) -> Dict[str, Any]:
		return {
			"modelName": self.model_name,
			"styleName": self.style_name,
			"generatedAt": self.generated_at,
			"taskCode": self.task_code,
			"taskCreatedAt": self.task_created_at,
		}

	@classmethod
	def from_dict(cls, d: Optional[Dict[str, Any]]) -> Optional["SheetGenerationMeta"]:
		if not isinstance(d, dict):
			return None
		return cls(
			model_name=str(d.get("modelName", "") or ""),
			style_name=str(d.get("styleName", "") or ""),
			generated_at=str(d.get("generatedAt", "") or ""),
			task_code=str(d.get("taskCode", "") or ""),
			task_created_at=str(d.get("taskCreatedAt", "") or ""),
		)


@dataclass
class CharacterRef:
	"""
	appearance_config / costume_config：
	- 角色补充阶段3/4产出的结构化外貌、服装配置（camelCase dict，原样落盘）
	- appearance 是给提示词用的整段文字，两者同时维护
	"""
	id: str
	name: str
	gender: str = "未知"
	appearance: str = ""
	age_group: str = ""
	quote: str = ""
	identity_evolution: str = ""
	abilities: List[str] = field(default_factory=list)
	forms: List[CharacterForm] = field(default_factory=list)
	appearance_config: Dict[str, Any] = field(default_factory=dict)
	costume_config: Dict[str, Any] = field(default_factory=dict)
	image_sheet_url: str = ""
	image_generation_meta: Optional[SheetGenerationMeta] = None

	def appearance_for_episode(self, episode_number: Optional[int]) -> str:
		"""有匹配当前集数的形态就用形态描述，否则用基础外观。"""
		if episode_number is not None:
			for f in self.forms:
				if f.covers_episode(episode_number):
					return f.description or f.visual_prompt_cn or self.appearance
		return self.appearance

	def to_dict(self) -> Dict[str, Any]:
		d: Dict[str, Any] = {
			"id": self.id,
			"name": self.name,
			"gender": self.gender,
			"appearance": self.appearance,
			"ageGroup": self.age_group,
			"quote": self.quote,
			"identityEvolution": self.identity_evolution,
			"abilities": list(self.abilities),
			"forms": [f.to_dict() for f in self.forms],
			"appearanceConfig": dict(self.appearance_config),
			"costumeConfig": dict(self.costume_config),
			"imageSheetUrl": self.image_sheet_url,
		}
		if self.image_generation_meta is not None:
			d["imageGenerationMeta"] = self.image_generation_meta.to_dict()
		return d

	@classmethod
	def from_dict(cls, d: Dict[str, Any]) -> "CharacterRef":
		abilities = d.get("abilities") or []
		if isinstance(abilities, str):
			abilities = [abilities]
		gender = d.get("gender", "未知") or "未知"
		return cls(
			id=str(d.get("id", "")),
			name=d.get("name", "") or "",
			gender=gender if gender in GENDERS else "未知",
			appearance=d.get("appearance", "") or "",
			age_group=d.get("ageGroup", "") or "",
			quote=d.get("quote", "") or "",
			identity_evolution=d.get("identityEvolution", "") or "",
			abilities=[str(a) for a in abilities],
			forms=[CharacterForm.from_dict(f) for f in (d.get("forms") or []) if isinstance(f, dict)],
			appearance_config=dict(d.get("appearanceConfig") or {}),
			costume_config=dict(d.get("costumeConfig") or {}),
			image_sheet_url=d.get("imageSheetUrl", "") or "",
			image_generation_meta=SheetGenerationMeta.from_dict(d.get("imageGenerationMeta")),
		)


@dataclass
class SceneRef:
	id: str
	name: str
	description: str = ""
	visual_prompt_cn: str = ""
	visual_prompt_en: str = ""
	atmosphere: str = ""
	appears_in_episodes: List[int] = field(default_factory=list)
	image_sheet_url: str = ""
	image_generation_meta: Optional[SheetGenerationMeta] = None

	def to_dict(self) -> Dict[str, Any]:
		d: Dict[str, Any] = {
			"id": self.id,
			"name": self.name,
			"description": self.description,
			"visualPromptCn": self.visual_prompt_cn,
			"visualPromptEn": self.visual_prompt_en,
			"atmosphere": self.atmosphere,
			"appearsInEpisodes": list(self.appears_in_episodes),
			"imageSheetUrl": self.image_sheet_url,
		}
		if self.image_generation_meta is not None:
			d["imageGenerationMeta"] = self.image_generation_meta.to_dict()
		return d

	@classmethod
	def from_dict(cls, d: Dict[str, Any]) -> "SceneRef":
		return cls(
			id=str(d.get("id", "")),
			name=d.get("name", "") or "",
			description=d.get("description", "") or "",
			visual_prompt_cn=d.get("visualPromptCn", "") or "",
			visual_prompt_en=d.get("visualPromptEn", "") or "",
			atmosphere=d.get("atmosphere", "") or "",
			appears_in_episodes=[int(x) for x in (d.get("appearsInEpisodes") or [])],
			image_sheet_url=d.get("imageSheetUrl", "") or "",
			image_generation_meta=SheetGenerationMeta.from_dict(d.get("imageGenerationMeta")),
		)


@dataclass
class Episode:
	id: str
	episode_number: int
	title: str
	script: str = ""
	cleaning_result: Optional[Dict[str, Any]] = None
	shots: List[Shot] = field(default_factory=list)
	status: str = "draft"
	updated_at: int = 0

	def set_status(self, status: str) -> None:
		if status not in EPISODE_STATUSES:
			raise ValueError(f"invalid episode status: {status}")
		self.status = status
		self.updated_at = _now_ms()

	def to_dict(self) -> Dict[str, Any]:
		return {
			"id": self.id,
			"episodeNumber": self.episode_number,
			"title": self.title,
			"script": self.script,
			"cleaningResult": self.cleaning_result,
			"shots": shots_to_list(self.shots),
			"status": self.status,
			"updatedAt": self.updated_at,
		}

	@classmethod
	def from_dict(cls, d: Dict[str, Any]) -> "Episode":
		n = int(d.get("episodeNumber", 0) or 0)
		return cls(
			id=str(d.get("id", "")),
			episode_number=n,
			title=d.get("title", "") or f"第{n}集",
			script=d.get("script", "") or "",
			cleaning_result=d.get("cleaningResult"),
			shots=shots_from_list(d.get("shots") or []),
			status=d.get("status", "draft") or "draft",
			updated_at=int(d.get("updatedAt", 0) or 0),
		)


@dataclass
class Project:
	id: str
	name: str
	settings: ProjectSettings = field(default_factory=ProjectSettings)
	characters: List[CharacterRef] = field(default_factory=list)
	scenes: List[SceneRef] = field(default_factory=list)
	story_outline: List[Dict[str, Any]] = field(default_factory=list)
	episodes: List[Episode] = field(default_factory=list)
	created_at: int = 0
	updated_at: int = 0

	def episode_by_number(self, n: int) -> Optional[Episode]:
		for ep in self.episodes:
			if ep.episode_number == n:
				return ep
		return None

	def episode_by_id(self, episode_id: str) -> Optional[Episode]:
		for ep in self.episodes:
			if ep.id == episode_id:
				return ep
		return None

	def to_dict(self) -> Dict[str, Any]:
		return {
			"id": self.id,
			"name": self.name,
			"settings": self.settings.to_dict(),
			"characters": [c.to_dict() for c in self.characters],
			"scenes": [s.to_dict() for s in self.scenes],
			"storyOutline": list(self.story_outline),
			"episodes": [e.to_dict() for e in self.episodes],
			"createdAt": self.created_at,
			"updatedAt": self.updated_at,
		}

	@classmethod
	def from_dict(cls, d: Dict[str, Any]) -> "Project":
		return cls(
			id=str(d.get("id", "")),
			name=d.get("name", "") or "",
			settings=ProjectSettings.from_dict(d.get("settings") or {}),
			characters=[CharacterRef.from_dict(c) for c in (d.get("characters") or [])],
			scenes=[SceneRef.from_dict(s) for s in (d.get("scenes") or [])],
			story_outline=list(d.get("storyOutline") or []),
			episodes=[Episode.from_dict(e) for e in (d.get("episodes") or [])],
			created_at=int(d.get("createdAt", 0) or 0),
			updated_at=int(d.get("updatedAt", 0) or 0),
		)


def new_project(name: str, settings: Optional[ProjectSettings] = None) -> Project:
	ts = _now_ms()
	return Project(
		id=f"proj-{ts}",
		name=name,
		settings=settings or ProjectSettings(),
		created_at=ts,
		updated_at=ts,
	)


def new_episode(episode_number: int, script: str = "", title: str = "") -> Episode:
	ts = _now_ms()
	return Episode(
		id=f"ep-{ts}-{episode_number}",
		episode_number=episode_number,
		title=title or f"第{episode_number}集",
		script=script,
		updated_at=ts,
	)


def merge_character_fields(base: CharacterRef, update: Dict[str, Any]) -> CharacterRef:
	"""
	按字段覆盖：update 里非空的字段覆盖 base，空值不动。
	角色补充是多阶段的，每个阶段只填自己负责的字段。
	"""
	merged = base.to_dict()
	for k, v in update.items():
		if k == "id":
			continue
		if v in (None, "", [], {}):
			continue
		merged[k] = v
	return CharacterRef.from_dict(merged)
