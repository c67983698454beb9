# -*- coding: utf-8 -*-
"""
character_reference/appearance.py

这个文件做什么：
- 从外貌参考表（appearance-reference.json）按 {时代, 美型等级, 性别} 组合出一段
  给 LLM 看的“外貌参考词汇”文本，用于补写角色外观。

三层合并：
- _universal：跨时代通用词汇（脸型、眼型、鼻型……）
- <时代>._era_defaults：时代默认（发型推荐、妆容风格、美学方向、禁止事项）
- <时代>.<极致美型|平衡|真实>：美型等级的差异部分（发型精选、妆容精选、面部强调）

性别挑选：
- 男 -> 男性 + 通用；女 -> 女性 + 通用；不确定 -> 通用 + 女性 + 男性

注意：
- 只管外貌词汇，不含服装。
- 参考表是静态 JSON，路径由配置给出（REFERENCE_DATA_DIR）。
- 时代查不到时只用 _universal 一层。
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

from .beauty import BEAUTY_LEVEL_MAP, beauty_level_by_genre
from .era import normalize_era

logger = logging.getLogger(__name__)

APPEARANCE_FILE = "appearance-reference.json"


def _gender_key(gender: Optional[str]) -> Optional[str]:
	if gender == "男":
		return "男性"
	if gender == "女":
		return "女性"
	return None


def pick_by_gender(data: Optional[Dict[str, List[str]]], gender_key: Optional[str]) -> List[str]:
	if not data:
		return []
	out: List[str] = []
	if gender_key and data.get(gender_key):
		out.extend(data[gender_key])
	out.extend(data.get("通用") or [])
	if not gender_key:
		out.extend(data.get("女性") or [])
		out.extend(data.get("男性") or [])
	return out


def _join(items: List[str], empty: str = "") -> str:
	return "、".join(items) if items else empty


class AppearanceReference:
	def __init__(self, data: Dict[str, Any]):
		self.data = data

	@classmethod
	def load(cls, path: Path) -> "AppearanceReference":
		return cls(json.loads(Path(path).read_text(encoding="utf-8")))

	@classmethod
	def from_dir(cls, reference_dir: Path) -> "AppearanceReference":
		return cls.load(Path(reference_dir) / APPEARANCE_FILE)

	def universal(self) -> Dict[str, Any]:
		return self.data.get("_universal") or {}

	def era_defaults(self, era_key: str) -> Optional[Dict[str, Any]]:
		node = self.data.get(era_key)
		if not isinstance(node, dict):
			return None
		return node.get("_era_defaults")

	def beauty_node(self, era_key: str, level_key: str) -> Optional[Dict[str, Any]]:
		node = self.data.get(era_key)
		if not isinstance(node, dict):
			return None
		return node.get(level_key)

	def build(
		self,
		era: str,
		genre: str = "",
		gender: Optional[str] = None,
		beauty_level: Optional[str] = None,
	) -> str:
		"""beauty_level 为空时按 genre 推断。"""
		level = beauty_level or beauty_level_by_genre(genre)
		level_cn = BEAUTY_LEVEL_MAP.get(level, "平衡")
		era_key = normalize_era(era)

		universal = self.universal()
		defaults = self.era_defaults(era_key)
		beauty = self.beauty_node(era_key, level_cn) if defaults else None
		if defaults is None:
			logger.info("no appearance data for era %r, universal vocabulary only", era_key)
		defaults = defaults or {}
		beauty = beauty or {}

		gk = _gender_key(gender)
		hairstyles = pick_by_gender(beauty.get("发型_精选") or defaults.get("发型_推荐"), gk)
		makeup = beauty.get("妆容_精选") or defaults.get("妆容_风格") or []
		hair_src = "美型等级精选" if beauty.get("发型_精选") else "时代推荐"
		makeup_src = "美型等级精选" if beauty.get("妆容_精选") else "时代通用"

		lines = [
			f"## 外貌参考词汇 | {era_key} · {level_cn}美型",
			"",
			f"**时代**：{era_key}",
			f"**美型等级**：{level_cn}",
		]
		if gender:
			lines.append(f"**角色性别**：{gender}")
		if defaults.get("美学_方向"):
			lines.append(f"**时代美学方向**：{defaults['美学_方向']}")
		if defaults.get("肤色_审美"):
			lines.append(f"**时代肤色审美**：{defaults['肤色_审美']}")

		lines += [
			"",
			f"### 发型词汇（{hair_src}）",
			_join(hairstyles, "参考时代常识设计"),
			"",
			f"### 妆容风格（{makeup_src}）",
			_join(list(makeup), "参考时代常识设计"),
			"",
			"### 面部特征词汇（跨时代通用）",
			f"**脸型**：{_join(universal.get('脸型_词汇') or [])}",
			f"**眼型**：{_join(pick_by_gender(universal.get('眼型_词汇'), gk))}",
			f"**鼻型**：{_join(universal.get('鼻型_词汇') or [])}",
			f"**唇型**：{_join(universal.get('唇型_词汇') or [])}",
			f"**肤色**：{_join(universal.get('肤色_词汇') or [])}",
			f"**发质**：{_join(universal.get('发质_词汇') or [])}",
			"",
			"### 体态与气质词汇（跨时代通用）",
			f"**体态**：{_join(pick_by_gender(universal.get('体态_词汇'), gk))}",
			f"**气质**：{_join(pick_by_gender(universal.get('气质_词汇'), gk))}",
		]

		if beauty.get("面部_强调"):
			lines += ["", f"### 面部强调点（{level_cn}美型专属）", _join(beauty["面部_强调"])]
		if beauty.get("设计指导"):
			lines += ["", f"### 设计指导（{level_cn}美型）", beauty["设计指导"]]
		if defaults.get("设计指导"):
			lines += ["", "### 时代设计指导", defaults["设计指导"]]
		if defaults.get("禁止事项"):
			lines += ["", f"**禁止事项（防穿越）**：{defaults['禁止事项']}"]

		return "\n".join(lines).strip()
