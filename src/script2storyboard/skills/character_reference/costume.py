# -*- coding: utf-8 -*-
"""
character_reference/costume.py

这个文件做什么：
- 从服装参考表（costume-reference.json）按 {时代, 场景, 风格, 季节, 性别} 定位一个叶节点，
  格式化成给 LLM 看的“服装参考资料”，供角色补充阶段4（服装设计）使用。

表结构：
- _universal：跨时代通用（完整色谱、基础面料、基础花纹）
- <时代>._era_defaults：时代通用款式（上装_基础/下装_基础/配饰_基础）、面料、花纹、流行色、设计指导、禁止事项
- <时代>.场景.<场景>.风格.<风格>.季节.<季节>：叶节点

叶节点两种格式：
- 新格式（有 *_exclusive 键）：只存场景专属的差异，和上面两层合并展示
- 旧格式：上装/下装/外套/配饰/颜色/面料/花纹/风格关键词 直接列全

查找顺序（精确匹配失败后逐步放宽）：
1) 场景/风格/季节，季节缺失时用“通用”
2) 场景/风格/通用
3) 特殊/风格/季节 -> 特殊/风格/通用
4) 日常/风格/季节 -> 日常/风格/通用
5) 场景/真实/季节
6) 日常/真实/通用
都找不到返回一句“请使用常识”。
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

from .appearance import _gender_key, _join, pick_by_gender
from .era import normalize_era

logger = logging.getLogger(__name__)

COSTUME_FILE = "costume-reference.json"

GENERAL_SEASON = "通用"

SPECIAL_SCENE_WORDS = (
	"战斗", "厮杀", "血战", "打斗", "决斗", "比武", "格斗",
	"仪式", "大典", "祭祀", "典礼", "庆典", "婚礼", "葬礼",
	"追杀", "逃亡", "潜入", "刺杀", "暗杀",
	"修炼", "闭关", "炼丹", "炼器",
	"宴会", "舞会", "晚宴", "盛宴",
)

_DELTA_KEYS = ("上装_exclusive", "下装_exclusive", "配饰_exclusive", "面料_exclusive")


def _first_part(v: Optional[str]) -> Optional[str]:
	if not v:
		return None
	return v.split("/")[0].strip() if "/" in v else v


def normalize_scene(scene: Optional[str]) -> Optional[str]:
	"""“战斗/追逐”取第一个；战斗、仪式、宴会这类归到“特殊”。"""
	s = _first_part(scene)
	if not s:
		return None
	if any(w in s for w in SPECIAL_SCENE_WORDS):
		return "特殊"
	return s


def normalize_style(style: Optional[str]) -> Optional[str]:
	return _first_part(style)


def normalize_season(season: Optional[str]) -> Optional[str]:
	return _first_part(season)


def to_list(data: Any, gender_key: Optional[str]) -> List[str]:
	"""列表原样返回；{女性, 男性, 通用} 按性别挑。"""
	if isinstance(data, list):
		return [str(x) for x in data]
	if isinstance(data, dict):
		return pick_by_gender(data, gender_key)
	return []


def is_delta(leaf: Dict[str, Any]) -> bool:
	return any(leaf.get(k) for k in _DELTA_KEYS)


class CostumeReference:
	def __init__(self, data: Dict[str, Any]):
		self.data = data

	@classmethod
	def load(cls, path: Path) -> "CostumeReference":
		return cls(json.loads(Path(path).read_text(encoding="utf-8")))

	@classmethod
	def from_dir(cls, reference_dir: Path) -> "CostumeReference":
		return cls.load(Path(reference_dir) / COSTUME_FILE)

	def universal(self) -> Dict[str, Any]:
		return self.data.get("_universal") or {}

	def era_defaults(self, era_key: str) -> Dict[str, Any]:
		node = self.data.get(era_key)
		if not isinstance(node, dict):
			return {}
		return node.get("_era_defaults") or {}

	def _leaf(self, era_key: str, scene: Optional[str], style: Optional[str], season: Optional[str]) -> Optional[Dict[str, Any]]:
		node = self.data.get(era_key)
		if not isinstance(node, dict) or not scene or not style or not season:
			return None
		seasons = (((node.get("场景") or {}).get(scene) or {}).get("风格") or {}).get(style) or {}
		leaf = (seasons.get("季节") or {}).get(season)
		return leaf if isinstance(leaf, dict) else None

	def lookup(
		self,
		era_key: str,
		scene: Optional[str] = None,
		style: Optional[str] = None,
		season: Optional[str] = None,
	) -> Optional[Dict[str, Any]]:
		"""参数都已归一；返回叶节点或 None。"""
		node = self.data.get(era_key)
		if not isinstance(node, dict) or not node.get("场景"):
			return None

		if scene and style and season:
			leaf = self._leaf(era_key, scene, style, season) or self._leaf(era_key, scene, style, GENERAL_SEASON)
			if leaf:
				return leaf

		attempts = [
			(scene, style, GENERAL_SEASON),
			("特殊", style, season),
			("特殊", style, GENERAL_SEASON),
			("日常", style, season),
			("日常", style, GENERAL_SEASON),
			(scene, "真实", season),
			("日常", "真实", GENERAL_SEASON),
		]
		for sc, st, se in attempts:
			leaf = self._leaf(era_key, sc, st, se)
			if leaf:
				logger.debug("costume fallback: %s/%s/%s/%s", era_key, sc, st, se)
				return leaf
		return None

	def build(
		self,
		era: str,
		scene: Optional[str] = None,
		style: Optional[str] = None,
		season: Optional[str] = None,
		gender: Optional[str] = None,
	) -> str:
		era_key = normalize_era(era or "")
		scene_n = normalize_scene(scene)
		style_n = normalize_style(style)
		season_n = normalize_season(season)

		leaf = self.lookup(era_key, scene_n, style_n, season_n)
		if leaf is None:
			logger.info("no costume data for %r (%s/%s/%s)", era, scene_n, style_n, season_n)
			return f"未找到\"{era}\"的参考资料，请使用常识进行设计。"

		head = {"era": era_key, "scene": scene_n, "style": style_n, "season": season_n, "gender": gender}
		if is_delta(leaf):
			return self._format_merged(leaf, **head)
		return self._format_legacy(leaf, **head)

	def _format_merged(self, leaf: Dict[str, Any], era: str, scene, style, season, gender) -> str:
		gk = _gender_key(gender)
		universal = self.universal()
		defaults = self.era_defaults(era)
		colors = universal.get("颜色") or {}

		fabrics = list(leaf.get("面料_exclusive") or []) + list(defaults.get("面料") or []) + list(universal.get("面料_基础") or [])
		patterns = list(defaults.get("花纹") or []) + list(universal.get("花纹_基础") or [])
		top = to_list(leaf.get("上装_exclusive"), gk)
		bottom = to_list(leaf.get("下装_exclusive"), gk)
		acc = to_list(leaf.get("配饰_exclusive"), gk)

		lines = [
			f"## 服装参考资料 | {era} · {scene or '未指定'} · {style or '未指定'}",
			"",
			f"**时期**：{era}",
			f"**场景**：{scene or '未指定'}",
			f"**风格**：{style or '未指定'}",
			f"**季节**：{season or '未指定'}",
		]
		if gender:
			lines.append(f"**性别**：{gender}")

		lines += [
			"",
			"### 场景推荐款式",
			f"**上装推荐**：{_join(top, '参考时期通用款')}",
			f"**下装推荐**：{_join(bottom, '参考时期通用款')}",
		]
		if acc:
			lines.append(f"**配饰推荐**：{_join(acc)}")

		lines += ["", "### 时期通用款式（也可选）"]
		for label, key in (("上装", "上装_基础"), ("下装", "下装_基础"), ("配饰", "配饰_基础")):
			items = to_list(defaults.get(key), gk)
			if items:
				lines.append(f"**{label}**：{_join(items)}")

		lines += ["", "### 颜色参考"]
		if leaf.get("颜色_accent"):
			lines.append(f"**场景推荐色**：{_join(leaf['颜色_accent'])}")
		if defaults.get("颜色_流行"):
			lines.append(f"**时期流行色**：{_join(defaults['颜色_流行'])}")
		for label, key in (("暖色", "暖色系"), ("冷色", "冷色系"), ("中性", "中性色"), ("高级", "高级色")):
			if colors.get(key):
				lines.append(f"**完整色谱（{label}）**：{_join(colors[key])}")
		if leaf.get("颜色_forbidden"):
			lines.append(f"**禁忌色**：{_join(leaf['颜色_forbidden'])}")

		lines += [
			"",
			"### 面料选项（全量合并）",
			_join(fabrics, "参考常识"),
			"",
			"### 花纹选项（全量合并）",
			_join(patterns, "参考常识"),
			"",
			"### 风格关键词",
			_join(list(leaf.get("风格关键词") or [])),
		]
		if defaults.get("设计指导"):
			lines += ["", "### 设计规范（优先参考）", defaults["设计指导"]]
		if defaults.get("禁止事项"):
			lines += ["", f"**禁止**：{defaults['禁止事项']}"]
		return "\n".join(lines).strip()

	def _format_legacy(self, leaf: Dict[str, Any], era: str, scene, style, season, gender) -> str:
		gk = _gender_key(gender)
		colors = leaf.get("颜色") or {}

		lines = [
			"## 服装参考资料",
			"",
			f"**时期**：{era}",
			f"**场景**：{scene or '未指定'}",
			f"**风格**：{style or '未指定'}",
			f"**季节**：{season or '未指定'}",
		]
		if gender:
			lines.append(f"**性别**：{gender}")

		lines += ["", "### 上装选项", _join(to_list(leaf.get("上装"), gk)), "", "### 下装选项", _join(to_list(leaf.get("下装"), gk))]
		outer = to_list(leaf.get("外套"), gk)
		if outer:
			lines += ["", "### 外套选项", _join(outer)]
		lines += ["", "### 配饰选项", _join(to_list(leaf.get("配饰"), gk))]

		lines += ["", "### 颜色选项", f"**常见色**：{_join(list(colors.get('常见色') or []))}"]
		if colors.get("流行色"):
			lines.append(f"**流行色**：{_join(colors['流行色'])}")
		if colors.get("禁忌色"):
			lines.append(f"**禁忌色**：{_join(colors['禁忌色'])}")

		lines += ["", "### 面料选项", _join(list(leaf.get("面料") or []))]
		if leaf.get("花纹"):
			lines += ["", "### 花纹选项", _join(leaf["花纹"])]
		if leaf.get("风格关键词"):
			lines += ["", "### 风格关键词", _join(leaf["风格关键词"])]
		return "\n".join(lines).strip()
