# -*- coding: utf-8 -*-
"""
character_reference/temperament.py

气质模板（temperament-reference.json）：冷系 / 暖系 / 中性系 / 特殊系 四组模板。

匹配（软匹配，只做提示，不是硬规则）：
- 先按性别过滤：模板没写性别或含“通用”都算兼容
- 打分：keyFeatures 出现在性格特质里 +2；特质出现在模板描述里 +1；特质出现在适用角色类型里 +1
- 有得分的取前 N 个，都没得分就按原顺序取前 N 个

两段引导文字：
- for_visual_tags：给阶段2（视觉标签），带色彩方向、眼神参考、服装思考
- for_appearance：给阶段3（外貌设计），只带外貌引导
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, List, Sequence

TEMPERAMENT_FILE = "temperament-reference.json"

GROUPS = ("冷系", "暖系", "中性系", "特殊系")


def _is_female(gender: str) -> bool:
	return "女" in gender or gender == "female"


def _is_male(gender: str) -> bool:
	return "男" in gender or gender == "male"


def gender_compatible(template: Dict[str, Any], gender: str) -> bool:
	allowed = template.get("gender") or []
	if not allowed or "通用" in allowed:
		return True
	if _is_female(gender) and "女性" in allowed:
		return True
	if _is_male(gender) and "男性" in allowed:
		return True
	return False


def score_template(template: Dict[str, Any], traits: Sequence[str]) -> int:
	score = 0
	joined = "".join(traits)
	for feat in template.get("keyFeatures") or []:
		if feat and feat in joined:
			score += 2
	desc = template.get("description") or ""
	suitable = template.get("suitableCharacterTypes") or []
	for t in traits:
		if not t:
			continue
		if t in desc:
			score += 1
		if any(t in s for s in suitable):
			score += 1
	return score


class TemperamentReference:
	def __init__(self, data: Dict[str, Any]):
		self.data = data

	@classmethod
	def load(cls, path: Path) -> "TemperamentReference":
		return cls(json.loads(Path(path).read_text(encoding="utf-8")))

	@classmethod
	def from_dir(cls, reference_dir: Path) -> "TemperamentReference":
		return cls.load(Path(reference_dir) / TEMPERAMENT_FILE)

	def templates(self) -> List[Dict[str, Any]]:
		out: List[Dict[str, Any]] = []
		for g in GROUPS:
			out.extend(t for t in (self.data.get(g) or []) if isinstance(t, dict))
		return out

	def match(self, gender: str, traits: Sequence[str], limit: int = 2) -> List[Dict[str, Any]]:
		scored = [(score_template(t, traits), t) for t in self.templates() if gender_compatible(t, gender or "")]
		# sorted 稳定，同分保留原顺序
		scored.sort(key=lambda x: -x[0])
		hits = [x for x in scored if x[0] > 0] or scored
		return [t for _, t in hits[:limit]]

	def for_visual_tags(self, gender: str, traits: Sequence[str]) -> str:
		matches = self.match(gender, traits)
		if not matches:
			return ""

		blocks = []
		for t in matches:
			eyes = t.get("eyeGuidance") or {}
			if _is_female(gender or ""):
				eye = "、".join(eyes.get("女性") or [])
			else:
				eye = "、".join(eyes.get("男性") or eyes.get("通用") or [])
			stage = t.get("stageGuidance") or {}
			lines = [
				f"**{t.get('name', '')}**（{t.get('description', '')}）",
				f"- 核心气质词：{'、'.join(t.get('keyFeatures') or [])}",
				f"- 色彩方向：{t.get('colorDirection', '')}",
			]
			if eye:
				lines.append(f"- 眼神参考：{eye}")
			lines.append(f"- 服装思考：{stage.get('costume') or '参考色彩方向与核心气质词'}")
			blocks.append("\n".join(lines))

		return (
			"### 气质参考（推荐模板，供专业判断，非硬性规则）\n\n"
			+ "\n\n".join(blocks)
			+ "\n\n> 思考：以上气质模板是否符合这个角色？如果有更贴切的气质方向，请以角色实际为准。"
		)

	def for_appearance(self, gender: str, traits: Sequence[str]) -> str:
		matches = self.match(gender, traits)
		if not matches:
			return ""
		lines = []
		for t in matches:
			guide = (t.get("stageGuidance") or {}).get("appearance")
			if not guide:
				guide = f"思考如何通过五官体现\"{'、'.join(t.get('keyFeatures') or [])}\"的气质"
			lines.append(f"**{t.get('name', '')}**：{guide}")
		return "### 气质外貌引导（提问式引导，供专业判断）\n\n" + "\n".join(lines)
