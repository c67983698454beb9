# -*- coding: utf-8 -*-
"""
shot_pipeline/parser.py

把每个阶段的 LLM 文本变成校验过的模型。

阶段1的字段名很不稳定，先归一再校验：
- emotionAnalysis 存在时，从里面取 emotionArc / climax
- 场景可能叫 scenes / sceneBreakdown / sceneDivision / sceneSegments / segments / paragraphs，
  也可能是 dict（取 values）
- 冲突可能叫 conflict / conflictAnalysis / coreConflict / mainConflict
- 完全没有场景时，按情绪弧线推断（每个情绪点一个场景）

阶段4的批量输出也可能用不同的键包起来，或者直接就是数组。
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Sequence

from script2storyboard.core.jsonrepair import parse_llm_json
from script2storyboard.errors import OutputParseError
from script2storyboard.skills.models import parse_model

from .schema import QualityCheck, ScriptAnalysis, ShotPlanning, VisualStrategy

logger = logging.getLogger(__name__)

SCENE_ALIASES = ("scenes", "sceneBreakdown", "sceneDivision", "sceneSegments", "segments", "paragraphs")
CONFLICT_ALIASES = ("conflict", "conflictAnalysis", "coreConflict", "mainConflict")
BATCH_ALIASES = ("shots", "shotDesigns", "shotList", "designs", "shotDetails", "镜头列表", "镜头设计")

STAGE2_REQUIRED = ("overallStyle", "cameraStrategy", "spatialContinuity", "rhythmControl")
STAGE3_REQUIRED = ("shotCount", "shotDistribution", "pacingCurve", "shotList")


def try_field_aliases(data: Dict[str, Any], aliases: Sequence[str]) -> Any:
	for k in aliases:
		v = data.get(k)
		if v:
			return v
	return None


def infer_scenes(emotion_arc: Sequence[Any]) -> List[Dict[str, Any]]:
	scenes = []
	for i, e in enumerate(emotion_arc):
		e = e if isinstance(e, dict) else {}
		scenes.append({
			"id": f"S{i + 1}",
			"description": e.get("event") or f"场景{i + 1}",
			"duration": "30秒",
			"mood": e.get("emotion") or "待定",
		})
	return scenes


def normalize_stage1(data: Dict[str, Any]) -> Dict[str, Any]:
	out = dict(data)

	emo = data.get("emotionAnalysis")
	if isinstance(emo, dict):
		if not out.get("emotionArc") and emo.get("emotionArc"):
			out["emotionArc"] = emo["emotionArc"]
		if not out.get("climax") and emo.get("climax"):
			out["climax"] = emo["climax"]

	scenes = try_field_aliases(data, SCENE_ALIASES)
	if isinstance(scenes, dict):
		scenes = list(scenes.values())
	if not scenes and isinstance(out.get("emotionArc"), list) and out["emotionArc"]:
		scenes = infer_scenes(out["emotionArc"])
		logger.warning("stage1: no scenes in output, inferred %d from emotionArc", len(scenes))
	if scenes:
		out["scenes"] = scenes

	conflict = try_field_aliases(data, CONFLICT_ALIASES)
	if conflict:
		out["conflict"] = conflict

	missing = [k for k in ("basicInfo", "emotionArc", "climax", "conflict", "scenes") if not out.get(k)]
	if missing:
		raise OutputParseError(f"stage1 missing fields: {missing}", raw_text="")
	return out


def parse_stage1(text: str) -> ScriptAnalysis:
	data = parse_llm_json(text, required=("basicInfo",))
	try:
		data = normalize_stage1(data)
	except OutputParseError as e:
		raise OutputParseError(str(e), raw_text=text) from e
	return parse_model(ScriptAnalysis, data, raw_text=text)


def parse_stage2(text: str) -> VisualStrategy:
	data = parse_llm_json(text, required=STAGE2_REQUIRED)
	return parse_model(VisualStrategy, data, raw_text=text)


def parse_stage3(text: str) -> ShotPlanning:
	data = parse_llm_json(text, required=STAGE3_REQUIRED)
	return parse_model(ShotPlanning, data, raw_text=text)


def parse_stage4_batch(text: str) -> List[Dict[str, Any]]:
	data = parse_llm_json(text, want=None)
	if isinstance(data, list):
		shots = data
	elif isinstance(data, dict):
		shots = try_field_aliases(data, BATCH_ALIASES)
		if shots is None and "shotNumber" in data:
			shots = [data]
	else:
		shots = None

	if not isinstance(shots, list) or not shots:
		raise OutputParseError("stage4 batch has no shot list", raw_text=text)
	return [s for s in shots if isinstance(s, dict)]


def parse_stage5(text: str) -> QualityCheck:
	data = parse_llm_json(text, required=("overallScore",))
	return parse_model(QualityCheck, data, raw_text=text)
