# -*- coding: utf-8 -*-
"""
character_reference/beauty.py

剧本类型 -> 美型等级。题材词优先于场景词：
“现代都市言情”先命中“言情” -> idealized；“现代都市悬疑” -> realistic；其余 balanced。
"""

from __future__ import annotations

IDEALIZED_WORDS = (
	"仙侠", "玄幻", "奇幻", "修仙", "武侠", "女频", "言情", "偶像", "古装", "宫廷",
	"霸道总裁", "总裁", "甜宠", "耽美", "穿越", "重生", "玛丽苏", "霸总",
)

REALISTIC_WORDS = ("悬疑", "历史", "现实", "纪实", "犯罪", "推理")

BEAUTY_LEVEL_MAP = {
	"idealized": "极致美型",
	"balanced": "平衡",
	"realistic": "真实",
}


def beauty_level_by_genre(genre: str) -> str:
	g = (genre or "").lower()
	if any(w in g for w in IDEALIZED_WORDS):
		return "idealized"
	if any(w in g for w in REALISTIC_WORDS):
		return "realistic"
	return "balanced"
