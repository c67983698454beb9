# -*- coding: utf-8 -*-
"""
character_reference/era.py

把项目里写的“时代背景”（可能是“90年代女频言情重生剧”这种长句）归一到参考表的时期键：
现代 / 90年代 / 80年代 / 民国 / 古代 / 玄幻修仙。

匹配顺序：
1) 精确匹配 ERA_MAPPING
2) 按 ERA_MAPPING 的顺序做子串匹配（先出现的键优先）
3) 关键词兜底
4) 四位年份按区间判断
5) 都不行返回原值（参考表里查不到时只用通用词汇）
"""

from __future__ import annotations

import logging
import re
from typing import Dict

logger = logging.getLogger(__name__)


def _years(lo: int, hi: int, era: str) -> Dict[str, str]:
	return {str(y): era for y in range(lo, hi + 1)}


ERA_MAPPING: Dict[str, str] = {}
ERA_MAPPING.update({"现代": "现代", "当代": "现代", "都市": "现代", "21世纪": "现代"})
ERA_MAPPING.update(_years(2000, 2026, "现代"))
ERA_MAPPING.update({"90年代": "90年代", "1990年代": "90年代", "九十年代": "90年代"})
ERA_MAPPING.update(_years(1990, 1999, "90年代"))
ERA_MAPPING.update({"80年代": "80年代", "1980年代": "80年代", "八十年代": "80年代"})
ERA_MAPPING.update(_years(1980, 1989, "80年代"))
ERA_MAPPING.update({"民国": "民国", "民国时期": "民国"})
ERA_MAPPING.update(_years(1912, 1949, "民国"))
ERA_MAPPING.update({
	"古代": "古代", "古装": "古代", "古风": "古代",
	"秦朝": "古代", "汉朝": "古代", "唐朝": "古代", "宋朝": "古代",
	"元朝": "古代", "明朝": "古代", "清朝": "古代", "古代中国": "古代",
	"武侠": "古代", "架空": "古代",
})
ERA_MAPPING.update({
	"玄幻修仙": "玄幻修仙", "修仙": "玄幻修仙", "玄幻": "玄幻修仙",
	"修真": "玄幻修仙", "仙侠": "玄幻修仙", "架空玄幻": "玄幻修仙",
	"架空修仙": "玄幻修仙",
})

_YEAR_RE = re.compile(r"(\d{4})")


def normalize_era(era: str) -> str:
	if era in ERA_MAPPING:
		return ERA_MAPPING[era]

	for key, value in ERA_MAPPING.items():
		if key in era:
			logger.debug("era fuzzy match: %r -> %s", era, value)
			return value

	if any(k in era for k in ("玄幻", "修仙", "修真", "仙侠")):
		return "玄幻修仙"
	if any(k in era for k in ("架空", "武侠", "古风")):
		return "古代"
	if "民国" in era:
		return "民国"
	if any(k in era for k in ("现代", "当代", "都市")):
		return "现代"

	m = _YEAR_RE.search(era)
	if m:
		year = int(m.group(1))
		if year >= 2000:
			return "现代"
		if year >= 1990:
			return "90年代"
		if year >= 1980:
			return "80年代"
		if year >= 1912:
			return "民国"
		return "古代"

	logger.info("era not recognized, keep as is: %r", era)
	return era
