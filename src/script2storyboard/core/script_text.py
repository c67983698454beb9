# -*- coding: utf-8 -*-
"""
script2storyboard/core/script_text.py

这个文件做什么：
- 剧本原文的确定性预处理（不调用模型）：
  1) clean_script_text：HTML 实体反转义、去广告行、压缩空行
  2) split_episodes：按“第X集”标题把整部剧本切成多集
- 集数来自标题里的数字（中文数字或阿拉伯数字），不是出现顺序。
- 第一个标题之前的文字（简介、人物表等）单独返回为 front_matter。
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from html import unescape
from typing import List, Optional, Tuple


# 集标题：第X集，X 支持中文数字与阿拉伯数字，可带【】包裹
# 例：第一集 初遇；【第12集】；第 3 集
_EPISODE_RE = re.compile(
	r"^\s*[【\[]?\s*第\s*([0-9]+|[零一二三四五六七八九十百千万两〇○]+)\s*集\s*[】\]]?\s*(.*?)\s*$",
	flags=re.UNICODE,
)


@dataclass
class EpisodeSeg:
	no: int
	title: str
	lines: List[str]

	@property
	def text(self) -> str:
		return "\n".join(self.lines)


def _looks_like_ad_line(line: str) -> bool:
	s = line.strip()
	if not s:
		return False

	low = s.lower()
	if "http://" in low or "https://" in low:
		return True
	if "e-mail:" in low or "email:" in low:
		return True
	if "更多电子书" in s or ("电子书" in s and "访问" in s):
		return True
	if "下载" in s and ("访问" in s or "分享" in s):
		return True

	return False


def _normalize_blank_lines(lines: List[str]) -> List[str]:
	out: List[str] = []
	blank = 0

	for line in lines:
		if not line.strip():
			blank += 1
			if blank <= 1:
				out.append("")
			continue

		blank = 0
		out.append(line)

	while out and not out[0].strip():
		out.pop(0)
	while out and not out[-1].strip():
		out.pop()

	return out


def cn_num_to_int(s: str) -> int:
	"""
	把中文数字（到“万”级）转为 int。
	支持：零一二三四五六七八九十百千两〇○万，也支持纯阿拉伯数字。
	"""
	s = s.strip()
	if not s:
		return 0

	if s.isdigit():
		return int(s)

	digit = {
		"零": 0, "〇": 0, "○": 0,
		"一": 1, "二": 2, "两": 2, "三": 3, "四": 4,
		"五": 5, "六": 6, "七": 7, "八": 8, "九": 9,
	}
	unit = {"十": 10, "百": 100, "千": 1000, "万": 10000}

	total = 0
	section = 0
	number = 0

	for ch in s:
		if ch in digit:
			number = digit[ch]
			continue

		if ch in unit:
			u = unit[ch]
			if u == 10000:
				section += number
				if section == 0:
					section = 1
				total += section * 10000
				section = 0
				number = 0
				continue

			# “十二”开头的“十” -> 10
			if number == 0:
				number = 1
			section += number * u
			number = 0

	return total + section + number


def detect_episode_heading(line: str) -> Optional[Tuple[int, str]]:
	m = _EPISODE_RE.match(line)
	if not m:
		return None

	no_raw = m.group(1)
	name = m.group(2).strip()
	no = cn_num_to_int(no_raw)
	title = f"第{no}集" + ((" " + name) if name else "")
	return no, title


def clean_script_text(text: str) -> str:
	lines = [unescape(raw).rstrip() for raw in text.splitlines()]
	lines = [ln for ln in lines if not _looks_like_ad_line(ln)]
	return "\n".join(_normalize_blank_lines(lines))


def split_episodes(text: str) -> Tuple[List[str], List[EpisodeSeg]]:
	"""
	返回：(front_matter_lines, episode_segments)，按集数排序。

	没有任何“第X集”标题时，整篇作为第 1 集。
	同一集数重复出现时，后出现的内容追加到前面那一集。
	"""
	lines = clean_script_text(text).splitlines()

	front: List[str] = []
	by_no: dict[int, EpisodeSeg] = {}

	cur: Optional[EpisodeSeg] = None

	for line in lines:
		head = detect_episode_heading(line)
		if head:
			no, title = head
			cur = by_no.get(no)
			if cur is None:
				cur = EpisodeSeg(no=no, title=title, lines=[])
				by_no[no] = cur
			continue

		if cur is None:
			front.append(line)
		else:
			cur.lines.append(line)

	if not by_no:
		body = _normalize_blank_lines(front)
		return [], ([EpisodeSeg(no=1, title="第1集", lines=body)] if body else [])

	segs = sorted(by_no.values(), key=lambda s: s.no)
	for s in segs:
		s.lines = _normalize_blank_lines(s.lines)

	return _normalize_blank_lines(front), segs
