# -*- coding: utf-8 -*-
"""
script2storyboard/core/jsonrepair.py

这个文件做什么：
- 从 LLM 的流式文本里找出 JSON，并解析成 Python 对象。
- 正常路径：按优先级找候选片段，json.loads 严格解析。
- 兜底路径（best-effort recovery）：只有严格解析全部失败才会走。
  LLM 流可能在对象中间被截断，修复顺序：
  1) clean_json：去注释、去尾逗号
  2) strip_control_chars：去控制字符，字符串里的裸换行转义
  3) fix_common_errors：补对象之间漏掉的逗号、补未闭合的引号
  4) truncate_to_last_complete：截到最后一个完整元素，再补齐括号
  每一步的结果都必须带齐 required 字段才算成功。

候选片段优先级：
1) 【最终输出】后面的 ```json 代码块
2) 最后一个 ```json 代码块
3) 以 { 或 [ 开头的普通 ``` 代码块
4) 文本中最后一个完整的 {...} / [...]
5) 未闭合代码块 / 第一个括号到结尾（被截断时给兜底路径用）
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Iterable, Iterator, List, Optional, Sequence, Tuple, Union

from script2storyboard.errors import OutputParseError

logger = logging.getLogger(__name__)

RequiredKey = Union[str, Tuple[str, ...]]

_FINAL_OUTPUT_RE = re.compile(r"【最终输出】[\s\S]*?```json\s*([\s\S]*?)```")
_JSON_FENCE_RE = re.compile(r"```json\s*([\s\S]*?)```")
_PLAIN_FENCE_RE = re.compile(r"```[a-zA-Z]*\s*([\[{][\s\S]*?)```")
_CONTROL_RE = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")
_TRAILING_COMMA_RE = re.compile(r",(\s*[}\]])")

_CLOSERS = {"{": "}", "[": "]"}


def _scan_balanced(text: str, start: int) -> int:
	"""
	从 text[start]（必须是 { 或 [）开始，返回配对的闭括号下标；没闭合返回 -1。
	字符串和转义字符里的括号不计数。
	"""
	stack: List[str] = []
	in_str = False
	esc = False

	for i in range(start, len(text)):
		ch = text[i]
		if in_str:
			if esc:
				esc = False
			elif ch == "\\":
				esc = True
			elif ch == '"':
				in_str = False
			continue

		if ch == '"':
			in_str = True
		elif ch in _CLOSERS:
			stack.append(_CLOSERS[ch])
		elif ch in ("}", "]"):
			if not stack or stack[-1] != ch:
				return -1
			stack.pop()
			if not stack:
				return i

	return -1


def find_last_complete_structure(text: str) -> Optional[str]:
	"""顶层扫描，返回最后一个完整的 {...} 或 [...]。"""
	last: Optional[str] = None
	i = 0
	n = len(text)

	while i < n:
		if text[i] in _CLOSERS:
			end = _scan_balanced(text, i)
			if end < 0:
				i += 1
				continue
			last = text[i:end + 1]
			i = end + 1
			continue
		i += 1

	return last


def _candidates(text: str) -> List[str]:
	out: List[str] = []

	m = _FINAL_OUTPUT_RE.search(text)
	if m:
		out.append(m.group(1))

	blocks = _JSON_FENCE_RE.findall(text)
	if blocks:
		out.append(blocks[-1])

	plain = _PLAIN_FENCE_RE.findall(text)
	if plain:
		out.append(plain[-1])

	last = find_last_complete_structure(text)
	if last:
		out.append(last)

	# 截断时 ```json 可能没有闭合
	k = text.rfind("```json")
	if k >= 0 and text.find("```", k + 7) < 0:
		out.append(text[k + 7:])

	starts = [p for p in (text.find("{"), text.find("[")) if p >= 0]
	if starts:
		out.append(text[min(starts):])

	seen = set()
	uniq: List[str] = []
	for c in out:
		c = c.strip()
		if c and c not in seen:
			seen.add(c)
			uniq.append(c)
	return uniq


def extract_json_text(text: str) -> Optional[str]:
	c = _candidates(text)
	return c[0] if c else None


def _strip_comments(s: str) -> str:
	out: List[str] = []
	i = 0
	n = len(s)
	in_str = False
	esc = False

	while i < n:
		ch = s[i]
		if in_str:
			out.append(ch)
			if esc:
				esc = False
			elif ch == "\\":
				esc = True
			elif ch == '"':
				in_str = False
			i += 1
			continue

		if ch == '"':
			in_str = True
			out.append(ch)
			i += 1
			continue

		if s.startswith("//", i):
			j = s.find("\n", i)
			i = n if j < 0 else j
			continue

		if s.startswith("/*", i):
			j = s.find("*/", i + 2)
			i = n if j < 0 else j + 2
			continue

		out.append(ch)
		i += 1

	return "".join(out)


def clean_json(s: str) -> str:
	s = _strip_comments(s)
	return _TRAILING_COMMA_RE.sub(r"\1", s).strip()


def strip_control_chars(s: str) -> str:
	out: List[str] = []
	in_str = False
	esc = False

	for ch in s:
		if in_str:
			if esc:
				esc = False
				out.append(ch)
				continue
			if ch == "\\":
				esc = True
				out.append(ch)
				continue
			if ch == '"':
				in_str = False
				out.append(ch)
				continue
			if ch == "\n":
				out.append("\\n")
				continue
			if ch == "\r":
				continue
			if ch == "\t":
				out.append("\\t")
				continue
		elif ch == '"':
			in_str = True

		out.append(ch)

	return _CONTROL_RE.sub("", "".join(out))


def _count_unescaped_quotes(s: str) -> int:
	n = 0
	esc = False
	for ch in s:
		if esc:
			esc = False
			continue
		if ch == "\\":
			esc = True
		elif ch == '"':
			n += 1
	return n


def fix_common_errors(s: str) -> str:
	s = re.sub(r"}\s*{", "},{", s)
	s = re.sub(r"]\s*\[", "],[", s)
	s = re.sub(r'"\s*\n(\s*)"', r'",\n\1"', s)
	s = re.sub(r"(\d|true|false|null|[}\]])\s*\n(\s*)\"", r'\1,\n\2"', s)

	if _count_unescaped_quotes(s) % 2 == 1:
		s += '"'
	return s


def truncate_to_last_complete(s: str) -> Optional[str]:
	"""
	按深度扫描（跳过字符串和转义），记录每个“完整元素结束”的位置：
	- 数组里的逗号之前、顶层对象成员之间的逗号之前
	- 每个闭括号之后
	截到最后一个位置，再按当时未闭合的括号补齐。
	数组里写了一半的对象整个丢掉，不保留半截字段。
	顶层已经完整时直接返回第一个完整结构。
	"""
	start = -1
	for i, ch in enumerate(s):
		if ch in _CLOSERS:
			start = i
			break
	if start < 0:
		return None

	stack: List[str] = []
	in_str = False
	esc = False
	cut: Optional[Tuple[int, List[str]]] = None

	for i in range(start, len(s)):
		ch = s[i]
		if in_str:
			if esc:
				esc = False
			elif ch == "\\":
				esc = True
			elif ch == '"':
				in_str = False
			continue

		if ch == '"':
			in_str = True
		elif ch in _CLOSERS:
			stack.append(_CLOSERS[ch])
		elif ch in ("}", "]"):
			if not stack or stack[-1] != ch:
				break
			stack.pop()
			if not stack:
				return s[start:i + 1]
			if stack[-1] == "]" or len(stack) == 1:
				cut = (i + 1, list(stack))
		elif ch == "," and stack and (stack[-1] == "]" or len(stack) == 1):
			cut = (i, list(stack))

	if cut is None:
		return None

	pos, open_stack = cut
	return s[start:pos] + "".join(reversed(open_stack))


def _recovery_steps(candidate: str) -> Iterator[Tuple[str, str]]:
	s1 = clean_json(candidate)
	yield "clean_json", s1
	s2 = strip_control_chars(s1)
	yield "strip_control_chars", s2
	s3 = fix_common_errors(s2)
	yield "fix_common_errors", s3
	for name, base in (("truncate", s2), ("fix+truncate", s3)):
		t = truncate_to_last_complete(base)
		if t is not None:
			yield name, t


def _has_required(obj: Any, required: Sequence[RequiredKey]) -> bool:
	if not required:
		return True
	if not isinstance(obj, dict):
		return False
	for key in required:
		options = (key,) if isinstance(key, str) else key
		if not any(k in obj for k in options):
			return False
	return True


def _accept(obj: Any, required: Sequence[RequiredKey], want: Optional[type]) -> bool:
	if want is not None and not isinstance(obj, want):
		return False
	return _has_required(obj, required)


def _try_load(s: str) -> Tuple[bool, Any]:
	try:
		return True, json.loads(s)
	except (json.JSONDecodeError, ValueError):
		return False, None


def parse_llm_json(
	text: str,
	required: Iterable[RequiredKey] = (),
	want: Optional[type] = dict,
) -> Any:
	"""
	required：必须存在的键；元组表示“任意一个别名存在即可”。
	want：期望的顶层类型（dict/list）；None 表示不限制。
	"""
	req = list(required)
	cands = _candidates(text)

	for c in cands:
		ok, obj = _try_load(c)
		if ok and _accept(obj, req, want):
			return obj

	# best-effort recovery
	for c in cands:
		for step, fixed in _recovery_steps(c):
			ok, obj = _try_load(fixed)
			if ok and _accept(obj, req, want):
				logger.warning("LLM JSON recovered by %s (len=%d)", step, len(text))
				return obj

	snip = text if len(text) <= 1000 else text[:1000] + "...(truncated)"
	raise OutputParseError(f"LLM output is not valid JSON. content_snip={snip}", raw_text=text)


@dataclass
class ThinkingStep:
	step: str
	thinking: str


_STEP_RE = re.compile(r"【Step\s*(\d+(?:\.\d+)*)\s*执行中】([\s\S]*?)(?=【Step\s*\d|【最终输出】|\Z)")


def extract_thinking(text: str) -> List[ThinkingStep]:
	"""抽出每个 Step 的“思考过程：”段落，给界面/日志展示用。"""
	out: List[ThinkingStep] = []
	for m in _STEP_RE.finditer(text):
		body = m.group(2)
		k = body.find("思考过程：")
		if k >= 0:
			body = body[k + len("思考过程："):]
		body = body.split("```", 1)[0].strip()
		out.append(ThinkingStep(step=m.group(1), thinking=body))
	return out
