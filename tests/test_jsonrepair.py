# -*- coding: utf-8 -*-
"""LLM JSON 提取与修复。"""

from __future__ import annotations

import pytest

from script2storyboard.core.jsonrepair import (
	extract_thinking,
	find_last_complete_structure,
	parse_llm_json,
	truncate_to_last_complete,
)
from script2storyboard.errors import OutputParseError


class TestParse:
	def test_final_output_block_wins(self):
		text = (
			"示例：\n```json\n{\"a\": 1}\n```\n"
			"【Step 1.1 执行中】\n思考过程：...\n"
			"【最终输出】\n```json\n{\"a\": 2}\n```\n"
		)
		assert parse_llm_json(text, required=("a",)) == {"a": 2}

	def test_plain_object_without_fence(self):
		assert parse_llm_json('好的，结果如下 {"a": [1, 2]} 以上。') == {"a": [1, 2]}

	def test_comments_and_trailing_commas(self):
		text = '```json\n{\n  // 注释\n  "a": [1, 2,],\n  /* 块注释 */ "b": "x//y",\n}\n```'
		assert parse_llm_json(text) == {"a": [1, 2], "b": "x//y"}

	def test_raw_newline_inside_string(self):
		text = '```json\n{"a": "line1\nline2"}\n```'
		assert parse_llm_json(text) == {"a": "line1\nline2"}

	def test_missing_comma_between_objects(self):
		text = '[{"a": 1}\n{"a": 2}]'
		assert parse_llm_json(text, want=list) == [{"a": 1}, {"a": 2}]

	def test_truncated_stream_keeps_complete_items(self):
		text = (
			'```json\n{"shots": [{"shotNumber": "01", "x": 1}, '
			'{"shotNumber": "02", "x": 2}, {"shotNumber": "03", "x'
		)
		obj = parse_llm_json(text, required=("shots",))
		assert [s["shotNumber"] for s in obj["shots"]] == ["01", "02"]

	def test_required_aliases(self):
		assert parse_llm_json('{"shotList": []}', required=[("shots", "shotList")]) == {"shotList": []}

	def test_missing_required_raises_with_raw_text(self):
		with pytest.raises(OutputParseError) as ei:
			parse_llm_json('{"a": 1}', required=("shots",))
		assert ei.value.raw_text == '{"a": 1}'

	def test_no_json_at_all(self):
		with pytest.raises(OutputParseError):
			parse_llm_json("模型拒绝回答。")


def test_find_last_complete_structure_skips_brackets_in_strings():
	text = '前面 {"a": "}"} 中间 [1, 2] 末尾 {"b": '
	assert find_last_complete_structure(text) == "[1, 2]"


def test_truncate_complete_input_returns_itself():
	assert truncate_to_last_complete('xx {"a": 1} yy') == '{"a": 1}'
	assert truncate_to_last_complete("no json") is None


def test_extract_thinking():
	text = (
		"【Step 1.1 执行中】\n思考过程：先看结构。\n"
		"【Step 1.2 执行中】\n思考过程：再看情绪。\n```json\n{}\n```\n"
		"【最终输出】\n```json\n{}\n```"
	)
	steps = extract_thinking(text)
	assert [s.step for s in steps] == ["1.1", "1.2"]
	assert steps[0].thinking == "先看结构。"
	assert steps[1].thinking == "再看情绪。"
