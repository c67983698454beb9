# -*- coding: utf-8 -*-
"""
review/prompt.py

审核 prompt 和优化 prompt。镜头数据用 camelCase JSON 喂给模型（和落盘格式一致）。
"""

from __future__ import annotations

import json
from typing import Any, Dict, List, Sequence

from .schema import ReviewSuggestion

MIN_SHOTS = 24

DEFAULT_CRITERIA = "叙事清晰、构图服务情绪、首尾帧具体、镜头多样、空间连续。"


def shot_count_warning(n: int) -> str:
	if n >= MIN_SHOTS:
		return ""
	return f"⚠️ 当前只有 {n} 个镜头，少于 {MIN_SHOTS} 个，第一条建议必须指出镜头数量不足并要求增加。"


def build_review_prompt(shots: List[Dict[str, Any]], criteria: str = DEFAULT_CRITERIA) -> str:
	n = len(shots)
	return f"""角色：资深动画导演 / 分镜审核专家

## 审核标准
{criteria}
{shot_count_warning(n)}

## 审核重点
0. 镜头数量：当前共 {n} 个镜头，少于 {MIN_SHOTS} 个必须在第一条建议中指出
1. 叙事连贯性：每个镜头讲什么是否清楚
2. 构图合理性：景别、角度是否符合情绪，有没有过多平视或中景
3. 动线清晰度：角色移动路径是否明确，是否遵守180度法则
4. 首尾帧质量：运动镜头的首帧和尾帧是否足够具体
5. 视觉多样性：避免连续相同的景别或角度
6. 空间连续性：相邻镜头的角色位置、环境方位是否连贯

## 输出要求
- 全部用中文
- 返回 JSON 数组，每项：shotNumber（如 "01"，全局问题用 "GLOBAL"）、suggestion、reason

示例：
[
  {{"shotNumber": "GLOBAL", "suggestion": "镜头数量不足，需要增加", "reason": "90秒成片需要24-30个镜头"}},
  {{"shotNumber": "05", "suggestion": "将平视改为低角度仰拍", "reason": "敌人出场，低角度增加威胁感"}}
]

## 分镜数据（共{n}个镜头）
{json.dumps(shots, ensure_ascii=False)}
"""


def build_optimize_prompt(shots: List[Dict[str, Any]], suggestions: Sequence[ReviewSuggestion]) -> str:
	items = "\n".join(f"- [{s.shot_number}] {s.suggestion}（{s.reason}）" for s in suggestions)
	return f"""角色：资深动画导演

按下面的审核建议修改分镜脚本。

## 审核建议
{items}

## 规则
- 只改建议涉及的镜头和字段，其余字段原样保留
- 保留每个镜头的 shotNumber；需要新增镜头时给新的编号
- 运动镜头必须有具体的起始帧和结束帧

## 输出格式
只返回修改后的完整镜头 JSON 数组（字段名与输入一致）。

## 当前分镜
{json.dumps(shots, ensure_ascii=False)}
"""
