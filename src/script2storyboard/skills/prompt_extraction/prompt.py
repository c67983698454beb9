# -*- coding: utf-8 -*-
"""
prompt_extraction/prompt.py

只描述画面内容，不含美术风格；风格在生成九宫格时由用户选。
"""

from __future__ import annotations

import json
from typing import Any, Dict, List, Sequence

from script2storyboard.core.schemas.shot import Shot


def _shot_brief(s: Shot) -> Dict[str, Any]:
	return {
		"shotNumber": s.shot_number,
		"shotType": s.shot_type,
		"duration": s.duration,
		"storyBeat": s.story_beat,
		"shotSize": s.shot_size,
		"angleHeight": s.angle_height,
		"angleDirection": s.angle_direction,
		"foreground": s.foreground,
		"midground": s.midground,
		"background": s.background,
		"lighting": s.lighting,
		"cameraMove": s.camera_move,
		"startFrame": s.start_frame,
		"endFrame": s.end_frame,
	}


def build_extract_prompt(shots: Sequence[Shot]) -> str:
	data: List[Dict[str, Any]] = [_shot_brief(s) for s in shots]
	return f"""你是专业的AI绘图提示词工程师。

## 任务
从分镜脚本中提取纯画面描述的生图提示词和视频提示词。

## 公式
[主体描述] + [环境/背景] + [动作/状态] + [技术参数(景别/角度/光影)]

## 规则
1. 禁止包含美术风格词（ink sketch、pencil drawing、watercolor、anime style、线稿、水墨、素描、漫画风格）
2. 静态镜头只写 imagePromptCn/En；运动镜头还要写 endImagePromptCn/En（尾帧）
3. 中文用摄影术语（“中景拍摄，镜头略微从下方拍摄，轻微向右转。”），不要写 “中景(MS)，轻微仰拍(5-15°)”
4. 英文用自然语言（"A medium shot of ..., captured from slightly below."），禁止 (medium shot:1.2) 这种权重格式
5. videoGenPrompt 用中文，以“从首帧到尾帧”开头，写清镜头运动、主体动作、环境变化、节奏和时长

## 输出
只返回 JSON 数组：
[
  {{"shotNumber": "01", "imagePromptCn": "...", "imagePromptEn": "...", "endImagePromptCn": "", "endImagePromptEn": "", "videoGenPrompt": "从首帧到尾帧，..."}}
]

## 分镜数据
{json.dumps(data, ensure_ascii=False)}
"""
