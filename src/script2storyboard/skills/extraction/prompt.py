# -*- coding: utf-8 -*-
"""
extraction/prompt.py

角色提取 / 场景提取的 prompt。
"""

from __future__ import annotations

from typing import Sequence


CHARACTER_TEMPLATE = """# 任务：从剧本中提取角色，并生成AI生图用的外观描述

## 剧本内容
```
{script}
```

## 提取要求
1. 识别所有有台词或有动作描述的主要角色（不含群众演员如"高手们"）
2. 根据名字推断性别（名字偏中性则标"未知"）
3. 为每个角色创作详细的视觉外观描述（用于AI生图保持一致性）

## 外观描述要求
外观描述必须是可视化的设计说明，包含：发型发色、面部特征、身形体态、服饰造型、整体气质。

错误示例："少年，声音沙哑，双手合十"（这是动作描述，不是外观）
正确示例："浅棕色碎短发少年，深棕色狭长眼眸，五官清爽利落，身形高挑纤瘦，穿白色圆领T恤和黑色长裤，简约干净气质"

## 输出格式
直接输出JSON数组：
[
  {{"name": "晋安", "gender": "男", "appearance": "..."}}
]

第一个字符必须是 [，最后一个字符必须是 ]
外观描述要详细具体，至少50字
"""


SCENE_TEMPLATE = """# 任务：从剧本中提取新场景

## 已知场景（不要重复提取以下场景）
{existing}

## 剧本内容
{scripts}

## 要求
1. 仔细阅读剧本，提取所有出现的场景地点
2. 排除已知场景，只提取新场景
3. 场景必须是具体的地点，不要提取角色名或剧情事件
4. 每个场景包含：name（简洁明确）、description（50-100字）、atmosphere（如"神秘、压抑"）、appearsInEpisodes（如[1, 3, 5]）

## 输出格式（严格JSON）
```json
{{"newScenes": [{{"name": "场景名称", "description": "...", "atmosphere": "...", "appearsInEpisodes": [1]}}]}}
```

如果没有新场景，返回 {{"newScenes": []}}
"""

# 每集只取前面一段，控制 prompt 长度
SCRIPT_SAMPLE_CHARS = 3000


def build_character_prompt(script: str) -> str:
	return CHARACTER_TEMPLATE.format(script=script)


def build_scene_prompt(scripts: Sequence[tuple], existing_names: Sequence[str]) -> str:
	"""scripts: [(episode_number, text), ...]"""
	samples = "\n\n".join(f"=== 第{n}集 ===\n{text[:SCRIPT_SAMPLE_CHARS]}" for n, text in scripts)
	return SCENE_TEMPLATE.format(existing="、".join(existing_names) or "（无）", scripts=samples)
