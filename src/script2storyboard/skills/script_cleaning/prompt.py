# -*- coding: utf-8 -*-
"""
script_cleaning/prompt.py

只拼 prompt，不调模型。
"""

from __future__ import annotations


_TEMPLATE = """# 任务：剧本清洗与预处理

你是一位资深电影分镜师，需要对剧本进行"清洗"，分离画面内容和非画面信息。

## 原始剧本
```
{script}
```

## 清洗规则

### 1. 信息分类
| 类型 | 处理方式 | 举例 |
|-----|---------|------|
| 角色动作 | 提取为画面内容 | "晋安双手合十" |
| 场景描述 | 提取为画面内容 | "波纹扩散" |
| 对白 | 单独提取 | "抓到你了……" |
| 字幕/UI | 提取为画内元素 | "[警告：核心温度 300%]" |
| 音效 | 提取为情绪标签 | "音效：滋滋声" → 情绪：紧张 |
| BGM | 提取为情绪标签 | "BGM：紧张音" → 情绪：恐惧 |
| 时间码 | 记录后忽略 | "(8–18s)" |
| 镜头建议 | 记录为参考 | "镜头：中景→特写" |

### 2. 提取设定约束
识别剧本中的规则/设定，这些在后续分镜中必须遵守：
- 如"无物理杀伤力" → 禁止画物体破碎/爆炸
- 如"虚拟空间" → 可以有数字化视觉效果

### 3. 评估剧情权重
- high: 核心事件/高潮/转折 → 建议3-5个镜头
- medium: 重要情节 → 建议2-3个镜头
- low: 铺垫/过渡 → 建议1-2个镜头

## 输出格式

严格要求：直接输出JSON对象，不要任何解释文字！第一个字符必须是 {{，最后一个字符必须是 }}

{{
  "cleanedScenes": [
    {{"id": "01", "originalText": "...", "visualContent": "...", "dialogues": ["..."], "uiElements": [], "moodTags": ["紧张"]}}
  ],
  "audioEffects": ["..."],
  "musicCues": ["..."],
  "timeCodes": ["(8–18s)"],
  "cameraSuggestions": ["镜头：中景→特写"],
  "constraints": [{{"rule": "无物理杀伤力", "implication": "波纹不能破坏物体", "source": "原文片段"}}],
  "sceneWeights": [{{"sceneId": "01", "weight": "medium", "suggestedShots": 2, "reason": "开场铺垫"}}]
}}
"""


def build_cleaning_prompt(script: str) -> str:
	return _TEMPLATE.format(script=script)
