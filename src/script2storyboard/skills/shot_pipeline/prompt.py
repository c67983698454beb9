# -*- coding: utf-8 -*-
"""
shot_pipeline/prompt.py

这个文件做什么：
- 拼五个阶段的 prompt，每个阶段只吃上一阶段“校验过的”结果。
- 这里不调用模型。

关键点：
- 每个 prompt 都要求按【Step X.X 执行中】写思考过程，最后在【最终输出】后给一个 ```json 代码块；
  解析器优先找这个代码块，思考过程可以单独抽出来看。
- 阶段4每次只给一批镜头（默认 6 个），避免输出过长被截断。
"""

from __future__ import annotations

import json
from typing import Any, Dict, Sequence

from .schema import ScriptAnalysis, ShotListItem, ShotPlanning, VisualStrategy

ROLE = "你是一位资深电影分镜师，精通《Framed Ink》系列构图理论。"

FINAL_OUTPUT_RULE = (
	"## 输出要求\n"
	"- 先按步骤写思考过程，每步以【Step X.X 执行中】开头，后面写“思考过程：”\n"
	"- 最后写【最终输出】，紧接一个 ```json 代码块，里面是完整 JSON\n"
	"- JSON 里不要注释，不要尾逗号\n"
)


def _dump(obj: Any) -> str:
	return json.dumps(obj, ensure_ascii=False, indent=2)


def build_stage1_prompt(script: str, constraints: str = "") -> str:
	extra = ""
	if constraints:
		extra = f"\n## 已识别的设定约束（后续所有画面必须遵守）\n{constraints}\n"

	return f"""# 阶段1：剧本分析

{ROLE}

## 剧本
```
{script}
```
{extra}
## 推理步骤

【Step 1.1】提取基本信息：地点、出场角色、时间跨度、关键事件（按时间顺序）。
【Step 1.2】分析情绪弧线：每个关键事件对应的情绪和强度（1-10）。
【Step 1.3】找出高潮和核心冲突（类型 + 描述）。
【Step 1.4】划分场景段落：每段给 id（S1、S2…）、描述、预估时长、情绪。

{FINAL_OUTPUT_RULE}
```json
{{
  "basicInfo": {{"location": "...", "characters": ["..."], "timespan": "...", "keyEvents": ["..."]}},
  "emotionArc": [{{"event": "...", "emotion": "...", "intensity": 7}}],
  "climax": "...",
  "conflict": {{"type": "...", "description": "..."}},
  "scenes": [{{"id": "S1", "description": "...", "duration": "20秒", "mood": "..."}}]
}}
```
"""


def _analysis_summary(a: ScriptAnalysis) -> str:
	lines = [
		f"- 地点：{a.basic_info.location}",
		f"- 角色：{'、'.join(a.basic_info.characters)}",
		f"- 时长：{a.basic_info.timespan}",
		f"- 关键事件：{' → '.join(a.basic_info.key_events)}",
		"",
		"### 情绪弧线",
	]
	lines += [f"- {e.event}：{e.emotion}（强度{e.intensity:g}）" for e in a.emotion_arc]
	lines += ["", f"### 高潮\n{a.climax}", "", f"### 核心冲突\n- 类型：{a.conflict.type}\n- 描述：{a.conflict.description}", "", "### 场景段落"]
	lines += [f"- {s.id or 'S?'}：{s.description or '未知'}（{s.duration or '待定'}，{s.mood or '待定'}）" for s in a.scenes]
	return "\n".join(lines)


def build_stage2_prompt(analysis: ScriptAnalysis, constraints: str = "") -> str:
	extra = f"\n### 必须遵守的画面约束\n{constraints}\n" if constraints else ""
	return f"""# 阶段2：视觉策略规划

{ROLE}

## 阶段1分析结果
{_analysis_summary(analysis)}
{extra}
## 推理步骤

【Step 2.1】整体视觉风格：视觉调性、色彩方案（主色/辅助色/强调色）、光影风格、构图倾向。
【Step 2.2】镜头语言策略：成片 90-110 秒，约 25-30 个镜头，每镜 3-5 秒。
  动态运镜为主，固定镜头不超过 10%；正面直视镜头整集不超过 1-2 个，常规镜头用 3/4 正面或侧面。
【Step 2.3】空间连续性：空间锚点、180 度轴线策略、前中后景层次。
【Step 2.4】节奏控制：按情绪强度给每个场景分配镜头数（高潮 4-6 个/段、发展 3-4 个、铺垫 1-2 个）。

{FINAL_OUTPUT_RULE}
```json
{{
  "overallStyle": {{"visualTone": "...", "colorPalette": {{"primary": "...", "secondary": "...", "accent": "..."}}, "lightingStyle": "...", "compositionTendency": "..."}},
  "cameraStrategy": {{"shotProgression": "...", "cameraMoveDistribution": {{"push": "20%", "static": "10%"}}, "keyMoments": [], "angleDistribution": "..."}},
  "spatialContinuity": {{"anchors": ["..."], "axisLineStrategy": "...", "depthLayers": {{"foreground": "...", "midground": "...", "background": "..."}}}},
  "rhythmControl": {{"overallPace": "...", "emotionDrivenAllocation": [{{"sceneId": "S1", "emotionIntensity": 8, "suggestedShotCount": 5}}], "totalSuggestedShots": 28}}
}}
```
"""


def build_stage3_prompt(script: str, analysis: ScriptAnalysis, strategy: VisualStrategy) -> str:
	return f"""# 阶段3：镜头规划

{ROLE}

## 剧本
```
{script}
```

## 阶段1分析结果
{_analysis_summary(analysis)}

## 阶段2视觉策略
```json
{_dump(strategy.to_json_dict())}
```

## 推理步骤

【Step 3.1】确定镜头总数（25-30）和按场景的分布。
【Step 3.2】画出节奏曲线：高潮前镜头逐渐变短，高潮后放缓。
【Step 3.3】逐个列出镜头：编号、所属场景、时长（秒）、景别（ELS/LS/MLS/MS/MCU/CU/ECU）、运镜、一句话简述。
  相邻镜头景别要有变化，同一场景内不跳轴。

{FINAL_OUTPUT_RULE}
```json
{{
  "shotCount": 28,
  "shotDistribution": {{"S1": 5, "S2": 8}},
  "pacingCurve": "...",
  "shotList": [{{"shotNumber": "#01", "sceneId": "S1", "duration": 4, "shotSize": "LS", "cameraMove": "push in", "briefDescription": "..."}}]
}}
```
"""


def _batch_lines(batch: Sequence[ShotListItem]) -> str:
	return "\n".join(
		f"**{s.shot_number}** ({s.scene_id})\n- 时长：{s.duration if s.duration is not None else 4}秒\n"
		f"- 景别：{s.shot_size}\n- 运镜：{s.camera_move}\n- 简述：{s.brief_description}"
		for s in batch
	)


def build_stage4_prompt(
	script: str,
	analysis: ScriptAnalysis,
	strategy: VisualStrategy,
	planning: ShotPlanning,
	batch: Sequence[ShotListItem],
) -> str:
	style = strategy.overall_style
	return f"""# 阶段4：逐镜详细设计

{ROLE}
为下面每个镜头生成详细视觉设计和 AI 生成提示词。

## 世界观与风格
- 地点：{analysis.basic_info.location}
- 视觉调性：{style.get('visualTone', '待定')}
- 色彩方案：{_dump(style.get('colorPalette') or {})}
- 光影风格：{style.get('lightingStyle', '待定')}
- 角色：{'、'.join(analysis.basic_info.characters)}
- 全集镜头数：{planning.shot_count}

## 原始剧本（只用于对白查找，storyBeat.dialogue 必须逐字引用原文）
【原始剧本文本开始】
{script}
【原始剧本文本结束】

## 待设计的镜头
{_batch_lines(batch)}

## 硬性要求
- 每个镜头的构图必须写清：景别、相机高度、相机朝向、前景、中景、后景、光影
- 前景用自然语言描述（如“浅景深，前景虚化的碎布”），不要写“边框”
- 运动镜头必须给出不同的起始帧和结束帧；固定镜头结束帧写“—”
- videoMode：有明确起止画面变化的运动镜头用 keyframe，其余用 i2v
- 正面(Front) 整集最多 2 个；固定镜头尽量少

{FINAL_OUTPUT_RULE}
```json
{{
  "shots": [
    {{
      "shotNumber": "#01",
      "videoMode": "keyframe",
      "storyBeat": {{"event": "...", "dialogue": "...", "sound": "..."}},
      "design": {{
        "composition": {{"shotSize": "LS", "cameraAngle": "eye level", "cameraDirection": "3/4 front", "depthLayers": {{"foreground": "...", "midground": "...", "background": "..."}}}},
        "lighting": {{"description": "..."}},
        "camera": {{"startFrame": "...", "endFrame": "...", "movement": "push in", "speed": "缓慢"}}
      }},
      "directorNote": "...",
      "technicalNote": "...",
      "aiPrompt": {{"visualCn": "...", "visualEn": "...", "videoPrompt": "...", "videoPromptCn": "..."}}
    }}
  ]
}}
```
"""


def _design_digest(designs: Sequence[Dict[str, Any]]) -> str:
	rows = []
	for d in designs:
		design = d.get("design") if isinstance(d.get("design"), dict) else d
		comp = design.get("composition") if isinstance(design.get("composition"), dict) else {}
		camera = design.get("camera") if isinstance(design.get("camera"), dict) else {}
		beat = d.get("storyBeat") if isinstance(d.get("storyBeat"), dict) else {}
		rows.append(
			f"- {d.get('shotNumber', '?')} | {comp.get('shotSize', '')} | {comp.get('cameraAngle', '')} | "
			f"{comp.get('cameraDirection', '')} | {camera.get('movement', '')} | {beat.get('event', '')}"
		)
	return "\n".join(rows)


def build_stage5_prompt(analysis: ScriptAnalysis, strategy: VisualStrategy, designs: Sequence[Dict[str, Any]]) -> str:
	return f"""# 阶段5：质量自检

{ROLE}
检查下面这份分镜是否达到可拍摄标准。

## 剧本分析
{_analysis_summary(analysis)}

## 视觉策略（节选）
```json
{_dump({"overallStyle": strategy.overall_style, "cameraStrategy": strategy.camera_strategy})}
```

## 镜头一览（编号 | 景别 | 高度 | 朝向 | 运镜 | 事件）
{_design_digest(designs)}

## 推理步骤

【Step 5.1】视角检查：是否滥用正面、视角是否服务情绪。
【Step 5.2】角度检查：高度和朝向分布是否单一。
【Step 5.3】连续性检查：轴线、空间锚点、角色位置是否前后一致。
【Step 5.4】情绪检查：节奏是否跟随情绪弧线，高潮是否有足够镜头。
【Step 5.5】总评分（0-10）和评级。

{FINAL_OUTPUT_RULE}
```json
{{
  "overallScore": 8.2,
  "rating": "良好",
  "categoryScores": {{"perspective": 8, "angle": 7, "continuity": 9, "emotion": 8}},
  "perspectiveCheck": {{"score": 8, "issues": ["..."]}},
  "angleCheck": {{"score": 7, "issues": []}},
  "continuityCheck": {{"score": 9, "issues": []}},
  "emotionCheck": {{"score": 8, "issues": []}},
  "issues": []
}}
```
"""
