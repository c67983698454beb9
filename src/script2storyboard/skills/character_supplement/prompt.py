# -*- coding: utf-8 -*-
"""
character_supplement/prompt.py

这个文件做什么：
- 拼角色补充五个阶段、形态清单、形态展开的 prompt；这里不调用模型。
- 几个纯函数：头身比例推导、颜色/服装类型锚点、外观三段式文本的拼接与拆分、
  形态相关剧本片段截取。

外观文本固定三段：
  【主体人物】人种/性别/年龄/时代/头身比例
  【外貌特征】发型/五官/肤色/气质
  【服饰造型】分层服装描述
形态展开按变化类型决定哪一段照抄、哪一段重写。
"""

from __future__ import annotations

import re
from typing import Dict, List, Sequence, Tuple

from .schema import CharacterAnalysis, FormSummary, TimelinePhase, VisualTags

SECTION_MAIN = "【主体人物】"
SECTION_FACE = "【外貌特征】"
SECTION_COSTUME = "【服饰造型】"

JSON_RULE = (
	"## 输出要求\n"
	"- 直接输出一个 ```json 代码块，里面是完整 JSON\n"
	"- JSON 里不要注释，不要尾逗号；找不到的字段输出 null\n"
)

SCRIPT_LIMIT = 8000
FORM_SCAN_LIMIT = 60000
CONTEXT_LIMIT = 1500

IDOL_WORDS = ("言情", "偶像", "甜宠")

CHANGE_TYPE_LABEL = {
	"costume": "换装（服装/造型改变为主，面容基本不变）",
	"makeup": "妆容变化（发型/妆容改变为主，服装基本不变）",
	"damage": "战损状态（外观损伤：衣物破损、伤口血迹等）",
	"transformation": "变身形态（体型/种族/气质整体变化，变化幅度最大）",
}

COLOR_FAMILIES: List[Tuple[str, str, str]] = [
	("碧绿", "绿色系", "碧绿/墨绿/深绿/暗绿"),
	("翡翠绿", "绿色系", "翡翠绿/碧绿/墨绿/深绿"),
	("墨绿", "绿色系", "墨绿/深绿/暗绿"),
	("深绿", "绿色系", "深绿/墨绿/暗绿"),
	("暗绿", "绿色系", "暗绿/墨绿/深绿"),
	("紫色", "紫色系", "紫色/淡紫/深紫/紫罗兰"),
	("淡紫", "紫色系", "淡紫/浅紫/薰衣草紫"),
	("深紫", "紫色系", "深紫/暗紫/紫罗兰"),
	("蓝色", "蓝色系", "蓝色/霜蓝/深蓝/藏青"),
	("霜蓝", "蓝色系", "霜蓝/浅蓝/天蓝"),
	("深蓝", "蓝色系", "深蓝/藏青/靛蓝"),
	("白色", "白色系", "白色/月白/云白/米白"),
	("月白", "白色系", "月白/云白/米白"),
	("黑色", "黑色系", "黑色/玄色/墨色/深灰"),
	("玄色", "黑色系", "玄色/墨色/深灰"),
	("墨色", "黑色系", "墨色/玄色/深灰"),
	("红色", "红色系", "红色/暗红/朱红/绯红"),
	("暗红", "红色系", "暗红/深红/酒红"),
]

GARMENT_WORDS = ("大袍", "长袍", "道袍", "法袍", "短褂", "襦裙", "旗袍", "对襟", "长衫", "马褂", "斗篷")


def join_scripts(scripts: Sequence[Tuple[int, str]]) -> str:
	return "\n\n".join(f"【第{n}集】\n{text}" for n, text in scripts)


def _truncate(text: str, limit: int) -> str:
	if len(text) <= limit:
		return text
	return text[:limit] + "\n...(剧本过长，已截断)"


# ========== 外观三段式 ==========

def compose_appearance(main: str, face: str, costume: str = "") -> str:
	parts = [f"{SECTION_MAIN}{main.strip()}", f"{SECTION_FACE}{face.strip()}"]
	if costume.strip():
		parts.append(f"{SECTION_COSTUME}\n{costume.strip()}")
	return "\n".join(parts)


def split_appearance(text: str) -> Dict[str, str]:
	"""按三段标题拆开；没有标题的旧描述整段算外貌特征。"""
	text = text or ""
	if SECTION_MAIN not in text and SECTION_FACE not in text and SECTION_COSTUME not in text:
		return {"main": "", "face": text.strip(), "costume": ""}

	out = {"main": "", "face": "", "costume": ""}
	pattern = re.compile(f"({SECTION_MAIN}|{SECTION_FACE}|{SECTION_COSTUME})")
	pieces = pattern.split(text)
	key = {SECTION_MAIN: "main", SECTION_FACE: "face", SECTION_COSTUME: "costume"}
	for i in range(1, len(pieces), 2):
		out[key[pieces[i]]] = pieces[i + 1].strip() if i + 1 < len(pieces) else ""
	return out


def merge_costume_section(appearance: str, costume: str) -> str:
	"""替换（或追加）【服饰造型】段，其他段不动。"""
	idx = (appearance or "").find(SECTION_COSTUME)
	head = appearance[:idx].rstrip() if idx >= 0 else (appearance or "").rstrip()
	if not head:
		return f"{SECTION_COSTUME}\n{costume.strip()}"
	return f"{head}\n{SECTION_COSTUME}\n{costume.strip()}"


# ========== 头身比例 / 锚点 ==========

def derive_body_proportions(a: CharacterAnalysis, beauty_level: str) -> str:
	"""年龄定基础比例，美型等级和社会阶层微调，角色定位夹紧。"""
	age = a.basic_info.specific_age
	group = a.basic_info.age_group
	ratio = 7.0
	if age:
		if age <= 12:
			ratio = 5.6
		elif age <= 17:
			ratio = 6.4
		elif age <= 60:
			ratio = 7.2
		else:
			ratio = 6.8
	elif group == "儿童":
		ratio = 5.6
	elif group == "少年":
		ratio = 6.4
	elif group in ("青年", "中年"):
		ratio = 7.2
	elif group == "老年":
		ratio = 6.8

	if beauty_level == "idealized":
		ratio += 0.3
	elif beauty_level == "realistic":
		ratio -= 0.3

	social = a.character_position.social_class
	if social == "富裕":
		ratio += 0.1
	elif social == "底层":
		ratio -= 0.1

	st = a.script_type
	idol = any(w in st.category for w in IDOL_WORDS) or "女频" in st.genre

	if ratio >= 6.2:
		role = a.character_position.role
		if role == "主角":
			lo, hi = 7.0, (8.0 if idol and beauty_level == "idealized" else 7.6)
		elif role == "反派":
			lo, hi = 6.6, 7.2
		else:
			lo, hi = 6.8, 7.4
		ratio = max(lo, min(ratio, hi))

	ratio = max(5.5, min(ratio, 8.0))

	if ratio >= 7.8:
		return "8头身黄金比例"
	if ratio >= 7.3:
		return "7.5头身标准比例"
	if ratio >= 6.8:
		return "7头身标准比例"
	if ratio >= 6.3:
		return "6.5头身青少年比例"
	if ratio >= 5.8:
		return "6头身少年比例"
	return "5.5头身儿童比例"


def color_anchor(costume_desc: str) -> str:
	if not costume_desc:
		return "无明确颜色锚点，可根据角色气质自由选择"
	for word, family, suggestions in COLOR_FAMILIES:
		if word in costume_desc:
			return (
				f"剧本指定\"{word}\"，只约束【外层】主袍/外罩必须保持{family}（{suggestions}）；"
				f"允许同色系内调整深浅、饱和度、质感，不得跨色系改色。\n"
				f"- 【内层】使用中性色或对比色（白色/米白/浅灰/淡黄），禁止使用{family}\n"
				f"- 【中层】可用中性色或与外层形成层次的颜色\n"
				f"- 【鞋靴】优先中性色（黑色/棕色/深灰/银色）"
			)
	return "无明确颜色锚点，可根据角色气质自由选择。内层/中层/外层/鞋靴应形成层次，避免全同色系。"


def garment_anchor(costume_desc: str) -> str:
	if costume_desc:
		for word in GARMENT_WORDS:
			if word in costume_desc:
				return f"剧本指定\"{word}\"，主袍层必须保持{word}类型；允许优化材质、细节、配色，不得改变服装类型"
	return "无明确服装类型锚点，可根据角色身份、时代背景自由选择"


def _beauty_rule(level: str) -> str:
	if level == "idealized":
		return (
			"**美型程度**：理想美型（偶像剧/女频短剧标准）\n"
			"- 现代拍摄标准：款式符合时代，质感、剪裁、妆容使用现代标准\n"
			"- 五官精致立体，妆容精致但符合年龄（18-22岁清透淡妆）\n"
			"- 自然发色用深棕色/棕黑色，剧本明确染发时用剧本发色"
		)
	if level == "realistic":
		return "**美型程度**：真实朴素\n- 优先真实感，符合时代和社会阶层，不刻意美化"
	return "**美型程度**：平衡美型\n- 真实感与美感平衡，适度优化五官、皮肤、发型"


# ========== 阶段1 ==========

def build_analysis_prompt(name: str, gender: str, appearance: str, scripts: Sequence[Tuple[int, str]], missing: Sequence[str]) -> str:
	need = "、".join(missing) if missing else "全面补充所有缺失信息"
	return f"""# 角色补充 阶段1：剧本分析

你是一位资深剧本分析师。请分析角色"{name}"。

## 角色已有信息
- 姓名：{name}
- 性别：{gender or '未知'}
- 外观描述：{f'已有{len(appearance)}字' if appearance else '缺失'}

## 本次需要补充
{need}

## 剧本
```
{_truncate(join_scripts(scripts), SCRIPT_LIMIT)}
```

## 分析步骤
【Step 1.1】时代背景、性别、年龄段（儿童/少年/青年/中年/老年）、具体年龄、职业身份。
【Step 1.2】关键行为和性格特质；性格特质要写成能在外貌上体现的特征（如“油腻”而不是“自私”）。
【Step 1.3】角色定位（主角/配角/反派）和社会阶层（富裕/中产/底层）。
【Step 1.4】剧本类型、题材、美学方向。
【Step 1.5】主要场景（如 日常/职场/社交/战斗）、美学风格（真实/美化/华丽/时尚）、季节。
【Step 1.6】摘出剧本原文里对这个角色服饰、发型、妆容的直接描写（没有就留空）。
【Step 1.7】如果角色有多条时间线（前世/重生后、少年/成年），列出各阶段；单时间线输出空数组。

{JSON_RULE}
```json
{{
  "basicInfo": {{"era": "...", "gender": "男/女", "ageGroup": "青年", "specificAge": 20, "occupation": "..."}},
  "behaviorAnalysis": {{"keyBehaviors": ["..."], "personalityTraits": ["..."]}},
  "characterPosition": {{"role": "主角/配角/反派", "socialClass": "富裕/中产/底层"}},
  "scriptType": {{"category": "...", "genre": "...", "aestheticDirection": "...", "reasoning": "..."}},
  "sceneInfo": {{"mainScene": "日常", "specificScenes": ["..."]}},
  "aestheticStyle": {{"style": "美化"}},
  "seasonInfo": {{"season": "秋季"}},
  "scriptAppearanceDescription": {{"costumeDescription": "", "hairDescription": "", "makeupDescription": "", "otherDescription": ""}},
  "timelinePhases": [{{"label": "前世", "estimatedAge": 32, "era": "...", "identityState": "...", "markers": ["..."]}}]
}}
```
"""


# ========== 阶段2 ==========

def build_visual_tags_prompt(a: CharacterAnalysis, beauty_level: str, temperament_guide: str = "") -> str:
	b = a.basic_info
	return f"""# 角色补充 阶段2：视觉标签

你是一位资深角色设计师，请基于剧本分析设计5-8个视觉标签。

## 角色
- 性别：{b.gender}
- 年龄段：{b.age_group}
- 时代背景：{b.era}
- 性格特质：{'、'.join(a.behavior_analysis.personality_traits)}
- 剧本类型：{a.script_type.category}
- 美学方向：{a.script_type.aesthetic_direction}
- 社会阶层：{a.character_position.social_class}

{_beauty_rule(beauty_level)}

{temperament_guide}

## 要求
必须覆盖五个维度，每个维度至少1个标签：脸部特征、发型轮廓、色彩基调、材质工艺、辨识度细节。
每个标签：名称（简洁）、描述（20-30字静态视觉描述）、理由（15-20字）。
使用美学词汇，避免缺陷词汇，不写动态状态。

{JSON_RULE}
```json
{{"visualTags": [{{"tag": "...", "description": "...", "meaning": "..."}}]}}
```
"""


# ========== 阶段3 ==========

def build_appearance_prompt(
	a: CharacterAnalysis,
	tags: VisualTags,
	beauty_level: str,
	appearance_reference: str = "",
	temperament_guide: str = "",
) -> str:
	b = a.basic_info
	body = derive_body_proportions(a, beauty_level)
	sa = a.script_appearance_description
	script_part = ""
	if sa.has_appearance():
		rows = [f"**发型**：{sa.hair_description}" if sa.hair_description else "",
			f"**妆容**：{sa.makeup_description}" if sa.makeup_description else "",
			f"**其他**：{sa.other_description}" if sa.other_description else ""]
		script_part = (
			"## 剧本中的外貌描述（优先遵循）\n"
			+ "\n".join(r for r in rows if r)
			+ "\n受伤/狼狈/战损是剧情态，不写入常态外貌。\n"
		)
	age = f"{b.specific_age}岁" if b.specific_age else b.age_group
	tag_lines = "\n".join(f"- {t.tag}：{t.description}" for t in tags.visual_tags)
	traits = "、".join(a.behavior_analysis.personality_traits)

	return f"""# 角色补充 阶段3：外貌设计

你是一位资深角色造型师。本阶段产出角色的「日常完好状态」外貌，作为后续所有形态的基底；不要写剧情态。

{script_part}
{appearance_reference}

## 角色
- 性别：{b.gender}
- 年龄：{age}
- 时代背景：{b.era}
- 角色定位：{a.character_position.role}（{a.character_position.social_class}）
- 头身比例：{body}

## 视觉标签
{tag_lines}

{_beauty_rule(beauty_level)}

{temperament_guide}

## 要求
- 设计发型（发色、发质、长度）、眼睛、五官、妆容，和一个增加辨识度的细节
- 每个核心性格（{traits}）写出它落在发型/眼神/五官/体态上的视觉表现；负面性格不要美化
- 除非剧本明确写出长期伤疤/胎记，不设计脸部刀疤
- 描述必须确定（不用“或”）、静态、可视化、具体量化

{JSON_RULE}
```json
{{
  "hairDesign": "...",
  "eyesDesign": "...",
  "facialDesign": "...",
  "makeupDesign": "...",
  "uniqueFeature": "...",
  "finalDescription": {{
    "mainCharacter": "中国人，{b.gender}，{age}，{b.era}，{body}",
    "facialFeatures": "完整外貌描述（100-150字，只写发型、五官、妆容、面部特征，不写服装）"
  }},
  "appearanceConfig": {{
    "faceShape": "...", "eyes": "...", "brows": "...", "nose": "...", "lips": "...", "skin": "...",
    "hair": {{"style": "...", "length": "...", "texture": "...", "accessories": "..."}},
    "body": {{"proportion": "{body}", "bodyType": "...", "posture": "..."}},
    "uniqueMarks": ["..."]
  }}
}}
```
"""


# ========== 阶段4 ==========

def build_costume_prompt(
	a: CharacterAnalysis,
	tags: VisualTags,
	facial_features: str,
	beauty_level: str,
	costume_reference: str = "",
) -> str:
	b = a.basic_info
	sa = a.script_appearance_description
	script_part = ""
	if sa.has_any():
		script_part = (
			"## 剧本中的服饰描述（优先遵循）\n"
			f"服饰：{sa.costume_description or '（未写）'}\n\n"
			f"### 颜色锚点\n{color_anchor(sa.costume_description)}\n\n"
			f"### 服装类型锚点\n{garment_anchor(sa.costume_description)}\n"
		)
	tag_lines = "\n".join(f"- {t.tag}：{t.description}" for t in tags.visual_tags)

	return f"""# 角色补充 阶段4：服装设计

你是一位资深服装造型师。本阶段产出角色「日常完好状态」的服装，作为后续所有形态的基底；不要写剧情态。

{script_part}
{costume_reference}

## 角色
- 时代背景：{b.era}
- 性别：{b.gender}
- 主要场景：{a.scene_info.main_scene or '未知'}
- 社会阶层：{a.character_position.social_class}
- 性格特质：{'、'.join(a.behavior_analysis.personality_traits)}

## 外貌（阶段3）
{facial_features}

## 视觉标签
{tag_lines}

{_beauty_rule(beauty_level)}

## 要求
- 服饰必须符合时代背景和文化习俗；连体服装 bottom 填“无需单独下装”，分体服装 bottom 必须写具体款式和材质
- 每一层写清：材质纹理、剪裁版型、色彩花纹、工艺细节、新旧程度
- 内层/中层/外层/鞋靴形成色彩层次，避免全同色系；避免纯黑
- props 必须为空字符串；不写发型、面容、身材
- 只用中文

{JSON_RULE}
```json
{{
  "top": "...",
  "bottom": "...",
  "headwear": "...",
  "jewelry": "...",
  "props": "",
  "finalDescription": "【内层】...；【中层】...；【外层】...；【鞋靴】...；【腰带与挂件】...；【头饰】...；【首饰】...",
  "costumeConfig": {{
    "inner": {{"material": "...", "cut": "...", "color": "...", "pattern": "...", "details": "...", "wornState": "..."}},
    "middle": null,
    "outer": null,
    "bottom": {{"material": "...", "cut": "...", "color": "...", "pattern": "...", "details": "...", "wornState": "..."}},
    "shoes": {{"material": "...", "cut": "...", "color": "...", "pattern": "...", "details": "...", "wornState": "..."}},
    "accessories": {{"jewelry": "...", "belt": "...", "bag": "", "props": ""}}
  }}
}}
```
"""


# ========== 阶段5 ==========

def build_facts_prompt(a: CharacterAnalysis, name: str, script: str, missing: Sequence[str]) -> str:
	b = a.basic_info
	age = f"{b.age_group}（{b.specific_age}岁）" if b.specific_age else b.age_group
	tasks: List[str] = []
	fields: List[str] = []
	if "quote" in missing:
		tasks.append("### 经典台词/口头禅 (quote)\n优先用剧本里重复出现、能体现性格的原句；没有就生成一句符合性格的，并在 quoteSource 注明“生成（依据）”。")
		fields += ['"quote": "..."', '"quoteSource": "..."']
	if "abilities" in missing:
		tasks.append("### 能力/技能 (abilities)\n只写剧本明确提到的，每条不超过15个字；没有输出 null。")
		fields.append('"abilities": ["..."]')
	if "identityEvolution" in missing:
		tasks.append("### 身份演变 (identityEvolution)\n描述角色在剧本中的身份变化并附集数和原文证据；没有输出 null。")
		fields.append('"identityEvolution": "..."')

	return f"""# 角色补充 阶段5：角色事实

你是一位资深剧本分析师，请基于剧本为角色"{name}"补充信息。所有信息必须来自剧本，找不到就输出 null。

## 角色
- 性别：{b.gender}
- 年龄：{age}
- 角色定位：{a.character_position.role}
- 社会阶层：{a.character_position.social_class}
- 性格特质：{'、'.join(a.behavior_analysis.personality_traits)}

## 剧本
```
{_truncate(script, SCRIPT_LIMIT)}
```

## 任务
{chr(10).join(tasks)}

{JSON_RULE}
```json
{{{', '.join(fields)}}}
```
"""


# ========== 形态 ==========

def build_form_summary_prompt(name: str, appearance: str, script: str, phases: Sequence[TimelinePhase] = ()) -> str:
	hint = f"\n角色常态外貌简述：{appearance[:200]}" if appearance else ""
	timeline = ""
	if phases:
		rows = "\n".join(
			f"| {p.label} | {p.estimated_age or ''}岁 | {p.era} | {p.identity_state} | {'、'.join(p.markers)} |" for p in phases
		)
		timeline = (
			"\n## 角色时间线阶段\n\n| 阶段标签 | 年龄 | 时代 | 处境 | 识别关键词 |\n|---|---|---|---|---|\n"
			f"{rows}\n\n识别每个形态时，按上表判断它属于哪个阶段，并估算该阶段的年龄。\n"
		)

	return f"""# 任务：识别角色形态

你是专业的影视剧形态分析师。请从剧本中识别角色"{name}"在全剧中出现的外观明显变化形态。{hint}
{timeline}
## 只保留以下四类
| 类型 | 关键词 | 示例 |
|---|---|---|
| costume（换装） | 换衣服、穿上、戎装、正式场合 | 战甲形态、晚礼服形态 |
| makeup（妆容） | 浓妆、发型改变、染发、盘发 | 红唇浓妆形态、短发形态 |
| damage（战损） | 受伤、血迹、破损衣物、伤疤 | 战损形态、重伤形态 |
| transformation（变身） | 觉醒、变身、体型变化、形象突变 | 黑化觉醒、神魔状态 |

## 排除
- 纯情绪变化（没有外观变化）
- 一次性剧情瞬间（被打一下、哭一场）
- 与常态外观没有明显区别的日常状态

{JSON_RULE}
```json
{{
  "forms": [
    {{
      "name": "形态名称（4-8个字）",
      "changeType": "costume | makeup | damage | transformation",
      "episodeRange": "出现集数，如 12-15；不确定填空字符串",
      "triggerEvent": "触发事件（20字以内）",
      "sourceQuote": "剧本原文最有代表性的一句（50字以内）",
      "timelinePhase": null,
      "estimatedAge": null
    }}
  ]
}}
```

## 剧本
{script[:FORM_SCAN_LIMIT]}
"""


def _inheritance_rule(s: FormSummary) -> str:
	if s.change_type == "costume":
		return (
			"## 继承规则（换装）\n"
			f"- {SECTION_MAIN}：完整复制基础外貌原文\n"
			f"- {SECTION_FACE}：完整复制基础外貌原文\n"
			f"- {SECTION_COSTUME}：根据剧本原文全部重新设计，不保留基础外貌的服装"
		)
	if s.change_type == "makeup":
		return (
			"## 继承规则（妆容变化）\n"
			f"- {SECTION_MAIN}：完整复制基础外貌原文\n"
			f"- {SECTION_FACE}：在原文上局部更新发型和妆容，其余保持原文，改动处用“→”标注\n"
			f"- {SECTION_COSTUME}：基本复制原文，剧本有明确说明时微调"
		)
	if s.change_type == "damage":
		if s.timeline_phase:
			age = f"{s.estimated_age}岁" if s.estimated_age else "见上方元数据"
			judge = f"本形态属于时间线「{s.timeline_phase}」，年龄{age}，按情况A处理。"
		else:
			judge = "先判断：形态名称、触发事件、剧本原文是否指向另一个人生阶段（前世、重生前、幼年）？是则按情况A，否则按情况B。"
		age_rule = f"直接使用 {s.estimated_age}岁" if s.estimated_age else "按剧本推断该时期的实际年龄，不得套用基础外貌的年龄"
		return (
			"## 继承规则（战损）\n"
			f"{judge}\n\n"
			"### 情况A：不同时间线的损伤\n"
			f"- {SECTION_MAIN}：{age_rule}，人种/性别不变\n"
			f"- {SECTION_FACE}：按该时期的年龄和处境重新描述，再叠加损伤细节\n"
			f"- {SECTION_COSTUME}：不得引用基础外貌的服装，按该时期身份处境从零设计，再叠加破损细节\n\n"
			"### 情况B：当前时间线的损伤\n"
			f"- {SECTION_MAIN}：完整复制基础外貌原文\n"
			f"- {SECTION_FACE}：保留原文，追加血迹、伤口、瘀青、凌乱发丝等\n"
			f"- {SECTION_COSTUME}：保留款式材质色彩，追加撕裂、血污、泥土等破损细节"
		)
	return (
		"## 继承规则（变身）\n"
		f"- {SECTION_MAIN}：种族变化则重写并注明头身比例；只有年龄变化则更新年龄；只是气质变化则复制原文\n"
		f"- {SECTION_FACE}：按剧本依据全面重写，每处变化都要有剧本依据\n"
		f"- {SECTION_COSTUME}：按剧本依据全面重写"
	)


def build_form_detail_prompt(
	name: str,
	appearance: str,
	identity_evolution: str,
	s: FormSummary,
	context: str,
) -> str:
	evolution = ""
	if identity_evolution:
		evolution = f"\n## 角色人生轨迹\n{identity_evolution}\n基础外貌对应当前时间线；跨时间线形态要结合轨迹推断年龄和处境。\n"
	timeline = ""
	if s.timeline_phase or s.estimated_age:
		age = f"{s.estimated_age}岁" if s.estimated_age else "参考基础外貌"
		timeline = f"\n- 所属时间线：{s.timeline_phase or '当前时间线'}\n- 对应年龄：{age}（已判断，必须遵守）"

	return f"""# 任务：展开形态设计

你是专业的影视剧角色造型设计师。请为角色"{name}"的「{s.name}」形态生成完整的视觉设定。

## 基础外貌
{appearance or '（暂无基础外貌描述）'}
{evolution}
## 当前形态
- 形态名称：{s.name}
- 变化类型：{CHANGE_TYPE_LABEL.get(s.change_type, s.change_type)}
- 出现集数：{s.episode_range or '未标注'}
- 触发事件：{s.trigger_event}
- 剧本原文依据：「{s.source_quote}」{timeline}

## 相关剧本上下文
{context or '（无额外上下文）'}

{_inheritance_rule(s)}

## 输出
description 必须包含 {SECTION_MAIN}{SECTION_FACE}{SECTION_COSTUME} 三段，按上面的继承规则处理。

{JSON_RULE}
```json
{{
  "description": "{SECTION_MAIN}...{SECTION_FACE}...{SECTION_COSTUME}...",
  "visualPromptCn": "图像生成中文提示词（50字以内，突出与常态最显著的差异）",
  "visualPromptEn": "English image prompt (within 50 words, focus on the differences from the baseline)",
  "note": "与常态的核心差异（20字以内）"
}}
```
"""


_SCENE_HEADER = re.compile(r"【场景")


def script_context(scripts: Sequence[Tuple[int, str]], quote: str, limit: int = CONTEXT_LIMIT) -> str:
	"""
	取 quote 所在的整个场景块（上一个【场景…】到下一个）；
	场景块太长时以 quote 为中心各取一半。找不到返回空串。
	"""
	if not quote:
		return ""
	for n, content in scripts:
		idx = content.find(quote)
		if idx < 0:
			continue
		start = 0
		for m in _SCENE_HEADER.finditer(content):
			if m.start() > idx:
				break
			start = m.start()
		nxt = _SCENE_HEADER.search(content, idx + len(quote))
		end = nxt.start() if nxt else len(content)

		block = content[start:end]
		if len(block) <= limit:
			return f"【第{n}集片段】\n{block}"
		half = limit // 2
		lo = max(start, idx - half)
		hi = min(end, idx + len(quote) + half)
		return f"【第{n}集片段】\n{content[lo:hi]}"
	return ""

