# -*- coding: utf-8 -*-
"""
grid/prompt.py

这个文件做什么：
- 构建“九宫格分镜草图”的生图提示词：一张 16:9 图，3×3 格子，每格一个镜头。
- 运动镜头一格画首帧+尾帧（左右分割），静态镜头一格一帧。
- 每格左上角标注 “#镜号 | 时长 | 中文角度”。
- 角度给出精确的英文描述，避免生图模型把 3/4 正面画成正面。

注意：
- 只拼字符串，不调用任何接口。
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

from script2storyboard.core.grid import GRID_SIZE
from script2storyboard.core.schemas.project import CharacterRef, SceneRef
from script2storyboard.core.schemas.shot import Shot

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StoryboardStyle:
	id: str
	name: str
	description: str
	prompt_suffix: str
	prompt_suffix_cn: str


STORYBOARD_STYLES: List[StoryboardStyle] = [
	StoryboardStyle(
		"rough_sketch", "粗略线稿", "最快出图，极简黑白线条",
		"rough pencil sketch, quick gesture drawing, minimal lines, black and white, no shading, storyboard style",
		"粗略铅笔线稿，快速动态草图，极简线条，黑白，无阴影，分镜风格",
	),
	StoryboardStyle(
		"pencil_draft", "铅笔草图", "传统铅笔质感，适度阴影",
		"pencil sketch, graphite drawing, light hatching, grayscale, rough texture, film storyboard",
		"铅笔素描，石墨画，轻微排线，灰度，粗糙质感，电影分镜",
	),
	StoryboardStyle(
		"ink_wash", "水墨速写", "东方水墨风格，写意笔触",
		"ink wash painting, sumi-e style, brush strokes, black ink on white, minimal detail, zen aesthetic",
		"水墨画，写意风格，毛笔笔触，黑墨白底，极简细节，禅意美学",
	),
	StoryboardStyle(
		"comic_bw", "漫画线稿", "清晰线条，漫画分镜感",
		"manga storyboard, clean black ink lines, comic panel style, high contrast, no screentone, professional manga draft",
		"漫画分镜，清晰黑色线条，漫画格风格，高对比度，无网点，专业漫画草稿",
	),
	StoryboardStyle(
		"charcoal", "炭笔速写", "粗犷炭笔，强烈明暗",
		"charcoal drawing, expressive strokes, dramatic lighting, smudged edges, rough artistic sketch",
		"炭笔画，表现性笔触，戏剧性光影，模糊边缘，粗犷艺术速写",
	),
	StoryboardStyle(
		"blueprint", "蓝图风格", "技术图纸感，适合科幻",
		"blueprint style, technical drawing, white lines on dark blue, schematic, engineering diagram aesthetic",
		"蓝图风格，技术图纸，深蓝底白线，示意图，工程图纸美学",
	),
]

DEFAULT_STYLE_SUFFIX = "rough sketch, black and white, storyboard style"


def get_style(style_id: str) -> StoryboardStyle:
	for s in STORYBOARD_STYLES:
		if s.id == style_id:
			return s
	raise ValueError(f"unknown storyboard style: {style_id}")


_FRONT = "front view, face looking DIRECTLY at camera (0° horizontal rotation), both eyes and ears equally visible"
_THREE_Q_FRONT = "(3/4 front view:1.3), face turned 35-45° away from camera, (one cheek more prominent:1.2), far ear partially hidden, clear asymmetric face"
_ONE_THIRD_SIDE = "1/3 side view, face turned 55-65° from camera, showing dominant profile with some far cheek visible"
_FULL_SIDE = "(perfect profile view:1.3), face turned exactly 90° from camera, (only one side of face visible:1.2), nose silhouette clear"
_ONE_THIRD_BACK = "1/3 back view, face turned 115-125° from camera, showing mostly profile with back of head visible"
_THREE_Q_BACK = "(3/4 back view:1.2), face turned 135-150° from camera, (mostly back of head:1.2), only ear and slight cheek contour visible"
_BACK = "(back view:1.3), showing only back of head (180° rotation), (no face visible:1.2), only hair and shoulders"
_POV = "(POV shot:1.4), (first-person perspective:1.3), viewing scene from character eyes, no character face visible in frame"

ANGLE_DIRECTION_PRECISION: Dict[str, str] = {
	"正面(Front)": _FRONT, "Front": _FRONT,
	"3/4正面(3/4 Front)": _THREE_Q_FRONT, "3/4 Front": _THREE_Q_FRONT,
	"1/3侧面(1/3 Side)": _ONE_THIRD_SIDE, "1/3 Side": _ONE_THIRD_SIDE,
	"正侧面(Full Side)": _FULL_SIDE, "Full Side": _FULL_SIDE,
	"1/3背面(1/3 Back)": _ONE_THIRD_BACK, "1/3 Back": _ONE_THIRD_BACK,
	"3/4背面(3/4 Back)": _THREE_Q_BACK, "3/4 Back": _THREE_Q_BACK,
	"背面(Back)": _BACK, "Back": _BACK,
	"主观视角(POV)": _POV, "POV": _POV,
}

_BIRD = "(extreme bird eye view:1.4), camera DIRECTLY above looking straight down (85-90° angle), (top of head dominant:1.3), body foreshortened vertically"
_EXT_HIGH = "(extreme high angle:1.3), camera 55-75° above eye level, (top of head very prominent:1.2), face foreshortened, body compressed"
_MOD_HIGH = "moderate high angle, camera 30-45° above eye level, noticeable downward perspective"
_MILD_HIGH = "mild high angle, camera 10-25° above eye level, subtle downward tilt"
_EYE = "eye level shot, camera at SAME height as subject face, neutral horizon line"
_MILD_LOW = "mild low angle, camera 10-25° below eye level, subtle upward tilt"
_MOD_LOW = "moderate low angle, camera 30-45° below eye level, noticeable upward perspective"
_EXT_LOW = "(extreme low angle:1.3), camera 55-75° below eye level, (chin prominent:1.2), body towering upward"
_LOW = "low angle, camera 25-40° below eye level, looking up at subject"
_HIGH = "high angle, camera 25-40° above eye level, looking down at subject"
_WORM = "(worm eye view:1.4), camera almost at ground level (80-90° below), looking STRAIGHT UP, (extreme foreshortening:1.3)"

ANGLE_HEIGHT_PRECISION: Dict[str, str] = {
	"鸟瞰(Bird Eye)": _BIRD, "Bird Eye": _BIRD,
	"极端俯拍(Extreme High)": _EXT_HIGH, "Extreme High": _EXT_HIGH,
	"中度俯拍(Moderate High)": _MOD_HIGH, "Moderate High": _MOD_HIGH,
	"轻微俯拍(Mild High)": _MILD_HIGH, "Mild High": _MILD_HIGH,
	"平视(Eye Level)": _EYE, "Eye Level": _EYE,
	"轻微仰拍(Mild Low)": _MILD_LOW, "Mild Low": _MILD_LOW,
	"中度仰拍(Moderate Low)": _MOD_LOW, "Moderate Low": _MOD_LOW,
	"极端仰拍(Extreme Low)": _EXT_LOW, "Extreme Low": _EXT_LOW,
	"仰拍(Low Angle)": _LOW, "Low Angle": _LOW,
	"俯拍(High Angle)": _HIGH, "High Angle": _HIGH,
	"蚁视(Worm Eye)": _WORM, "Worm Eye": _WORM,
}

# 分镜术语 -> 中文摄影说法（格子标注用）
HEIGHT_TO_PHOTOGRAPHY: Dict[str, str] = {
	"鸟瞰(Bird Eye)": "航拍视角",
	"极端俯拍(Extreme High)": "从高处拍摄",
	"中度俯拍(Moderate High)": "从上方拍摄",
	"轻微俯拍(Mild High)": "略微从上方拍摄",
	"平视(Eye Level)": "与眼睛同高",
	"轻微仰拍(Mild Low)": "略微从下方拍摄",
	"中度仰拍(Moderate Low)": "从下方拍摄",
	"极端仰拍(Extreme Low)": "从极低处拍摄",
	"虫视(Worm Eye)": "贴近地面仰视",
	"荷兰角(Dutch Angle)": "镜头倾斜拍摄",
}

DIRECTION_TO_PHOTOGRAPHY: Dict[str, str] = {
	"正面(Front)": "直视镜头",
	"微侧正面(Slight Front)": "略微向右转",
	"3/4正面(3/4 Front)": "轻微向右转",
	"1/3侧面(1/3 Side)": "侧身轮廓带部分正面",
	"正侧面(Full Side)": "右侧面轮廓",
	"1/3背面(1/3 Back)": "侧身轮廓带部分背面",
	"3/4背面(3/4 Back)": "转身背对，回头看肩",
	"背面(Back)": "背对镜头",
	"主观视角(POV)": "主观视角",
}

# 没有结构化角度时，从文字里猜
_TEXT_ANGLE_PATTERNS: List[Tuple[re.Pattern, str, str]] = [
	(re.compile(r"极端仰拍|Extreme Low", re.I), "极端仰拍", "extreme low angle, camera 50-70° below eye level, looking up sharply"),
	(re.compile(r"极端俯拍|Bird's Eye|鸟瞰", re.I), "极端俯拍/鸟瞰", "extreme overhead shot, camera directly above (80-90° down)"),
	(re.compile(r"仰拍|Low Angle", re.I), "仰拍", "low angle, camera 25-40° below eye level"),
	(re.compile(r"俯拍|High Angle", re.I), "俯拍", "high angle, camera 25-40° above eye level"),
	(re.compile(r"平视|Eye Level", re.I), "平视", "eye level shot, camera at same height as subject"),
]

_PAREN_RE = re.compile(r"\(([^)]+)\)")


def _to_photography(term: str, mapping: Dict[str, str]) -> str:
	if not term:
		return ""
	if term in mapping:
		return mapping[term]
	cn_only = _PAREN_RE.sub("", term).strip()
	for k, v in mapping.items():
		if _PAREN_RE.sub("", k).strip() == cn_only:
			return v
	return term


def angle_label(shot: Shot) -> Tuple[str, str]:
	"""返回 (中文标注, 精确英文描述)。"""
	height = shot.angle_height or ""
	direction = shot.angle_direction or ""

	if height or direction:
		cn = "，".join(x for x in (
			_to_photography(height, HEIGHT_TO_PHOTOGRAPHY),
			_to_photography(direction, DIRECTION_TO_PHOTOGRAPHY),
		) if x)

		m_h = _PAREN_RE.search(height)
		m_d = _PAREN_RE.search(direction)
		precise_h = ANGLE_HEIGHT_PRECISION.get(height) or (m_h.group(1) if m_h else "")
		precise_d = ANGLE_DIRECTION_PRECISION.get(direction) or (m_d.group(1) if m_d else "")
		precise = "; ".join(x for x in (precise_h, precise_d) if x)
		return cn, precise

	text = shot.prompt_cn or shot.story_beat or ""
	for pattern, cn, precise in _TEXT_ANGLE_PATTERNS:
		if pattern.search(text):
			return cn, precise
	return "", ""


def _panel(shot: Shot, idx: int) -> str:
	position = idx + 1
	row = idx // 3 + 1
	col = idx % 3 + 1
	duration = shot.duration or "?s"
	size = shot.shot_size or "LS"

	cn, precise = angle_label(shot)
	annotation = f"【角度：{cn}】" if cn else ""
	instruction = f"[CAMERA ANGLE: {precise}] ← MUST draw from this EXACT angle!\n  " if precise else ""
	corner = f'⚠️ 格子左上角标注: "#{shot.shot_number} | {duration} | {cn or "平视"}"'

	if shot.is_motion:
		start = shot.image_prompt_en or shot.prompt_en or shot.start_frame or "scene start"
		end = shot.end_image_prompt_en or shot.end_frame_prompt_en or shot.end_frame
		if not end:
			logger.warning("shot #%s is motion but has no end frame; using start frame", shot.shot_number)
			end = start
		return (
			f"格子 {position} (第{row}行第{col}列) - 运动镜头:\n"
			f"  镜号 #{shot.shot_number} | {duration} | {size} {annotation}\n"
			f"  {instruction}[首帧]: {start}\n"
			f"  [尾帧]: {end}\n"
			f"  → 左半部分画首帧，右半部分画尾帧，中间用箭头 → 连接\n"
			f"  {corner}"
		)

	desc = shot.image_prompt_en or shot.prompt_en or shot.prompt_cn or "empty scene"
	return (
		f"格子 {position} (第{row}行第{col}列) - 静态镜头:\n"
		f"  镜号 #{shot.shot_number} | {duration} | {size} {annotation}\n"
		f"  {instruction}画面: {desc}\n"
		f"  {corner}"
	)


_RULE = "═" * 63


def build_character_section(characters: Sequence[CharacterRef], episode_number: Optional[int]) -> str:
	named = [c for c in characters if c.name]
	if not named:
		return ""

	lines = []
	for c in named:
		gender = f"({c.gender})" if c.gender and c.gender != "未知" else ""
		appearance = c.appearance_for_episode(episode_number)
		desc = f"外观：{appearance}" if appearance else "请保持外观一致（发型、服装、体型）"
		lines.append(f"• {c.name}{gender}：{desc}")

	ep = f" (第{episode_number}集形态)" if episode_number else ""
	return (
		f"\n{_RULE}\n【角色设定】请严格按照以下外观描述绘制角色！{ep}\n{_RULE}\n"
		+ "\n".join(lines)
		+ "\n\n⚠️ 重要规则：\n"
		"- 同一角色在不同镜头中必须可识别为同一个人\n"
		"- 严格按照上述外观描述绘制，不可随意修改\n"
		"- 角色的发型、服装、体型必须保持一致\n"
	)


def build_scene_section(scenes: Sequence[SceneRef], episode_number: Optional[int]) -> str:
	picked = [s for s in scenes if episode_number is None or episode_number in s.appears_in_episodes]
	if not picked:
		return ""
	body = "\n\n".join(
		f"• {s.name}：{s.description}\n  氛围：{s.atmosphere}\n  提示词(CN)：{s.visual_prompt_cn}"
		for s in picked
	)
	return (
		f"\n{_RULE}\n【场景库】本集可用场景的视觉描述：\n{_RULE}\n{body}\n\n"
		"⚠️ 当剧本提到以上场景时，请使用对应的视觉描述\n"
	)


def build_nine_grid_prompt(
	shots: Sequence[Shot],
	page_num: int,
	total_pages: int,
	style: Optional[StoryboardStyle] = None,
	characters: Sequence[CharacterRef] = (),
	episode_number: Optional[int] = None,
	scenes: Sequence[SceneRef] = (),
) -> str:
	if len(shots) > GRID_SIZE:
		raise ValueError(f"a nine-grid holds at most {GRID_SIZE} shots, got {len(shots)}")

	suffix = style.prompt_suffix if style else DEFAULT_STYLE_SUFFIX
	style_name = style.name if style else "分镜草图"

	panels = [_panel(s, i) for i, s in enumerate(shots)]
	empty = [
		f"格子 {i + 1} (第{i // 3 + 1}行第{i % 3 + 1}列): 空白格子，显示\"完\"字"
		for i in range(len(shots), GRID_SIZE)
	]
	all_panels = "\n\n".join(panels) + (("\n\n" + "\n".join(empty)) if empty else "")

	character_section = build_character_section(characters, episode_number)
	scene_section = build_scene_section(scenes, episode_number)

	return f"""生成专业电影分镜表，3x3 九宫格布局。

{_RULE}
【布局要求】
{_RULE}
- 3列 × 3行 网格布局
- 每个格子用黑色边框清晰分隔
- 标题: "分镜表 第{page_num}/{total_pages}页"
- 每个格子左上角标注镜号（#XX）和时长
{character_section}{scene_section}
{_RULE}
【标注语言】使用中文标注！
{_RULE}
- 用"首帧"不要用"START FRAME"
- 用"尾帧"不要用"END FRAME"
- 镜号格式: "#03 | 3s | 极端仰拍" （必须包含中文角度！）
- 每个格子左上角必须标注：镜号 + 时长 + 中文角度

{_RULE}
【镜头详情】
{_RULE}

{all_panels}

{_RULE}
【视觉风格】
{_RULE}
- 画面风格: {suffix}
- 所有格子保持 {style_name} 风格一致
- 运动镜头: 左右分割，左边首帧，右边尾帧，中间箭头 →

【关键要求】
- 生成一张包含全部9个格子的图
- 整体16:9横版比例
- 专业电影分镜质量
- 格子之间视觉区分清晰
- ⚠️ 严格按照每个镜头指定的【角度】绘制！
- ⚠️ 同一角色在不同格子中保持外观一致！"""
