# -*- coding: utf-8 -*-
"""
shot_pipeline/converter.py

这个文件做什么：
- design_to_shot：把阶段4的“逐镜设计”（LLM 返回的嵌套 JSON）转换成 Shot。
  字段位置不固定（composition / design / 顶层都可能），按顺序兜底读取；
  景别、角度、运镜按固定映射表归一成 “中文(English)” 形式。
- 后处理规则（整集一起做）：
  - apply_front_view_limit：正面(Front) 最多 2 个，多出的改成 3/4 正面
  - apply_angle_diversity_limit：3/4 正面最多 max(3, 25%)，多出的轮换侧面/背面；
    固定镜头最多 2 个，多出的轮换成轻微运镜，并在运镜细节后加“（轻微缓慢）”
  - normalize_prompts：去掉角度里的 (N°)/(N-M°) 标注、英文提示词里的 (text:1.3) 权重语法
"""

from __future__ import annotations

import logging
import re
from dataclasses import replace
from typing import Any, Dict, List, Optional, Sequence

from script2storyboard.core.schemas.shot import SHOT_TYPE_MOTION, SHOT_TYPE_STATIC, Shot

logger = logging.getLogger(__name__)

SHOT_SIZE_MAP = {
	"ELS": "大远景(ELS)", "LS": "远景(LS)", "MLS": "中全景(MLS)",
	"MS": "中景(MS)", "MCU": "中近景(MCU)", "CU": "近景(CU)",
	"ECU": "特写(ECU)", "Macro": "微距(Macro)",
}

ANGLE_DIRECTION_MAP = {
	"front": "正面(Front)", "front view": "正面(Front)",
	"3/4 front": "3/4正面(3/4 Front)", "3/4 front view": "3/4正面(3/4 Front)",
	"side": "正侧面(Full Side)", "side view": "正侧面(Full Side)", "profile": "正侧面(Full Side)",
	"back": "背面(Back)", "back view": "背面(Back)",
	"正面": "正面(Front)", "侧面": "正侧面(Full Side)", "背面": "背面(Back)",
}

ANGLE_HEIGHT_MAP = {
	"eye level": "平视(Eye Level)", "eye-level": "平视(Eye Level)",
	"low angle": "仰拍(Low Angle)", "low": "仰拍(Low Angle)",
	"mild low angle": "轻微仰拍(Mild Low)", "slight low angle": "轻微仰拍(Mild Low)",
	"high angle": "俯拍(High Angle)", "high": "俯拍(High Angle)",
	"mild high angle": "轻微俯拍(Mild High)", "slight high angle": "轻微俯拍(Mild High)",
	"extreme high angle": "鸟瞰(Extreme High)", "top-down": "鸟瞰(Extreme High)",
	"extreme low angle": "蚁视(Extreme Low)",
	"平视": "平视(Eye Level)", "俯拍": "俯拍(High Angle)", "仰拍": "仰拍(Low Angle)",
}

CAMERA_MOVE_MAP = {
	"static": "固定(Static)", "固定": "固定(Static)",
	"push in": "推进(Push In)", "push": "推进(Push In)",
	"pull out": "拉远(Pull Out)", "pull": "拉远(Pull Out)",
	"pan": "横摇(Pan)", "pan left": "横摇(Pan)", "pan right": "横摇(Pan)",
	"tilt": "竖摇(Tilt)", "tilt up": "竖摇(Tilt)", "tilt down": "竖摇(Tilt)",
	"track": "跟随(Track)", "tracking": "跟随(Track)", "follow": "跟随(Track)",
	"crane": "升降(Crane)", "crane up": "升降(Crane)", "crane down": "升降(Crane)",
	"dolly": "移动(Dolly)", "dolly in": "移动(Dolly)", "dolly out": "移动(Dolly)",
	"handheld": "手持(Handheld)", "shake": "手持(Handheld)",
	"arc": "环绕(Arc)", "orbit": "环绕(Arc)", "360": "环绕(Arc)",
	"zoom": "变焦(Zoom)",
}

FRONT = "正面(Front)"
THREE_QUARTER_FRONT = "3/4正面(3/4 Front)"
STATIC_MOVE = "固定(Static)"

MAX_FRONT_SHOTS = 2
MAX_STATIC_SHOTS = 2

ALTERNATIVE_DIRECTIONS = ["正侧面(Full Side)", "1/3侧面(1/3 Side)", "3/4背面(3/4 Back)", "1/3背面(1/3 Back)"]
ALTERNATIVE_MOVES = ["推镜(Dolly In)", "拉镜(Dolly Out)", "左摇(Pan Left)", "右摇(Pan Right)"]

_STATIC_WORDS = ("固定", "static")
_EMPTY_FRAME = ("", "—")


def _d(v: Any) -> Dict[str, Any]:
	return v if isinstance(v, dict) else {}


def _s(v: Any) -> str:
	if v is None:
		return ""
	return str(v).strip()


def _first(*values: Any) -> str:
	for v in values:
		s = _s(v)
		if s:
			return s
	return ""


def is_moving_camera(move: str) -> bool:
	m = (move or "").strip().lower()
	return bool(m) and m not in _STATIC_WORDS


def decide_video_mode(llm_mode: str, moving: bool, start_frame: str, end_frame: str) -> str:
	mode = (llm_mode or "").strip().lower()
	if mode == "keyframe":
		return "Keyframe"
	if mode in ("i2v", "static"):
		return "I2V"
	if moving and start_frame not in _EMPTY_FRAME and end_frame not in _EMPTY_FRAME and start_frame != end_frame:
		return "Keyframe"
	return "I2V"


def design_to_shot(raw: Dict[str, Any], idx: int, plan: Optional[Sequence[Dict[str, Any]]] = None) -> Shot:
	"""
	raw：阶段4返回的单个镜头设计。
	plan：阶段3的 shotList（按下标对齐），用来兜底时长、场景和剧情描述。
	"""
	design = _d(raw.get("design")) or raw
	comp = _d(design.get("composition"))
	lighting = _d(design.get("lighting"))
	camera = _d(design.get("camera"))
	characters = _d(design.get("characters"))
	ai_prompt = _d(raw.get("aiPrompt"))
	beat = _d(raw.get("storyBeat"))
	planned = _d(plan[idx]) if plan is not None and idx < len(plan) else {}

	shot_size = _first(comp.get("shotSize"), design.get("shotSize"), raw.get("shotSize"), "MS")
	angle_height = _first(comp.get("cameraAngle"), design.get("cameraAngle"), raw.get("cameraAngle"), "轻微仰拍(Mild Low)")
	angle_direction = _first(comp.get("cameraDirection"), design.get("cameraDirection"), raw.get("cameraDirection"), THREE_QUARTER_FRONT)

	layers = _d(comp.get("depthLayers"))
	fg = _first(layers.get("foreground"), comp.get("foreground"))
	mg = _first(layers.get("midground"), comp.get("midground"))
	bg = _first(layers.get("background"), comp.get("background"))

	light = _first(lighting.get("description"), lighting.get("mood"))
	if not light and lighting.get("keyLight"):
		light = f"主光:{lighting['keyLight']}"

	move = _first(camera.get("movement"), "固定")
	speed = _s(camera.get("speed"))
	moving = is_moving_camera(move)

	if isinstance(raw.get("storyBeat"), str):
		event = _s(raw.get("storyBeat"))
	else:
		event = _first(beat.get("event"), characters.get("actions"), planned.get("briefDescription"), f"镜头{idx + 1}")

	start_frame = _first(camera.get("startFrame"), raw.get("startFrame"))
	end_frame = _first(camera.get("endFrame"), raw.get("endFrame"))

	shot_number = _s(raw.get("shotNumber")).replace("#", "") or f"{idx + 1:02d}"
	planned_duration = planned.get("duration") or 4
	if isinstance(planned_duration, float) and planned_duration.is_integer():
		planned_duration = int(planned_duration)
	duration = _s(raw.get("duration")) or f"{planned_duration}s"

	return Shot(
		id=f"shot-cot-{idx}",
		shot_number=shot_number,
		duration=duration,
		shot_type=SHOT_TYPE_MOTION if moving else SHOT_TYPE_STATIC,
		scene_id=_first(raw.get("sceneId"), planned.get("sceneId")),
		video_mode=decide_video_mode(_s(raw.get("videoMode")), moving, start_frame, end_frame),
		story_beat=event,
		dialogue=_s(beat.get("dialogue")),
		shot_size=SHOT_SIZE_MAP.get(shot_size, shot_size),
		angle_direction=ANGLE_DIRECTION_MAP.get(angle_direction.lower(), angle_direction),
		angle_height=ANGLE_HEIGHT_MAP.get(angle_height.lower(), angle_height),
		dutch_angle=_s(comp.get("dutchAngle")),
		foreground=fg,
		midground=mg,
		background=bg,
		lighting=light,
		camera_move=CAMERA_MOVE_MAP.get(move.lower(), move),
		camera_move_detail=_first(speed, camera.get("description")),
		motion_path=_first(comp.get("blocking"), characters.get("positions")),
		start_frame=start_frame,
		end_frame=end_frame,
		video_prompt_cn=_s(ai_prompt.get("videoPromptCn")),
		video_prompt=_s(ai_prompt.get("videoPrompt")),
		director_note=_s(raw.get("directorNote")),
		technical_note=_s(raw.get("technicalNote")),
		theory=_s(raw.get("theory")),
		status="pending",
	)


def apply_front_view_limit(shots: Sequence[Shot]) -> List[Shot]:
	count = 0
	out: List[Shot] = []
	for s in shots:
		if s.angle_direction == FRONT:
			count += 1
			if count > MAX_FRONT_SHOTS:
				s = replace(s, angle_direction=THREE_QUARTER_FRONT)
		out.append(s)
	return out


def apply_angle_diversity_limit(shots: Sequence[Shot]) -> List[Shot]:
	max_three_quarter = max(3, len(shots) * 25 // 100)
	three_quarter = 0
	static = 0
	alt_dir = 0
	alt_move = 0

	out: List[Shot] = []
	for s in shots:
		if s.angle_direction == THREE_QUARTER_FRONT:
			three_quarter += 1
			if three_quarter > max_three_quarter:
				new_dir = ALTERNATIVE_DIRECTIONS[alt_dir % len(ALTERNATIVE_DIRECTIONS)]
				alt_dir += 1
				logger.debug("shot #%s: 3/4 front -> %s", s.shot_number, new_dir)
				s = replace(s, angle_direction=new_dir)

		if s.camera_move == STATIC_MOVE:
			static += 1
			if static > MAX_STATIC_SHOTS:
				new_move = ALTERNATIVE_MOVES[alt_move % len(ALTERNATIVE_MOVES)]
				alt_move += 1
				logger.debug("shot #%s: static -> %s", s.shot_number, new_move)
				s = replace(s, camera_move=new_move, camera_move_detail=(s.camera_move_detail or "") + "（轻微缓慢）")

		out.append(s)
	return out


_DEGREE_RE = re.compile(r"\(\d+°\)|\(\d+-\d+°\)")
_WEIGHT_RE = re.compile(r"\([^)]+:\d+\.\d+\)")


def strip_degree_marks(s: str) -> str:
	return _DEGREE_RE.sub("", s or "").strip()


def strip_prompt_weights(s: str) -> str:
	return _WEIGHT_RE.sub("", s or "")


def normalize_prompts(shots: Sequence[Shot]) -> List[Shot]:
	return [
		replace(
			s,
			angle_direction=strip_degree_marks(s.angle_direction),
			angle_height=strip_degree_marks(s.angle_height),
			image_prompt_en=strip_prompt_weights(s.image_prompt_en),
			end_image_prompt_en=strip_prompt_weights(s.end_image_prompt_en),
			video_gen_prompt=strip_prompt_weights(s.video_gen_prompt),
		)
		for s in shots
	]


def designs_to_shots(designs: Sequence[Dict[str, Any]], plan: Optional[Sequence[Dict[str, Any]]] = None) -> List[Shot]:
	"""转换 + 两条角度规则；normalize_prompts 留到整集结束后再做。"""
	shots = [design_to_shot(d, i, plan) for i, d in enumerate(designs)]
	return apply_angle_diversity_limit(apply_front_view_limit(shots))
