# -*- coding: utf-8 -*-
"""
review/rules.py

不调模型的硬规则检查（跑在 LLM 审核前面，结果一起给用户看）：
- 运动镜头必须有起始帧（空或“—”都算缺）
- Keyframe 模式必须有结束帧
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Sequence

from script2storyboard.core.schemas.shot import Shot

_MISSING = ("", "—")


@dataclass(frozen=True)
class RuleViolation:
	shot_number: str
	rule: str
	message: str

	def to_dict(self) -> dict:
		return {"shotNumber": self.shot_number, "rule": self.rule, "message": self.message}


def check_shot_rules(shots: Sequence[Shot]) -> List[RuleViolation]:
	out: List[RuleViolation] = []
	for s in shots:
		if s.is_motion and (s.start_frame or "").strip() in _MISSING:
			out.append(RuleViolation(s.shot_number, "motion_start_frame", f"#{s.shot_number} 运动镜头缺少起始帧描述"))
		if s.video_mode == "Keyframe" and not (s.end_frame or "").strip():
			out.append(RuleViolation(s.shot_number, "keyframe_end_frame", f"#{s.shot_number} Keyframe 模式缺少结束帧描述"))
	return out
