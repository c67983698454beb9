# -*- coding: utf-8 -*-
"""九宫格提示词。"""

from __future__ import annotations

import pytest

from script2storyboard.core.schemas.project import CharacterForm, CharacterRef, SceneRef
from script2storyboard.core.schemas.shot import SHOT_TYPE_MOTION, Shot
from script2storyboard.grid.prompt import STORYBOARD_STYLES, angle_label, build_nine_grid_prompt, get_style


def _shots(n):
	out = []
	for i in range(n):
		if i % 2 == 0:
			out.append(Shot(
				id=f"s{i}", shot_number=f"{i + 1:02d}", duration="4s", shot_size="MS",
				shot_type=SHOT_TYPE_MOTION, start_frame=f"首帧{i + 1}", end_frame=f"尾帧{i + 1}",
			))
		else:
			out.append(Shot(id=f"s{i}", shot_number=f"{i + 1:02d}", duration="3s", prompt_en=f"static {i + 1}"))
	return out


class TestNineGridPrompt:
	def test_partial_grid_has_end_cells(self):
		prompt = build_nine_grid_prompt(_shots(7), page_num=2, total_pages=2)

		assert "分镜表 第2/2页" in prompt
		assert '格子 8 (第3行第2列): 空白格子，显示"完"字' in prompt
		assert '格子 9 (第3行第3列): 空白格子，显示"完"字' in prompt
		assert "格子 7 (第3行第1列) - 运动镜头" in prompt

	def test_motion_and_static_panels(self):
		prompt = build_nine_grid_prompt(_shots(2), 1, 1, style=get_style("ink_wash"))

		assert "[首帧]: 首帧1" in prompt
		assert "[尾帧]: 尾帧1" in prompt
		assert "画面: static 2" in prompt
		assert "sumi-e style" in prompt
		assert "水墨速写 风格一致" in prompt

	def test_motion_without_end_frame_reuses_start(self):
		s = Shot(shot_number="01", shot_type=SHOT_TYPE_MOTION, start_frame="林晚推门")
		prompt = build_nine_grid_prompt([s], 1, 1)
		assert "[尾帧]: 林晚推门" in prompt

	def test_more_than_nine_shots(self):
		with pytest.raises(ValueError):
			build_nine_grid_prompt(_shots(10), 1, 1)

	def test_characters_use_episode_form(self):
		c = CharacterRef(
			id="c1", name="林晚", gender="女", appearance="长发白裙",
			forms=[CharacterForm(id="f1", name="受伤", episode_range="2-3", description="手臂缠着绷带")],
		)
		unnamed = CharacterRef(id="c2", name="")
		prompt = build_nine_grid_prompt(_shots(1), 1, 1, characters=[c, unnamed], episode_number=2)

		assert "【角色设定】" in prompt
		assert "(第2集形态)" in prompt
		assert "• 林晚(女)：外观：手臂缠着绷带" in prompt

	def test_scenes_filtered_by_episode(self):
		scenes = [
			SceneRef(id="sc1", name="废弃工厂", description="锈迹斑斑", atmosphere="阴冷", appears_in_episodes=[1]),
			SceneRef(id="sc2", name="天台", appears_in_episodes=[5]),
		]
		prompt = build_nine_grid_prompt(_shots(1), 1, 1, episode_number=1, scenes=scenes)
		assert "• 废弃工厂：锈迹斑斑" in prompt
		assert "天台" not in prompt

	def test_no_character_section_without_characters(self):
		assert "【角色设定】" not in build_nine_grid_prompt(_shots(1), 1, 1)


class TestAngles:
	def test_structured_angles(self):
		s = Shot(angle_height="中度仰拍(Moderate Low)", angle_direction="背面(Back)")
		cn, precise = angle_label(s)
		assert cn == "从下方拍摄，背对镜头"
		assert "moderate low angle" in precise
		assert "(back view:1.3)" in precise

	def test_angle_annotation_in_panel(self):
		s = Shot(shot_number="03", duration="3s", angle_height="中度仰拍(Moderate Low)")
		prompt = build_nine_grid_prompt([s], 1, 1)
		assert "【角度：从下方拍摄】" in prompt
		assert '"#03 | 3s | 从下方拍摄"' in prompt

	def test_guess_from_text(self):
		cn, precise = angle_label(Shot(story_beat="极端仰拍，陈默俯视林晚"))
		assert cn == "极端仰拍"
		assert "extreme low angle" in precise

	def test_no_angle(self):
		assert angle_label(Shot(story_beat="林晚走进厂房")) == ("", "")


def test_styles():
	assert [s.id for s in STORYBOARD_STYLES] == ["rough_sketch", "pencil_draft", "ink_wash", "comic_bw", "charcoal", "blueprint"]
	with pytest.raises(ValueError):
		get_style("oil_painting")
