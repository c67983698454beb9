# -*- coding: utf-8 -*-
"""Skill 层：全部用 FakeLLM，不访问网络。"""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from conftest import (
	NUM_PLANNED,
	STAGE1,
	FakeLLM,
	fenced,
	storyboard_routes,
)
from script2storyboard.core.events import STAGE_DONE, STAGE_PROGRESS, EventEmitter
from script2storyboard.core.schemas.project import CharacterRef, new_project
from script2storyboard.core.schemas.shot import SHOT_TYPE_MOTION, GridTaskMeta, Shot
from script2storyboard.errors import OutputParseError, StageFailedError
from script2storyboard.skills.character_reference.appearance import AppearanceReference
from script2storyboard.skills.character_reference.beauty import beauty_level_by_genre
from script2storyboard.skills.character_reference.era import normalize_era
from script2storyboard.skills.extraction.schema import ExtractedScene
from script2storyboard.skills.extraction.skill import (
	ExtractionSkill,
	dedupe_scenes,
	merge_extracted_characters,
	merge_extracted_scenes,
	similarity,
)
from script2storyboard.skills.prompt_extraction.skill import PromptExtractionSkill, strip_style_words
from script2storyboard.skills.review.rules import check_shot_rules
from script2storyboard.skills.review.schema import ReviewSuggestion
from script2storyboard.skills.review.skill import ReviewSkill, merge_optimized
from script2storyboard.skills.script_cleaning.skill import ScriptCleaningSkill
from script2storyboard.skills.shot_pipeline.converter import (
	apply_angle_diversity_limit,
	apply_front_view_limit,
	decide_video_mode,
	design_to_shot,
	normalize_prompts,
)
from script2storyboard.skills.shot_pipeline.parser import normalize_stage1, parse_stage1, parse_stage4_batch
from script2storyboard.skills.shot_pipeline.skill import ShotPipelineSkill

SCRIPT = "第一集\n林晚推开铁门。\n陈默：说吧。\n"


def llm_with(**overrides) -> FakeLLM:
	"""overrides 的键是阶段号（stage1..stage5）或 skill 名，值替换默认回复。"""
	names = {
		"clean": "# 任务：剧本清洗",
		"characters": "# 任务：从剧本中提取角色",
		"scenes": "# 任务：从剧本中提取新场景",
		"stage1": "# 阶段1",
		"stage2": "# 阶段2",
		"stage3": "# 阶段3",
		"stage4": "# 阶段4",
		"stage5": "# 阶段5",
		"review": "角色：资深动画导演 / 分镜审核专家",
		"optimize": "角色：资深动画导演",
		"extract": "你是专业的AI绘图提示词工程师",
	}
	replaced = {names[k]: v for k, v in overrides.items()}
	return FakeLLM([(p, replaced.get(p, r)) for p, r in storyboard_routes()])


# ========== 五阶段流水线 ==========

class TestShotPipeline:
	@pytest.mark.asyncio
	async def test_full_run(self, fake_llm, tmp_path: Path):
		events = EventEmitter()
		done, progress = [], []
		events.on(STAGE_DONE, lambda stage, **kw: done.append(stage))
		events.on(STAGE_PROGRESS, lambda **kw: progress.append(kw["batch"]))

		skill = ShotPipelineSkill(fake_llm, cot_dir=tmp_path / "cot", log_path=tmp_path / "llm.jsonl", events=events)
		result = await skill.run(SCRIPT, "【约束】无超自然元素: 不能画魔法特效")

		assert len(result.shots) == NUM_PLANNED
		assert result.quality.overall_score == 8.5
		assert done == ["stage1", "stage2", "stage3", "stage4", "stage5"]
		# 7 个镜头按 6 个一批
		assert progress == [1, 2]
		assert fake_llm.count("# 阶段4") == 2

		s1 = result.shots[0]
		assert s1.shot_number == "01"
		assert s1.duration == "4s"
		assert s1.shot_type == SHOT_TYPE_MOTION
		assert s1.camera_move == "推进(Push In)"
		assert s1.video_mode == "Keyframe"
		assert s1.shot_size == "中景(MS)"
		assert s1.angle_height == "平视(Eye Level)"
		assert result.shots[1].dialogue == "说吧。"
		assert result.shots[4].shot_size == "近景(CU)"

		for n in range(1, 6):
			assert (tmp_path / "cot" / f"stage{n}.json").exists()
		log_lines = (tmp_path / "llm.jsonl").read_text(encoding="utf-8").splitlines()
		assert json.loads(log_lines[0])["stage"] == "stage1"

	@pytest.mark.asyncio
	async def test_constraints_reach_stage1_prompt(self):
		seen = []

		def stage1(prompt):
			seen.append(prompt)
			return fenced(STAGE1)

		llm = llm_with(stage1=stage1)
		await ShotPipelineSkill(llm).analyze(SCRIPT, "【约束】无超自然元素: 不能画魔法特效")
		assert "无超自然元素" in seen[0]
		assert "林晚推开铁门" in seen[0]

	@pytest.mark.asyncio
	async def test_retry_then_success(self):
		llm = llm_with(stage2=["这不是 JSON", fenced({"overallStyle": {}, "cameraStrategy": {}, "spatialContinuity": {}, "rhythmControl": {}})])
		skill = ShotPipelineSkill(llm, retry_delay_s=0)
		result = await skill.run(SCRIPT)
		assert llm.count("# 阶段2") == 2
		assert len(result.shots) == NUM_PLANNED

	@pytest.mark.asyncio
	async def test_exhausted_retries_stop_the_pipeline(self):
		llm = llm_with(stage3="模型拒绝回答")
		skill = ShotPipelineSkill(llm, retry_delay_s=0)

		with pytest.raises(StageFailedError) as ei:
			await skill.run(SCRIPT)

		assert ei.value.stage == "stage3"
		assert ei.value.raw_text == "模型拒绝回答"
		assert llm.count("# 阶段3") == 3
		assert llm.count("# 阶段4") == 0

	@pytest.mark.asyncio
	async def test_empty_shot_list(self):
		llm = llm_with(stage3=fenced({"shotCount": 0, "shotDistribution": {}, "pacingCurve": "", "shotList": []}))
		with pytest.raises(StageFailedError, match="empty shotList"):
			await ShotPipelineSkill(llm, retry_delay_s=0).run(SCRIPT)

	@pytest.mark.asyncio
	async def test_quality_check_failure_is_not_fatal(self):
		llm = llm_with(stage5="无法评分")
		result = await ShotPipelineSkill(llm, max_attempts=1).run(SCRIPT)
		assert result.quality is None
		assert len(result.warnings) == 1
		assert len(result.shots) == NUM_PLANNED


class TestParser:
	def test_stage1_aliases(self):
		data = {
			"basicInfo": {"location": "工厂", "characters": "林晚、陈默"},
			"emotionAnalysis": {"emotionArc": [{"event": "对峙", "emotion": "愤怒", "intensity": "8分"}], "climax": {"event": "揭穿"}},
			"sceneBreakdown": {"a": {"id": 1, "description": "潜入"}},
			"coreConflict": "真相之争",
		}
		out = normalize_stage1(data)
		assert out["emotionArc"][0]["event"] == "对峙"
		assert out["scenes"] == [{"id": 1, "description": "潜入"}]
		assert out["conflict"] == "真相之争"

		a = parse_stage1(fenced(data))
		assert a.basic_info.characters == ["林晚", "陈默"]
		assert a.emotion_arc[0].intensity == 8
		assert a.climax == "揭穿"
		assert a.conflict.description == "真相之争"
		assert a.scenes[0].id == "1"

	def test_stage1_infers_scenes_from_emotion_arc(self):
		data = dict(STAGE1)
		del data["scenes"]
		a = parse_stage1(fenced(data))
		assert [s.id for s in a.scenes] == ["S1", "S2"]
		assert a.scenes[1].mood == "愤怒"

	def test_stage1_missing_fields(self):
		with pytest.raises(OutputParseError, match="climax"):
			parse_stage1(fenced({"basicInfo": {"location": "工厂"}, "emotionArc": [{"event": "x"}], "conflict": "c", "scenes": [{"id": "S1"}]}))

	def test_stage4_batch_shapes(self):
		assert parse_stage4_batch(fenced([{"shotNumber": "01"}])) == [{"shotNumber": "01"}]
		assert parse_stage4_batch(fenced({"shotDesigns": [{"shotNumber": "02"}]})) == [{"shotNumber": "02"}]
		assert parse_stage4_batch(fenced({"shotNumber": "03", "design": {}})) == [{"shotNumber": "03", "design": {}}]
		with pytest.raises(OutputParseError):
			parse_stage4_batch(fenced({"shots": []}))


class TestConverter:
	def test_flat_design_with_plan_fallbacks(self):
		raw = {"shotNumber": "#09", "storyBeat": "林晚转身", "shotSize": "ECU", "cameraAngle": "low angle"}
		plan = [{}] * 8 + [{"sceneId": "S2", "duration": 2.5}]
		s = design_to_shot(raw, 8, plan)
		assert s.shot_number == "09"
		assert s.story_beat == "林晚转身"
		assert s.shot_size == "特写(ECU)"
		assert s.angle_height == "仰拍(Low Angle)"
		assert s.scene_id == "S2"
		assert s.duration == "2.5s"
		assert s.camera_move == "固定(Static)"
		assert s.video_mode == "I2V"

	def test_video_mode(self):
		assert decide_video_mode("keyframe", False, "", "") == "Keyframe"
		assert decide_video_mode("", True, "门口", "厂房") == "Keyframe"
		assert decide_video_mode("", True, "门口", "—") == "I2V"
		assert decide_video_mode("", True, "门口", "门口") == "I2V"

	def test_front_view_limit(self):
		shots = [Shot(shot_number=f"{i:02d}", angle_direction="正面(Front)") for i in range(1, 4)]
		out = apply_front_view_limit(shots)
		assert [s.angle_direction for s in out] == ["正面(Front)", "正面(Front)", "3/4正面(3/4 Front)"]

	def test_angle_diversity_limit(self):
		shots = [Shot(shot_number=f"{i:02d}", angle_direction="3/4正面(3/4 Front)", camera_move="固定(Static)") for i in range(1, 6)]
		out = apply_angle_diversity_limit(shots)
		assert [s.angle_direction for s in out][3:] == ["正侧面(Full Side)", "1/3侧面(1/3 Side)"]
		assert [s.camera_move for s in out][2:] == ["推镜(Dolly In)", "拉镜(Dolly Out)", "左摇(Pan Left)"]
		assert out[2].camera_move_detail == "（轻微缓慢）"

	def test_normalize_prompts(self):
		s = Shot(angle_height="仰拍(30°)", angle_direction="侧面(55-65°)", image_prompt_en="a girl, (soft light:1.3), rain")
		out = normalize_prompts([s])[0]
		assert out.angle_height == "仰拍"
		assert out.angle_direction == "侧面"
		assert out.image_prompt_en == "a girl, , rain"


# ========== 审核 / 优化 ==========

class TestReview:
	@pytest.mark.asyncio
	async def test_review(self, fake_llm, make_shots):
		shots = make_shots(3)
		shots[0] = Shot(id="m", shot_number="01", shot_type=SHOT_TYPE_MOTION, start_frame="—", video_mode="Keyframe")

		result = await ReviewSkill(fake_llm).review(shots)

		assert [(s.shot_number, s.suggestion) for s in result.suggestions] == [("03", "改为低角度仰拍"), ("GLOBAL", "镜头数偏少")]
		assert {v.rule for v in result.violations} == {"motion_start_frame", "keyframe_end_frame"}
		assert result.warnings == ["only 3 shots, fewer than 24"]
		assert result.to_dict()["suggestions"][0]["shotNumber"] == "03"

	@pytest.mark.asyncio
	async def test_unparseable_review_returns_no_suggestions(self, make_shots):
		result = await ReviewSkill(llm_with(review="我觉得都挺好")).review(make_shots(2))
		assert result.suggestions == []

	@pytest.mark.asyncio
	async def test_review_prompt_hides_grid_fields(self, make_shots):
		seen = []

		def review(prompt):
			seen.append(prompt)
			return fenced([])

		shots = make_shots(1)
		shots[0] = Shot(id="s", shot_number="01", storyboard_grid_url="https://x/1.png")
		await ReviewSkill(llm_with(review=review)).review(shots)
		assert "storyboardGridUrl" not in seen[0]

	@pytest.mark.asyncio
	async def test_optimize_keeps_identity_and_grid_fields(self, fake_llm, make_shots):
		shots = make_shots(3)
		meta = GridTaskMeta("T1", "2024-01-01T00:00:00Z", 0)
		shots[2] = Shot(id="keep-me", shot_number="03", angle_height="平视(Eye Level)", storyboard_grid_generation_meta=meta)

		out = await ReviewSkill(fake_llm).optimize_shots(shots, [ReviewSuggestion(shot_number="03", suggestion="改仰拍")])

		assert out[2].angle_height == "仰拍(Low Angle)"
		assert out[2].id == "keep-me"
		assert out[2].storyboard_grid_generation_meta == meta
		assert out[0] is shots[0]

	@pytest.mark.asyncio
	async def test_optimize_without_suggestions_skips_llm(self, fake_llm, make_shots):
		shots = make_shots(2)
		assert await ReviewSkill(fake_llm).optimize_shots(shots, []) == shots
		assert fake_llm.calls == []

	def test_merge_optimized_appends_new_shots(self, make_shots):
		shots = make_shots(2)
		out = merge_optimized(shots, [{"shotNumber": "#2", "storyBeat": "改过"}, {"shotNumber": "3", "storyBeat": "新增"}])
		assert [s.shot_number for s in out] == ["01", "02", "03"]
		assert out[1].story_beat == "改过"
		assert out[1].id == "shot-1"
		assert out[2].id == "shot-opt-03"

	def test_rules_accept_complete_shots(self):
		ok = Shot(shot_number="01", shot_type=SHOT_TYPE_MOTION, start_frame="a", end_frame="b", video_mode="Keyframe")
		assert check_shot_rules([ok]) == []


# ========== 提示词提取 ==========

class TestPromptExtraction:
	@pytest.mark.asyncio
	async def test_batches_and_cleans_prompts(self, fake_llm, make_shots):
		shots = make_shots(3)
		out = await PromptExtractionSkill(fake_llm, batch_size=2).run(shots)

		assert fake_llm.count("你是专业的AI绘图提示词工程师") == 2
		assert out[0].image_prompt_cn == "林晚站在门口，第1镜"
		assert "ink sketch" not in out[0].image_prompt_en
		assert "dramatic light" not in out[0].image_prompt_en
		assert out[2].video_gen_prompt == "slow push in"

	@pytest.mark.asyncio
	async def test_missing_shot_is_left_alone(self, make_shots):
		llm = llm_with(extract=fenced([{"shotNumber": "01", "imagePromptCn": "只有第一镜"}]))
		shots = [Shot(shot_number="01"), Shot(shot_number="02", image_prompt_cn="原来的")]
		out = await PromptExtractionSkill(llm).run(shots)
		assert out[0].image_prompt_cn == "只有第一镜"
		assert out[1].image_prompt_cn == "原来的"

	def test_strip_style_words(self):
		assert strip_style_words("少女站在雨中，水墨，线稿，侧光") == "少女站在雨中， 侧光"
		assert strip_style_words("a girl, anime style") == "a girl"
		assert strip_style_words("") == ""


# ========== 剧本清洗 ==========

class TestScriptCleaning:
	@pytest.mark.asyncio
	async def test_run(self, fake_llm):
		chunks = []
		result = await ScriptCleaningSkill(fake_llm).run(SCRIPT, on_chunk=chunks.append)

		assert result.parse_error is False
		assert result.original_script == SCRIPT
		assert result.cleaned_scenes[0].id == "1"
		assert result.scene_weights[0].weight == "high"
		assert result.constraints_text() == "【约束】无超自然元素: 不能画魔法特效"
		assert chunks

	@pytest.mark.asyncio
	async def test_parse_error_keeps_raw_output(self):
		result = await ScriptCleaningSkill(llm_with(clean="抱歉，无法处理")).run(SCRIPT)
		assert result.parse_error is True
		assert result.raw_output == "抱歉，无法处理"
		assert result.cleaned_scenes == []


# ========== 角色 / 场景提取 ==========

class TestExtraction:
	@pytest.mark.asyncio
	async def test_characters_merge_into_project(self, fake_llm):
		found = await ExtractionSkill(fake_llm).extract_characters(SCRIPT)
		assert [(c.name, c.gender) for c in found] == [("林晚", "女"), ("陈默", "未知")]

		project = new_project("夜行")
		project.characters = [CharacterRef(id="c1", name="林晚", gender="女", appearance="旧描述")]
		merge_extracted_characters(project, found)

		assert [c.name for c in project.characters] == ["林晚", "陈默"]
		assert project.characters[0].id == "c1"
		assert project.characters[0].appearance == "齐耳短发，黑色风衣，眼神锐利"

	@pytest.mark.asyncio
	async def test_bad_character_output_is_empty(self):
		assert await ExtractionSkill(llm_with(characters="没有角色")).extract_characters(SCRIPT) == []

	@pytest.mark.asyncio
	async def test_scenes(self, fake_llm):
		found = await ExtractionSkill(fake_llm).extract_scenes([(1, SCRIPT)])
		assert [s.name for s in found] == ["废弃工厂"]

		project = merge_extracted_scenes(new_project("夜行"), found)
		assert project.scenes[0].appears_in_episodes == [1]

	def test_dedupe(self):
		found = [
			ExtractedScene(name="废弃工厂区", description="x"),
			ExtractedScene(name="天台", description="夜风"),
			ExtractedScene(name="天台", description="重复"),
			ExtractedScene(name="地下室", description=""),
			ExtractedScene(name="医院", description="y"),
		]
		out = dedupe_scenes(found, ["废弃工厂", "医院"])
		assert [(s.name, s.description) for s in out] == [("天台", "夜风")]

	def test_similarity(self):
		assert similarity("Abc", "abc ") == 1.0
		assert similarity("废弃工厂", "废弃工厂区") == pytest.approx(0.8)
		assert similarity("", "x") == 0.0


# ========== 参考词汇 ==========

REFERENCE = {
	"_universal": {
		"脸型_词汇": ["鹅蛋脸"],
		"眼型_词汇": {"通用": ["杏眼"], "女性": ["桃花眼"], "男性": ["丹凤眼"]},
	},
	"民国": {
		"_era_defaults": {
			"发型_推荐": {"女性": ["手推波纹"], "通用": ["中分"]},
			"妆容_风格": ["细眉"],
			"禁止事项": "不要现代妆容",
		},
		"真实": {"面部_强调": ["自然肤质"]},
	},
}


class TestCharacterReference:
	def test_normalize_era(self):
		assert normalize_era("民国") == "民国"
		assert normalize_era("90年代女频言情重生剧") == "90年代"
		assert normalize_era("1935年上海") == "民国"
		assert normalize_era("仙侠世界") == "玄幻修仙"
		assert normalize_era("公元1850年") == "古代"
		assert normalize_era("星际") == "星际"

	def test_beauty_level(self):
		assert beauty_level_by_genre("现代都市言情") == "idealized"
		assert beauty_level_by_genre("现代都市悬疑") == "realistic"
		assert beauty_level_by_genre("") == "balanced"

	def test_build_reference(self):
		text = AppearanceReference(REFERENCE).build("民国时期", genre="悬疑", gender="女")
		assert text.startswith("## 外貌参考词汇 | 民国 · 真实美型")
		assert "手推波纹、中分" in text
		assert "**眼型**：桃花眼、杏眼" in text
		assert "自然肤质" in text
		assert "**禁止事项（防穿越）**：不要现代妆容" in text

	def test_unknown_era_uses_universal_only(self):
		text = AppearanceReference(REFERENCE).build("星际")
		assert "## 外貌参考词汇 | 星际 · 平衡美型" in text
		assert "参考时代常识设计" in text
		assert "**眼型**：杏眼、桃花眼、丹凤眼" in text

	def test_load_from_dir(self, tmp_path: Path):
		(tmp_path / "appearance-reference.json").write_text(json.dumps(REFERENCE, ensure_ascii=False), encoding="utf-8")
		assert AppearanceReference.from_dir(tmp_path).era_defaults("民国")["妆容_风格"] == ["细眉"]
