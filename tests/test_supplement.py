# -*- coding: utf-8 -*-
"""角色补充：服装/气质参考表、外观三段式、形态，以及分阶段补充流程（FakeLLM）。"""

from __future__ import annotations

import json
from pathlib import Path

import pytest
from pydantic import ValidationError

from conftest import FORM_SUMMARIES, SUPPLEMENT_COSTUME, FakeLLM, fenced, supplement_routes
from script2storyboard.core.schemas.project import CharacterForm, CharacterRef
from script2storyboard.skills.character_reference.costume import CostumeReference, normalize_scene
from script2storyboard.skills.character_reference.temperament import TemperamentReference
from script2storyboard.skills.character_supplement.prompt import (
	color_anchor,
	compose_appearance,
	derive_body_proportions,
	garment_anchor,
	merge_costume_section,
	script_context,
	split_appearance,
)
from script2storyboard.skills.character_supplement.schema import CharacterAnalysis, FormSummary
from script2storyboard.skills.character_supplement.skill import (
	CharacterSupplementSkill,
	missing_fields,
	needs_appearance,
	normalize_episode_range,
	parse_form_summaries,
)

COSTUME = {
	"_universal": {"颜色": {"冷色系": ["霜蓝"]}, "面料_基础": ["棉"], "花纹_基础": ["素面"]},
	"民国": {
		"_era_defaults": {
			"上装_基础": {"男性": ["长衫"], "女性": ["旗袍"]},
			"面料": ["呢子"],
			"颜色_流行": ["藏青"],
			"设计指导": "中西混搭",
			"禁止事项": "不要牛仔裤",
		},
		"场景": {
			"特殊": {"风格": {"真实": {"季节": {"通用": {
				"上装_exclusive": {"男性": ["短打"], "女性": ["短袄"]},
				"颜色_accent": ["黑色"],
				"风格关键词": ["利落"],
			}}}}},
			"日常": {"风格": {"真实": {"季节": {"冬季": {
				"上装": ["棉袍"],
				"下装": ["长裤"],
				"配饰": ["围巾"],
				"颜色": {"常见色": ["灰"]},
				"面料": ["棉"],
			}}}}},
		},
	},
}

TEMPERAMENT = {
	"冷系": [{
		"name": "冰山型",
		"description": "冷漠疏离",
		"keyFeatures": ["冷漠"],
		"gender": ["通用"],
		"colorDirection": "冷色低饱和",
		"eyeGuidance": {"男性": ["锐利"], "女性": ["清冷"]},
		"stageGuidance": {"appearance": "眉眼如何显得疏离？"},
	}],
	"暖系": [{"name": "阳光型", "description": "开朗", "keyFeatures": ["开朗"], "gender": ["女性"], "colorDirection": "暖色"}],
	"中性系": [{"name": "书卷型", "description": "温和", "keyFeatures": ["温和"], "gender": ["男性"], "colorDirection": "米色"}],
}

FULL_APPEARANCE = "【主体人物】28岁中国男性，7头身【外貌特征】寸头，眉间有疤，眼神冷峻，下颌线分明"


def supplement_llm(**overrides) -> FakeLLM:
	"""overrides 的键是阶段名，值替换默认回复。"""
	names = {
		"stage1": "# 角色补充 阶段1",
		"stage2": "# 角色补充 阶段2",
		"stage3": "# 角色补充 阶段3",
		"stage4": "# 角色补充 阶段4",
		"stage5": "# 角色补充 阶段5",
		"forms": "# 任务：识别角色形态",
		"form_detail": "# 任务：展开形态设计",
	}
	replaced = {names[k]: v for k, v in overrides.items()}
	return FakeLLM([(p, replaced.get(p, r)) for p, r in supplement_routes()])


def analysis(**kw) -> CharacterAnalysis:
	data = {"basicInfo": {"era": "民国", "gender": "男", "ageGroup": "青年", "specificAge": 28}}
	data.update(kw)
	return CharacterAnalysis.model_validate(data)


def complete_character(**kw) -> CharacterRef:
	base = dict(
		id="c2",
		name="陈默",
		gender="男",
		appearance=FULL_APPEARANCE,
		quote="说吧。",
		abilities=["枪法"],
		identity_evolution="巡捕 -> 逃犯",
		forms=[CharacterForm(id="c2-form-1", name="便装形态", episode_range="2")],
		costume_config={"outer": {"color": "灰色"}},
	)
	base.update(kw)
	return CharacterRef(**base)


# ========== 服装参考表 ==========

class TestCostumeReference:
	def test_normalize_scene(self):
		assert normalize_scene("战斗/追逐") == "特殊"
		assert normalize_scene("职场/社交") == "职场"
		assert normalize_scene("") is None

	def test_special_scene_uses_general_season(self):
		text = CostumeReference(COSTUME).build("民国", "战斗/追逐", "真实", "冬季", "男")
		assert text.startswith("## 服装参考资料 | 民国 · 特殊 · 真实")
		assert "**上装推荐**：短打" in text
		assert "短袄" not in text
		assert "**上装**：长衫" in text
		assert "**场景推荐色**：黑色" in text
		assert "**完整色谱（冷色）**：霜蓝" in text
		assert "呢子、棉" in text
		assert "**禁止**：不要牛仔裤" in text

	def test_legacy_leaf(self):
		text = CostumeReference(COSTUME).build("民国时期", "日常", "真实", "冬季")
		assert text.startswith("## 服装参考资料\n")
		assert "### 上装选项\n棉袍" in text
		assert "**常见色**：灰" in text

	def test_unknown_style_falls_back_to_realistic(self):
		ref = CostumeReference(COSTUME)
		leaf = ref.lookup("民国", "日常", "华丽", "冬季")
		assert leaf is COSTUME["民国"]["场景"]["日常"]["风格"]["真实"]["季节"]["冬季"]

	def test_unknown_era(self):
		assert CostumeReference(COSTUME).build("星际") == "未找到\"星际\"的参考资料，请使用常识进行设计。"

	def test_load_from_dir(self, tmp_path: Path):
		(tmp_path / "costume-reference.json").write_text(json.dumps(COSTUME, ensure_ascii=False), encoding="utf-8")
		assert CostumeReference.from_dir(tmp_path).era_defaults("民国")["设计指导"] == "中西混搭"


# ========== 气质模板 ==========

class TestTemperamentReference:
	def test_match_by_traits_and_gender(self):
		ref = TemperamentReference(TEMPERAMENT)
		assert [t["name"] for t in ref.match("男", ["冷漠", "寡言"])] == ["冰山型"]
		# 都没得分按原顺序取；书卷型只适用男性
		assert [t["name"] for t in ref.match("女", ["无关"])] == ["冰山型", "阳光型"]

	def test_visual_tags_guide(self):
		text = TemperamentReference(TEMPERAMENT).for_visual_tags("男", ["冷漠"])
		assert text.startswith("### 气质参考")
		assert "- 核心气质词：冷漠" in text
		assert "- 色彩方向：冷色低饱和" in text
		assert "- 眼神参考：锐利" in text
		assert "- 服装思考：参考色彩方向与核心气质词" in text

	def test_appearance_guide(self):
		ref = TemperamentReference(TEMPERAMENT)
		assert "**冰山型**：眉眼如何显得疏离？" in ref.for_appearance("男", ["冷漠"])
		assert "**阳光型**：思考如何通过五官体现\"开朗\"的气质" in ref.for_appearance("女", ["开朗"])

	def test_empty_table(self):
		assert TemperamentReference({}).for_visual_tags("男", ["冷漠"]) == ""


# ========== 外观三段式 / 锚点 ==========

class TestAppearanceText:
	def test_split_plain_text_is_face(self):
		assert split_appearance("短发，眼神锐利") == {"main": "", "face": "短发，眼神锐利", "costume": ""}

	def test_split_sections(self):
		parts = split_appearance(compose_appearance("28岁男性", "寸头", "灰色大衣"))
		assert parts == {"main": "28岁男性", "face": "寸头", "costume": "灰色大衣"}

	def test_merge_costume_section(self):
		with_costume = compose_appearance("28岁男性", "寸头", "灰色大衣")
		out = merge_costume_section(with_costume, "黑色长衫")
		assert out.endswith("【服饰造型】\n黑色长衫")
		assert "灰色大衣" not in out
		assert merge_costume_section("寸头", "黑色长衫") == "寸头\n【服饰造型】\n黑色长衫"

	def test_body_proportions(self):
		villain = analysis(characterPosition={"role": "反派", "socialClass": "中产"})
		assert derive_body_proportions(villain, "realistic") == "7头身标准比例"
		child = analysis(basicInfo={"specificAge": 8})
		assert derive_body_proportions(child, "balanced") == "5.5头身儿童比例"
		idol_lead = analysis(
			basicInfo={"specificAge": 20},
			characterPosition={"role": "主角", "socialClass": "富裕"},
			scriptType={"category": "都市言情"},
		)
		assert derive_body_proportions(idol_lead, "idealized") == "7.5头身标准比例"

	def test_anchors(self):
		assert "禁止使用绿色系" in color_anchor("外层墨绿长衫")
		assert color_anchor("").startswith("无明确颜色锚点")
		assert "主袍层必须保持道袍类型" in garment_anchor("墨绿道袍")
		assert garment_anchor("").startswith("无明确服装类型锚点")

	def test_script_context_takes_scene_block(self):
		script = "【场景1】街口\n闲聊。\n【场景2】码头\n陈默捂着伤口倒下。\n【场景3】医院\n醒来。"
		ctx = script_context([(3, script)], "陈默捂着伤口")
		assert ctx.startswith("【第3集片段】\n【场景2】码头")
		assert "街口" not in ctx
		assert "医院" not in ctx
		assert script_context([(3, script)], "不存在的台词") == ""

	def test_script_context_centers_long_block(self):
		script = "甲" * 2000 + "陈默倒下" + "乙" * 2000
		ctx = script_context([(1, script)], "陈默倒下", limit=100)
		assert "陈默倒下" in ctx
		assert len(ctx) < 200


# ========== 形态 ==========

class TestForms:
	def test_invalid_change_type(self):
		with pytest.raises(ValidationError):
			FormSummary.model_validate({"name": "哭泣", "changeType": "emotion"})

	def test_parse_summaries_skips_invalid(self):
		items = parse_form_summaries(fenced(FORM_SUMMARIES))
		assert [s.name for s in items] == ["便装形态", "重伤形态"]
		assert items[1].change_type == "damage"

	def test_source_quote_truncated(self):
		s = FormSummary.model_validate({"name": "x", "changeType": "Costume", "sourceQuote": "字" * 150, "estimatedAge": "约30岁"})
		assert s.change_type == "costume"
		assert len(s.source_quote) == 100
		assert s.estimated_age == 30

	def test_episode_range(self):
		assert normalize_episode_range("Ep.12-15") == "12-15"
		assert normalize_episode_range("第3集") == "3"
		assert normalize_episode_range("全剧") == "全剧"


# ========== 分阶段补充 ==========

class TestMissingFields:
	def test_complete_character(self):
		assert missing_fields(complete_character()) == []

	def test_costume_section_counts_as_costume(self):
		c = complete_character(appearance=compose_appearance("28岁男性", "寸头，眉间有疤，眼神冷峻", "灰色大衣"), costume_config={})
		assert missing_fields(c) == []

	def test_short_appearance_needs_costume_too(self):
		c = complete_character(appearance="短发")
		assert needs_appearance(c)
		assert missing_fields(c) == ["appearance", "costume"]


class TestCharacterSupplementSkill:
	@pytest.mark.asyncio
	async def test_full_run(self):
		prompts = {}

		def costume_reply(prompt: str) -> str:
			prompts["costume"] = prompt
			return fenced(SUPPLEMENT_COSTUME)

		def tags_reply(prompt: str) -> str:
			prompts["tags"] = prompt
			return fenced({"visualTags": [{"tag": "冷峻眉眼"}]})

		llm = supplement_llm(stage2=tags_reply, stage4=costume_reply)
		skill = CharacterSupplementSkill(
			llm,
			costume=CostumeReference(COSTUME),
			temperament=TemperamentReference(TEMPERAMENT),
			retry_delay_s=0,
		)
		c = CharacterRef(id="c2", name="陈默", gender="男", appearance="")
		out = await skill.run(c, [(1, "陈默：说吧。")])

		assert out.id == "c2"
		assert out.age_group == "青年"
		assert out.appearance.startswith("【主体人物】28岁中国男性，7头身\n【外貌特征】寸头，眉间有疤，眼神冷峻")
		assert out.appearance.endswith("【服饰造型】\n【外层】灰色呢子大衣；【鞋靴】黑色皮靴")
		assert out.appearance_config["faceShape"] == "国字脸"
		assert out.appearance_config["hair"]["style"] == "寸头"
		assert out.appearance_config["uniqueMarks"] == ["眉间疤痕"]
		assert out.costume_config["outer"]["material"] == "呢子"
		assert out.costume_config["accessories"]["props"] == "怀表"

		assert out.quote == "说吧。"
		assert out.abilities == ["枪法", "跟踪"]
		assert out.identity_evolution == ""

		# 战损排在换装前面；id 按清单顺序
		assert [f.name for f in out.forms] == ["重伤形态", "便装形态"]
		assert [f.id for f in out.forms] == ["c2-form-2", "c2-form-1"]
		assert [f.episode_range for f in out.forms] == ["5", "2-3"]
		assert out.forms[0].note == "重伤形态差异"
		assert "重伤形态" in out.appearance_for_episode(5)
		assert llm.count("# 任务：展开形态设计") == 2

		assert "冰山型" in prompts["tags"]
		assert "## 服装参考资料 | 民国 · 特殊 · 真实" in prompts["costume"]

	@pytest.mark.asyncio
	async def test_only_costume_missing(self):
		llm = supplement_llm()
		c = complete_character(costume_config={})
		out = await CharacterSupplementSkill(llm, retry_delay_s=0).run(c, [(1, "陈默：说吧。")])

		assert llm.count("# 角色补充 阶段3") == 0
		assert llm.count("# 角色补充 阶段5") == 0
		assert llm.count("# 任务：识别角色形态") == 0
		assert out.appearance.startswith(FULL_APPEARANCE)
		assert out.appearance.endswith("【服饰造型】\n【外层】灰色呢子大衣；【鞋靴】黑色皮靴")
		assert out.costume_config["outer"]["color"] == "灰色"
		assert out.quote == "说吧。"

	@pytest.mark.asyncio
	async def test_nothing_missing(self):
		llm = supplement_llm()
		c = complete_character()
		assert await CharacterSupplementSkill(llm).run(c, [(1, "")]) is c
		assert llm.calls == []

	@pytest.mark.asyncio
	async def test_analysis_failure_returns_original(self):
		llm = supplement_llm(stage1="写不出来")
		c = CharacterRef(id="c2", name="陈默", appearance="短发")
		out = await CharacterSupplementSkill(llm, max_attempts=2, retry_delay_s=0).run(c, [(1, "")])
		assert out is c
		assert llm.count("# 角色补充 阶段1") == 2
		assert llm.count("# 角色补充 阶段2") == 0

	@pytest.mark.asyncio
	async def test_appearance_failure_keeps_facts(self):
		llm = supplement_llm(stage3="写不出来")
		c = CharacterRef(id="c2", name="陈默", appearance="短发")
		out = await CharacterSupplementSkill(llm, max_attempts=1).run(c, [(1, "")])
		assert out.appearance == "短发"
		assert llm.count("# 角色补充 阶段4") == 0
		assert out.abilities == ["枪法", "跟踪"]
		assert len(out.forms) == 2

	@pytest.mark.asyncio
	async def test_form_detail_failure_keeps_summary(self):
		llm = supplement_llm(form_detail="写不出来")
		c = complete_character(forms=[])
		out = await CharacterSupplementSkill(llm, max_attempts=1).run(c, [(1, "")])
		assert [f.name for f in out.forms] == ["重伤形态", "便装形态"]
		assert out.forms[0].description == ""
		assert out.forms[0].note == "中枪"
		assert out.forms[1].episode_range == "2-3"
