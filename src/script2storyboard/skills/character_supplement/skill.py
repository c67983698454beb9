# -*- coding: utf-8 -*-
"""
character_supplement/skill.py

这个文件做什么：
- 角色补充：按缺失字段分阶段调用 LLM，把角色补齐。
  1) 剧本分析（总是执行）
  2) 视觉标签（需要外貌或服装时执行；带气质模板引导）
  3) 外貌设计（需要外貌时执行；带外貌参考词汇）-> appearance 前两段 + appearance_config
  4) 服装设计（需要服装时执行；带服装参考资料）-> 【服饰造型】段 + costume_config
  5) 角色事实（缺台词/能力/身份演变时执行）
  6) 形态：先扫出形态清单，再逐个展开成 CharacterForm

字段联动：
- 需要外貌 => 一定重做服装（三段描述要一致）
- 只缺服装时，用现有外貌的前两段做输入，只替换【服饰造型】段

失败处理：
- 每个阶段 parse 失败按 with_retry 重试；重试耗尽抛 StageFailedError。
- 阶段1/2失败：整个角色原样返回，只记警告。
- 阶段3/4/5、形态清单失败：跳过这一块，已补好的字段保留。
- 单个形态展开失败：保留清单里的元数据（名称、集数、触发事件）作为形态。
- 鉴权错误原样抛出。
"""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, TypeVar

import httpx
from pydantic import ValidationError

from script2storyboard.core.jsonrepair import parse_llm_json
from script2storyboard.core.retry import with_retry
from script2storyboard.core.schemas.project import CharacterForm, CharacterRef, merge_character_fields
from script2storyboard.errors import OutputParseError, StageFailedError
from script2storyboard.skills.character_reference.appearance import AppearanceReference
from script2storyboard.skills.character_reference.beauty import beauty_level_by_genre
from script2storyboard.skills.character_reference.costume import CostumeReference
from script2storyboard.skills.character_reference.temperament import TemperamentReference
from script2storyboard.skills.llm import LLMClient, ask
from script2storyboard.skills.models import parse_model

from .prompt import (
	SECTION_COSTUME,
	build_analysis_prompt,
	build_appearance_prompt,
	build_costume_prompt,
	build_facts_prompt,
	build_form_detail_prompt,
	build_form_summary_prompt,
	build_visual_tags_prompt,
	compose_appearance,
	join_scripts,
	merge_costume_section,
	script_context,
	split_appearance,
)
from .schema import (
	AppearanceDesign,
	CharacterAnalysis,
	CharacterFacts,
	CostumeDesign,
	FormDetail,
	FormSummary,
	VisualTags,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

# 少于这个长度的外观描述视为“需要补写”
MIN_APPEARANCE_CHARS = 20

FORM_PRIORITY = {"transformation": 90, "damage": 70, "costume": 50, "makeup": 40}

FACT_FIELDS = ("quote", "abilities", "identityEvolution")

Scripts = Sequence[Tuple[int, str]]


def needs_appearance(c: CharacterRef) -> bool:
	return len((c.appearance or "").strip()) < MIN_APPEARANCE_CHARS


def needs_costume(c: CharacterRef) -> bool:
	return needs_appearance(c) or (not c.costume_config and SECTION_COSTUME not in (c.appearance or ""))


def missing_fields(c: CharacterRef) -> List[str]:
	out: List[str] = []
	if needs_appearance(c):
		out.append("appearance")
	if needs_costume(c):
		out.append("costume")
	if not c.quote:
		out.append("quote")
	if not c.abilities:
		out.append("abilities")
	if not c.identity_evolution:
		out.append("identityEvolution")
	if not c.forms:
		out.append("forms")
	return out


def normalize_episode_range(v: str) -> str:
	"""“Ep.12-15”、“第3集” -> “12-15”、“3”；认不出来原样返回。"""
	m = re.search(r"(\d+)\s*(?:[-~至到]\s*(?:[Ee]p\.?\s*|第)?(\d+))?", v or "")
	if not m:
		return (v or "").strip()
	return f"{m.group(1)}-{m.group(2)}" if m.group(2) else m.group(1)


def _parse(model, required: Sequence[Any] = ()) -> Callable[[str], Any]:
	def parse(text: str):
		return parse_model(model, parse_llm_json(text, required=required), raw_text=text)

	return parse


def parse_form_summaries(text: str) -> List[FormSummary]:
	"""无效的 changeType 或缺名字的条目跳过。"""
	data = parse_llm_json(text, required=("forms",))
	items = data.get("forms") or []
	if not isinstance(items, list):
		raise OutputParseError("forms is not a list", raw_text=text)

	out: List[FormSummary] = []
	for item in items:
		if not isinstance(item, dict):
			continue
		try:
			out.append(FormSummary.model_validate(item))
		except ValidationError as e:
			logger.warning("skip form summary %r: %s", item.get("name"), e.errors()[:1])
	return out


class CharacterSupplementSkill:
	def __init__(
		self,
		llm: LLMClient,
		appearance: Optional[AppearanceReference] = None,
		costume: Optional[CostumeReference] = None,
		temperament: Optional[TemperamentReference] = None,
		log_path: Optional[Path] = None,
		model: Optional[str] = None,
		max_attempts: int = 2,
		retry_delay_s: float = 2.0,
	):
		self.llm = llm
		self.appearance = appearance
		self.costume = costume
		self.temperament = temperament
		self.log_path = log_path
		self.model = model
		self.max_attempts = max_attempts
		self.retry_delay_s = retry_delay_s

	async def _stage(self, stage: str, prompt: str, parse: Callable[[str], T]) -> T:
		last_text = [""]

		async def attempt() -> T:
			text = await ask(self.llm, prompt, stage, self.log_path, self.model)
			last_text[0] = text
			return parse(text)

		try:
			return await with_retry(attempt, self.max_attempts, self.retry_delay_s, label=stage)
		except (ValueError, httpx.HTTPError) as e:
			raise StageFailedError(stage, str(e)[:500], raw_text=getattr(e, "raw_text", "") or last_text[0]) from e

	# ---------- 各阶段 ----------

	async def analyze(self, c: CharacterRef, scripts: Scripts, missing: Sequence[str]) -> CharacterAnalysis:
		prompt = build_analysis_prompt(c.name, c.gender, c.appearance, scripts, missing)
		return await self._stage("supplement.stage1", prompt, _parse(CharacterAnalysis, required=("basicInfo",)))

	def _traits(self, a: CharacterAnalysis) -> List[str]:
		return a.behavior_analysis.personality_traits

	async def visual_tags(self, a: CharacterAnalysis, level: str) -> VisualTags:
		guide = self.temperament.for_visual_tags(a.basic_info.gender, self._traits(a)) if self.temperament else ""
		prompt = build_visual_tags_prompt(a, level, guide)
		return await self._stage("supplement.stage2", prompt, _parse(VisualTags, required=("visualTags",)))

	async def design_appearance(self, a: CharacterAnalysis, tags: VisualTags, level: str) -> AppearanceDesign:
		b = a.basic_info
		ref = self.appearance.build(b.era, gender=b.gender, beauty_level=level) if self.appearance else ""
		guide = self.temperament.for_appearance(b.gender, self._traits(a)) if self.temperament else ""
		prompt = build_appearance_prompt(a, tags, level, ref, guide)
		return await self._stage("supplement.stage3", prompt, _parse(AppearanceDesign, required=("finalDescription",)))

	async def design_costume(self, a: CharacterAnalysis, tags: VisualTags, facial: str, level: str) -> CostumeDesign:
		b = a.basic_info
		ref = ""
		if self.costume is not None:
			ref = self.costume.build(b.era, a.scene_info.main_scene, a.aesthetic_style.style, a.season_info.season, b.gender)
		prompt = build_costume_prompt(a, tags, facial, level, ref)
		return await self._stage("supplement.stage4", prompt, _parse(CostumeDesign, required=("finalDescription",)))

	async def collect_facts(self, a: CharacterAnalysis, c: CharacterRef, scripts: Scripts, missing: Sequence[str]) -> CharacterFacts:
		prompt = build_facts_prompt(a, c.name, join_scripts(scripts), missing)
		return await self._stage("supplement.stage5", prompt, _parse(CharacterFacts))

	async def scan_forms(self, c: CharacterRef, scripts: Scripts, a: Optional[CharacterAnalysis] = None) -> List[FormSummary]:
		phases = a.timeline_phases if a is not None else []
		prompt = build_form_summary_prompt(c.name, c.appearance, join_scripts(scripts), phases)
		return await self._stage("supplement.forms", prompt, parse_form_summaries)

	async def expand_form(self, c: CharacterRef, s: FormSummary, scripts: Scripts) -> FormDetail:
		prompt = build_form_detail_prompt(c.name, c.appearance, c.identity_evolution, s, script_context(scripts, s.source_quote))
		return await self._stage(f"supplement.form.{s.name}", prompt, _parse(FormDetail, required=("description",)))

	async def build_forms(self, c: CharacterRef, summaries: Sequence[FormSummary], scripts: Scripts) -> List[CharacterForm]:
		"""逐个展开；按变化类型优先级排序（同集数有多个形态时靠前的先命中）。"""
		ordered = sorted(enumerate(summaries), key=lambda x: -FORM_PRIORITY.get(x[1].change_type, 0))
		forms: List[CharacterForm] = []
		for i, s in ordered:
			form = CharacterForm(
				id=f"{c.id}-form-{i + 1}",
				name=s.name,
				episode_range=normalize_episode_range(s.episode_range),
				note=s.trigger_event,
			)
			try:
				d = await self.expand_form(c, s, scripts)
			except StageFailedError as e:
				logger.warning("form %s of %s not expanded: %s", s.name, c.name, e)
			else:
				form.description = d.description
				form.note = d.note or s.trigger_event
				form.visual_prompt_cn = d.visual_prompt_cn
				form.visual_prompt_en = d.visual_prompt_en
			forms.append(form)
		return forms

	# ---------- 主流程 ----------

	async def run(self, c: CharacterRef, scripts: Scripts, genre: str = "") -> CharacterRef:
		missing = missing_fields(c)
		if not missing:
			return c
		logger.info("supplement %s: %s", c.name, missing)

		try:
			a = await self.analyze(c, scripts, missing)
		except StageFailedError as e:
			logger.warning("supplement %s skipped, analysis failed: %s", c.name, e)
			return c

		update: Dict[str, Any] = {}
		if a.basic_info.age_group and not c.age_group:
			update["ageGroup"] = a.basic_info.age_group
		if c.gender == "未知" and a.basic_info.gender in ("男", "女"):
			update["gender"] = a.basic_info.gender

		if "appearance" in missing or "costume" in missing:
			update.update(await self._visual_fields(c, a, genre, "appearance" in missing))

		facts = [f for f in FACT_FIELDS if f in missing]
		if facts:
			try:
				got = await self.collect_facts(a, c, scripts, facts)
			except StageFailedError as e:
				logger.warning("facts for %s skipped: %s", c.name, e)
			else:
				update.update({
					"quote": got.quote or "",
					"abilities": got.abilities or [],
					"identityEvolution": got.identity_evolution or "",
				})

		merged = merge_character_fields(c, update)

		if "forms" in missing:
			try:
				summaries = await self.scan_forms(merged, scripts, a)
			except StageFailedError as e:
				logger.warning("form scan for %s skipped: %s", c.name, e)
			else:
				forms = await self.build_forms(merged, summaries, scripts)
				merged = merge_character_fields(merged, {"forms": [f.to_dict() for f in forms]})

		return merged

	async def _visual_fields(self, c: CharacterRef, a: CharacterAnalysis, genre: str, redo_appearance: bool) -> Dict[str, Any]:
		level = beauty_level_by_genre(genre or f"{a.script_type.category}{a.script_type.genre}")
		try:
			tags = await self.visual_tags(a, level)
		except StageFailedError as e:
			logger.warning("visual tags for %s failed, appearance unchanged: %s", c.name, e)
			return {}

		out: Dict[str, Any] = {}
		parts = split_appearance(c.appearance)
		main, face = parts["main"], parts["face"]

		if redo_appearance:
			try:
				design = await self.design_appearance(a, tags, level)
			except StageFailedError as e:
				logger.warning("appearance design for %s failed: %s", c.name, e)
				return {}
			main = design.final_description.main_character
			face = design.final_description.facial_features
			out["appearance"] = compose_appearance(main, face)
			if design.appearance_config is not None:
				out["appearanceConfig"] = design.appearance_config.to_json_dict()

		try:
			costume = await self.design_costume(a, tags, face, level)
		except StageFailedError as e:
			logger.warning("costume design for %s failed: %s", c.name, e)
			return out

		base = out.get("appearance") or c.appearance
		out["appearance"] = merge_costume_section(base, costume.final_description)
		if costume.costume_config is not None:
			out["costumeConfig"] = costume.costume_config.to_json_dict()
		return out
