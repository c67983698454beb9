# -*- coding: utf-8 -*-
"""测试共用的假 LLM、假图片接口和样例数据。"""

from __future__ import annotations

import json
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, Union

import pytest

from script2storyboard.core.schemas.shot import Shot
from script2storyboard.providers.image.task_client import TaskResult, TaskStatus


def fenced(data: Any) -> str:
	"""模拟模型输出：先写思考过程，再给【最终输出】代码块。"""
	return (
		"【Step 1.1 执行中】\n思考过程：先看整体结构。\n\n"
		"【最终输出】\n```json\n" + json.dumps(data, ensure_ascii=False, indent=2) + "\n```\n"
	)


Response = Union[str, Callable[[str], str], List[Union[str, Callable[[str], str]]]]


class FakeLLM:
	"""
	routes：[(prompt 前缀, 回复)]，按顺序匹配第一个前缀。
	回复是列表时依次弹出（用来模拟重试/分批），是函数时用 prompt 调用。
	"""

	def __init__(self, routes: Sequence[Tuple[str, Response]]):
		self.routes = [(prefix, list(r) if isinstance(r, list) else r) for prefix, r in routes]
		self.calls: List[str] = []
		self.model = "fake-model"

	async def complete(self, prompt: str, model: Optional[str] = None, on_chunk=None, system_prompt=None) -> str:
		for prefix, r in self.routes:
			if not prompt.startswith(prefix):
				continue
			self.calls.append(prefix)
			if isinstance(r, list):
				r = r.pop(0) if len(r) > 1 else r[0]
			text = r(prompt) if callable(r) else r
			if on_chunk is not None:
				on_chunk(text)
			return text
		raise AssertionError(f"unexpected prompt: {prompt[:80]}")

	def count(self, prefix: str) -> int:
		return sum(1 for c in self.calls if c == prefix)


class FakeImageClient:
	"""
	results：task_code -> TaskResult 或异常；没配置的任务按 SUCCESS + 默认 URL 处理。
	events 记录调用顺序，方便断言“先落盘再轮询”。
	"""

	def __init__(self, results: Optional[Dict[str, Any]] = None, check_results: Optional[Dict[str, Any]] = None):
		self.results = results or {}
		self.check_results = check_results or {}
		self.events: List[str] = []
		self.created = 0
		self.prompts: List[str] = []

	async def create_task(self, params, on_task_code=None, abort=None) -> str:
		self.created += 1
		code = f"T{self.created}"
		self.prompts.append(params.prompt)
		self.events.append(f"create:{code}")
		if on_task_code is not None:
			await on_task_code(code)
		return code

	def _resolve(self, table: Dict[str, Any], code: str) -> TaskResult:
		r = table.get(code)
		if isinstance(r, BaseException):
			raise r
		if r is None:
			return TaskResult(task_code=code, status=TaskStatus.SUCCESS, image_urls=[f"https://img.test/{code}.png"])
		return r

	async def check_once(self, code: str, abort=None) -> TaskResult:
		self.events.append(f"check:{code}")
		return self._resolve(self.check_results or self.results, code)

	async def poll_until_done(self, code: str, on_progress=None, abort=None) -> TaskResult:
		self.events.append(f"poll:{code}")
		return self._resolve(self.results, code)

	async def aclose(self) -> None:
		return None


# ========== 五阶段 + 各 skill 的样例回复 ==========

STAGE1 = {
	"basicInfo": {
		"location": "废弃工厂",
		"characters": ["林晚", "陈默"],
		"timespan": "一夜",
		"keyEvents": ["潜入", "对峙"],
	},
	"emotionArc": [
		{"event": "潜入工厂", "emotion": "紧张", "intensity": 6},
		{"event": "正面对峙", "emotion": "愤怒", "intensity": "9"},
	],
	"climax": "林晚揭穿陈默",
	"conflict": {"type": "人物冲突", "description": "林晚逼问真相"},
	"scenes": [
		{"id": "S1", "description": "潜入工厂", "duration": "30秒", "mood": "紧张"},
		{"id": "S2", "description": "对峙", "duration": "60秒", "mood": "愤怒"},
	],
}

STAGE2 = {
	"overallStyle": {"tone": "冷峻", "colorScheme": {"primary": "灰蓝"}},
	"cameraStrategy": {"totalShots": 7},
	"spatialContinuity": {"axis": "180度轴线在门口"},
	"rhythmControl": {"S1": 3, "S2": 4},
}

NUM_PLANNED = 7

STAGE3 = {
	"shotCount": NUM_PLANNED,
	"shotDistribution": {"S1": 3, "S2": 4},
	"pacingCurve": "渐快",
	"shotList": [
		{
			"shotNumber": f"{i:02d}",
			"sceneId": "S1" if i <= 3 else "S2",
			"briefDescription": f"规划镜头{i}",
			"duration": 4,
			"shotSize": "MS",
			"cameraMove": "static",
			"purpose": "推进剧情",
		}
		for i in range(1, NUM_PLANNED + 1)
	],
}

STAGE5 = {"overallScore": "8.5分", "rating": "良好", "issues": ["正面镜头偏多"]}


def shot_design(i: int) -> Dict[str, Any]:
	moving = i % 2 == 1
	return {
		"shotNumber": f"#{i:02d}",
		"storyBeat": {"event": f"事件{i}", "dialogue": "说吧。" if i == 2 else ""},
		"design": {
			"composition": {
				"shotSize": "CU" if i == 5 else "MS",
				"cameraAngle": "eye level",
				"cameraDirection": "3/4 front",
				"depthLayers": {"foreground": "铁门", "midground": "林晚", "background": "厂房"},
			},
			"lighting": {"description": "冷色顶光"},
			"camera": {
				"movement": "push in" if moving else "static",
				"startFrame": "林晚站在门口",
				"endFrame": "林晚走进厂房" if moving else "",
			},
		},
		"directorNote": "保持压迫感",
	}


def stage4_reply(prompt: str) -> str:
	# 按 prompt 里列出的本批镜号回复
	numbers = [i for i in range(1, NUM_PLANNED + 1) if f"**{i:02d}**" in prompt]
	return fenced({"shots": [shot_design(i) for i in numbers]})


CLEANING = {
	"cleanedScenes": [{"id": 1, "originalText": "林晚推开铁门。", "visualContent": "林晚推开铁门", "moodTags": ["紧张"]}],
	"audioEffects": ["铁门吱呀声"],
	"constraints": [{"rule": "无超自然元素", "implication": "不能画魔法特效"}],
	"sceneWeights": [{"sceneId": "01", "weight": "HIGH", "suggestedShots": 4}],
}

CHARACTERS = [
	{"name": "林晚", "gender": "女", "appearance": "齐耳短发，黑色风衣，眼神锐利"},
	{"name": "陈默", "gender": "男性", "appearance": ""},
]

SCENES = {"newScenes": [{"name": "废弃工厂", "description": "锈迹斑斑的厂房", "atmosphere": "阴冷", "appearsInEpisodes": [1]}]}

REVIEW = [
	{"shotNumber": "#3", "suggestion": "改为低角度仰拍", "reason": "强化压迫感"},
	{"shotNumber": "GLOBAL", "suggestion": "镜头数偏少", "reason": "不足24个"},
]


def extract_reply(prompt: str) -> str:
	data = json.loads(prompt.split("## 分镜数据\n", 1)[1])
	numbers = [int(d["shotNumber"]) for d in data]
	return fenced([
		{
			"shotNumber": f"{i:02d}",
			"imagePromptCn": f"林晚站在门口，第{i}镜",
			"imagePromptEn": f"woman in trench coat at the door, (dramatic light:1.2), ink sketch, shot {i}",
			"videoGenPrompt": "slow push in",
		}
		for i in numbers
	])


def storyboard_routes() -> List[Tuple[str, Response]]:
	return [
		("# 任务：剧本清洗", fenced(CLEANING)),
		("# 任务：从剧本中提取角色", fenced(CHARACTERS)),
		("# 任务：从剧本中提取新场景", fenced(SCENES)),
		("# 阶段1", fenced(STAGE1)),
		("# 阶段2", fenced(STAGE2)),
		("# 阶段3", fenced(STAGE3)),
		("# 阶段4", stage4_reply),
		("# 阶段5", fenced(STAGE5)),
		("角色：资深动画导演 / 分镜审核专家", fenced(REVIEW)),
		("角色：资深动画导演", fenced([{"shotNumber": "03", "angleHeight": "仰拍(Low Angle)"}])),
		("你是专业的AI绘图提示词工程师", extract_reply),
	]



# ========== 角色补充的样例回复 ==========

SUPPLEMENT_ANALYSIS = {
	"basicInfo": {"era": "民国", "gender": "男", "ageGroup": "青年", "specificAge": "28岁", "occupation": "巡捕"},
	"behaviorAnalysis": {"keyBehaviors": ["守在工厂门口"], "personalityTraits": "冷漠、寡言"},
	"characterPosition": {"role": "反派", "socialClass": "底层"},
	"scriptType": {"category": "民国悬疑", "genre": "悬疑"},
	"sceneInfo": {"mainScene": "战斗/追逐"},
	"aestheticStyle": {"style": "真实"},
	"seasonInfo": {"season": "冬季"},
	"timelinePhases": [],
}

SUPPLEMENT_TAGS = {"visualTags": [{"tag": "冷峻眉眼", "description": "眉骨高，眼神冷", "meaning": "体现寡言"}]}

SUPPLEMENT_APPEARANCE = {
	"finalDescription": {"mainCharacter": "28岁中国男性，7头身", "facialFeatures": "寸头，眉间有疤，眼神冷峻"},
	"appearanceConfig": {"faceShape": "国字脸", "hair": {"style": "寸头"}, "uniqueMarks": "眉间疤痕"},
}

SUPPLEMENT_COSTUME = {
	"finalDescription": "【外层】灰色呢子大衣；【鞋靴】黑色皮靴",
	"costumeConfig": {"outer": {"material": "呢子", "color": "灰色"}, "accessories": {"props": "怀表"}},
}

SUPPLEMENT_FACTS = {"quote": "说吧。", "quoteSource": "第1集", "abilities": "枪法、跟踪", "identityEvolution": "null"}

FORM_SUMMARIES = {
	"forms": [
		{"name": "便装形态", "changeType": "costume", "episodeRange": "Ep.2-3", "triggerEvent": "换下制服", "sourceQuote": "陈默换上长衫"},
		{"name": "重伤形态", "changeType": "damage", "episodeRange": "第5集", "triggerEvent": "中枪", "sourceQuote": "陈默捂着伤口"},
		{"name": "哭泣", "changeType": "emotion", "episodeRange": "4"},
	]
}


def form_detail_reply(prompt: str) -> str:
	name = "重伤形态" if "「重伤形态」" in prompt else "便装形态"
	return fenced({"description": f"【主体人物】同常态【外貌特征】{name}【服饰造型】长衫", "visualPromptCn": name, "note": f"{name}差异"})


def supplement_routes() -> List[Tuple[str, Response]]:
	return [
		("# 角色补充 阶段1", fenced(SUPPLEMENT_ANALYSIS)),
		("# 角色补充 阶段2", fenced(SUPPLEMENT_TAGS)),
		("# 角色补充 阶段3", fenced(SUPPLEMENT_APPEARANCE)),
		("# 角色补充 阶段4", fenced(SUPPLEMENT_COSTUME)),
		("# 角色补充 阶段5", fenced(SUPPLEMENT_FACTS)),
		("# 任务：识别角色形态", fenced(FORM_SUMMARIES)),
		("# 任务：展开形态设计", form_detail_reply),
	]

@pytest.fixture
def fake_llm() -> FakeLLM:
	return FakeLLM(storyboard_routes() + supplement_routes())


@pytest.fixture
def make_shots() -> Callable[..., List[Shot]]:
	def make(n: int, **kw: Any) -> List[Shot]:
		return [Shot(id=f"shot-{i}", shot_number=f"{i + 1:02d}", story_beat=f"事件{i + 1}", **kw) for i in range(n)]

	return make


SETTINGS_ENV = [
	"OPENROUTER_API_KEY", "OPENROUTER_BASE_URL", "OPENROUTER_MODEL", "OPENROUTER_TIMEOUT_S",
	"IMAGE_ACCESS_TOKEN", "IMAGE_USER_ID", "IMAGE_API_BASE_URL", "IMAGE_MODEL",
	"EPISODE_API_BASE_URL", "EPISODE_ACCESS_TOKEN",
	"OSS_ENDPOINT", "OSS_ACCESS_KEY_ID", "OSS_ACCESS_KEY_SECRET", "OSS_BUCKET", "OSS_PUBLIC_URL",
	"REFERENCE_DATA_DIR", "LOCAL_STORE_DIR",
]


@pytest.fixture
def clean_env(monkeypatch):
	"""清掉配置相关的环境变量；测试结束后 .env 读进来的值也会被撤销。"""
	for name in SETTINGS_ENV:
		monkeypatch.setenv(name, "x")
		monkeypatch.delenv(name)
	return monkeypatch
