# -*- coding: utf-8 -*-
"""
init -> import -> run 全流程（假 LLM + 假图片接口），以及 CLI 入口。
"""

from __future__ import annotations

from pathlib import Path

import pytest

from conftest import NUM_PLANNED, FakeImageClient
from script2storyboard.cli import cmd_import, cmd_init, main
from script2storyboard.core.io import episode_paths, project_file
from script2storyboard.core.manifest import load_manifest
from script2storyboard.core.project_file import load_grid_results, load_project, load_shots, read_json
from script2storyboard.pipeline.orchestrator import STAGE_ORDER, run_until_async
from script2storyboard.stages.base import StageContext

SCRIPT = """简介：一夜之间的对峙。

第一集 夜探
林晚推开铁门。
陈默：说吧。

第二集 天台
林晚站在天台边缘。
"""


@pytest.fixture
def project_dir(tmp_path: Path) -> Path:
	d = tmp_path / "night"
	src = tmp_path / "script.txt"
	src.write_text(SCRIPT, encoding="utf-8")
	cmd_init(str(d), "夜行", genre="悬疑", world_view="现代")
	cmd_import(str(d), str(src))
	return d


def test_import_splits_episodes(project_dir: Path):
	project = load_project(project_file(project_dir))
	assert [e.episode_number for e in project.episodes] == [1, 2]
	assert "林晚推开铁门" in project.episodes[0].script
	assert "天台边缘" not in project.episodes[0].script
	assert project.settings.genre == "悬疑"


def test_init_twice_fails(project_dir: Path):
	with pytest.raises(ValueError, match="already exists"):
		cmd_init(str(project_dir), "again")


def test_import_unknown_episode(project_dir: Path, tmp_path: Path):
	with pytest.raises(ValueError, match="episode 9"):
		cmd_import(str(project_dir), str(tmp_path / "script.txt"), episode=9)


class TestRunPipeline:
	@pytest.mark.asyncio
	async def test_runs_through_prompts(self, project_dir: Path, fake_llm):
		ctx = StageContext(episode_number=1, llm=fake_llm, llm_model="fake-model")
		await run_until_async(project_dir, ctx, until="prompts")

		paths = episode_paths(project_dir, 1)
		m = load_manifest(paths.manifest)
		assert m.stage == "prompts_done"
		assert m.status["done"] == STAGE_ORDER[:-1]
		assert m.counts["num_shots"] == NUM_PLANNED
		assert m.counts["num_grids"] == 1
		assert m.counts["num_suggestions"] == 2
		assert m.providers["llm"] == {"model": "fake-model"}
		assert "shots" in m.finished_at

		assert "林晚推开铁门" in paths.script.read_text(encoding="utf-8")
		assert read_json(paths.cleaning)["constraints"][0]["rule"] == "无超自然元素"
		assert (paths.cot_dir / "stage3.json").exists()
		assert read_json(paths.review)["warnings"]

		shots = load_shots(paths.shots)
		assert len(shots) == NUM_PLANNED
		assert shots[0].image_prompt_cn == "林晚站在门口，第1镜"

		project = load_project(paths.project_file)
		ep = project.episode_by_number(1)
		assert ep.status == "reviewed"
		assert len(ep.shots) == NUM_PLANNED
		assert [c.name for c in project.characters] == ["林晚", "陈默"]
		assert [s.name for s in project.scenes] == ["废弃工厂"]

	@pytest.mark.asyncio
	async def test_extract_supplements_characters(self, project_dir: Path, fake_llm, tmp_path: Path):
		ref_dir = tmp_path / "refs"
		ref_dir.mkdir()
		ctx = StageContext(episode_number=1, llm=fake_llm, reference_dir=str(ref_dir))
		await run_until_async(project_dir, ctx, until="extract")

		project = load_project(project_file(project_dir))
		chen = project.characters[1]
		assert chen.name == "陈默"
		assert chen.appearance.startswith("【主体人物】")
		assert "【服饰造型】" in chen.appearance
		assert chen.costume_config["outer"]["material"] == "呢子"
		assert chen.abilities == ["枪法", "跟踪"]
		assert [f.name for f in chen.forms] == ["重伤形态", "便装形态"]
		assert fake_llm.count("# 角色补充 阶段1") == 2

	@pytest.mark.asyncio
	async def test_rerun_skips_done_stages(self, project_dir: Path, fake_llm):
		ctx = StageContext(episode_number=1, llm=fake_llm)
		await run_until_async(project_dir, ctx, until="shots")
		calls = len(fake_llm.calls)

		await run_until_async(project_dir, ctx, until="shots")
		assert len(fake_llm.calls) == calls

		await run_until_async(project_dir, ctx, until="clean", force=True)
		assert len(fake_llm.calls) == calls + 1

	@pytest.mark.asyncio
	async def test_optimize_applies_suggestions(self, project_dir: Path, fake_llm):
		ctx = StageContext(episode_number=1, llm=fake_llm, optimize=True)
		await run_until_async(project_dir, ctx, until="review")

		shots = load_shots(episode_paths(project_dir, 1).shots)
		assert shots[2].angle_height == "仰拍(Low Angle)"
		assert shots[2].id == "shot-cot-2"

	@pytest.mark.asyncio
	async def test_grids(self, project_dir: Path, fake_llm):
		client = FakeImageClient()
		ctx = StageContext(episode_number=1, llm=fake_llm, image_client=client, style_id="ink_wash")
		await run_until_async(project_dir, ctx, until="grids")

		paths = episode_paths(project_dir, 1)
		assert load_grid_results(paths.grids) == ["https://img.test/T1.png"]
		assert load_manifest(paths.manifest).stage == "grids_done"
		assert "林晚" in client.prompts[0]
		assert "sumi-e style" in client.prompts[0]
		shots = load_shots(paths.shots)
		assert shots[0].storyboard_grid_generation_meta.task_code == "T1"

	@pytest.mark.asyncio
	async def test_unfinished_grids_do_not_advance(self, project_dir: Path, fake_llm):
		from script2storyboard.providers.image.task_client import TaskResult, TaskStatus

		client = FakeImageClient(results={"T1": TaskResult(task_code="T1", status=TaskStatus.FAILED)})
		ctx = StageContext(episode_number=1, llm=fake_llm, image_client=client)
		await run_until_async(project_dir, ctx, until="grids")

		m = load_manifest(episode_paths(project_dir, 1).manifest)
		assert m.stage == "prompts_done"
		assert "grids" not in m.status["done"]

	@pytest.mark.asyncio
	async def test_failure_is_recorded(self, project_dir: Path):
		ctx = StageContext(episode_number=1)
		with pytest.raises(ValueError, match="needs an LLM"):
			await run_until_async(project_dir, ctx, until="clean")

		m = load_manifest(episode_paths(project_dir, 1).manifest)
		assert m.stage == "ingested"
		assert m.status["failed"] == ["clean"]
		assert m.status["last_error"].startswith("ValueError")

	@pytest.mark.asyncio
	async def test_missing_episode(self, project_dir: Path):
		with pytest.raises(ValueError, match="episode 5"):
			await run_until_async(project_dir, StageContext(episode_number=5), until="ingest")

	@pytest.mark.asyncio
	async def test_unknown_stage(self, project_dir: Path):
		with pytest.raises(ValueError, match="unknown stage"):
			await run_until_async(project_dir, StageContext(episode_number=1), until="publish")


class TestCli:
	def test_styles(self, capsys):
		main(["styles"])
		out = capsys.readouterr().out
		assert "rough_sketch" in out
		assert "blueprint" in out

	def test_errors_exit_with_status_1(self, project_dir: Path, capsys):
		with pytest.raises(SystemExit) as ei:
			main(["init", "--project_dir", str(project_dir), "--name", "again"])
		assert ei.value.code == 1
		assert "[ERR] project already exists" in capsys.readouterr().out

	def test_run_until_ingest_needs_no_keys(self, project_dir: Path, clean_env):
		clean_env.chdir(project_dir)
		main(["run", "--project_dir", str(project_dir), "--episode", "2", "--until", "ingest"])
		assert load_manifest(episode_paths(project_dir, 2).manifest).stage == "ingested"

	def test_apply_without_results(self, project_dir: Path, capsys):
		with pytest.raises(SystemExit):
			main(["apply", "--project_dir", str(project_dir), "--episode", "1"])
		assert "[ERR]" in capsys.readouterr().out
