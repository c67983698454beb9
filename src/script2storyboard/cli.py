# -*- coding: utf-8 -*-
"""
script2storyboard/cli.py

目的：
- 提供项目的命令行入口。
- init：创建项目目录和 project.json。
- import：把剧本文本按“第X集”切开，写进项目的剧集列表。
- run：调用 pipeline/orchestrator.py 运行若干 stage（支持 --until）。
- resume：找回已提交但还没拿到结果的九宫格任务。
- apply：把 grids.json 里的九宫格结果写进镜头表（可选先转存到对象存储）。
- sheets：先找回未完成的设定图任务，再为还没有设定图的角色/场景生成设定图。
- styles：列出可用的九宫格画风。

注意：
- CLI 不做业务细节：不调模型、不拼提示词。
- CLI 只负责参数解析、装配外部 client，然后把任务交给 orchestrator / grid 模块。
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Optional

import httpx

from script2storyboard.errors import StoryboardError
from script2storyboard.pipeline.orchestrator import STAGE_ORDER

logger = logging.getLogger(__name__)

# 这些 stage 需要 LLM；--until 落在 ingest 之前的都不用配 key
LLM_STAGES = {"clean", "extract", "shots", "review", "prompts"}


def build_parser() -> argparse.ArgumentParser:
	from script2storyboard.grid.prompt import STORYBOARD_STYLES

	p = argparse.ArgumentParser(
		prog="script2storyboard",
		description="Script -> storyboard pipeline (five-stage shot list + nine-grid sketches)",
	)
	p.add_argument("-v", "--verbose", action="store_true", help="DEBUG 日志")

	sub = p.add_subparsers(dest="cmd", required=True)

	initp = sub.add_parser("init", help="Create project.json in a project directory")
	initp.add_argument("--project_dir", required=True, help="e.g. output/my_drama")
	initp.add_argument("--name", required=True)
	initp.add_argument("--genre", default="")
	initp.add_argument("--world_view", default="", help="世界观/年代，如 现代、民国、古代")

	impp = sub.add_parser("import", help="Split a script file into episodes and add them to the project")
	impp.add_argument("--project_dir", required=True)
	impp.add_argument("--script", required=True, help="剧本 txt（UTF-8）")
	impp.add_argument("--episode", type=int, default=None, help="只导入指定集；缺省导入全部")

	runp = sub.add_parser("run", help="Run pipeline for one episode")
	runp.add_argument("--project_dir", required=True)
	runp.add_argument("--episode", type=int, required=True)
	runp.add_argument("--until", default="shots", choices=STAGE_ORDER)
	runp.add_argument("--force", action="store_true", help="已完成的 stage 也重跑")
	runp.add_argument("--style", default="rough_sketch", choices=[s.id for s in STORYBOARD_STYLES])
	runp.add_argument("--optimize", action="store_true", help="review 后按建议自动优化镜头")

	resp = sub.add_parser("resume", help="Recover nine-grid tasks that were submitted but never collected")
	resp.add_argument("--project_dir", required=True)
	resp.add_argument("--episode", type=int, required=True)

	appp = sub.add_parser("apply", help="Write grids.json results into the shot list")
	appp.add_argument("--project_dir", required=True)
	appp.add_argument("--episode", type=int, required=True)
	appp.add_argument("--mirror", action="store_true", help="先把图片转存到对象存储（OSS_*）")

	shp = sub.add_parser("sheets", help="Generate character/scene design sheets (unfinished sheet tasks are resumed first)")
	shp.add_argument("--project_dir", required=True)
	shp.add_argument("--only", default=None, choices=["characters", "scenes"])
	shp.add_argument("--resume_only", action="store_true", help="只找回进行中的任务，不新建")
	shp.add_argument("--style", default="rough_sketch", choices=[s.id for s in STORYBOARD_STYLES])

	sub.add_parser("styles", help="List storyboard styles")

	return p


def cmd_init(project_dir: str, name: str, genre: str = "", world_view: str = "") -> None:
	from script2storyboard.core.io import project_file
	from script2storyboard.core.project_file import save_project
	from script2storyboard.core.schemas.project import ProjectSettings, new_project

	path = project_file(project_dir)
	if path.exists():
		raise ValueError(f"project already exists: {path}")

	path.parent.mkdir(parents=True, exist_ok=True)
	project = new_project(name, ProjectSettings(genre=genre, world_view=world_view))
	save_project(path, project)
	print(f"[OK] project created: {path} (id={project.id})")


def cmd_import(project_dir: str, script_path: str, episode: Optional[int] = None) -> None:
	from script2storyboard.core.io import episode_paths, project_file
	from script2storyboard.core.project_file import load_project, save_project
	from script2storyboard.core.schemas.project import new_episode
	from script2storyboard.core.script_text import split_episodes

	src = Path(script_path)
	if not src.exists():
		raise FileNotFoundError(f"script not found: {src}")

	path = project_file(project_dir)
	project = load_project(path)

	_, segs = split_episodes(src.read_text(encoding="utf-8"))
	if episode is not None:
		segs = [s for s in segs if s.no == episode]
		if not segs:
			raise ValueError(f"episode {episode} not found in {src}")

	for seg in segs:
		ep = project.episode_by_number(seg.no)
		if ep is None:
			project.episodes.append(new_episode(seg.no, script=seg.text, title=seg.title))
			print(f"[OK] + episode {seg.no}: {seg.title} ({len(seg.text)} chars)")
		else:
			# 剧本变了，旧的中间产物不再可信：交给 run --force 重新生成
			ep.script = seg.text
			ep.title = seg.title
			script_file = episode_paths(project_dir, seg.no).script
			if script_file.exists():
				script_file.write_text(seg.text, encoding="utf-8")
			print(f"[OK] ~ episode {seg.no}: script replaced, rerun with --force")

	project.episodes.sort(key=lambda e: e.episode_number)
	save_project(path, project)
	print(f"[OK] imported {len(segs)} episode(s) -> {path}")


def _load_episode_store(project_dir: str):
	from script2storyboard.config import load_settings
	from script2storyboard.providers.storage.episode_store import load_episode_store

	if not load_settings(project_dir).episodes.base_url:
		return None
	return load_episode_store(project_dir)


async def _run_async(
	project_dir: str,
	episode: int,
	until: str,
	force: bool,
	style: str,
	optimize: bool,
) -> None:
	from script2storyboard.config import load_settings
	from script2storyboard.pipeline.orchestrator import run_until_async
	from script2storyboard.providers.image.task_client import load_image_task_client
	from script2storyboard.providers.llm.openrouter_client import load_openrouter_client
	from script2storyboard.stages.base import StageContext

	settings = load_settings(project_dir)
	in_range = set(STAGE_ORDER[: STAGE_ORDER.index(until) + 1])

	llm = load_openrouter_client(project_dir) if in_range & LLM_STAGES else None
	image = load_image_task_client(project_dir) if until == "grids" else None
	store = _load_episode_store(project_dir)

	ctx = StageContext(
		episode_number=episode,
		llm=llm,
		llm_model=settings.openrouter.model,
		image_client=image,
		episode_store=store,
		style_id=style,
		reference_dir=settings.reference_data_dir,
		optimize=optimize,
	)
	try:
		await run_until_async(project_dir, ctx, until=until, force=force)
	finally:
		for c in (llm, image, store):
			if c is not None:
				await c.aclose()


def cmd_run(project_dir: str, episode: int, until: str, force: bool = False, style: str = "rough_sketch", optimize: bool = False) -> None:
	asyncio.run(_run_async(project_dir, episode, until, force, style, optimize))


async def _resume_async(project_dir: str, episode: int) -> None:
	from script2storyboard.config import load_settings
	from script2storyboard.core.io import episode_paths
	from script2storyboard.core.local_store import LocalStore
	from script2storyboard.core.project_file import load_grid_results, load_project, save_grid_results
	from script2storyboard.core.state import SelectEpisode, SetGridResult, SetGridResults, SetProject, Store, local_snapshot_persister
	from script2storyboard.grid.resume import ResumeCoordinator
	from script2storyboard.providers.image.task_client import load_image_task_client

	paths = episode_paths(project_dir, episode)
	project = load_project(paths.project_file)
	ep = project.episode_by_number(episode)
	if ep is None:
		raise ValueError(f"episode {episode} not in {paths.project_file}")

	store = Store(persist=local_snapshot_persister(LocalStore(load_settings(project_dir).local_store_dir)))
	store.dispatch(SetProject(project))
	store.dispatch(SelectEpisode(ep.id))
	store.dispatch(SetGridResults(tuple(load_grid_results(paths.grids))))

	client = load_image_task_client(project_dir)
	coordinator = ResumeCoordinator(client, on_result=lambda gi, url: store.dispatch(SetGridResult(gi, url)))
	try:
		with store.loading("resume grid tasks"):
			outcome = await coordinator.scan(ep.id, store.state.shots, store.state.grid_results)
	finally:
		await client.aclose()

	save_grid_results(paths.grids, list(store.state.grid_results))
	print(f"[OK] resolved={outcome.resolved} failed={outcome.failed} pending={outcome.pending}")
	if outcome.stale_grids:
		print(f"[INFO] stale task pointers on applied grids: {outcome.stale_grids}")
	for gi, err in sorted(outcome.errors.items()):
		print(f"[WARN] grid {gi}: {err}")


def cmd_resume(project_dir: str, episode: int) -> None:
	asyncio.run(_resume_async(project_dir, episode))


async def _apply_async(project_dir: str, episode: int, mirror: bool) -> None:
	from script2storyboard.core.io import episode_paths
	from script2storyboard.core.project_file import load_grid_results, load_project, load_shots, save_grid_results, save_project, save_shots
	from script2storyboard.grid.apply import ApplyGridsStep, mirror_grid_images
	from script2storyboard.providers.storage.object_store import load_object_store

	paths = episode_paths(project_dir, episode)
	project = load_project(paths.project_file)
	ep = project.episode_by_number(episode)
	if ep is None:
		raise ValueError(f"episode {episode} not in {paths.project_file}")

	shots = load_shots(paths.shots)
	urls = load_grid_results(paths.grids)
	if not any(urls):
		raise ValueError(f"no grid results in {paths.grids} (先运行 grids 或 resume)")

	if mirror:
		urls = await mirror_grid_images(urls, load_object_store(project_dir), project.id, episode)
		save_grid_results(paths.grids, urls)

	store = _load_episode_store(project_dir)
	try:
		outcome = await ApplyGridsStep(store).commit(ep.id, shots, urls)
	finally:
		if store is not None:
			await store.aclose()

	save_shots(paths.shots, outcome.shots)
	ep.shots = list(outcome.shots)
	save_project(paths.project_file, project)

	print(f"[OK] applied grids: {outcome.applied_grids}")
	if not outcome.synced:
		print(f"[WARN] {outcome.warning}")


def cmd_apply(project_dir: str, episode: int, mirror: bool = False) -> None:
	asyncio.run(_apply_async(project_dir, episode, mirror))


async def _sheets_async(project_dir: str, only: Optional[str], resume_only: bool, style: str) -> None:
	from script2storyboard.config import load_settings
	from script2storyboard.core.io import project_file
	from script2storyboard.core.project_file import load_project, save_project
	from script2storyboard.grid.prompt import get_style
	from script2storyboard.grid.sheets import KIND_CHARACTER, KIND_SCENE, KINDS, SheetGenerator
	from script2storyboard.providers.image.task_client import load_image_task_client

	path = project_file(project_dir)
	project = load_project(path)
	kinds = {"characters": (KIND_CHARACTER,), "scenes": (KIND_SCENE,)}.get(only or "", KINDS)

	client = load_image_task_client(project_dir)
	generator = SheetGenerator(
		client,
		project,
		persist=lambda p: save_project(path, p),
		style=get_style(style),
		model_name=load_settings(project_dir).image.model,
	)
	try:
		resumed = await generator.resume_pending()
		made = None if resume_only else await generator.generate_missing(kinds)
	finally:
		await client.aclose()

	save_project(path, project)
	print(f"[OK] resumed={resumed.generated} failed={resumed.failed} pending={resumed.pending}")
	if made is not None:
		print(f"[OK] generated={made.generated} failed={made.failed} pending={made.pending}")
	for run in [r for r in (resumed, made) if r is not None]:
		for key, err in sorted(run.errors.items()):
			print(f"[WARN] {key}: {err}")


def cmd_sheets(project_dir: str, only: Optional[str] = None, resume_only: bool = False, style: str = "rough_sketch") -> None:
	asyncio.run(_sheets_async(project_dir, only, resume_only, style))


def cmd_styles() -> None:
	from script2storyboard.grid.prompt import STORYBOARD_STYLES

	for s in STORYBOARD_STYLES:
		print(f"{s.id:<14}{s.name}  {s.description}")


def main(argv=None) -> None:
	args = build_parser().parse_args(argv)
	logging.basicConfig(
		level=logging.DEBUG if args.verbose else logging.INFO,
		format="%(asctime)s %(levelname)s %(name)s: %(message)s",
	)

	try:
		if args.cmd == "init":
			cmd_init(args.project_dir, args.name, genre=args.genre, world_view=args.world_view)
		elif args.cmd == "import":
			cmd_import(args.project_dir, args.script, episode=args.episode)
		elif args.cmd == "run":
			cmd_run(args.project_dir, args.episode, args.until, force=args.force, style=args.style, optimize=args.optimize)
		elif args.cmd == "resume":
			cmd_resume(args.project_dir, args.episode)
		elif args.cmd == "apply":
			cmd_apply(args.project_dir, args.episode, mirror=args.mirror)
		elif args.cmd == "sheets":
			cmd_sheets(args.project_dir, only=args.only, resume_only=args.resume_only, style=args.style)
		elif args.cmd == "styles":
			cmd_styles()
	except (StoryboardError, ValueError, FileNotFoundError, httpx.HTTPError) as e:
		logger.debug("command %s failed", args.cmd, exc_info=True)
		print(f"[ERR] {e}")
		sys.exit(1)
