# -*- coding: utf-8 -*-
"""状态容器、本地存储、事件和重试。"""

from __future__ import annotations

from pathlib import Path

import pytest

from script2storyboard.core.events import EventEmitter
from script2storyboard.core.local_store import (
	LocalStore,
	get_current_project_id,
	load_projects,
	save_projects,
	set_current_project_id,
)
from script2storyboard.core.retry import with_retry
from script2storyboard.core.schemas.project import new_episode, new_project
from script2storyboard.core.schemas.shot import Shot
from script2storyboard.core.state import (
	AppState,
	SelectEpisode,
	SetGridResult,
	SetProject,
	SetShots,
	Store,
	local_snapshot_persister,
	project_with_shots,
	reduce,
)
from script2storyboard.errors import AuthorizationError


def _project():
	p = new_project("夜行")
	ep = new_episode(1)
	ep.shots = [Shot(id="s1", shot_number="01")]
	p.episodes.append(ep)
	return p, ep


class TestReduce:
	def test_select_episode_loads_shots_and_resets_grids(self):
		p, ep = _project()
		s = reduce(AppState(), SetProject(p))
		s = reduce(s, SetGridResult(0, "https://x/old.png"))
		s = reduce(s, SelectEpisode(ep.id))
		assert s.selected_episode is ep
		assert [x.id for x in s.shots] == ["s1"]
		assert s.grid_results == ()

	def test_grid_slot_grows_and_old_state_is_untouched(self):
		s0 = AppState()
		s1 = reduce(s0, SetGridResult(2, "u"))
		assert s1.grid_results == ("", "", "u")
		assert s0.grid_results == ()

	def test_project_with_shots_does_not_mutate(self):
		p, ep = _project()
		s = reduce(reduce(AppState(), SetProject(p)), SelectEpisode(ep.id))
		s = reduce(s, SetShots((Shot(id="s2"),)))
		out = project_with_shots(s)
		assert [x.id for x in out.episodes[0].shots] == ["s2"]
		assert [x.id for x in p.episodes[0].shots] == ["s1"]

	def test_unknown_action(self):
		with pytest.raises(ValueError):
			reduce(AppState(), object())


class TestStore:
	def test_loading_sets_error_and_always_clears(self):
		store = Store()
		with pytest.raises(RuntimeError):
			with store.loading("生成中"):
				assert store.state.loading
				assert store.state.progress == "生成中"
				raise RuntimeError("boom")
		assert store.state.loading is False
		assert store.state.error == "boom"

	def test_persists_snapshot_after_shots_change(self, tmp_path: Path):
		local = LocalStore(tmp_path)
		p, ep = _project()
		store = Store(persist=local_snapshot_persister(local))
		store.dispatch(SetProject(p))
		store.dispatch(SelectEpisode(ep.id))
		store.dispatch(SetShots((Shot(id="s9"),)))

		saved = load_projects(local)
		assert saved[0].episodes[0].shots[0].id == "s9"

	def test_state_changed_event(self):
		seen = []
		store = Store()
		store.events.on("state_changed", lambda state, action: seen.append(type(action).__name__))
		store.dispatch(SetGridResult(0, "u"))
		assert seen == ["SetGridResult"]


class TestLocalStore:
	def test_oversized_value_is_skipped(self, tmp_path: Path):
		local = LocalStore(tmp_path, max_bytes=100)
		assert local.set_item("k", "x" * 90) is True
		assert local.set_item("k", "x" * 91) is False
		assert local.get_item("k") == "x" * 90

	def test_projects_and_current_id(self, tmp_path: Path):
		local = LocalStore(tmp_path)
		assert load_projects(local) == []

		p, _ = _project()
		assert save_projects(local, [p])
		assert load_projects(local)[0].name == "夜行"

		set_current_project_id(local, p.id)
		assert get_current_project_id(local) == p.id
		set_current_project_id(local, None)
		assert get_current_project_id(local) is None


class TestEvents:
	def test_unsubscribe_and_failing_listener(self):
		em = EventEmitter()
		got = []

		def bad(**kw):
			raise RuntimeError("listener bug")

		em.on("x", bad)
		off = em.on("x", lambda **kw: got.append(kw["n"]))
		em.emit("x", n=1)
		off()
		em.emit("x", n=2)
		assert got == [1]


class TestRetry:
	@pytest.mark.asyncio
	async def test_retries_until_success(self):
		calls = []

		async def fn():
			calls.append(1)
			if len(calls) < 3:
				raise ValueError("flaky")
			return "ok"

		retried = []
		out = await with_retry(fn, max_attempts=3, delay_s=0, on_retry=lambda n, e: retried.append(n))
		assert out == "ok"
		assert retried == [1, 2]

	@pytest.mark.asyncio
	async def test_raises_last_error(self):
		async def fn():
			raise ValueError("always")

		with pytest.raises(ValueError, match="always"):
			await with_retry(fn, max_attempts=2, delay_s=0)

	@pytest.mark.asyncio
	async def test_authorization_is_not_retried(self):
		calls = []

		async def fn():
			calls.append(1)
			raise AuthorizationError("bad key")

		with pytest.raises(AuthorizationError):
			await with_retry(fn, max_attempts=3, delay_s=0)
		assert len(calls) == 1

	@pytest.mark.asyncio
	async def test_invalid_attempts(self):
		async def fn():
			return 1

		with pytest.raises(ValueError):
			await with_retry(fn, max_attempts=0)
