# -*- coding: utf-8 -*-
"""九宫格任务找回。"""

from __future__ import annotations

from dataclasses import replace

import pytest

from conftest import FakeImageClient
from script2storyboard.core.events import GRID_RESOLVED, EventEmitter
from script2storyboard.core.schemas.shot import GridTaskMeta
from script2storyboard.grid.resume import (
	CancellationGuard,
	ResumeCoordinator,
	clear_stale_metadata,
	collect_pending_tasks,
	parse_task_time,
)
from script2storyboard.providers.image.task_client import TaskResult, TaskStatus


def _with_meta(shots, index, code, grid_index, created="2024-01-01T00:00:00Z"):
	shots[index] = replace(shots[index], storyboard_grid_generation_meta=GridTaskMeta(code, created, grid_index))
	return shots


def _ok(code, url):
	return TaskResult(task_code=code, status=TaskStatus.SUCCESS, image_urls=[url])


class TestCollect:
	def test_newest_task_wins(self, make_shots):
		shots = make_shots(9)
		_with_meta(shots, 0, "T-old", 0, "2024-01-01T00:00:00Z")
		_with_meta(shots, 4, "T-new", 0, "2024-01-02T00:00:00Z")
		_with_meta(shots, 8, "T-bad", 0, "yesterday")
		assert collect_pending_tasks(shots)[0].task_code == "T-new"

	def test_unparseable_time_loses_even_when_first(self, make_shots):
		shots = make_shots(2)
		_with_meta(shots, 0, "T-bad", 0, "")
		_with_meta(shots, 1, "T-ok", 0, "1704067200000")
		assert collect_pending_tasks(shots)[0].task_code == "T-ok"

	def test_parse_task_time(self):
		assert parse_task_time("2024-01-01T00:00:00Z") == parse_task_time("1704067200000")
		assert parse_task_time("2024-01-01T00:00:00") == parse_task_time("2024-01-01T00:00:00+00:00")
		assert parse_task_time("not a time") is None

	def test_seconds_and_millisecond_epochs(self, make_shots):
		assert parse_task_time("1704067200") == parse_task_time("1704067200000") == parse_task_time("2024-01-01T00:00:00Z")
		shots = make_shots(2)
		_with_meta(shots, 0, "T-ms", 0, "1704067200000")
		_with_meta(shots, 1, "T-s", 0, "1704153600")
		assert collect_pending_tasks(shots)[0].task_code == "T-s"


class TestResume:
	@pytest.mark.asyncio
	async def test_pending_task_is_recovered(self, make_shots):
		shots = _with_meta(make_shots(18), 0, "T1", 0)
		client = FakeImageClient(check_results={"T1": _ok("T1", "https://x/img1.png")})
		got = []

		results = await ResumeCoordinator(client, on_result=lambda gi, url: got.append((gi, url))).resume("ep-1", shots)

		assert results[0] == "https://x/img1.png"
		assert results[1] == ""
		assert got == [(0, "https://x/img1.png")]
		# 单次查询已经结束，不再轮询
		assert client.events == ["check:T1"]

	@pytest.mark.asyncio
	async def test_failed_task_leaves_slot_empty(self, make_shots):
		shots = _with_meta(make_shots(9), 0, "T1", 0)
		failed = TaskResult(task_code="T1", status=TaskStatus.FAILED, failure_reason="content policy")
		client = FakeImageClient(check_results={"T1": failed})

		outcome = await ResumeCoordinator(client).scan("ep-1", shots)

		assert outcome.results == [""]
		assert outcome.failed == [0]
		assert outcome.resolved == []

	@pytest.mark.asyncio
	async def test_not_finished_polls_then_reports_pending(self, make_shots):
		shots = _with_meta(make_shots(9), 0, "T1", 0)
		running = TaskResult(task_code="T1", status=TaskStatus.PENDING)
		timed_out = TaskResult(task_code="T1", status=TaskStatus.PENDING, timed_out=True)
		client = FakeImageClient(results={"T1": timed_out}, check_results={"T1": running})

		outcome = await ResumeCoordinator(client).scan("ep-1", shots)

		assert client.events == ["check:T1", "poll:T1"]
		assert outcome.pending == [0]
		assert outcome.results == [""]

	@pytest.mark.asyncio
	async def test_error_on_one_grid_does_not_stop_others(self, make_shots):
		shots = make_shots(18)
		_with_meta(shots, 0, "T1", 0)
		_with_meta(shots, 9, "T2", 1)
		client = FakeImageClient(check_results={"T1": RuntimeError("network down"), "T2": _ok("T2", "https://x/2.png")})

		outcome = await ResumeCoordinator(client).scan("ep-1", shots)

		assert outcome.errors == {0: "network down"}
		assert outcome.results == ["", "https://x/2.png"]

	@pytest.mark.asyncio
	async def test_applied_grid_is_skipped_and_reported_stale(self, make_shots):
		shots = _with_meta(make_shots(9), 0, "T1", 0)
		shots[3] = replace(shots[3], storyboard_grid_url="https://x/done.png")
		client = FakeImageClient()

		outcome = await ResumeCoordinator(client).scan("ep-1", shots, ["https://x/done.png"])

		assert client.events == []
		assert outcome.stale_grids == [0]
		assert outcome.results == ["https://x/done.png"]

		cleaned = clear_stale_metadata(shots)
		assert cleaned[0].storyboard_grid_generation_meta is None
		assert shots[0].storyboard_grid_generation_meta is not None

	@pytest.mark.asyncio
	async def test_switching_episode_discards_results(self, make_shots):
		shots = make_shots(18)
		_with_meta(shots, 0, "T1", 0)
		_with_meta(shots, 9, "T2", 1)
		guard = CancellationGuard()

		class SwitchingClient(FakeImageClient):
			async def check_once(self, code, abort=None):
				result = await super().check_once(code, abort)
				guard.select("ep-2")
				return result

		client = SwitchingClient()
		got = []
		outcome = await ResumeCoordinator(client, guard=guard, on_result=lambda gi, url: got.append(gi)).scan("ep-1", shots)

		assert outcome.aborted is True
		assert outcome.results == ["", ""]
		assert got == []
		assert client.events == ["check:T1"]

	@pytest.mark.asyncio
	async def test_second_scan_is_idempotent(self, make_shots):
		shots = _with_meta(make_shots(9), 0, "T1", 0)
		client = FakeImageClient()
		coordinator = ResumeCoordinator(client)

		first = await coordinator.resume("ep-1", shots)
		second = await coordinator.resume("ep-1", shots, first)
		assert first == second == ["https://img.test/T1.png"]

	@pytest.mark.asyncio
	async def test_emits_grid_resolved(self, make_shots):
		shots = _with_meta(make_shots(9), 0, "T1", 0)
		events = EventEmitter()
		seen = []
		events.on(GRID_RESOLVED, lambda **kw: seen.append(kw))

		await ResumeCoordinator(FakeImageClient(), events=events).scan("ep-1", shots)

		assert seen == [{"episode_id": "ep-1", "grid_index": 0, "url": "https://img.test/T1.png"}]

	@pytest.mark.asyncio
	async def test_nothing_to_do(self, make_shots):
		client = FakeImageClient()
		outcome = await ResumeCoordinator(client).scan("ep-1", make_shots(10))
		assert outcome.results == ["", ""]
		assert client.events == []


@pytest.mark.asyncio
async def test_raising_on_result_does_not_stop_scan(make_shots):
	shots = _with_meta(make_shots(18), 0, "T1", 0)
	_with_meta(shots, 9, "T2", 1)
	client = FakeImageClient(check_results={
		"T1": _ok("T1", "https://x/img1.png"),
		"T2": _ok("T2", "https://x/img2.png"),
	})

	def on_result(gi, url):
		raise RuntimeError("ui gone")

	outcome = await ResumeCoordinator(client, on_result=on_result).scan("ep-1", shots)

	assert outcome.results == ["https://x/img1.png", "https://x/img2.png"]
	assert outcome.resolved == [0, 1]
