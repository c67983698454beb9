# -*- coding: utf-8 -*-
"""
script2storyboard/core/state.py

目的：
- 把“当前项目 / 当前剧集 / 镜头表 / 九宫格结果 / 加载状态”收拢成一个显式的状态对象。
- 所有修改都走 reduce(state, action)：输入旧状态，返回新状态，旧状态不变。
- 持久化是 dispatch 之后显式执行的副作用（persist 回调），不是隐式钩子。

约定：
- 列表字段一律整体替换（copy-on-write），不原地修改。
- persist 失败只记日志，不回滚内存状态。
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field, replace
from typing import Callable, Iterator, List, Optional, Tuple, Union

from .events import EventEmitter
from .local_store import LocalStore, save_projects
from .schemas.project import Episode, Project
from .schemas.shot import Shot

logger = logging.getLogger(__name__)

STATE_CHANGED = "state_changed"


@dataclass(frozen=True)
class AppState:
	project: Optional[Project] = None
	selected_episode_id: Optional[str] = None
	shots: Tuple[Shot, ...] = ()
	grid_results: Tuple[str, ...] = ()
	loading: bool = False
	progress: str = ""
	error: str = ""

	@property
	def selected_episode(self) -> Optional[Episode]:
		if self.project is None or self.selected_episode_id is None:
			return None
		return self.project.episode_by_id(self.selected_episode_id)


@dataclass(frozen=True)
class SetProject:
	project: Project


@dataclass(frozen=True)
class SelectEpisode:
	episode_id: Optional[str]


@dataclass(frozen=True)
class SetShots:
	shots: Tuple[Shot, ...]


@dataclass(frozen=True)
class SetGridResult:
	grid_index: int
	url: str


@dataclass(frozen=True)
class SetGridResults:
	results: Tuple[str, ...]


@dataclass(frozen=True)
class SetLoading:
	loading: bool
	progress: str = ""


@dataclass(frozen=True)
class SetError:
	message: str


Action = Union[SetProject, SelectEpisode, SetShots, SetGridResult, SetGridResults, SetLoading, SetError]


def _with_slot(results: Tuple[str, ...], index: int, url: str) -> Tuple[str, ...]:
	out = list(results)
	if len(out) <= index:
		out.extend([""] * (index + 1 - len(out)))
	out[index] = url
	return tuple(out)


def reduce(state: AppState, action: Action) -> AppState:
	if isinstance(action, SetProject):
		return replace(state, project=action.project)

	if isinstance(action, SelectEpisode):
		ep = state.project.episode_by_id(action.episode_id) if (state.project and action.episode_id) else None
		return replace(
			state,
			selected_episode_id=action.episode_id,
			shots=tuple(ep.shots) if ep else (),
			grid_results=(),
		)

	if isinstance(action, SetShots):
		return replace(state, shots=tuple(action.shots))

	if isinstance(action, SetGridResult):
		return replace(state, grid_results=_with_slot(state.grid_results, action.grid_index, action.url))

	if isinstance(action, SetGridResults):
		return replace(state, grid_results=tuple(action.results))

	if isinstance(action, SetLoading):
		return replace(state, loading=action.loading, progress=action.progress if action.loading else "")

	if isinstance(action, SetError):
		return replace(state, error=action.message)

	raise ValueError(f"unknown action: {action!r}")


def project_with_shots(state: AppState) -> Optional[Project]:
	"""把 state.shots 写回当前剧集，得到一份用于持久化的新 Project（不改原对象）。"""
	if state.project is None:
		return None
	if state.selected_episode_id is None:
		return state.project

	episodes: List[Episode] = []
	for ep in state.project.episodes:
		if ep.id == state.selected_episode_id:
			ep = replace(ep, shots=list(state.shots))
		episodes.append(ep)
	return replace(state.project, episodes=episodes)


def local_snapshot_persister(store: LocalStore) -> Callable[[AppState, Action], None]:
	"""镜头/项目变化后把项目快照写进本地存储（超限时 LocalStore 自己跳过）。"""
	def persist(state: AppState, action: Action) -> None:
		if not isinstance(action, (SetProject, SetShots)):
			return
		p = project_with_shots(state)
		if p is not None:
			save_projects(store, [p])

	return persist


class Store:
	def __init__(
		self,
		state: Optional[AppState] = None,
		persist: Optional[Callable[[AppState, Action], None]] = None,
		emitter: Optional[EventEmitter] = None,
	):
		self.state = state or AppState()
		self.persist = persist
		self.events = emitter or EventEmitter()

	def dispatch(self, action: Action) -> AppState:
		self.state = reduce(self.state, action)

		if self.persist is not None:
			try:
				self.persist(self.state, action)
			except OSError as e:
				logger.warning("persist after %s failed: %s", type(action).__name__, e)

		self.events.emit(STATE_CHANGED, state=self.state, action=action)
		return self.state

	@contextmanager
	def loading(self, progress: str = "") -> Iterator[None]:
		"""用户动作的加载状态：无论成功失败都会在 finally 里清掉。"""
		self.dispatch(SetLoading(True, progress))
		try:
			yield
		except Exception as e:
			self.dispatch(SetError(str(e)))
			raise
		finally:
			self.dispatch(SetLoading(False))
