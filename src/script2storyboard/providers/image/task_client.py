# -*- coding: utf-8 -*-
"""
providers/image/task_client.py

这个文件做什么：
- 图片生成任务接口的异步 client，只暴露任务生命周期的三个操作：
  1) create_task(params, on_task_code) -> task_code
     提交后立刻拿到任务编码；on_task_code 会在返回前被 await，
     调用方必须在这里把编码落盘（之后任何 await 都可能被中断）。
  2) check_once(task_code) -> TaskResult   单次查询，不等待
  3) poll_until_done(task_code, on_progress) -> TaskResult
     间隔逐步拉长地查询，直到 SUCCESS/FAILED；
     超过总时长（默认 180s）返回 status=PENDING, timed_out=True，绝不无限等待。

接口约定（JSON over HTTPS，header 带 accessToken）：
- POST {base}/agent/ai-image-generation/generate
- GET  {base}/agent/ai-image-generation/result/{task_code}
- 返回 {success, data:{task_code, status, image_urls, failure_reason, create_time}, errCode, errMessage}

错误约定：
- 鉴权/额度问题 -> AuthorizationError（不重试）
- success=false 或返回体不是 JSON 对象 -> TaskApiError
- 网络错误 -> httpx.HTTPError 原样抛出（调用方视为暂时性错误）
- abort 事件被触发 -> 取消进行中的请求，抛 TaskAborted
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, TypeVar, Union

import httpx

from script2storyboard.config import load_settings, require
from script2storyboard.errors import AuthorizationError, TaskAborted, TaskApiError

logger = logging.getLogger(__name__)

T = TypeVar("T")

_AUTH_STATUS = (401, 402, 403)
_AUTH_HINTS = ("未登录", "余额不足", "积分不足", "token", "Token", "unauthorized", "Unauthorized")


class TaskStatus(str, Enum):
	PENDING = "PENDING"
	SUCCESS = "SUCCESS"
	FAILED = "FAILED"


@dataclass
class TaskResult:
	task_code: str
	status: TaskStatus
	image_urls: List[str] = field(default_factory=list)
	failure_reason: str = ""
	create_time: str = ""
	timed_out: bool = False

	@property
	def is_terminal(self) -> bool:
		return self.status in (TaskStatus.SUCCESS, TaskStatus.FAILED)

	@property
	def first_url(self) -> str:
		return self.image_urls[0] if self.image_urls else ""


@dataclass
class ImageGenerationRequest:
	prompt: str
	model_name: str = ""
	negative_prompt: str = ""
	image_urls: List[str] = field(default_factory=list)
	aspect_ratio: str = "16:9"
	num_images: str = "1"
	output_format: str = "jpeg"
	size: str = ""
	show_prompt: bool = False

	def to_payload(self) -> Dict[str, Any]:
		d: Dict[str, Any] = {
			"prompt": self.prompt,
			"modelName": self.model_name,
			"aspectRatio": self.aspect_ratio,
			"numImages": self.num_images,
			"outputFormat": self.output_format,
			"showPrompt": self.show_prompt,
		}
		if self.negative_prompt:
			d["negativePrompt"] = self.negative_prompt
		if self.image_urls:
			d["imageUrls"] = list(self.image_urls)
		if self.size:
			d["size"] = self.size
		return d


@dataclass
class PollPolicy:
	"""轮询节奏：2s 起步，每次 ×1.5，最多 10s 一次，总共不超过 180s。"""
	initial_delay_s: float = 2.0
	factor: float = 1.5
	max_delay_s: float = 10.0
	timeout_s: float = 180.0


@dataclass
class ImageTaskConfig:
	access_token: str
	user_id: str
	base_url: str
	model: str
	timeout_s: float = 30.0


def _result_from_data(data: Dict[str, Any]) -> TaskResult:
	raw_status = str(data.get("status") or "PENDING").upper()
	try:
		status = TaskStatus(raw_status)
	except ValueError:
		status = TaskStatus.PENDING

	return TaskResult(
		task_code=str(data.get("task_code", "")),
		status=status,
		image_urls=[str(u) for u in (data.get("image_urls") or []) if u],
		failure_reason=str(data.get("failure_reason") or ""),
		create_time=str(data.get("create_time") or ""),
	)


async def _maybe_await(v: Union[T, Awaitable[T]]) -> Optional[T]:
	if inspect.isawaitable(v):
		return await v
	return v


async def run_abortable(coro: Awaitable[T], abort: Optional[asyncio.Event]) -> T:
	"""
	abort 为空时直接 await；否则和 abort.wait() 赛跑，
	abort 先到就取消请求并抛 TaskAborted。
	"""
	if abort is None:
		return await coro

	task = asyncio.ensure_future(coro)
	if abort.is_set():
		task.cancel()
		raise TaskAborted("aborted")

	waiter = asyncio.ensure_future(abort.wait())
	done, _ = await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)

	if task in done:
		waiter.cancel()
		return task.result()

	task.cancel()
	await asyncio.gather(task, return_exceptions=True)
	raise TaskAborted("aborted")


async def abortable_sleep(delay_s: float, abort: Optional[asyncio.Event]) -> None:
	if abort is None:
		await asyncio.sleep(delay_s)
		return
	try:
		await asyncio.wait_for(abort.wait(), timeout=delay_s)
	except asyncio.TimeoutError:
		return
	raise TaskAborted("aborted")


class ImageTaskClient:
	def __init__(
		self,
		cfg: ImageTaskConfig,
		policy: Optional[PollPolicy] = None,
		transport: Optional[httpx.AsyncBaseTransport] = None,
	):
		self.cfg = cfg
		self.policy = policy or PollPolicy()
		self._client = httpx.AsyncClient(
			base_url=cfg.base_url,
			timeout=httpx.Timeout(cfg.timeout_s),
			headers={"accessToken": cfg.access_token},
			transport=transport,
		)

	async def aclose(self) -> None:
		await self._client.aclose()

	def _unwrap(self, r: httpx.Response, what: str) -> Dict[str, Any]:
		if r.status_code in _AUTH_STATUS:
			raise AuthorizationError(f"{what}: HTTP {r.status_code}")
		r.raise_for_status()

		try:
			body = r.json()
		except ValueError as e:
			raise TaskApiError(f"{what}: response is not JSON: {r.text[:200]}") from e
		if not isinstance(body, dict):
			raise TaskApiError(f"{what}: unexpected response: {r.text[:200]}")
		if not body.get("success") or not body.get("data"):
			msg = body.get("errMessage") or f"{what} failed"
			code = str(body.get("errCode") or "")
			if any(h in msg for h in _AUTH_HINTS):
				raise AuthorizationError(msg)
			raise TaskApiError(msg, err_code=code)
		return body["data"]

	async def create_task(
		self,
		params: Union[ImageGenerationRequest, Dict[str, Any]],
		on_task_code: Optional[Callable[[str], Any]] = None,
		abort: Optional[asyncio.Event] = None,
	) -> str:
		payload = params.to_payload() if isinstance(params, ImageGenerationRequest) else dict(params)
		if not payload.get("modelName"):
			payload["modelName"] = self.cfg.model
		payload["userId"] = self.cfg.user_id

		r = await run_abortable(self._client.post("/agent/ai-image-generation/generate", json=payload), abort)
		data = self._unwrap(r, "create task")

		task_code = str(data.get("task_code") or "")
		if not task_code:
			raise TaskApiError("create task: response has no task_code")

		logger.info("image task created: %s", task_code)
		if on_task_code is not None:
			await _maybe_await(on_task_code(task_code))
		return task_code

	async def check_once(self, task_code: str, abort: Optional[asyncio.Event] = None) -> TaskResult:
		r = await run_abortable(self._client.get(f"/agent/ai-image-generation/result/{task_code}"), abort)
		result = _result_from_data(self._unwrap(r, "check task"))
		if not result.task_code:
			result = replace(result, task_code=task_code)
		return result

	async def poll_until_done(
		self,
		task_code: str,
		on_progress: Optional[Callable[[TaskStatus, int], None]] = None,
		abort: Optional[asyncio.Event] = None,
	) -> TaskResult:
		p = self.policy
		loop = asyncio.get_running_loop()
		deadline = loop.time() + p.timeout_s
		delay = p.initial_delay_s
		attempt = 0

		while True:
			attempt += 1
			result = await self.check_once(task_code, abort=abort)
			if on_progress is not None:
				on_progress(result.status, attempt)

			if result.is_terminal:
				return result

			remaining = deadline - loop.time()
			if remaining <= 0:
				logger.warning("image task %s still pending after %.0fs (%d checks)", task_code, p.timeout_s, attempt)
				return replace(result, status=TaskStatus.PENDING, timed_out=True)

			await abortable_sleep(min(delay, remaining), abort)
			delay = min(delay * p.factor, p.max_delay_s)


def load_image_task_client(
	project_root: Optional[str] = None,
	access_token: Optional[str] = None,
	user_id: Optional[str] = None,
	base_url: Optional[str] = None,
	model: Optional[str] = None,
	policy: Optional[PollPolicy] = None,
	transport: Optional[httpx.AsyncBaseTransport] = None,
) -> ImageTaskClient:
	s = load_settings(project_root).image

	cfg = ImageTaskConfig(
		access_token=require((access_token or s.access_token).strip(), "IMAGE_ACCESS_TOKEN"),
		user_id=require((user_id or s.user_id).strip(), "IMAGE_USER_ID"),
		base_url=(base_url or s.base_url).strip(),
		model=(model or s.model).strip(),
	)
	return ImageTaskClient(cfg, policy=policy, transport=transport)
