# -*- coding: utf-8 -*-
"""
script2storyboard/core/retry.py

通用重试：with_retry(fn, max_attempts, delay_s, is_retryable, backoff, max_delay_s)

- fn 是无参协程工厂（每次重试都重新调用，得到新的协程）。
- is_retryable(exc) 返回 False 时立刻抛出，不再重试（例如鉴权失败）。
- backoff=1.0 为固定间隔；>1 为指数退避，max_delay_s 封顶。
- 最后一次仍失败时抛出最后那个异常。
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional, TypeVar

from script2storyboard.errors import AuthorizationError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def default_is_retryable(exc: BaseException) -> bool:
	return not isinstance(exc, AuthorizationError)


async def with_retry(
	fn: Callable[[], Awaitable[T]],
	max_attempts: int = 3,
	delay_s: float = 2.0,
	is_retryable: Callable[[BaseException], bool] = default_is_retryable,
	backoff: float = 1.0,
	max_delay_s: Optional[float] = None,
	on_retry: Optional[Callable[[int, BaseException], None]] = None,
	label: str = "",
) -> T:
	if max_attempts < 1:
		raise ValueError("max_attempts must be >= 1")

	attempt = 0
	while True:
		attempt += 1
		try:
			return await fn()
		except Exception as e:
			if attempt >= max_attempts or not is_retryable(e):
				raise

			delay = delay_s * (backoff ** (attempt - 1))
			if max_delay_s is not None:
				delay = min(delay, max_delay_s)

			logger.warning("%s attempt %d/%d failed: %s; retry in %.1fs", label or "call", attempt, max_attempts, e, delay)
			if on_retry is not None:
				on_retry(attempt, e)
			await asyncio.sleep(delay)
