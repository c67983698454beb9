# -*- coding: utf-8 -*-
"""
providers/llm/openrouter_client.py

这个文件做什么：
- 提供一个极薄的 OpenRouter（OpenAI 兼容）流式 LLM Client，供 skill 层调用。
- 对外接口：
  - send(prompt, model) -> 异步迭代文本片段（SSE 流）
  - complete(prompt, model, on_chunk) -> 拼好的完整文本
- skill 层只依赖这两个方法，测试时用假对象替换即可。

错误约定：
- 401/402/403：AuthorizationError（key 无效、余额不足），上层不重试
- 其他非 2xx：ValueError，body 截断到 1000 字
- 流中途断开：httpx 的异常原样抛出，由上层 with_retry 处理
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, AsyncIterator, Callable, Dict, Optional

import httpx

from script2storyboard.config import load_settings, require
from script2storyboard.errors import AuthorizationError

logger = logging.getLogger(__name__)

_AUTH_STATUS = (401, 402, 403)


@dataclass
class OpenRouterConfig:
	api_key: str
	base_url: str
	model: str
	timeout_s: float = 120.0
	temperature: float = 0.7


def _snip(body: str) -> str:
	if len(body) > 1000:
		return body[:1000] + "...(truncated)"
	return body


class OpenRouterClient:
	def __init__(self, cfg: OpenRouterConfig, transport: Optional[httpx.AsyncBaseTransport] = None):
		self.cfg = cfg
		self._client = httpx.AsyncClient(
			base_url=cfg.base_url,
			timeout=httpx.Timeout(cfg.timeout_s),
			headers={
				"Authorization": f"Bearer {cfg.api_key}",
				"Content-Type": "application/json",
			},
			transport=transport,
		)

	@property
	def model(self) -> str:
		return self.cfg.model

	async def aclose(self) -> None:
		await self._client.aclose()

	async def send(
		self,
		prompt: str,
		model: Optional[str] = None,
		system_prompt: Optional[str] = None,
	) -> AsyncIterator[str]:
		messages = []
		if system_prompt:
			messages.append({"role": "system", "content": system_prompt})
		messages.append({"role": "user", "content": prompt})

		payload: Dict[str, Any] = {
			"model": model or self.cfg.model,
			"messages": messages,
			"temperature": self.cfg.temperature,
			"stream": True,
		}

		async with self._client.stream("POST", "/chat/completions", json=payload) as r:
			if r.status_code < 200 or r.status_code >= 300:
				body = (await r.aread()).decode("utf-8", errors="replace")
				if r.status_code in _AUTH_STATUS:
					raise AuthorizationError(f"OpenRouter HTTP {r.status_code}: {_snip(body)}")
				raise ValueError(f"OpenRouter HTTP {r.status_code}: {_snip(body)}")

			async for line in r.aiter_lines():
				line = line.strip()
				# SSE 注释行（": OPENROUTER PROCESSING"）和空行直接跳过
				if not line.startswith("data:"):
					continue

				data = line[5:].strip()
				if data == "[DONE]":
					break

				try:
					chunk = json.loads(data)
				except json.JSONDecodeError:
					logger.debug("skip malformed SSE line: %s", data[:200])
					continue

				if "error" in chunk:
					err = chunk["error"]
					msg = err.get("message", "") if isinstance(err, dict) else str(err)
					code = err.get("code") if isinstance(err, dict) else None
					if code in _AUTH_STATUS:
						raise AuthorizationError(f"OpenRouter stream error: {msg}")
					raise ValueError(f"OpenRouter stream error: {msg}")

				choices = chunk.get("choices") or []
				if not choices:
					continue
				delta = (choices[0].get("delta") or {}).get("content")
				if delta:
					yield delta

	async def complete(
		self,
		prompt: str,
		model: Optional[str] = None,
		on_chunk: Optional[Callable[[str], None]] = None,
		system_prompt: Optional[str] = None,
	) -> str:
		parts = []
		async for piece in self.send(prompt, model=model, system_prompt=system_prompt):
			parts.append(piece)
			if on_chunk is not None:
				on_chunk(piece)
		return "".join(parts)


def load_openrouter_client(
	project_root: Optional[str] = None,
	api_key: Optional[str] = None,
	base_url: Optional[str] = None,
	model: Optional[str] = None,
	timeout_s: Optional[float] = None,
	transport: Optional[httpx.AsyncBaseTransport] = None,
) -> OpenRouterClient:
	"""
	默认从 project_root/.env 读取（project_root 缺省为当前工作目录）。
	"""
	s = load_settings(project_root).openrouter

	cfg = OpenRouterConfig(
		api_key=require((api_key or s.api_key).strip(), "OPENROUTER_API_KEY"),
		base_url=(base_url or s.base_url).strip(),
		model=(model or s.model).strip(),
		timeout_s=float(timeout_s or s.timeout_s),
	)
	return OpenRouterClient(cfg, transport=transport)
