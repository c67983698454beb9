# -*- coding: utf-8 -*-
"""
skills/llm.py

skill 层唯一依赖的 LLM 接口，以及“调用一次并记日志”的小工具。

- LLMClient：只要求 complete(prompt, model, on_chunk) -> str；
  OpenRouterClient 满足它，测试里用假对象替换。
- ask()：调用一次，把 prompt/回复追加到 logs/llm.jsonl（log_path 为空则不记）。
"""

from __future__ import annotations

import time
from pathlib import Path
from typing import Callable, Optional, Protocol

from script2storyboard.core.project_file import append_jsonl


class LLMClient(Protocol):
	async def complete(
		self,
		prompt: str,
		model: Optional[str] = None,
		on_chunk: Optional[Callable[[str], None]] = None,
		system_prompt: Optional[str] = None,
	) -> str:
		...


async def ask(
	client: LLMClient,
	prompt: str,
	stage: str,
	log_path: Optional[Path] = None,
	model: Optional[str] = None,
	on_chunk: Optional[Callable[[str], None]] = None,
) -> str:
	t0 = time.time()
	text = await client.complete(prompt, model=model, on_chunk=on_chunk)
	if log_path is not None:
		append_jsonl(log_path, {
			"ts": int(t0 * 1000),
			"stage": stage,
			"model": model or getattr(client, "model", ""),
			"elapsed_s": round(time.time() - t0, 2),
			"prompt": prompt,
			"response": text,
		})
	return text
