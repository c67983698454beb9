# -*- coding: utf-8 -*-
"""
script2storyboard/errors.py

这个文件做什么：
- 集中定义项目里会被上层区分处理的异常类型。
- 其余错误仍然用 ValueError / httpx.HTTPError 原样向上抛。

分类原则：
- AuthorizationError：鉴权/额度问题，重试不可能成功，直接上报。
- TaskApiError：图片任务接口返回 success=false。
- OutputParseError：LLM 输出经过修复仍无法解析，保留原文便于排查。
- StageFailedError：某个 LLM 阶段重试耗尽。
"""

from __future__ import annotations


class StoryboardError(Exception):
	pass


class AuthorizationError(StoryboardError):
	"""key 无效、未登录、余额不足等。"""


class TaskApiError(StoryboardError):
	def __init__(self, message: str, err_code: str = ""):
		super().__init__(message)
		self.err_code = err_code


class TaskAborted(StoryboardError):
	"""用户主动中止了批量生成。"""


class OutputParseError(StoryboardError, ValueError):
	def __init__(self, message: str, raw_text: str = ""):
		super().__init__(message)
		self.raw_text = raw_text


class StageFailedError(StoryboardError):
	def __init__(self, stage: str, message: str, raw_text: str = ""):
		super().__init__(f"stage {stage} failed: {message}")
		self.stage = stage
		self.raw_text = raw_text
