# -*- coding: utf-8 -*-
"""
script2storyboard/config.py

这个文件做什么：
- 统一读取运行配置（LLM、图片任务接口、剧集存储、对象存储、本地目录）。
- 推荐把 key 写在项目根目录的 .env 里，不需要在 shell 里 export。

配置来源优先级（从高到低）：
1) 显式传参
2) 系统环境变量
3) .env 文件（load_dotenv(override=False)，不会覆盖已有环境变量）
4) 代码里的默认值

安全约定：
- .env 必须写进 .gitignore
- 不要把 key 写进任何代码文件
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv


DEFAULT_OPENROUTER_BASE_URL = "https://openrouter.ai/api/v1"
DEFAULT_OPENROUTER_MODEL = "google/gemini-3-flash-preview"
DEFAULT_IMAGE_API_BASE_URL = "https://story.neodomain.cn"
DEFAULT_IMAGE_MODEL = "gemini-3-pro-image-preview"


@dataclass
class OpenRouterSettings:
	api_key: str = ""
	base_url: str = DEFAULT_OPENROUTER_BASE_URL
	model: str = DEFAULT_OPENROUTER_MODEL
	timeout_s: float = 120.0


@dataclass
class ImageApiSettings:
	access_token: str = ""
	user_id: str = ""
	base_url: str = DEFAULT_IMAGE_API_BASE_URL
	model: str = DEFAULT_IMAGE_MODEL


@dataclass
class EpisodeApiSettings:
	base_url: str = ""
	access_token: str = ""


@dataclass
class ObjectStoreSettings:
	endpoint: str = ""
	access_key_id: str = ""
	access_key_secret: str = ""
	bucket: str = ""
	public_url: str = ""


@dataclass
class Settings:
	"""
	一次性读出所有配置；各个 client 的 load_* 函数只取自己需要的那一块，
	并在缺少必填项时报错（而不是在这里统一报错，避免只跑离线阶段也要配 key）。
	"""
	openrouter: OpenRouterSettings = field(default_factory=OpenRouterSettings)
	image: ImageApiSettings = field(default_factory=ImageApiSettings)
	episodes: EpisodeApiSettings = field(default_factory=EpisodeApiSettings)
	object_store: ObjectStoreSettings = field(default_factory=ObjectStoreSettings)
	reference_data_dir: str = ""
	local_store_dir: str = ""


def _load_dotenv_if_present(project_root: Path) -> None:
	"""
	如果项目根目录存在 .env，则加载到 os.environ。
	"""
	env_path = project_root / ".env"
	if env_path.exists():
		load_dotenv(dotenv_path=str(env_path), override=False)


def _env(name: str, default: str = "") -> str:
	return (os.environ.get(name, "") or "").strip() or default


def load_settings(project_root: Optional[str] = None) -> Settings:
	"""
	project_root 缺省为当前工作目录。
	"""
	root = Path(project_root or os.getcwd()).resolve()
	_load_dotenv_if_present(root)

	timeout_raw = _env("OPENROUTER_TIMEOUT_S", "120")

	return Settings(
		openrouter=OpenRouterSettings(
			api_key=_env("OPENROUTER_API_KEY"),
			base_url=_env("OPENROUTER_BASE_URL", DEFAULT_OPENROUTER_BASE_URL),
			model=_env("OPENROUTER_MODEL", DEFAULT_OPENROUTER_MODEL),
			timeout_s=float(timeout_raw),
		),
		image=ImageApiSettings(
			access_token=_env("IMAGE_ACCESS_TOKEN"),
			user_id=_env("IMAGE_USER_ID"),
			base_url=_env("IMAGE_API_BASE_URL", DEFAULT_IMAGE_API_BASE_URL),
			model=_env("IMAGE_MODEL", DEFAULT_IMAGE_MODEL),
		),
		episodes=EpisodeApiSettings(
			base_url=_env("EPISODE_API_BASE_URL"),
			access_token=_env("EPISODE_ACCESS_TOKEN"),
		),
		object_store=ObjectStoreSettings(
			endpoint=_env("OSS_ENDPOINT"),
			access_key_id=_env("OSS_ACCESS_KEY_ID"),
			access_key_secret=_env("OSS_ACCESS_KEY_SECRET"),
			bucket=_env("OSS_BUCKET"),
			public_url=_env("OSS_PUBLIC_URL"),
		),
		reference_data_dir=_env("REFERENCE_DATA_DIR"),
		local_store_dir=_env("LOCAL_STORE_DIR", str(root / ".local_store")),
	)


def require(value: str, name: str) -> str:
	if not value:
		raise ValueError(f"Missing {name} (from .env or env)")
	return value
