# -*- coding: utf-8 -*-
"""
skills/models.py

LLM 输出的 pydantic 模型基类。

- JSON 里是 camelCase，Python 里是 snake_case（alias_generator 负责对应）。
- 模型没声明的字段原样保留（extra="allow"），落盘时不丢信息。
- parse_model()：校验通过返回模型，失败抛 OutputParseError（带原文）。
"""

from __future__ import annotations

from typing import Any, Type, TypeVar

from pydantic import BaseModel, ConfigDict, ValidationError
from pydantic.alias_generators import to_camel

from script2storyboard.errors import OutputParseError

M = TypeVar("M", bound=BaseModel)


class CamelModel(BaseModel):
	model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

	def to_json_dict(self) -> dict:
		return self.model_dump(by_alias=True, exclude_none=True)


def parse_model(model: Type[M], data: Any, raw_text: str = "") -> M:
	try:
		return model.model_validate(data)
	except ValidationError as e:
		raise OutputParseError(f"{model.__name__} validation failed: {e.errors()[:3]}", raw_text=raw_text) from e
