# -*- coding: utf-8 -*-
"""
script2storyboard/core/grid.py

九宫格和镜头下标之间的换算。

九宫格不是持久化实体：第 g 张九宫格就是镜头 [g*9, g*9+9) 这一段，
格子 i 对应镜头 g*9+i。
"""

from __future__ import annotations

from typing import List, Sequence, Tuple, TypeVar

GRID_SIZE = 9

T = TypeVar("T")


def grid_index_of(shot_index: int) -> int:
	return shot_index // GRID_SIZE


def cell_index_of(shot_index: int) -> int:
	return shot_index % GRID_SIZE


def total_grids(num_shots: int) -> int:
	return (num_shots + GRID_SIZE - 1) // GRID_SIZE


def grid_range(grid_index: int, num_shots: int) -> Tuple[int, int]:
	"""返回 [start, end)，最后一张可能不满 9 个。"""
	start = grid_index * GRID_SIZE
	return start, min(start + GRID_SIZE, num_shots)


def grid_slice(items: Sequence[T], grid_index: int) -> List[T]:
	start, end = grid_range(grid_index, len(items))
	return list(items[start:end])
