# -*- coding: utf-8 -*-
"""
scripts/split_script_to_episodes.py

这个脚本做什么：
- 把“整部剧本 txt”按“第X集”标题切分成多个文件，不碰 project.json。
- 输出命名：ep_<no>.txt，no 来自标题里的集数（第十二集 -> ep_012.txt）
- 第一个标题之前的简介/人物表输出为 front_matter.txt
- 同时生成 episodes_index.json（按集数排序）

和 `script2storyboard import` 的区别：
- import 直接写进项目；这个脚本只落盘，方便先人工检查切分结果。
"""

from __future__ import annotations

import argparse
import json
from pathlib import Path
from typing import Dict, List

from script2storyboard.core.script_text import EpisodeSeg, split_episodes


def write_outputs(out_dir: Path, front: List[str], segs: List[EpisodeSeg]) -> Path:
	out_dir.mkdir(parents=True, exist_ok=True)

	max_no = max([s.no for s in segs], default=0)
	width = max(3, len(str(max_no)))

	index: List[Dict] = []

	if front:
		front_path = out_dir / "front_matter.txt"
		front_path.write_text("\n".join(front).strip() + "\n", encoding="utf-8")
		index.append({"type": "front_matter", "file": front_path.name, "chars": len(front_path.read_text(encoding="utf-8"))})

	for s in segs:
		fn = f"ep_{s.no:0{width}d}.txt"
		content = s.text.strip() + "\n"
		(out_dir / fn).write_text(content, encoding="utf-8")
		index.append(
			{
				"type": "episode",
				"no": s.no,
				"title": s.title,
				"file": fn,
				"chars": len(content),
				"lines": len(s.lines),
			}
		)

	index_path = out_dir / "episodes_index.json"
	index_path.write_text(json.dumps(index, ensure_ascii=False, indent=2) + "\n", encoding="utf-8")
	return index_path


def main(argv=None) -> None:
	ap = argparse.ArgumentParser()
	ap.add_argument("--in_path", required=True, help="输入：整部剧本 txt（UTF-8）")
	ap.add_argument("--out_dir", default="output/episodes", help="输出目录")
	args = ap.parse_args(argv)

	text = Path(args.in_path).read_text(encoding="utf-8", errors="ignore")
	front, segs = split_episodes(text)
	index_path = write_outputs(Path(args.out_dir), front, segs)

	print(f"OK: episodes={len(segs)} front_lines={len(front)}")
	print(f"Index: {index_path}")


if __name__ == "__main__":
	main()
