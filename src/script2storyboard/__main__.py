# -*- coding: utf-8 -*-
"""
script2storyboard/__main__.py

支持 `python -m script2storyboard`，直接转发到 cli.main()。
"""

from script2storyboard.cli import main

if __name__ == "__main__":
	main()
