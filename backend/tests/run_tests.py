#!/usr/bin/env python3
"""
图片加载与缓存测试运行脚本

使用方法：
    python tests/run_tests.py                  # 运行所有测试
    python tests/run_tests.py --fast           # 跳过 slow 标记的测试（真实计时器等待）
    python tests/run_tests.py loader cache     # 只运行文件名包含 loader 或 cache 的测试模块
    python tests/run_tests.py --fast preloader

快速开始：
    pip install -e ".[test]"
    python backend/tests/run_tests.py
"""

import sys
from pathlib import Path
from typing import List

import pytest

TESTS_DIR = Path(__file__).parent


def select_modules(names: List[str]) -> List[str]:
    """按名字片段挑选测试模块；没有名字时运行整个目录"""
    if not names:
        return [str(TESTS_DIR)]
    return sorted(
        str(path) for path in TESTS_DIR.glob("test_*.py")
        if any(name in path.stem for name in names)
    )


def build_args(argv: List[str]) -> List[str]:
    """把脚本参数转换成 pytest 参数"""
    args = ["-v"]
    if "--fast" in argv:
        args.extend(["-m", "not slow"])

    names = [arg for arg in argv if not arg.startswith("-")]
    modules = select_modules(names)
    if not modules:
        raise SystemExit(f"没有匹配的测试模块: {', '.join(names)}")
    return args + modules


def main():
    sys.exit(pytest.main(build_args(sys.argv[1:])))


if __name__ == "__main__":
    main()
