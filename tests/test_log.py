"""ロガー設定のユニットテスト"""

import logging

from k1s0_feature_client.log import LOGGER_NAME, new_logger


def test_new_logger_json_format() -> None:
    """JSON フォーマットのロガーが作成できること。"""
    logger = new_logger(level="INFO", format="json")
    assert logger is not None


def test_new_logger_text_format() -> None:
    """テキストフォーマットのロガーが作成できること。"""
    logger = new_logger(level="DEBUG", format="text")
    assert logger is not None


def test_new_logger_sets_library_level() -> None:
    """ライブラリロガーのレベルが設定されること。"""
    new_logger(level="WARNING")
    assert logging.getLogger(LOGGER_NAME).level == logging.WARNING


def test_new_logger_returns_bound_logger() -> None:
    """bind できるロガーが返ること。"""
    logger = new_logger()
    bound = logger.bind(feature="dark-mode")
    assert bound is not None
