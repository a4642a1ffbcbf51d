"""Tests for the report command line."""

import pytest

from merchant_watcher.report import build_parser


def test_defaults():
    args = build_parser().parse_args([])
    assert args.limit is None
    assert args.metric == "transactions"
    assert args.window is None


def test_accepts_positive_limit():
    assert build_parser().parse_args(["--limit", "3"]).limit == 3


@pytest.mark.parametrize("limit", ["-1", "0", "ten"])
def test_rejects_bad_limit(limit, capsys):
    with pytest.raises(SystemExit) as exc:
        build_parser().parse_args(["--limit", limit])
    assert exc.value.code == 2
    assert "--limit" in capsys.readouterr().err
