import sys

import pytest

from marketpilot import cli


def _run(monkeypatch, *argv):
    monkeypatch.setattr(sys, "argv", ["marketpilot", *argv])
    cli.main()


class TestOfflineCommands:
    def test_cycle(self, monkeypatch, capsys):
        _run(monkeypatch, "cycle", "btc-updown-15m", "--at", "1767225700")

        out = capsys.readouterr().out
        assert "btc-updown-15m-1767225600" in out
        assert "btc-updown-15m-1767226500" in out

    def test_plan(self, monkeypatch, capsys):
        _run(monkeypatch, "plan", "100", "--mode", "ladder", "--price", "0.5", "--levels", "3")

        out = capsys.readouterr().out
        assert "Mode: LADDER" in out
        assert "Committed: 100.00" in out
        assert out.count(" L1 ") == 2

    def test_invalid_plan_exits_with_error(self, monkeypatch, capsys):
        with pytest.raises(SystemExit) as exc_info:
            _run(monkeypatch, "plan", "0")

        assert exc_info.value.code == 1
        assert "INVALID_CONFIG" in capsys.readouterr().err

    @pytest.mark.parametrize("price", ["1.5", "0", "-0.2"])
    def test_plan_price_out_of_range(self, monkeypatch, capsys, price):
        with pytest.raises(SystemExit) as exc_info:
            _run(monkeypatch, "plan", "100", "--price", price)

        assert exc_info.value.code == 1
        err = capsys.readouterr().err
        assert "INVALID_CONFIG" in err
        assert "--price" in err
