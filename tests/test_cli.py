from __future__ import annotations

from tftpput.cli import build_parser, main


def test_send_defaults():
    args = build_parser().parse_args(["send", "--host", "10.0.0.1", "--file", "fw.bin"])
    assert args.port == 69
    assert args.timeout == 5.0
    assert args.max_retries == 3
    assert args.mode == "octet"
    assert args.name is None


def test_missing_file_exits_nonzero(tmp_path, capsys):
    rc = main(["send", "--host", "127.0.0.1", "--file", str(tmp_path / "missing.bin")])
    assert rc == 1
    assert "[101]" in capsys.readouterr().err
